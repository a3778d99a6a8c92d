"""
Data structures used across the relay.

- **content_datatypes.py**: Tagged content model and its renderable text projection.
- **relay_datatypes.py**: Identities, submissions, connections, outcome enums and errors.
- **discord_datatypes.py**: Type-safe Discord snowflake wrappers.
"""
