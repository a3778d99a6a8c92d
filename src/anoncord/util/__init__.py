"""
Shared utilities.

- **logger.py**: Colourised console plus rotating file logging, one log file per session.
- **discord_utils.py**: Message filtering, moderator detection, and conversion of
  Discord messages into relay content.
"""
