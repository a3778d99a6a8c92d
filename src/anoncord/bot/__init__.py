"""
Discord transport for the relay.

- **discord_transport.py**: Delivery channel over several bot accounts,
  membership provider, and DM review notifier.
- **message_listener.py**: Cog feeding relay-channel messages into the pipeline.
- **events_listener.py**: Cog for lifecycle and membership departure events.
"""
