"""Anoncord: anonymous relay with moderator approval for Discord."""

__version__ = "0.1.0"
