"""Message listener Cog for Anoncord.

Watches the shared relay channel on the listening bot. Every member message
is captured with its attachments, removed from the channel and handed to the
relay, which re-posts it under a pseudonymous handle (or holds it for
moderator review).
"""

from __future__ import annotations

import discord
from discord.ext import commands

from anoncord.datatypes.discord_datatypes import UserID
from anoncord.datatypes.relay_datatypes import ConnectionID, InboundOutcome
from anoncord.relay.relay_pipeline import AnonymousRelay
from anoncord.util import discord_utils
from anoncord.util.logger import get_logger

logger = get_logger("message_listener_cog")


class MessageListenerCog(commands.Cog):
    """Cog responsible for feeding channel messages into the relay."""

    def __init__(
        self,
        bot: discord.Bot,
        relay: AnonymousRelay,
        relay_channel_id: int,
        connection_id: ConnectionID,
    ) -> None:
        self.bot = bot
        self.relay = relay
        self.relay_channel_id = relay_channel_id
        self.connection_id = connection_id
        logger.info("[MESSAGE LISTENER] Message listener cog loaded for channel %s", relay_channel_id)

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        if not discord_utils.should_relay_message(message, self.relay_channel_id):
            return

        source_id = UserID.from_user(message.author)
        if self.relay.moderators_bypass and self.relay.registry.contains(source_id):
            return

        content = await discord_utils.capture_message(message)
        await discord_utils.safe_delete_message(message)

        result = await self.relay.on_inbound_message(source_id, content, self.connection_id)
        if result.outcome is InboundOutcome.UNDELIVERABLE:
            logger.error("[MESSAGE LISTENER] Message %s could not be relayed: no outbound connection", message.id)
        elif result.outcome is InboundOutcome.QUEUED:
            logger.info("[MESSAGE LISTENER] Message from %s held for review (%s)", result.handle, result.verdict)


def setup(bot: discord.Bot, relay: AnonymousRelay, relay_channel_id: int, connection_id: ConnectionID) -> None:
    """Register the MessageListenerCog with the bot."""
    bot.add_cog(MessageListenerCog(bot, relay, relay_channel_id, connection_id))
