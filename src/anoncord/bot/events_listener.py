"""Event listener Cog for Anoncord.

Handles bot lifecycle (on_ready starts background refreshes) and membership
departures, which release the departed member's handle.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

import discord
from discord.ext import commands

from anoncord.datatypes.discord_datatypes import UserID
from anoncord.relay.relay_pipeline import AnonymousRelay
from anoncord.util.logger import get_logger

logger = get_logger("events_listener")


class EventsListenerCog(commands.Cog):
    """Handles lifecycle and membership events for the relay guild."""

    def __init__(
        self,
        bot: discord.Bot,
        relay: AnonymousRelay,
        guild_id: int,
        on_first_ready: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.bot = bot
        self.relay = relay
        self.guild_id = guild_id
        self._on_first_ready = on_first_ready
        self._ready_seen = False
        logger.info("[EVENTS LISTENER] Events listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        if not self.bot.user:
            logger.warning("[EVENTS LISTENER] Bot partially connected; user info not yet available.")
            return

        logger.info("Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)

        # on_ready fires again after reconnects
        if self._ready_seen:
            return
        self._ready_seen = True
        if self._on_first_ready is not None:
            await self._on_first_ready()

    @commands.Cog.listener(name="on_member_remove")
    async def on_member_remove(self, member: discord.Member) -> None:
        if member.guild.id != self.guild_id:
            return
        self._release(member, "left")

    @commands.Cog.listener(name="on_member_ban")
    async def on_member_ban(self, guild: discord.Guild, user: discord.User | discord.Member) -> None:
        if guild.id != self.guild_id:
            return
        self._release(user, "banned")

    def _release(self, user: discord.abc.User, status: str) -> None:
        released = self.relay.on_membership_change(UserID.from_user(user), status)
        logger.debug("[EVENTS LISTENER] Member %s %s (handle released: %s)", user.id, status, released)


def setup(
    bot: discord.Bot,
    relay: AnonymousRelay,
    guild_id: int,
    on_first_ready: Optional[Callable[[], Awaitable[None]]] = None,
) -> None:
    """Register the EventsListenerCog with the bot."""
    bot.add_cog(EventsListenerCog(bot, relay, guild_id, on_first_ready))
