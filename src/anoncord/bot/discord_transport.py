"""
Discord implementations of the relay's external collaborators.

- :class:`DiscordDeliveryChannel`: posts rendered content to the shared
  channel through one of several bot accounts.
- :class:`DiscordMembershipProvider`: lists the guild's moderators.
- :class:`DiscordReviewNotifier`: DMs review prompts to moderators and edits
  them once a submission is resolved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence

import discord

from anoncord.datatypes.content_datatypes import RelayFile
from anoncord.datatypes.discord_datatypes import ChannelID, MessageID, UserID
from anoncord.datatypes.relay_datatypes import ConnectionID, PendingSubmission, RelayError
from anoncord.ui.review_embed_helper import build_prompt_embed, build_resolved_embed
from anoncord.ui.review_ui import DecisionHandler, ReviewDecisionView
from anoncord.util.discord_utils import is_moderator, to_discord_files
from anoncord.util.logger import get_logger

logger = get_logger("discord_transport")


class ModeratorUnreachable(RelayError):
    """The moderator has no private channel the bot can write to."""


@dataclass(frozen=True, slots=True)
class PromptRef:
    """Where a review prompt was posted."""

    user_id: UserID
    channel_id: ChannelID
    message_id: MessageID


async def resolve_messageable(bot: discord.Bot, channel_id: int) -> discord.abc.Messageable:
    channel = bot.get_channel(channel_id)
    if channel is None:
        channel = await bot.fetch_channel(channel_id)
    return channel  # type: ignore[return-value]


class DiscordDeliveryChannel:
    """
    Delivery layer over several bot accounts.

    Args:
        bots: Bot per connection ID.
        channel_id: Shared channel that receives relayed content.
    """

    def __init__(self, bots: Dict[ConnectionID, discord.Bot], channel_id: int) -> None:
        self._bots = dict(bots)
        self.channel_id = channel_id

    async def send(
        self,
        connection_id: ConnectionID,
        rendered_content: str,
        files: Sequence[RelayFile] = (),
    ) -> discord.Message:
        bot = self._bots[connection_id]
        channel = await resolve_messageable(bot, self.channel_id)
        kwargs: Dict[str, Any] = {"files": to_discord_files(files)} if files else {}
        return await channel.send(rendered_content, allowed_mentions=discord.AllowedMentions.none(), **kwargs)


class DiscordMembershipProvider:
    """Fetches the relay guild's members and keeps those with moderator rights."""

    def __init__(self, bot: discord.Bot, guild_id: int, role_ids: Iterable[int] = ()) -> None:
        self.bot = bot
        self.guild_id = guild_id
        self.role_ids = tuple(role_ids)

    async def fetch_moderator_ids(self) -> List[UserID]:
        guild = self.bot.get_guild(self.guild_id)
        if guild is None:
            guild = await self.bot.fetch_guild(self.guild_id)

        moderators: List[UserID] = []
        async for member in guild.fetch_members(limit=None):
            if is_moderator(member, self.role_ids):
                moderators.append(UserID.from_user(member))
        return moderators


class DiscordReviewNotifier:
    """
    Sends review prompts as direct messages.

    ``bind`` must be called with the relay's decision handler before the first
    prompt is sent, since the buttons forward clicks to it.
    """

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot
        self._handler: DecisionHandler | None = None

    def bind(self, handler: DecisionHandler) -> None:
        self._handler = handler

    async def _fetch_user(self, user_id: UserID) -> discord.User:
        user = self.bot.get_user(user_id.to_int())
        if user is None:
            user = await self.bot.fetch_user(user_id.to_int())
        return user

    async def send_prompt(self, moderator_id: UserID, submission: PendingSubmission) -> PromptRef:
        if self._handler is None:
            raise RuntimeError("DiscordReviewNotifier used before bind()")

        user = await self._fetch_user(moderator_id)
        try:
            # Held media travels with the prompt
            files = submission.content.files
            message = await user.send(
                embed=build_prompt_embed(submission),
                view=ReviewDecisionView(submission.submission_id, self._handler),
                **({"files": to_discord_files(files)} if files else {}),
            )
        except discord.Forbidden as exc:
            raise ModeratorUnreachable(f"moderator {moderator_id} has no reachable private channel") from exc

        logger.debug("[NOTIFIER] Prompted moderator %s for submission %s", moderator_id, submission.submission_id)
        return PromptRef(
            user_id=moderator_id,
            channel_id=ChannelID.from_channel(message.channel),
            message_id=MessageID.from_message(message),
        )

    async def resolve_prompt(self, moderator_id: UserID, prompt_ref: PromptRef, submission: PendingSubmission) -> None:
        channel = await resolve_messageable(self.bot, prompt_ref.channel_id.to_int())
        message = channel.get_partial_message(prompt_ref.message_id.to_int())  # type: ignore[attr-defined]
        await message.edit(embed=build_resolved_embed(submission), view=None)
