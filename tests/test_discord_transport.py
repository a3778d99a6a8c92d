"""Tests for the Discord delivery channel, membership provider and review notifier."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from anoncord.bot.discord_transport import (
    DiscordDeliveryChannel,
    DiscordMembershipProvider,
    DiscordReviewNotifier,
    ModeratorUnreachable,
    PromptRef,
)
from anoncord.datatypes.content_datatypes import ContentKind, RelayContent, RelayFile
from anoncord.datatypes.discord_datatypes import ChannelID, MessageID, UserID
from anoncord.datatypes.relay_datatypes import PendingSubmission, SubmissionState
from anoncord.ui.review_ui import ReviewDecisionView


def make_submission() -> PendingSubmission:
    return PendingSubmission(
        submission_id="abc123",
        source_id=UserID(1),
        handle="Anon-AAAA",
        content=RelayContent.from_text("see https://example.com"),
        reason="link",
    )


def make_member(member_id: int, *, manage_messages: bool = False):
    member = MagicMock(spec=discord.Member)
    member.id = member_id
    member.bot = False
    member.guild_permissions = SimpleNamespace(
        administrator=False,
        manage_guild=False,
        manage_messages=manage_messages,
    )
    member.roles = []
    return member


class TestDeliveryChannel:
    @pytest.mark.asyncio
    async def test_sends_through_selected_bot_without_pinging(self):
        channel_a = MagicMock()
        channel_a.send = AsyncMock()
        channel_b = MagicMock()
        channel_b.send = AsyncMock()
        bots = {
            "bot-0": MagicMock(get_channel=MagicMock(return_value=channel_a)),
            "bot-1": MagicMock(get_channel=MagicMock(return_value=channel_b)),
        }
        delivery = DiscordDeliveryChannel(bots, channel_id=55)

        await delivery.send("bot-1", "Anon-AAAA: hi")

        channel_a.send.assert_not_awaited()
        channel_b.send.assert_awaited_once()
        args, kwargs = channel_b.send.call_args
        assert args == ("Anon-AAAA: hi",)
        assert isinstance(kwargs["allowed_mentions"], discord.AllowedMentions)
        bots["bot-1"].get_channel.assert_called_once_with(55)

    @pytest.mark.asyncio
    async def test_fetches_uncached_channel(self):
        channel = MagicMock()
        channel.send = AsyncMock()
        bot = MagicMock(get_channel=MagicMock(return_value=None), fetch_channel=AsyncMock(return_value=channel))

        await DiscordDeliveryChannel({"bot-0": bot}, channel_id=55).send("bot-0", "x")

        bot.fetch_channel.assert_awaited_once_with(55)
        channel.send.assert_awaited_once()


    @pytest.mark.asyncio
    async def test_captured_files_are_reuploaded(self):
        channel = MagicMock()
        channel.send = AsyncMock()
        bot = MagicMock(get_channel=MagicMock(return_value=channel))
        files = (RelayFile(filename="cat.png", data=b"png"),)

        await DiscordDeliveryChannel({"bot-0": bot}, channel_id=55).send("bot-0", "Anon-AAAA: [photo]", files=files)

        uploads = channel.send.call_args.kwargs["files"]
        assert [f.filename for f in uploads] == ["cat.png"]
        assert all(isinstance(f, discord.File) for f in uploads)

    @pytest.mark.asyncio
    async def test_text_only_send_passes_no_files(self):
        channel = MagicMock()
        channel.send = AsyncMock()
        bot = MagicMock(get_channel=MagicMock(return_value=channel))

        await DiscordDeliveryChannel({"bot-0": bot}, channel_id=55).send("bot-0", "Anon-AAAA: hi")

        assert "files" not in channel.send.call_args.kwargs


class TestMembershipProvider:
    @pytest.mark.asyncio
    async def test_returns_only_moderators(self):
        members = [make_member(1, manage_messages=True), make_member(2), make_member(3, manage_messages=True)]

        async def fetch_members(limit=None):
            for member in members:
                yield member

        guild = MagicMock()
        guild.fetch_members = fetch_members
        bot = MagicMock(get_guild=MagicMock(return_value=guild))

        moderators = await DiscordMembershipProvider(bot, guild_id=9).fetch_moderator_ids()

        assert moderators == [UserID(1), UserID(3)]


class TestReviewNotifier:
    @pytest.mark.asyncio
    async def test_requires_bind(self):
        notifier = DiscordReviewNotifier(MagicMock())

        with pytest.raises(RuntimeError):
            await notifier.send_prompt(UserID(5), make_submission())

    @pytest.mark.asyncio
    async def test_send_prompt_returns_reference(self):
        sent = SimpleNamespace(id=777, channel=SimpleNamespace(id=888))
        user = MagicMock()
        user.send = AsyncMock(return_value=sent)
        bot = MagicMock(get_user=MagicMock(return_value=user))
        notifier = DiscordReviewNotifier(bot)
        notifier.bind(AsyncMock())

        ref = await notifier.send_prompt(UserID(5), make_submission())

        assert ref == PromptRef(user_id=UserID(5), channel_id=ChannelID(888), message_id=MessageID(777))
        kwargs = user.send.call_args.kwargs
        assert isinstance(kwargs["embed"], discord.Embed)
        assert isinstance(kwargs["view"], ReviewDecisionView)
        bot.get_user.assert_called_once_with(5)

    @pytest.mark.asyncio
    async def test_closed_dms_raise_unreachable(self):
        user = MagicMock()
        user.send = AsyncMock(side_effect=discord.Forbidden(MagicMock(), "DM disabled"))
        notifier = DiscordReviewNotifier(MagicMock(get_user=MagicMock(return_value=user)))
        notifier.bind(AsyncMock())

        with pytest.raises(ModeratorUnreachable):
            await notifier.send_prompt(UserID(5), make_submission())

    @pytest.mark.asyncio
    async def test_resolve_prompt_replaces_buttons(self):
        partial = MagicMock()
        partial.edit = AsyncMock()
        channel = MagicMock()
        channel.get_partial_message = MagicMock(return_value=partial)
        bot = MagicMock(get_channel=MagicMock(return_value=channel))
        notifier = DiscordReviewNotifier(bot)
        submission = make_submission()
        submission.try_transition(SubmissionState.APPROVED, actor=UserID(5))
        ref = PromptRef(user_id=UserID(5), channel_id=ChannelID(888), message_id=MessageID(777))

        await notifier.resolve_prompt(UserID(5), ref, submission)

        channel.get_partial_message.assert_called_once_with(777)
        kwargs = partial.edit.call_args.kwargs
        assert kwargs["view"] is None
        assert kwargs["embed"].title.startswith("✅")

    @pytest.mark.asyncio
    async def test_prompt_carries_held_media(self):
        sent = SimpleNamespace(id=777, channel=SimpleNamespace(id=888))
        user = MagicMock()
        user.send = AsyncMock(return_value=sent)
        notifier = DiscordReviewNotifier(MagicMock(get_user=MagicMock(return_value=user)))
        notifier.bind(AsyncMock())
        submission = PendingSubmission(
            submission_id="abc123",
            source_id=UserID(1),
            handle="Anon-AAAA",
            content=RelayContent(
                kind=ContentKind.PHOTO,
                caption="free scam",
                files=(RelayFile(filename="cat.png", data=b"png"),),
            ),
            reason="blocked_term:scam",
        )

        await notifier.send_prompt(UserID(5), submission)

        uploads = user.send.call_args.kwargs["files"]
        assert [f.filename for f in uploads] == ["cat.png"]
