"""Tests for the message and events listener cogs."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from anoncord.bot.events_listener import EventsListenerCog
from anoncord.bot.message_listener import MessageListenerCog
from anoncord.datatypes.content_datatypes import ContentKind
from anoncord.datatypes.discord_datatypes import UserID
from anoncord.datatypes.relay_datatypes import InboundOutcome, InboundResult

RELAY_CHANNEL = 500
GUILD = 1


@pytest.fixture
def relay():
    relay = MagicMock()
    relay.moderators_bypass = True
    relay.registry.contains = MagicMock(return_value=False)
    relay.on_inbound_message = AsyncMock(
        return_value=InboundResult(outcome=InboundOutcome.RELAYED, handle="Anon-AAAA")
    )
    relay.on_membership_change = MagicMock(return_value=True)
    return relay


def make_message(content="hello", *, channel_id=RELAY_CHANNEL, author_id=10, bot=False):
    message = MagicMock(spec=discord.Message)
    message.id = 99
    message.content = content
    message.guild = MagicMock(spec=discord.Guild)
    message.channel = SimpleNamespace(id=channel_id)
    message.author = MagicMock(spec=discord.Member)
    message.author.id = author_id
    message.author.bot = bot
    message.attachments = []
    message.stickers = []
    message.poll = None
    message.delete = AsyncMock()
    return message


class TestMessageListener:
    @pytest.mark.asyncio
    async def test_member_message_is_removed_and_relayed(self, relay):
        cog = MessageListenerCog(MagicMock(), relay, RELAY_CHANNEL, "bot-0")
        message = make_message("hello")

        await cog.on_message(message)

        message.delete.assert_awaited_once()
        source_id, content, connection_id = relay.on_inbound_message.call_args.args
        assert source_id == UserID(10)
        assert content.kind is ContentKind.TEXT
        assert content.text == "hello"
        assert connection_id == "bot-0"

    @pytest.mark.asyncio
    async def test_other_channels_and_bots_are_ignored(self, relay):
        cog = MessageListenerCog(MagicMock(), relay, RELAY_CHANNEL, "bot-0")

        await cog.on_message(make_message(channel_id=RELAY_CHANNEL + 1))
        await cog.on_message(make_message(bot=True))

        relay.on_inbound_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_moderator_messages_stay_in_place(self, relay):
        relay.registry.contains.return_value = True
        cog = MessageListenerCog(MagicMock(), relay, RELAY_CHANNEL, "bot-0")
        message = make_message()

        await cog.on_message(message)

        message.delete.assert_not_awaited()
        relay.on_inbound_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_moderator_messages_relayed_without_bypass(self, relay):
        relay.moderators_bypass = False
        relay.registry.contains.return_value = True
        cog = MessageListenerCog(MagicMock(), relay, RELAY_CHANNEL, "bot-0")

        await cog.on_message(make_message())

        relay.on_inbound_message.assert_awaited_once()


    @pytest.mark.asyncio
    async def test_attachments_are_downloaded_before_delete(self, relay):
        cog = MessageListenerCog(MagicMock(), relay, RELAY_CHANNEL, "bot-0")
        message = make_message("")
        order = []

        async def read():
            order.append("read")
            return b"png"

        async def delete():
            order.append("delete")

        message.attachments = [
            SimpleNamespace(
                content_type="image/png",
                url="https://cdn.discordapp.com/attachments/1/2/cat.png",
                filename="cat.png",
                read=read,
            )
        ]
        message.delete = AsyncMock(side_effect=delete)

        await cog.on_message(message)

        assert order == ["read", "delete"]
        content = relay.on_inbound_message.call_args.args[1]
        assert content.kind is ContentKind.PHOTO
        assert [f.data for f in content.files] == [b"png"]


class TestEventsListener:
    @pytest.mark.asyncio
    async def test_first_ready_hook_runs_once(self, relay):
        hook = AsyncMock()
        bot = SimpleNamespace(user=SimpleNamespace(id=999))
        cog = EventsListenerCog(bot, relay, GUILD, hook)

        await cog.on_ready()
        await cog.on_ready()

        hook.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ready_without_user_is_deferred(self, relay):
        hook = AsyncMock()
        cog = EventsListenerCog(SimpleNamespace(user=None), relay, GUILD, hook)

        await cog.on_ready()

        hook.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_member_remove_releases_handle(self, relay):
        cog = EventsListenerCog(MagicMock(), relay, GUILD)
        member = SimpleNamespace(id=10, guild=SimpleNamespace(id=GUILD))

        await cog.on_member_remove(member)

        relay.on_membership_change.assert_called_once_with(UserID(10), "left")

    @pytest.mark.asyncio
    async def test_ban_releases_handle(self, relay):
        cog = EventsListenerCog(MagicMock(), relay, GUILD)

        await cog.on_member_ban(SimpleNamespace(id=GUILD), SimpleNamespace(id=10))

        relay.on_membership_change.assert_called_once_with(UserID(10), "banned")

    @pytest.mark.asyncio
    async def test_other_guilds_are_ignored(self, relay):
        cog = EventsListenerCog(MagicMock(), relay, GUILD)

        await cog.on_member_remove(SimpleNamespace(id=10, guild=SimpleNamespace(id=GUILD + 1)))

        relay.on_membership_change.assert_not_called()
