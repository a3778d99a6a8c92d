"""Discord helpers shared by the relay cogs and transport adapters."""

from __future__ import annotations

import dataclasses
import io
from typing import Iterable, List, Sequence, Tuple, Union

import discord

from anoncord.datatypes.content_datatypes import ContentKind, RelayContent, RelayFile
from anoncord.util.logger import get_logger

logger = get_logger("discord_utils")

MODERATOR_PERMISSIONS = ("administrator", "manage_guild", "manage_messages")


def is_ignored_author(author: Union[discord.User, discord.Member]) -> bool:
    """
    Check if an author should be ignored by the relay (bots, webhooks, non-members).

    Args:
        author (discord.User | discord.Member): The user or member to check.

    Returns:
        bool: True if the author is a bot or not a member, False otherwise.
    """
    return author.bot or not isinstance(author, discord.Member)


def should_relay_message(message: discord.Message, relay_channel_id: int) -> bool:
    """Return True for member messages posted in the shared relay channel."""
    if message.guild is None or message.channel.id != relay_channel_id:
        return False
    return not is_ignored_author(message.author)


def is_moderator(member: Union[discord.User, discord.Member], role_ids: Iterable[int] = ()) -> bool:
    """
    Check if a member may moderate the relay.

    Moderators are members with administrator, manage guild or manage
    messages permission, or holding one of the configured roles.
    """
    if not isinstance(member, discord.Member) or member.bot:
        return False

    perms = member.guild_permissions
    if any(getattr(perms, attr, False) for attr in MODERATOR_PERMISSIONS):
        return True

    wanted = set(role_ids)
    return bool(wanted) and any(role.id in wanted for role in member.roles)


def _attachment_kind(attachment: discord.Attachment) -> ContentKind:
    content_type = (attachment.content_type or "").lower()
    if content_type == "image/gif":
        return ContentKind.ANIMATION
    if content_type.startswith("image/"):
        return ContentKind.PHOTO
    if content_type.startswith("video/"):
        return ContentKind.VIDEO
    if content_type.startswith("audio/"):
        return ContentKind.VOICE
    return ContentKind.DOCUMENT


def content_from_message(message: discord.Message) -> RelayContent:
    """
    Convert a Discord message into the relay's content model.

    The raw ``message.content`` is used (not ``clean_content``) so mention
    markup such as ``<@123>`` stays visible to the classifier.
    """
    text = message.content or ""

    poll = getattr(message, "poll", None)
    if poll is not None:
        question = getattr(poll.question, "text", None) or str(poll.question)
        options = tuple(getattr(answer, "text", None) or str(answer) for answer in poll.answers)
        return RelayContent(kind=ContentKind.POLL, text=question, extra={"options": options})

    if message.stickers:
        return RelayContent(kind=ContentKind.STICKER, text=message.stickers[0].name, caption=text)

    if message.attachments:
        kinds = {_attachment_kind(a) for a in message.attachments}
        kind = kinds.pop() if len(kinds) == 1 else ContentKind.DOCUMENT
        return RelayContent(
            kind=kind,
            caption=text,
            attachment_urls=tuple(a.url for a in message.attachments),
        )

    if text:
        return RelayContent.from_text(text)

    return RelayContent(kind=ContentKind.UNSUPPORTED)


async def read_attachments(message: discord.Message) -> Tuple[RelayFile, ...]:
    """
    Download every attachment of ``message``.

    CDN links stop working once the message is deleted, so files are read
    while the message still exists. An attachment that cannot be read is
    skipped and its URL stays in the rendered text.
    """
    files: List[RelayFile] = []
    for attachment in message.attachments:
        try:
            data = await attachment.read()
        except discord.HTTPException as exc:
            logger.warning("Could not download attachment %s of message %s: %s", attachment.filename, message.id, exc)
            continue
        files.append(
            RelayFile(
                filename=attachment.filename,
                data=data,
                url=attachment.url,
                content_type=attachment.content_type or "",
            )
        )
    return tuple(files)


async def capture_message(message: discord.Message) -> RelayContent:
    """Convert ``message`` and keep copies of its attachments for re-upload."""
    content = content_from_message(message)
    if not message.attachments:
        return content
    return dataclasses.replace(content, files=await read_attachments(message))


def to_discord_files(files: Sequence[RelayFile]) -> List[discord.File]:
    """Build upload objects for ``files``. A ``discord.File`` can only be sent once."""
    return [discord.File(io.BytesIO(f.data), filename=f.filename) for f in files]


async def safe_delete_message(message: discord.Message) -> bool:
    """
    Attempt to delete a Discord message, suppressing recoverable errors.

    Args:
        message (discord.Message): The message to delete.

    Returns:
        bool: True if deletion succeeded, False otherwise.
    """
    try:
        await message.delete()
        return True
    except discord.NotFound:
        return False
    except discord.Forbidden:
        logger.warning("No permission to delete message %s", message.id)
    except Exception as exc:
        logger.error("Error deleting message %s: %s", message.id, exc)
    return False
