"""
Content model for relayed messages.

Inbound messages arrive in many shapes (plain text, media with captions,
stickers, polls, ...). They are normalised into a single tagged
:class:`RelayContent` so the classifier and dispatcher only ever deal with
its text projections: ``classifiable_text`` for the author-written part and
``renderable_text`` for what is posted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Tuple


class ContentKind(Enum):
    """Kinds of content the relay understands."""

    TEXT = "text"
    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"
    STICKER = "sticker"
    VOICE = "voice"
    ANIMATION = "animation"
    LOCATION = "location"
    POLL = "poll"
    UNSUPPORTED = "unsupported"

    def __str__(self) -> str:
        return self.value


MEDIA_KINDS = frozenset({
    ContentKind.PHOTO,
    ContentKind.VIDEO,
    ContentKind.DOCUMENT,
    ContentKind.STICKER,
    ContentKind.VOICE,
    ContentKind.ANIMATION,
})


@dataclass(frozen=True, slots=True)
class RelayFile:
    """An attachment downloaded before its source message was removed."""

    filename: str
    data: bytes = field(repr=False)
    url: str = ""
    content_type: str = ""


@dataclass(frozen=True, slots=True)
class RelayContent:
    """
    Decoded content of one inbound message.

    Attributes:
        kind: Which shape the content has.
        text: Message body for TEXT, sticker name for STICKER, question for POLL.
        caption: Caption attached to media.
        attachment_urls: URLs of attached files, in order.
        files: Attachment payloads re-uploaded on forwarding. Their URLs are
            left out of ``renderable_text``.
        extra: Kind-specific fields (``latitude``/``longitude`` for LOCATION,
            ``options`` for POLL).
    """

    kind: ContentKind
    text: str = ""
    caption: str = ""
    attachment_urls: Tuple[str, ...] = ()
    files: Tuple[RelayFile, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_text(cls, text: str) -> "RelayContent":
        return cls(kind=ContentKind.TEXT, text=text)

    @property
    def classifiable_text(self) -> str:
        """The author-written part only: body, caption, sticker name or poll text."""
        if self.kind is ContentKind.TEXT:
            return self.text
        if self.kind in MEDIA_KINDS:
            return " ".join(part for part in (self.text, self.caption) if part)
        if self.kind is ContentKind.POLL:
            return "\n".join([self.text, *map(str, self.extra.get("options") or ())])
        return ""

    @property
    def renderable_text(self) -> str:
        """Plain-text projection used for forwarding and review previews."""
        if self.kind is ContentKind.TEXT:
            return self.text

        if self.kind in MEDIA_KINDS:
            parts = [f"[{self.kind}]"]
            label = self.caption or self.text
            if label:
                parts.append(label)
            uploaded = {f.url for f in self.files}
            parts.extend(url for url in self.attachment_urls if url not in uploaded)
            return " ".join(parts)

        if self.kind is ContentKind.LOCATION:
            return f"[location] {self.extra.get('latitude', '?')}, {self.extra.get('longitude', '?')}"

        if self.kind is ContentKind.POLL:
            options = self.extra.get("options") or ()
            lines = [f"[poll] {self.text}"]
            lines.extend(f"- {option}" for option in options)
            return "\n".join(lines)

        return "[unsupported]"

    def render(self, handle: str) -> str:
        """Return the text posted to the shared channel under ``handle``."""
        return f"{handle}: {self.renderable_text}"
