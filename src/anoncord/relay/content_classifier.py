"""
Content classification for the relay.

A message is FLAGGED when its author-written text contains a blocked term
(case-insensitive substring) or a link / mention pattern. The block-term set
is an immutable snapshot that an external loader publishes wholesale; the
read path never locks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Pattern, Sequence, Tuple

from anoncord.datatypes.content_datatypes import RelayContent
from anoncord.datatypes.relay_datatypes import Verdict
from anoncord.util.logger import get_logger

logger = get_logger("content_classifier")

LINK_PATTERN = re.compile(
    r"(https?://|www\.|t\.me/|discord\.gg/|discord(?:app)?\.com/invite/)",
    re.IGNORECASE,
)
# @name, plus Discord's raw <@id>, <@!id>, <@&role> and <#channel> mentions
MENTION_PATTERN = re.compile(r"(@[\w_]+|<@[!&]?\d+>|<#\d+>)")

REASON_LINK = "link"
REASON_MENTION = "mention"
REASON_BLOCKED_TERM = "blocked_term"


@dataclass(frozen=True, slots=True)
class BlockTermSnapshot:
    """Immutable, normalised set of blocked terms with the version it was published as."""

    terms: frozenset
    version: int = 0
    # Match order, fixed at publish time
    ordered: Tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ordered", tuple(sorted(self.terms)))

    @classmethod
    def from_terms(cls, terms: Iterable[str], version: int = 0) -> "BlockTermSnapshot":
        cleaned = frozenset(t.strip().casefold() for t in terms if t and t.strip())
        return cls(terms=cleaned, version=version)

    def match(self, text: str) -> Optional[str]:
        """Return the first blocked term found in ``text`` (sorted order), or None."""
        folded = text.casefold()
        for term in self.ordered:
            if term in folded:
                return term
        return None

    def __len__(self) -> int:
        return len(self.terms)


class ContentClassifier:
    """
    Classify content as CLEAN or FLAGGED.

    ``publish`` swaps the snapshot reference in one assignment; ``classify``
    reads that reference once per call, so a concurrent swap is either fully
    visible or not at all.
    """

    def __init__(
        self,
        snapshot: BlockTermSnapshot | None = None,
        extra_patterns: Sequence[str] = (),
    ) -> None:
        self._snapshot: BlockTermSnapshot | None = snapshot
        self._extra_patterns: Tuple[Pattern[str], ...] = tuple(
            re.compile(p, re.IGNORECASE) for p in extra_patterns
        )
        self._degraded_logged = False

    @property
    def snapshot(self) -> BlockTermSnapshot | None:
        return self._snapshot

    def publish(self, snapshot: BlockTermSnapshot | Iterable[str] | None) -> BlockTermSnapshot | None:
        """Replace the block-term snapshot. ``None`` marks the block list as unavailable."""
        if snapshot is not None and not isinstance(snapshot, BlockTermSnapshot):
            previous = self._snapshot
            snapshot = BlockTermSnapshot.from_terms(snapshot, version=(previous.version + 1) if previous else 1)
        self._snapshot = snapshot
        if snapshot is None:
            logger.warning("[CLASSIFIER] Block list withdrawn; running pattern-only detection")
        else:
            self._degraded_logged = False
            logger.info("[CLASSIFIER] Published block list v%d with %d term(s)", snapshot.version, len(snapshot))
        return snapshot

    def classify(self, content: RelayContent | str) -> Verdict:
        text = content if isinstance(content, str) else content.classifiable_text
        snapshot = self._snapshot
        reasons: list[str] = []

        if LINK_PATTERN.search(text) or any(p.search(text) for p in self._extra_patterns):
            reasons.append(REASON_LINK)
        if MENTION_PATTERN.search(text):
            reasons.append(REASON_MENTION)

        if snapshot is None:
            if not self._degraded_logged:
                logger.warning("[CLASSIFIER] No block list available; classification degraded")
                self._degraded_logged = True
            return Verdict(reasons=tuple(reasons), degraded=True)

        term = snapshot.match(text)
        if term is not None:
            reasons.append(f"{REASON_BLOCKED_TERM}:{term}")

        return Verdict(reasons=tuple(reasons))
