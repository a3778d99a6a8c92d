"""
Data structures shared by the anonymous relay pipeline.

This module defines the identity, submission, moderator and connection
records, the outcome enums returned by the pipeline operations, and the
``RelayError`` exception hierarchy.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Hashable, List, Optional, Tuple

from anoncord.datatypes.content_datatypes import RelayContent

# Opaque identifiers supplied by the transport layer
SourceID = Hashable
ModeratorID = Hashable
ConnectionID = Hashable


# -------------------- Errors --------------------

class RelayError(Exception):
    """Base class for relay failures that are genuine errors."""


class HandleSpaceExhausted(RelayError):
    """Raised when no free pseudonymous code could be generated."""


class InvalidTransition(RelayError):
    """Raised when a non-terminal state is requested as a transition target."""


# -------------------- Enums --------------------

class SubmissionState(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self is not SubmissionState.PENDING


class ModeratorAction(Enum):
    """Decision a moderator can take on a pending submission."""

    APPROVE = "approve"
    REJECT = "reject"

    def __str__(self) -> str:
        return self.value

    @property
    def target_state(self) -> SubmissionState:
        return SubmissionState.APPROVED if self is ModeratorAction.APPROVE else SubmissionState.REJECTED


class DecisionOutcome(Enum):
    """Result of a moderator decision."""

    APPROVED = "approved"
    REJECTED = "rejected"
    RECORDED = "recorded"
    ALREADY_RESOLVED = "already_resolved"
    UNAUTHORIZED = "unauthorized"

    def __str__(self) -> str:
        return self.value


class DeliveryStatus(Enum):
    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"
    UNDELIVERABLE = "undeliverable"

    def __str__(self) -> str:
        return self.value


class InboundOutcome(Enum):
    """What the pipeline did with an inbound message."""

    RELAYED = "relayed"
    QUEUED = "queued"
    PASSTHROUGH = "passthrough"
    UNDELIVERABLE = "undeliverable"

    def __str__(self) -> str:
        return self.value


# -------------------- Records --------------------

@dataclass(slots=True)
class Identity:
    """Mapping between a source identity and its pseudonymous handle."""

    source_id: SourceID
    handle: str
    code: str
    created_at: float = field(default_factory=time.time)
    last_active: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class Moderator:
    moderator_id: ModeratorID
    last_seen_in_snapshot: float


@dataclass(frozen=True, slots=True)
class ChannelConnection:
    """
    One outbound delivery connection.

    Attributes:
        connection_id: Identifier passed to the delivery layer.
        credentials_ref: Name of the credential backing this connection
            (never the secret itself).
        healthy: Whether the connection is believed to be usable.
    """

    connection_id: ConnectionID
    credentials_ref: str
    healthy: bool = True


@dataclass(frozen=True, slots=True)
class Verdict:
    """
    Classification result.

    ``reasons`` is empty for CLEAN content. ``degraded`` is set when no
    block-term snapshot was available and only pattern detection ran.
    """

    reasons: Tuple[str, ...] = ()
    degraded: bool = False

    @property
    def flagged(self) -> bool:
        return bool(self.reasons)

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons)

    def __str__(self) -> str:
        return f"FLAGGED({self.reason})" if self.flagged else "CLEAN"


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    status: DeliveryStatus
    connection_id: Optional[ConnectionID] = None
    detail: str = ""

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED


@dataclass(frozen=True, slots=True)
class InboundResult:
    outcome: InboundOutcome
    handle: Optional[str] = None
    verdict: Optional[Verdict] = None
    submission_id: Optional[str] = None
    delivery: Optional[DeliveryResult] = None


@dataclass
class PendingSubmission:
    """
    A flagged message awaiting a moderator decision.

    ``state`` is only ever changed through :meth:`try_transition`, which
    performs a compare-and-swap under the submission's own lock. The other
    mutable fields (prompt references, rejections) share that lock.
    """

    submission_id: str
    source_id: SourceID
    handle: str
    content: RelayContent
    reason: str = ""
    state: SubmissionState = SubmissionState.PENDING
    created_at: float = field(default_factory=time.time)
    notified_moderators: List[ModeratorID] = field(default_factory=list)
    prompt_refs: Dict[ModeratorID, Any] = field(default_factory=dict)
    rejected_by: set = field(default_factory=set)
    resolved_by: Optional[ModeratorID] = None
    closed_prompts: set = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def try_transition(self, target: SubmissionState, *, actor: Optional[ModeratorID] = None) -> bool:
        """Move PENDING -> ``target`` exactly once. Returns False if already terminal."""
        if not target.is_terminal:
            raise InvalidTransition(f"{target} is not a terminal state")
        with self._lock:
            if self.state is not SubmissionState.PENDING:
                return False
            self.state = target
            self.resolved_by = actor
            return True

    def record_prompt(self, moderator_id: ModeratorID, prompt_ref: Any) -> None:
        with self._lock:
            if moderator_id not in self.prompt_refs:
                self.notified_moderators.append(moderator_id)
            self.prompt_refs[moderator_id] = prompt_ref

    def prompts(self) -> List[Tuple[ModeratorID, Any]]:
        with self._lock:
            return list(self.prompt_refs.items())

    def take_unclosed_prompts(self) -> List[Tuple[ModeratorID, Any]]:
        """Return prompts not yet updated to the terminal display and mark them as updated."""
        with self._lock:
            pending = [(mid, ref) for mid, ref in self.prompt_refs.items() if mid not in self.closed_prompts]
            self.closed_prompts.update(mid for mid, _ in pending)
            return pending

    def record_rejection(self, moderator_id: ModeratorID) -> FrozenSet[ModeratorID]:
        """Remember a rejection and return everyone who has rejected so far."""
        with self._lock:
            self.rejected_by.add(moderator_id)
            return frozenset(self.rejected_by)
