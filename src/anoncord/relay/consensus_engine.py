"""
Moderation queue and consensus engine.

Flagged content becomes a :class:`PendingSubmission`. Every moderator in the
current registry snapshot gets a private review prompt, and the first
decisive action wins:

    PENDING -> APPROVED | REJECTED | EXPIRED

Each submission carries its own lock and its state only changes through a
compare-and-swap (:meth:`PendingSubmission.try_transition`), so two
moderators clicking at once, or a click racing the expiry timer, produce
exactly one terminal state and at most one forwarded message. There is no
engine-wide lock around decisions.

Prompt delivery and prompt updates are per recipient and best-effort: a
moderator without a reachable private channel is logged and skipped.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol

from anoncord.datatypes.content_datatypes import RelayContent
from anoncord.datatypes.relay_datatypes import (
    DecisionOutcome,
    ModeratorAction,
    ModeratorID,
    PendingSubmission,
    SourceID,
    SubmissionState,
)
from anoncord.relay.channel_dispatcher import ChannelDispatcher
from anoncord.relay.moderator_registry import ModeratorRegistry
from anoncord.util.logger import get_logger

logger = get_logger("consensus_engine")


class ReviewNotifier(Protocol):
    """Sends review prompts to moderators and updates them once resolved."""

    async def send_prompt(self, moderator_id: ModeratorID, submission: PendingSubmission) -> Any:
        """Deliver a prompt and return a reference used later to update it."""
        ...

    async def resolve_prompt(self, moderator_id: ModeratorID, prompt_ref: Any, submission: PendingSubmission) -> None:
        ...


class ExpiryTimer(Protocol):
    async def schedule(self, submission_id: str, delay_seconds: float) -> None:
        ...

    async def cancel(self, submission_id: str) -> bool:
        ...


class ConsensusEngine:
    """
    Owns the active submission table and the approval state machine.

    Args:
        registry: Moderator snapshot used for fan-out and authorisation.
        dispatcher: Receives approved content, exactly once per submission.
        notifier: Delivers and updates review prompts.
        timeout_seconds: Age after which a pending submission may expire.
        reject_policy: ``"close"`` ends the submission on the first REJECT;
            ``"offer_remaining"`` keeps it open until every notified
            moderator has rejected.
        expiry_timer: Optional scheduler that calls :meth:`expire` when a
            submission reaches ``timeout_seconds``.
        clock: Wall clock, injectable for tests.
    """

    def __init__(
        self,
        registry: ModeratorRegistry,
        dispatcher: ChannelDispatcher,
        notifier: ReviewNotifier,
        *,
        timeout_seconds: float = 86400.0,
        reject_policy: str = "close",
        expiry_timer: ExpiryTimer | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.timeout_seconds = timeout_seconds
        self.reject_policy = reject_policy
        self.expiry_timer = expiry_timer
        self._clock = clock
        self._submissions: Dict[str, PendingSubmission] = {}
        # Guards table membership only; state changes use the per-submission lock
        self._table_lock = threading.Lock()

    # ------------------------------------------------------
    # Queries
    # ------------------------------------------------------

    def get(self, submission_id: str) -> Optional[PendingSubmission]:
        with self._table_lock:
            return self._submissions.get(submission_id)

    def pending_ids(self) -> List[str]:
        with self._table_lock:
            return list(self._submissions)

    def __len__(self) -> int:
        return len(self._submissions)

    # ------------------------------------------------------
    # Operations
    # ------------------------------------------------------

    async def submit(
        self,
        handle: str,
        content: RelayContent,
        *,
        source_id: SourceID = None,
        reason: str = "",
    ) -> str:
        """Create a pending submission, prompt every current moderator, and return its ID."""
        submission = PendingSubmission(
            submission_id=uuid.uuid4().hex,
            source_id=source_id,
            handle=handle,
            content=content,
            reason=reason,
            created_at=self._clock(),
        )
        with self._table_lock:
            self._submissions[submission.submission_id] = submission

        targets = self.registry.moderator_ids()
        logger.info(
            "[CONSENSUS] Submission %s from %s flagged (%s); prompting %d moderator(s)",
            submission.submission_id,
            handle,
            reason or "unspecified",
            len(targets),
        )
        if not targets:
            logger.warning("[CONSENSUS] No moderators known; submission %s will wait for expiry", submission.submission_id)

        await asyncio.gather(*(self._send_prompt(mid, submission) for mid in targets))

        if submission.state.is_terminal:
            # Resolved while prompts were still going out; close the late ones
            await self._close_prompts(submission)
        elif self.expiry_timer is not None:
            await self.expiry_timer.schedule(submission.submission_id, self.timeout_seconds)

        return submission.submission_id

    async def decide(
        self,
        submission_id: str,
        moderator_id: ModeratorID,
        action: ModeratorAction,
    ) -> DecisionOutcome:
        """Apply a moderator's decision. Only the first decisive action has any effect."""
        if not self.registry.contains(moderator_id):
            logger.warning("[CONSENSUS] Unauthorized decision on %s by %s", submission_id, moderator_id)
            return DecisionOutcome.UNAUTHORIZED

        submission = self.get(submission_id)
        if submission is None or submission.state.is_terminal:
            logger.debug("[CONSENSUS] Submission %s already resolved; ignoring %s by %s", submission_id, action, moderator_id)
            return DecisionOutcome.ALREADY_RESOLVED

        if action is ModeratorAction.REJECT and self.reject_policy == "offer_remaining":
            rejected = submission.record_rejection(moderator_id)
            remaining = set(submission.notified_moderators) - rejected
            if remaining:
                logger.info(
                    "[CONSENSUS] Rejection of %s by %s recorded; %d moderator(s) may still approve",
                    submission_id,
                    moderator_id,
                    len(remaining),
                )
                return DecisionOutcome.RECORDED

        if not submission.try_transition(action.target_state, actor=moderator_id):
            return DecisionOutcome.ALREADY_RESOLVED

        logger.info("[CONSENSUS] Submission %s %s by %s", submission_id, submission.state, moderator_id)
        await self._finalize(submission)

        if submission.state is SubmissionState.APPROVED:
            return DecisionOutcome.APPROVED
        return DecisionOutcome.REJECTED

    async def expire(self, submission_id: str, *, force: bool = False) -> bool:
        """
        Expire a submission that is still pending after ``timeout_seconds``.

        Returns True only for the call that performed the transition. With
        ``force`` the age check is skipped (used by the expiry timer, which
        already waited the full timeout).
        """
        submission = self.get(submission_id)
        if submission is None:
            return False
        if not force and self._clock() - submission.created_at < self.timeout_seconds:
            return False
        if not submission.try_transition(SubmissionState.EXPIRED):
            return False

        logger.info("[CONSENSUS] Submission %s expired without a decision", submission_id)
        await self._finalize(submission)
        return True

    async def expire_overdue(self, now: float | None = None) -> List[str]:
        """Expire every pending submission older than the timeout; return the expired IDs."""
        now = self._clock() if now is None else now
        with self._table_lock:
            overdue = [s.submission_id for s in self._submissions.values() if now - s.created_at >= self.timeout_seconds]
        expired = []
        for submission_id in overdue:
            if await self.expire(submission_id, force=True):
                expired.append(submission_id)
        return expired

    # ------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------

    async def _finalize(self, submission: PendingSubmission) -> None:
        """Side effects of the winning transition. Runs once per submission."""
        with self._table_lock:
            self._submissions.pop(submission.submission_id, None)

        if self.expiry_timer is not None and submission.state is not SubmissionState.EXPIRED:
            await self.expiry_timer.cancel(submission.submission_id)

        if submission.state is SubmissionState.APPROVED:
            result = await self.dispatcher.dispatch(submission.handle, submission.content)
            if not result.delivered:
                logger.warning(
                    "[CONSENSUS] Approved submission %s was not delivered: %s",
                    submission.submission_id,
                    result.status,
                )

        await self._close_prompts(submission)

    async def _send_prompt(self, moderator_id: ModeratorID, submission: PendingSubmission) -> None:
        try:
            prompt_ref = await self.notifier.send_prompt(moderator_id, submission)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[CONSENSUS] Could not prompt moderator %s for %s: %s", moderator_id, submission.submission_id, exc)
            return
        submission.record_prompt(moderator_id, prompt_ref)

    async def _close_prompts(self, submission: PendingSubmission) -> None:
        prompts = submission.take_unclosed_prompts()
        await asyncio.gather(*(self._close_prompt(mid, ref, submission) for mid, ref in prompts))

    async def _close_prompt(self, moderator_id: ModeratorID, prompt_ref: Any, submission: PendingSubmission) -> None:
        try:
            await self.notifier.resolve_prompt(moderator_id, prompt_ref, submission)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[CONSENSUS] Could not update prompt of moderator %s for %s: %s", moderator_id, submission.submission_id, exc)
