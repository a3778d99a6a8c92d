"""
Anonymous relay pipeline.

Entry points for the transport layer:

- ``on_inbound_message``: resolve handle -> classify -> dispatch (CLEAN) or
  submit for review (FLAGGED).
- ``on_moderator_action``: forward a moderator's button press to the
  consensus engine.
- ``on_membership_change``: release a departed member's handle.
- ``on_block_list_updated``: publish a new block-term snapshot.

Each inbound message runs as its own coroutine; messages from different
sources are not ordered relative to each other.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Iterable

from anoncord.configuration.app_configuration import AppConfig
from anoncord.datatypes.content_datatypes import RelayContent
from anoncord.datatypes.relay_datatypes import (
    ConnectionID,
    DecisionOutcome,
    DeliveryStatus,
    InboundOutcome,
    InboundResult,
    ModeratorAction,
    ModeratorID,
    SourceID,
)
from anoncord.relay.channel_dispatcher import ChannelDispatcher
from anoncord.relay.consensus_engine import ConsensusEngine
from anoncord.relay.content_classifier import BlockTermSnapshot, ContentClassifier
from anoncord.relay.identity_anonymizer import IdentityAnonymizer
from anoncord.relay.moderator_registry import ModeratorRegistry
from anoncord.util.logger import get_logger

logger = get_logger("relay_pipeline")

DEPARTURE_STATUSES = frozenset({"left", "kicked", "banned"})


class AnonymousRelay:
    """
    One relay instance: owns every piece of mutable relay state.

    Args:
        anonymizer: Handle table.
        classifier: Block-term and pattern detector.
        registry: Moderator snapshot.
        dispatcher: Outbound round-robin sender.
        engine: Moderation queue for flagged content.
        moderators_bypass: Leave moderators' own messages in place instead of relaying them.
        release_policy: ``"immediate"`` or ``"after_in_flight"``; see :meth:`on_membership_change`.
    """

    def __init__(
        self,
        anonymizer: IdentityAnonymizer,
        classifier: ContentClassifier,
        registry: ModeratorRegistry,
        dispatcher: ChannelDispatcher,
        engine: ConsensusEngine,
        *,
        moderators_bypass: bool = True,
        release_policy: str = "immediate",
    ) -> None:
        self.anonymizer = anonymizer
        self.classifier = classifier
        self.registry = registry
        self.dispatcher = dispatcher
        self.engine = engine
        self.moderators_bypass = moderators_bypass
        self.release_policy = release_policy
        self._in_flight: Counter = Counter()
        self._deferred_releases: set = set()
        self._flight_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        registry: ModeratorRegistry,
        dispatcher: ChannelDispatcher,
        engine: ConsensusEngine,
    ) -> "AnonymousRelay":
        settings = config.relay_settings
        return cls(
            anonymizer=IdentityAnonymizer(settings),
            classifier=ContentClassifier(extra_patterns=config.classifier_extra_patterns),
            registry=registry,
            dispatcher=dispatcher,
            engine=engine,
            moderators_bypass=settings.moderators_bypass,
            release_policy=config.release_policy,
        )

    # ------------------------------------------------------
    # Upstream entry points
    # ------------------------------------------------------

    async def on_inbound_message(
        self,
        source_id: SourceID,
        content: RelayContent,
        connection_id: ConnectionID = None,
    ) -> InboundResult:
        """
        Run one inbound message through the pipeline.

        ``connection_id`` is where the message arrived; it is logged but
        deliberately not used for outbound selection.
        """
        if self.moderators_bypass and self.registry.contains(source_id):
            return InboundResult(outcome=InboundOutcome.PASSTHROUGH)

        self._enter(source_id)
        try:
            handle = self.anonymizer.resolve(source_id)
            verdict = self.classifier.classify(content)
            logger.debug("[RELAY] %s on %s classified %s", handle, connection_id, verdict)

            if verdict.flagged:
                submission_id = await self.engine.submit(
                    handle, content, source_id=source_id, reason=verdict.reason
                )
                return InboundResult(
                    outcome=InboundOutcome.QUEUED,
                    handle=handle,
                    verdict=verdict,
                    submission_id=submission_id,
                )

            delivery = await self.dispatcher.dispatch(handle, content)
            outcome = (
                InboundOutcome.UNDELIVERABLE
                if delivery.status is DeliveryStatus.UNDELIVERABLE
                else InboundOutcome.RELAYED
            )
            return InboundResult(outcome=outcome, handle=handle, verdict=verdict, delivery=delivery)
        finally:
            self._leave(source_id)

    async def on_moderator_action(
        self,
        submission_id: str,
        moderator_id: ModeratorID,
        action: ModeratorAction | str,
    ) -> DecisionOutcome:
        if not isinstance(action, ModeratorAction):
            action = ModeratorAction(str(action).lower())
        return await self.engine.decide(submission_id, moderator_id, action)

    def on_membership_change(self, source_id: SourceID, new_status: str) -> bool:
        """
        React to a membership status change. Departures release the handle.

        With ``release_policy="after_in_flight"`` the release waits until the
        source has no message in the pipeline. Returns True if the handle was
        released (or the release was deferred).
        """
        if new_status.lower() not in DEPARTURE_STATUSES:
            return False

        if self.release_policy == "after_in_flight":
            with self._flight_lock:
                if self._in_flight[source_id]:
                    self._deferred_releases.add(source_id)
                    logger.debug("[RELAY] Deferring handle release until in-flight messages finish")
                    return True

        return self.anonymizer.release(source_id)

    def on_block_list_updated(self, snapshot: BlockTermSnapshot | Iterable[str] | None) -> None:
        self.classifier.publish(snapshot)

    # ------------------------------------------------------
    # In-flight tracking
    # ------------------------------------------------------

    def _enter(self, source_id: SourceID) -> None:
        with self._flight_lock:
            self._in_flight[source_id] += 1

    def _leave(self, source_id: SourceID) -> None:
        with self._flight_lock:
            self._in_flight[source_id] -= 1
            if self._in_flight[source_id] > 0:
                return
            del self._in_flight[source_id]
            release = source_id in self._deferred_releases
            self._deferred_releases.discard(source_id)
        if release:
            self.anonymizer.release(source_id)
