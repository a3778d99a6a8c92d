"""
Pseudonymous handle assignment.

Each source identity gets a random code drawn from a fixed alphabet; the
handle shown in the shared channel is ``prefix + code``. Codes are unique
among active identities. Releasing an identity frees its code for anyone
else, but a recently departed source never gets its released code back, so a
member who leaves and rejoins shows up under a new handle.
"""

from __future__ import annotations

import random
import secrets
import threading
import time
from collections import OrderedDict
from typing import Dict, Optional

from anoncord.configuration.relay_settings import RelaySettings
from anoncord.datatypes.relay_datatypes import HandleSpaceExhausted, Identity, SourceID
from anoncord.util.logger import get_logger

logger = get_logger("identity_anonymizer")


class IdentityAnonymizer:
    """
    Owns the source -> handle table.

    All table access happens under one in-memory lock; no operation performs
    I/O, so the lock is only ever held for a dictionary update.

    Args:
        settings: Handle prefix, alphabet, length, retry budget and how many
            departed sources to remember.
        rng: Random source for code generation. Defaults to ``secrets.SystemRandom``;
            tests pass a seeded ``random.Random``.
    """

    def __init__(self, settings: RelaySettings | None = None, rng: random.Random | None = None) -> None:
        settings = settings or RelaySettings()
        self.prefix = settings.handle_prefix
        self.alphabet = settings.handle_alphabet
        self.length = settings.handle_length
        self.max_attempts = settings.handle_max_attempts
        self.retired_limit = settings.retired_code_limit
        self._rng = rng or secrets.SystemRandom()
        self._identities: Dict[SourceID, Identity] = {}
        self._active_codes: set[str] = set()
        # Last code of each recently departed source, oldest first; excluded on
        # that source's next resolve and capped at retired_limit entries
        self._retired_codes: OrderedDict[SourceID, str] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return len(self.alphabet) ** self.length

    def resolve(self, source_id: SourceID) -> str:
        """Return the handle for ``source_id``, creating one on first sight."""
        with self._lock:
            identity = self._identities.get(source_id)
            if identity is not None:
                identity.last_active = time.time()
                return identity.handle

            code = self._generate_code(exclude=self._retired_codes.pop(source_id, None))
            identity = Identity(source_id=source_id, handle=f"{self.prefix}{code}", code=code)
            self._identities[source_id] = identity
            self._active_codes.add(code)

        logger.debug("[ANONYMIZER] Assigned handle %s (%d active)", identity.handle, len(self._identities))
        return identity.handle

    def release(self, source_id: SourceID) -> bool:
        """Forget ``source_id`` and free its code. Returns False if it was unknown."""
        with self._lock:
            identity = self._identities.pop(source_id, None)
            if identity is None:
                return False
            self._active_codes.discard(identity.code)
            self._remember_retired(source_id, identity.code)

        logger.debug("[ANONYMIZER] Released handle %s", identity.handle)
        return True

    def get(self, source_id: SourceID) -> Optional[Identity]:
        with self._lock:
            return self._identities.get(source_id)

    def handle_of(self, source_id: SourceID) -> Optional[str]:
        identity = self.get(source_id)
        return identity.handle if identity else None

    def active_handles(self) -> Dict[SourceID, str]:
        with self._lock:
            return {source: identity.handle for source, identity in self._identities.items()}

    def __len__(self) -> int:
        return len(self._identities)

    def _generate_code(self, exclude: Optional[str] = None) -> str:
        """Draw random codes until one is free. Caller holds the lock."""
        for _ in range(self.max_attempts):
            code = "".join(self._rng.choice(self.alphabet) for _ in range(self.length))
            if code not in self._active_codes and code != exclude:
                return code

        # Random draws keep colliding; fall back to a scan so a free code is never missed
        for index in range(self.capacity):
            code = self._code_at(index)
            if code not in self._active_codes and code != exclude:
                logger.warning("[ANONYMIZER] Handle space nearly full (%d/%d active)", len(self._active_codes), self.capacity)
                return code

        raise HandleSpaceExhausted(
            f"all {self.capacity} codes of length {self.length} are in use"
        )

    def _code_at(self, index: int) -> str:
        base = len(self.alphabet)
        chars = []
        for _ in range(self.length):
            index, digit = divmod(index, base)
            chars.append(self.alphabet[digit])
        return "".join(reversed(chars))

    def _remember_retired(self, source_id: SourceID, code: str) -> None:
        """Caller holds the lock."""
        if self.retired_limit == 0:
            return
        self._retired_codes[source_id] = code
        self._retired_codes.move_to_end(source_id)
        while len(self._retired_codes) > self.retired_limit:
            self._retired_codes.popitem(last=False)
