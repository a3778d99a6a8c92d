"""
Block list file loader.

Reads ``blocked.txt`` (one term per line, blank lines ignored) and publishes
an immutable snapshot whenever the file changes. The classifier never reads
files itself; this loader pushes snapshots to it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from anoncord.relay.content_classifier import BlockTermSnapshot
from anoncord.util.logger import get_logger

logger = get_logger("blocklist_loader")


def read_terms(path: Path) -> list[str]:
    with path.open("r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


class BlockListLoader:
    """
    Polls a block list file by modification time.

    Args:
        path: File to read.
        publish: Called with the new snapshot, or with None when the file is
            missing and no snapshot has ever been loaded.
    """

    def __init__(self, path: Path, publish: Callable[[Optional[BlockTermSnapshot]], object]) -> None:
        self.path = path
        self._publish = publish
        self._last_mtime: float | None = None
        self._version = 0
        self._missing_reported = False

    @property
    def version(self) -> int:
        return self._version

    def reload(self, force: bool = False) -> bool:
        """Publish a new snapshot if the file changed. Returns True when one was published."""
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            if not self._missing_reported:
                logger.warning("[BLOCKLIST] %s not found; block-term matching disabled", self.path)
                self._missing_reported = True
                if self._version == 0:
                    self._publish(None)
            return False

        self._missing_reported = False
        if not force and self._last_mtime is not None and mtime == self._last_mtime:
            return False

        try:
            terms = read_terms(self.path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("[BLOCKLIST] Failed to read %s: %s; keeping previous snapshot", self.path, exc)
            return False

        self._last_mtime = mtime
        self._version += 1
        snapshot = BlockTermSnapshot.from_terms(terms, version=self._version)
        logger.info("[BLOCKLIST] Loaded %d term(s) from %s", len(snapshot), self.path)
        self._publish(snapshot)
        return True

    async def refresh(self) -> None:
        """Async wrapper so the loader can run under the periodic scheduler."""
        self.reload()
