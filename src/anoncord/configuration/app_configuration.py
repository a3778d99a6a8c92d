from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict, List
import yaml

from anoncord.configuration.relay_settings import RelaySettings
from anoncord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("config") / "app_config.yml"

REJECT_POLICIES = ("close", "offer_remaining")
RELEASE_POLICIES = ("immediate", "after_in_flight")


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes dictionary-like
    access helpers, and resolves relay-specific settings through :class:`RelaySettings`.
    Uses fcntl file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                if not isinstance(data, dict):
                    logger.error("[APP CONFIGURATION] Config %s is not a mapping; using defaults.", self.config_path)
                    return {}
                return data
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def relay_settings(self) -> RelaySettings:
        """Return the ``relay`` section wrapped in a RelaySettings helper."""
        return RelaySettings(self._section("relay"))

    @property
    def submission_timeout_seconds(self) -> float:
        """Return how long a flagged submission may stay pending before it expires.

        Default is 86400 seconds (one day).
        """
        return float(self._section("moderation").get("submission_timeout_seconds", 86400.0))

    @property
    def reject_policy(self) -> str:
        """Return what a single REJECT does: ``close`` or ``offer_remaining``."""
        value = str(self._section("moderation").get("reject_policy", "close"))
        if value not in REJECT_POLICIES:
            logger.warning("[APP CONFIGURATION] Unknown reject_policy %r; using 'close'.", value)
            return "close"
        return value

    @property
    def release_policy(self) -> str:
        """Return when a departed member's handle is freed: ``immediate`` or ``after_in_flight``."""
        value = str(self._section("moderation").get("release_policy", "immediate"))
        if value not in RELEASE_POLICIES:
            logger.warning("[APP CONFIGURATION] Unknown release_policy %r; using 'immediate'.", value)
            return "immediate"
        return value

    @property
    def moderator_refresh_interval(self) -> float:
        """Return the moderator registry refresh interval in seconds.

        Default is 300 seconds (5 minutes).
        """
        return float(self._section("moderator_registry").get("refresh_interval_seconds", 300.0))

    @property
    def moderator_role_ids(self) -> List[int]:
        """Return extra role IDs whose members count as moderators."""
        values = self._section("moderator_registry").get("role_ids", []) or []
        return [int(v) for v in values]

    @property
    def blocklist_path(self) -> Path:
        return Path(str(self._section("blocklist").get("path", "blocked.txt"))).resolve()

    @property
    def blocklist_reload_interval(self) -> float:
        """Return how often the block list file is checked for changes, in seconds."""
        return float(self._section("blocklist").get("reload_interval_seconds", 60.0))

    @property
    def classifier_extra_patterns(self) -> List[str]:
        values = self._section("classifier").get("extra_patterns", []) or []
        return [str(v) for v in values]


