from typing import Any, Dict

DEFAULT_HANDLE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class RelaySettings:
    """Helper exposing typed accessors for the ``relay`` configuration section.

    Mirrors the small explicit API of the other settings helpers: ``get``,
    ``as_dict`` and a handful of convenience properties with defaults.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    @property
    def handle_prefix(self) -> str:
        return str(self.data.get("handle_prefix", "Anon-"))

    @property
    def handle_alphabet(self) -> str:
        value = str(self.data.get("handle_alphabet") or DEFAULT_HANDLE_ALPHABET)
        # Duplicate characters would skew the code distribution
        return "".join(dict.fromkeys(value))

    @property
    def handle_length(self) -> int:
        return max(1, int(self.data.get("handle_length", 4)))

    @property
    def handle_max_attempts(self) -> int:
        return max(1, int(self.data.get("handle_max_attempts", 64)))

    @property
    def moderators_bypass(self) -> bool:
        return bool(self.data.get("moderators_bypass", True))

    @property
    def retired_code_limit(self) -> int:
        """How many departed members' codes are remembered to keep rejoins on a new handle."""
        return max(0, int(self.data.get("retired_code_limit", 1024)))
