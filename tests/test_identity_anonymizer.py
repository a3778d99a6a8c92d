"""Tests for the identity anonymizer."""

import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from anoncord.configuration.relay_settings import RelaySettings
from anoncord.datatypes.relay_datatypes import HandleSpaceExhausted
from anoncord.relay.identity_anonymizer import IdentityAnonymizer


def make_anonymizer(alphabet: str = "ABCDEFGH", length: int = 3, seed: int = 7, **extra) -> IdentityAnonymizer:
    settings = RelaySettings({"handle_alphabet": alphabet, "handle_length": length, **extra})
    return IdentityAnonymizer(settings, rng=random.Random(seed))


class TestResolve:
    def test_resolve_is_stable(self):
        anonymizer = make_anonymizer()

        first = anonymizer.resolve("S1")
        second = anonymizer.resolve("S1")

        assert first == second
        assert first.startswith("Anon-")
        assert len(first) == len("Anon-") + 3

    def test_handle_uses_alphabet(self):
        anonymizer = make_anonymizer(alphabet="XY", length=5)

        code = anonymizer.resolve("S1")[len("Anon-"):]

        assert set(code) <= {"X", "Y"}

    def test_handles_are_unique(self):
        anonymizer = make_anonymizer(alphabet="AB", length=4)

        handles = [anonymizer.resolve(f"S{i}") for i in range(16)]

        assert len(set(handles)) == 16

    def test_full_space_raises(self):
        anonymizer = make_anonymizer(alphabet="AB", length=1)
        anonymizer.resolve("S1")
        anonymizer.resolve("S2")

        with pytest.raises(HandleSpaceExhausted):
            anonymizer.resolve("S3")

    def test_updates_last_active(self):
        anonymizer = make_anonymizer()
        anonymizer.resolve("S1")
        identity = anonymizer.get("S1")
        identity.last_active = 0.0

        anonymizer.resolve("S1")

        assert anonymizer.get("S1").last_active > 0.0

    def test_concurrent_resolves_stay_unique(self):
        anonymizer = make_anonymizer(alphabet="ABCD", length=3)

        with ThreadPoolExecutor(max_workers=8) as pool:
            handles = list(pool.map(anonymizer.resolve, [f"S{i}" for i in range(40)]))

        assert len(set(handles)) == 40
        assert len(anonymizer) == 40


class TestRelease:
    def test_release_frees_code_for_others(self):
        anonymizer = make_anonymizer(alphabet="AB", length=1)
        freed = anonymizer.resolve("S1")
        anonymizer.resolve("S2")

        assert anonymizer.release("S1") is True
        reused = anonymizer.resolve("S3")

        assert reused == freed

    def test_rejoin_gets_new_handle(self):
        anonymizer = make_anonymizer(alphabet="AB", length=1)
        original = anonymizer.resolve("S1")

        anonymizer.release("S1")
        again = anonymizer.resolve("S1")

        assert again != original

    def test_release_unknown_source(self):
        anonymizer = make_anonymizer()

        assert anonymizer.release("nobody") is False

    def test_released_source_is_forgotten(self):
        anonymizer = make_anonymizer()
        anonymizer.resolve("S1")

        anonymizer.release("S1")

        assert anonymizer.get("S1") is None
        assert anonymizer.handle_of("S1") is None
        assert anonymizer.active_handles() == {}

    def test_departed_sources_memory_is_bounded(self):
        anonymizer = make_anonymizer(alphabet="ABCDEFGH", length=4, retired_code_limit=50)

        for source in range(1000):
            anonymizer.resolve(source)
            anonymizer.release(source)

        assert len(anonymizer) == 0
        assert len(anonymizer._retired_codes) == 50
        # The most recent departures are the ones still remembered
        assert list(anonymizer._retired_codes) == list(range(950, 1000))

    def test_recent_rejoin_still_gets_new_handle_under_limit(self):
        anonymizer = make_anonymizer(alphabet="AB", length=1, retired_code_limit=1)
        original = anonymizer.resolve("S1")
        anonymizer.release("S1")

        assert anonymizer.resolve("S1") != original
        assert len(anonymizer._retired_codes) == 0

    def test_zero_limit_remembers_nothing(self):
        anonymizer = make_anonymizer(retired_code_limit=0)
        anonymizer.resolve("S1")
        anonymizer.release("S1")

        assert len(anonymizer._retired_codes) == 0
