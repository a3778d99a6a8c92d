from types import SimpleNamespace

import pytest

from anoncord.datatypes.discord_datatypes import ChannelID, MessageID, UserID


def test_user_id_from_int_and_str_are_equal() -> None:
    assert UserID(123) == UserID(" 123 ")
    assert hash(UserID(123)) == hash(UserID("123"))


def test_compares_by_value_with_plain_types() -> None:
    uid = UserID(123456789012345678)

    assert uid == 123456789012345678
    assert uid == "123456789012345678"
    assert uid.to_int() == 123456789012345678


def test_different_kinds_are_not_equal() -> None:
    assert UserID(5) != ChannelID(5)


def test_factories() -> None:
    assert UserID.from_user(SimpleNamespace(id=1)) == UserID(1)
    assert ChannelID.from_channel(SimpleNamespace(id=2)) == ChannelID(2)
    assert MessageID.from_message(SimpleNamespace(id=3)) == MessageID(3)


@pytest.mark.parametrize("value", [True, 1.5, None, "abc"])
def test_rejects_invalid_values(value) -> None:
    with pytest.raises(ValueError):
        UserID(value)


def test_usable_as_mapping_key() -> None:
    handles = {UserID(7): "Anon-AAAA"}

    assert handles[UserID("7")] == "Anon-AAAA"
