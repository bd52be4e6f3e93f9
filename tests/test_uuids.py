import random

import pytest

from etcore.uuids import Uuid, printftime, rebuild

CLASSIC = "F81D4FAE-7DEC-11D0-A765-00A0C91E6BF6"
BASE62 = "GITheR4tLlg-BagIW20DGja"


def _random_uuids(count):
    rng = random.Random(1234)
    return [Uuid(rng.getrandbits(64), rng.getrandbits(64)) for _ in range(count)]


def test_rebuild_classic_string_renders_lowercase():
    assert str(rebuild(CLASSIC)) == CLASSIC.lower()


def test_rebuild_classic_halves():
    u = rebuild(CLASSIC)
    assert u.ab == 0xF81D4FAE7DEC11D0
    assert u.cd == 0xA76500A0C91E6BF6


def test_rebuild_base62_round_trip():
    assert rebuild(BASE62).base62() == BASE62


@pytest.mark.parametrize("u", _random_uuids(200))
def test_string_round_trip(u):
    assert rebuild(str(u)) == u


@pytest.mark.parametrize("u", _random_uuids(200))
def test_base62_round_trip(u):
    assert rebuild(u.base62()) == u


def test_rebuild_without_dash_is_zero():
    assert rebuild("abcdef") == Uuid(0, 0)


def test_rebuild_hex_with_trailing_text_is_zero():
    assert rebuild(CLASSIC + " ") == Uuid(0, 0)


def test_rebuild_hex_with_bad_digits_is_zero():
    assert rebuild("zz-1-2-3-4") == Uuid(0, 0)


def test_zero_uuid_renderings():
    zero = Uuid()
    assert str(zero) == "00000000-0000-0000-0000-000000000000"
    assert zero.base62() == "0-0"


def test_values_out_of_range_rejected():
    with pytest.raises(ValueError):
        Uuid(1 << 64, 0)
    with pytest.raises(ValueError):
        Uuid(0, -1)


def test_ordering_is_by_ab_then_cd():
    values = [Uuid(2, 0), Uuid(1, 5), Uuid(1, 3)]
    assert sorted(values) == [Uuid(1, 3), Uuid(1, 5), Uuid(2, 0)]
    assert Uuid(1, 3) < Uuid(1, 5)
    assert not Uuid(2, 0) < Uuid(1, 9)


def test_hash_and_equality():
    a = Uuid(0x1234, 0x5678)
    b = Uuid(0x1234, 0x5678)
    assert a == b
    assert hash(a) == hash(b)
    assert hash(a) == 0x1234 ^ 0x5678
    assert len({a, b}) == 1


def test_pretty_version_one_fields():
    text = rebuild(CLASSIC).pretty()
    assert text.startswith("version=1,timestamp=")
    assert "mac=00a0c91e6bf6," in text
    assert "clock_seq=" in text
    assert "randbits=" not in text
    assert text.endswith(",")


def test_pretty_version_four_fields():
    u = Uuid(0x0123456789AB4DEF, 0x8000000000000001)
    text = u.pretty()
    assert text.startswith("version=4,randbits=")
    assert "mac=" not in text
    assert "timestamp=" not in text
    assert "pid=" not in text


def test_pretty_version_zero_has_pid():
    u = Uuid(0, 0x1234000000000000)
    text = u.pretty()
    assert text.startswith("version=0,")
    assert "pid=" in text
    assert "clock_seq=" not in text


def test_printftime_is_quoted():
    text = printftime(0)
    assert len(text) >= 2
    assert text[0] == '"' and text[-1] == '"'


def test_printftime_unrepresentable_time():
    assert printftime(10**20) == '""'