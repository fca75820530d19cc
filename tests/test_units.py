import pytest

from ebscsi.units import GIB, bytes_to_gib, gib_to_bytes, round_up_bytes


def test_one_byte_over_a_gib_rounds_to_two_gib():
    assert round_up_bytes(1073741825) == 2147483648


def test_exact_multiple_is_unchanged():
    assert round_up_bytes(5 * GIB) == 5 * GIB


def test_single_byte_rounds_to_one_gib():
    assert round_up_bytes(1) == GIB


@pytest.mark.parametrize("size_gib", [0, 1, 5, 20, 16384])
def test_gib_round_trip(size_gib):
    assert bytes_to_gib(gib_to_bytes(size_gib)) == size_gib


@pytest.mark.parametrize("size_bytes", [1, GIB - 1, GIB, GIB + 1, 7 * GIB + 12345])
def test_round_up_is_a_gib_multiple_not_below_input(size_bytes):
    rounded = round_up_bytes(size_bytes)
    assert rounded % GIB == 0
    assert size_bytes <= rounded < size_bytes + GIB


def test_bytes_to_gib_rounds_down():
    assert bytes_to_gib(2 * GIB - 1) == bytes_to_gib(GIB)