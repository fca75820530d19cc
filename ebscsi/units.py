"""Conversions between byte counts and GiB sizes."""

from __future__ import annotations

GIB = 1024 * 1024 * 1024


def _round_up_size(volume_size_bytes: int, allocation_unit_bytes: int) -> int:
    return (volume_size_bytes + allocation_unit_bytes - 1) // allocation_unit_bytes


def round_up_bytes(volume_size_bytes: int) -> int:
    """Round a byte count up to a whole number of GiB, in bytes."""
    return _round_up_size(volume_size_bytes, GIB) * GIB


def gib_to_bytes(size_gib: int) -> int:
    """Convert a size in GiB to bytes."""
    return size_gib * GIB


def bytes_to_gib(size_bytes: int) -> int:
    """Convert a byte count to whole GiB, rounding down."""
    return size_bytes // GIB