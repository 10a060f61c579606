"""
Hamming-neighbourhood helpers for the nearest-bucket fallback.

A query whose own bin is empty can fall back to bins whose identifiers differ
in a few bits; under sign-random-projection hashing those bins hold vectors on
the other side of only a few hyperplanes.
"""

from __future__ import annotations

from itertools import combinations
from typing import Iterator


def similar_bin(bin_id: int, bit: int) -> int:
    """
    Return the bin at Hamming distance 1 from ``bin_id`` by flipping ``bit``.

    Args:
        bin_id: Non-negative bin identifier.
        bit: Position of the bit to flip (0 is the least significant).

    Raises:
        ValueError: If ``bin_id`` or ``bit`` is negative.

    Example:
        >>> similar_bin(0b1010, 0)
        11
    """
    if bin_id < 0:
        raise ValueError("bin_id must be non-negative")
    if bit < 0:
        raise ValueError("bit must be non-negative")
    return bin_id ^ (1 << bit)


def bins_within_radius(bin_id: int, num_bits: int, radius: int) -> Iterator[int]:
    """
    Enumerate bins by increasing Hamming distance from ``bin_id``.

    Distance 0 (``bin_id`` itself) comes first, then every bin differing in one
    of the low ``num_bits`` bits, and so on up to ``radius``. Bins at the same
    distance are yielded in ascending order.

    Args:
        bin_id: Starting bin, must lie in ``[0, 2**num_bits)``.
        num_bits: Width of the bin identifier space.
        radius: Maximum Hamming distance; capped at ``num_bits``.

    Raises:
        ValueError: On a negative radius or ``bin_id`` outside the bin space.

    Example:
        >>> list(bins_within_radius(0, 3, 1))
        [0, 1, 2, 4]
    """
    if radius < 0:
        raise ValueError("radius must be non-negative")
    if num_bits < 0 or not 0 <= bin_id < (1 << num_bits):
        raise ValueError(f"bin {bin_id} is outside a {num_bits}-bit bin space")

    for distance in range(min(radius, num_bits) + 1):
        ring = []
        for bits in combinations(range(num_bits), distance):
            flipped = bin_id
            for bit in bits:
                flipped ^= 1 << bit
            ring.append(flipped)
        yield from sorted(ring)
