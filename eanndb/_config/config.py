"""
The config module holds package-wide configurables and provides
a uniform API for working with them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Union

import numpy as np

from eanndb.errors import ConfigurationError, ConfigurationTooWide

# Width of the host machine word, i.e. the largest bin identifier we accept.
WORD_BITS = np.dtype(np.uintp).itemsize * 8

# Bin spaces up to 2**20 get a dense offset table (O(1) lookup); wider ones a
# sorted sparse table.
DENSE_TABLE_MAX_BITS = 20

SUPPORTED_DTYPES = (np.dtype(np.float32), np.dtype(np.float64))


class Strategy(Enum):
    """
    How the sign bits of a query are assembled into a bin identifier.

    CONCATENATE packs one bit per hyperplane, giving ``2**NB`` bins.
    TREE walks a perfect binary tree of hyperplanes stored breadth first and
    packs only the ``ceil(log2(NB))`` bits of the descent path.
    """

    CONCATENATE = "concatenate"
    TREE = "tree"

    @classmethod
    def resolve(cls, value: Union["Strategy", str]) -> "Strategy":
        """
        Map a strategy or a case-insensitive name onto a :class:`Strategy`.

        Raises:
            ConfigurationError: If ``value`` names no known strategy.
        """
        if isinstance(value, cls):
            return value

        normalized = str(value).lower()
        if normalized in {"concatenate", "concat"}:
            return cls.CONCATENATE
        if normalized == "tree":
            return cls.TREE

        raise ConfigurationError(f"Unsupported construction strategy '{value}'")


def tree_depth(num_hyperplanes: int) -> int:
    """Depth of the descent path for ``num_hyperplanes`` tree nodes: ``ceil(log2(NB))``."""
    return (num_hyperplanes - 1).bit_length()


@dataclass(frozen=True)
class IndexConfig:
    """
    Build-time shape of an index.

    Holds the values that would be compile-time constants in a shape-polymorphic
    language: the number of hyperplanes, the vector dimension, the scalar dtype
    and the bin construction strategy.

    Attributes:
        num_hyperplanes: Number of random hyperplane normals (NB).
        dim: Dimension of every corpus and query vector (D).
        strategy: Bin identifier construction strategy.
        dtype: Floating point dtype of hyperplanes and vectors.
        word_bits: Width of the machine word bin identifiers must fit in.

    Example:
        >>> cfg = IndexConfig(num_hyperplanes=4, dim=16)
        >>> cfg.num_bins
        16
        >>> IndexConfig(num_hyperplanes=8, dim=16, strategy="tree").num_bins
        8
    """

    num_hyperplanes: int
    dim: int
    strategy: Strategy = Strategy.CONCATENATE
    dtype: np.dtype = field(default=np.dtype(np.float32))
    word_bits: int = WORD_BITS

    def __post_init__(self) -> None:
        # Frozen dataclass: coerce through object.__setattr__
        object.__setattr__(self, "strategy", Strategy.resolve(self.strategy))
        object.__setattr__(self, "dtype", np.dtype(self.dtype))

    @property
    def bin_bits(self) -> int:
        """Number of sign bits packed into each bin identifier."""
        if self.strategy is Strategy.TREE:
            return tree_depth(self.num_hyperplanes)
        return self.num_hyperplanes

    @property
    def num_bins(self) -> int:
        """Size of the bin identifier space."""
        return 1 << self.bin_bits

    def validate(self) -> "IndexConfig":
        """
        Check the configuration before anything is allocated.

        Returns:
            ``self`` so the call can be chained.

        Raises:
            ConfigurationError: On non-positive sizes, an unsupported dtype, or a
                tree strategy without enough hyperplanes to fill the tree.
            ConfigurationTooWide: If bin identifiers would not fit in a word.
        """
        if self.num_hyperplanes <= 0:
            raise ConfigurationError("num_hyperplanes must be > 0")
        if self.dim <= 0:
            raise ConfigurationError("dim must be > 0")
        if self.dtype not in SUPPORTED_DTYPES:
            raise ConfigurationError(
                f"Unsupported dtype {self.dtype}; expected float32 or float64"
            )

        if self.bin_bits > self.word_bits:
            raise ConfigurationTooWide(
                self.bin_bits, self.word_bits, self.strategy.value
            )

        if self.strategy is Strategy.TREE:
            required = (1 << self.bin_bits) - 1
            if self.num_hyperplanes < required:
                floor = self.num_hyperplanes.bit_length() - 1
                raise ConfigurationError(
                    f"A tree of depth {self.bin_bits} needs at least {required} "
                    f"hyperplanes (received {self.num_hyperplanes}). Depth is "
                    f"ceil(log2(num_hyperplanes)); {self.num_hyperplanes} hyperplanes "
                    f"would fill a tree of depth {floor}, which "
                    f"{(1 << floor) - 1} or {1 << floor} hyperplanes select, "
                    f"or use {required} or {required + 1} for depth {self.bin_bits}"
                )

        return self

    def as_dict(self) -> Dict[str, Any]:
        return {
            "num_hyperplanes": self.num_hyperplanes,
            "dim": self.dim,
            "strategy": self.strategy.value,
            "dtype": self.dtype.name,
            "word_bits": self.word_bits,
            "bin_bits": self.bin_bits,
            "num_bins": self.num_bins,
        }
