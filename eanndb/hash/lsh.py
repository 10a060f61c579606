"""
Random-hyperplane Locality-Sensitive Hashing (SimHash) into word-sized bins

This module turns a vector into a single bin identifier. Every hyperplane
normal splits space into two half-spaces; the side a vector falls on is one
sign bit, and the bits are packed into an unsigned integer.

Two construction strategies assemble the bits:

- Concatenate: one bit per hyperplane, bit ``i`` from hyperplane ``i``.
  ``2**NB`` bins, maximum discrimination.
- Tree: hyperplanes are the nodes of a perfect binary tree stored breadth
  first. The query descends from the root, going right on POSITIVE and left on
  NEGATIVE; only the ``ceil(log2(NB))`` bits of the path are packed. Cheaper
  per query, fewer and larger bins.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Union

import numpy as np

from eanndb._config.config import WORD_BITS, IndexConfig, Strategy, tree_depth
from eanndb.errors import ConfigurationTooWide, ShapeMismatch
from eanndb.hash.hyperplane import (
    Sign,
    build_random_unit_hyperplanes,
    project,
    project_paired,
)


def pack_signs(signs: Iterable[Union[Sign, int, bool]], word_bits: int = WORD_BITS) -> int:
    """
    Pack a sequence of signs into one bin identifier.

    Bit ``i`` of the result is the value of ``signs[i]`` (POSITIVE -> 1,
    NEGATIVE -> 0); the first sign is the least significant bit.

    Args:
        signs: Sequence of at most ``word_bits`` signs.
        word_bits: Width of the target word.

    Returns:
        Integer in ``[0, 2**len(signs))``.

    Raises:
        ConfigurationTooWide: If there are more signs than bits in a word.

    Example:
        >>> P, N = Sign.POSITIVE, Sign.NEGATIVE
        >>> bin(pack_signs([P, N, N, P, P]))
        '0b11001'
    """
    packed = 0
    for idx, sign in enumerate(signs):
        if idx >= word_bits:
            raise ConfigurationTooWide(idx + 1, word_bits, "sign packing")
        packed |= int(sign) << idx
    return packed


def pack_sign_matrix(bits: np.ndarray, word_bits: int = WORD_BITS) -> np.ndarray:
    """
    Vectorized :func:`pack_signs` over the rows of an ``(n, k)`` bit matrix.
    Rows wider than ``word_bits`` are rejected, as in :func:`pack_signs`.

    Returns:
        ``uint64`` array of shape ``(n,)``.
    """
    bits = np.asarray(bits)
    if bits.ndim != 2:
        raise ShapeMismatch("Sign matrix must be 2D")
    if bits.shape[1] > word_bits:
        raise ConfigurationTooWide(bits.shape[1], word_bits, "sign packing")

    shifts = np.arange(bits.shape[1], dtype=np.uint64)
    weighted = bits.astype(np.uint64) << shifts
    return np.bitwise_or.reduce(weighted, axis=1).astype(np.uint64)


class RandomProjection:
    """
    Random-projection hasher owning an ordered set of hyperplane normals.

    The hasher is a pure function of its hyperplanes and the query: it keeps
    no state between calls, so an index can hash its whole corpus at build time
    and hash queries later without coordination.

    Typical usage:
        >>> rng = np.random.default_rng(7)
        >>> cfg = IndexConfig(num_hyperplanes=4, dim=16)
        >>> hasher = RandomProjection.sample(rng, cfg)
        >>> 0 <= hasher.bin(rng.standard_normal(16)) < 16
        True

    Attributes:
        hyperplanes: Read-only ``(NB, D)`` array of unit normals.
        strategy: How sign bits are assembled into a bin identifier.
        bin_bits: Number of bits per bin identifier.
        num_bins: Size of the bin identifier space.
    """

    def __init__(
        self,
        hyperplanes: np.ndarray,
        strategy: Union[Strategy, str] = Strategy.CONCATENATE,
        *,
        word_bits: int = WORD_BITS,
    ) -> None:
        """
        Wrap an existing hyperplane set.

        Args:
            hyperplanes: ``(NB, D)`` array of normals. Row order fixes the meaning
                of each bit (Concatenate) or each tree node (Tree).
            strategy: Construction strategy or its name.
            word_bits: Width of the machine word bins must fit in.

        Raises:
            ShapeMismatch: If ``hyperplanes`` is not a non-empty 2D array.
            ConfigurationError: If the resulting configuration is invalid.
        """
        planes = np.array(hyperplanes, copy=True)
        if planes.ndim != 2 or planes.shape[0] == 0:
            raise ShapeMismatch(
                f"Hyperplanes must be a non-empty (NB, D) array; received {planes.shape}"
            )
        if planes.dtype.kind != "f":
            planes = planes.astype(np.float64)

        self.config = IndexConfig(
            num_hyperplanes=planes.shape[0],
            dim=planes.shape[1],
            strategy=strategy,
            dtype=planes.dtype,
            word_bits=word_bits,
        ).validate()

        planes.setflags(write=False)
        self.hyperplanes = planes

    @classmethod
    def sample(cls, rng: np.random.Generator, config: IndexConfig) -> "RandomProjection":
        """
        Validate ``config`` and sample a fresh hyperplane set for it.

        Validation happens before any hyperplane is drawn, so a configuration
        that is too wide fails without consuming randomness.
        """
        config.validate()
        planes = build_random_unit_hyperplanes(
            rng, config.num_hyperplanes, config.dim, config.dtype
        )
        return cls(planes, config.strategy, word_bits=config.word_bits)

    @property
    def strategy(self) -> Strategy:
        return self.config.strategy

    @property
    def dim(self) -> int:
        return self.config.dim

    @property
    def dtype(self) -> np.dtype:
        return self.config.dtype

    @property
    def bin_bits(self) -> int:
        return self.config.bin_bits

    @property
    def num_bins(self) -> int:
        return self.config.num_bins

    def bin(self, query: np.ndarray) -> int:
        """
        Return the bin identifier of a single query vector.

        Raises:
            ShapeMismatch: If the query does not have ``dim`` elements.
        """
        vec = self._validate_vector(query)
        return int(self._bins(vec.reshape(1, -1))[0])

    def bin_batch(self, vectors: np.ndarray) -> np.ndarray:
        """
        Hash every row of an ``(n, dim)`` array.

        Produces exactly the identifiers :meth:`bin` would give for each row.

        Returns:
            ``uint64`` array of shape ``(n,)``.

        Raises:
            ShapeMismatch: If the input is not 2D or has the wrong dimension.
        """
        arr = np.asarray(vectors, dtype=self.dtype)
        if arr.ndim != 2:
            raise ShapeMismatch("Batch input must be a 2D array")
        if arr.shape[1] != self.dim:
            raise ShapeMismatch(
                f"Expected vectors of dimension {self.dim}, received {arr.shape[1]}"
            )
        return self._bins(arr)

    def signs(self, query: np.ndarray) -> List[Sign]:
        """The sign sequence packed into ``bin(query)``: all NB signs, or the tree path."""
        vec = self._validate_vector(query).reshape(1, -1)
        bits = self._sign_bits(vec)[0]
        return [Sign(int(bit)) for bit in bits]

    def path(self, query: np.ndarray) -> Optional[List[int]]:
        """Tree nodes visited by the descent for ``query``; ``None`` for Concatenate."""
        if self.strategy is not Strategy.TREE:
            return None
        vec = self._validate_vector(query).reshape(1, -1)
        _, nodes = self._descend(vec)
        return [int(node) for node in nodes[0]]

    def _bins(self, arr: np.ndarray) -> np.ndarray:
        return pack_sign_matrix(self._sign_bits(arr))

    def _sign_bits(self, arr: np.ndarray) -> np.ndarray:
        if self.strategy is Strategy.TREE:
            bits, _ = self._descend(arr)
            return bits
        return project(arr, self.hyperplanes) > 0

    def _descend(self, arr: np.ndarray):
        depth = tree_depth(self.config.num_hyperplanes)
        n = arr.shape[0]
        bits = np.zeros((n, depth), dtype=bool)
        visited = np.zeros((n, depth), dtype=np.intp)

        node = np.zeros(n, dtype=np.intp)
        for level in range(depth):
            visited[:, level] = node
            positive = project_paired(arr, self.hyperplanes[node]) > 0
            bits[:, level] = positive
            # Perfect binary tree, breadth first: left 2i + 1, right 2i + 2
            node = 2 * node + 1 + positive.astype(np.intp)

        return bits, visited

    def _validate_vector(self, vector: np.ndarray) -> np.ndarray:
        """
        Convert ``vector`` to a 1D array in the hasher's dtype.

        Raises:
            ShapeMismatch: If the vector does not have exactly ``dim`` elements.
        """
        vec = np.asarray(vector, dtype=self.dtype).reshape(-1)

        if vec.shape[0] != self.dim:
            raise ShapeMismatch(
                f"Expected vector of dimension {self.dim}, received {vec.shape[0]}"
            )

        return vec

    def __repr__(self) -> str:  # pragma: no cover - convenience
        return (
            "RandomProjection("
            f"num_hyperplanes={self.config.num_hyperplanes}, "
            f"dim={self.dim}, "
            f"strategy='{self.strategy.value}', "
            f"dtype='{self.dtype.name}'"
            ")"
        )
