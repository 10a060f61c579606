from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Iterator, List, Optional, Tuple, overload

import numpy as np

from eanndb._config.config import DENSE_TABLE_MAX_BITS

BucketRange = Tuple[int, int]


class BucketView(Sequence):
    """
    Read-only, zero-copy window ``buf[start:end]`` over an index's identifier array.

    Iterating yields the identifiers of one bucket in stored order.
    """

    __slots__ = ("_buf", "_start", "_end")

    def __init__(self, buf: List[Any], start: int = 0, end: int = 0) -> None:
        self._buf = buf
        self._start = start
        self._end = end

    @classmethod
    def empty(cls) -> "BucketView":
        return cls([], 0, 0)

    @property
    def bounds(self) -> BucketRange:
        return self._start, self._end

    def __len__(self) -> int:
        return self._end - self._start

    @overload
    def __getitem__(self, index: int) -> Any: ...

    @overload
    def __getitem__(self, index: slice) -> List[Any]: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self._buf[self._start + i] for i in range(*index.indices(len(self)))]
        if index < 0:
            index += len(self)
        if not 0 <= index < len(self):
            raise IndexError("bucket index out of range")
        return self._buf[self._start + index]

    def __iter__(self) -> Iterator[Any]:
        for pos in range(self._start, self._end):
            yield self._buf[pos]

    def __repr__(self) -> str:  # pragma: no cover - convenience
        return f"BucketView({list(self)!r})"


class BinTable:
    """
    Per-bin range table over a bin-sorted identifier array.

    ``table.get(b)`` is the half-open range ``(start, end)`` of ``buf`` holding
    bin ``b``'s identifiers, or ``None`` when no corpus vector hashed to ``b``.
    Non-empty ranges are disjoint, cover ``[0, N)`` and appear in ascending bin
    order.

    Bin spaces of at most ``2**DENSE_TABLE_MAX_BITS`` entries are stored as a
    dense offset array (``offsets[b]:offsets[b + 1]``, O(1) lookup). Wider bin
    spaces keep only the occupied bins, sorted, and look them up by binary
    search.

    Example:
        >>> table = BinTable(np.array([0, 0, 3], dtype=np.uint64), num_bins=4)
        >>> table.get(0), table.get(1), table.get(3)
        ((0, 2), None, (2, 3))
    """

    def __init__(
        self,
        sorted_bins: np.ndarray,
        num_bins: int,
        *,
        dense_max_bits: int = DENSE_TABLE_MAX_BITS,
    ) -> None:
        """
        Build the table with a single scan of ``sorted_bins``.

        Args:
            sorted_bins: Bin of every entry of ``buf``, ascending.
            num_bins: Size of the bin identifier space.
            dense_max_bits: Widest bin space stored densely.

        Raises:
            ValueError: If ``sorted_bins`` is not sorted or holds an out-of-range bin.
        """
        bins = np.asarray(sorted_bins, dtype=np.uint64).reshape(-1)
        if bins.size and np.any(bins[1:] < bins[:-1]):
            raise ValueError("sorted_bins must be in ascending order")
        if bins.size and int(bins[-1]) >= num_bins:
            raise ValueError(
                f"Bin {int(bins[-1])} is outside the bin space of size {num_bins}"
            )

        self.num_bins = num_bins
        self.size = int(bins.size)

        keys, starts = np.unique(bins, return_index=True)
        if starts.size:
            ends = np.append(starts[1:], self.size).astype(np.intp)
        else:
            ends = np.empty(0, dtype=np.intp)

        self._keys = keys
        self._starts = starts.astype(np.intp)
        self._ends = ends

        self._offsets: Optional[np.ndarray] = None
        if num_bins <= (1 << dense_max_bits):
            bin_edges = np.arange(num_bins + 1, dtype=np.uint64)
            self._offsets = np.searchsorted(bins, bin_edges, side="left").astype(np.intp)

        for arr in (self._keys, self._starts, self._ends, self._offsets):
            if arr is not None:
                arr.setflags(write=False)

    @property
    def dense(self) -> bool:
        return self._offsets is not None

    @property
    def occupied(self) -> int:
        """Number of non-empty bins."""
        return int(self._keys.size)

    def get(self, bin_id: int) -> Optional[BucketRange]:
        """Range of ``bin_id`` in ``buf``, or ``None`` if it is empty or out of range."""
        if not 0 <= bin_id < self.num_bins:
            return None

        if self._offsets is not None:
            start = int(self._offsets[bin_id])
            end = int(self._offsets[bin_id + 1])
            return (start, end) if start < end else None

        pos = int(np.searchsorted(self._keys, np.uint64(bin_id), side="left"))
        if pos < self._keys.size and int(self._keys[pos]) == bin_id:
            return int(self._starts[pos]), int(self._ends[pos])
        return None

    def __getitem__(self, bin_id: int) -> Optional[BucketRange]:
        if not 0 <= bin_id < self.num_bins:
            raise IndexError(f"bin {bin_id} outside [0, {self.num_bins})")
        return self.get(bin_id)

    def __len__(self) -> int:
        return self.num_bins

    def ranges(self) -> Iterator[Tuple[int, int, int]]:
        """Yield ``(bin, start, end)`` for every non-empty bin, ascending by bin."""
        for key, start, end in zip(self._keys, self._starts, self._ends):
            yield int(key), int(start), int(end)

    def bucket_sizes(self) -> np.ndarray:
        return (self._ends - self._starts).astype(np.intp)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BinTable):
            return NotImplemented
        return (
            self.num_bins == other.num_bins
            and self.size == other.size
            and np.array_equal(self._keys, other._keys)
            and np.array_equal(self._starts, other._starts)
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:  # pragma: no cover - convenience
        return (
            f"BinTable(num_bins={self.num_bins}, occupied={self.occupied}, "
            f"size={self.size}, dense={self.dense})"
        )
