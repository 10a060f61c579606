"""
Bucketed random-projection index

This module provides the LSHDB class that ties the hashing components together:
- Hyperplane sampling and bin assignment (RandomProjection)
- A contiguous, bin-sorted identifier array with a per-bin range table (BinTable)
- Candidate retrieval for a query, uniform random picks and a Hamming-neighbourhood fallback

Architecture overview:
    1. Corpus vectors → RandomProjection → one bin identifier per vector
    2. Stable sort by bin → identifier array ``buf`` + range table ``bin_idx``
    3. Query → bin → ``buf[start:end]`` (zero-copy view)

The index is built once and never mutated afterwards; queries only read it and
can run from several threads at the same time.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from eanndb._config.config import IndexConfig, Strategy
from eanndb.errors import ShapeMismatch
from eanndb.hash.lsh import RandomProjection
from eanndb.storage import BinTable, BucketView
from eanndb.utils.hamming import bins_within_radius

logger = logging.getLogger(__name__)

# A Generator, a legacy RandomState, or a seed for numpy.random.default_rng
RNGLike = Union[
    np.random.Generator,
    np.random.RandomState,
    np.random.SeedSequence,
    np.random.BitGenerator,
    int,
    None,
]

# (identifier, vector) pairs, as supplied by the caller
Corpus = Iterable[Tuple[Any, Sequence[float]]]


class LSHDB:
    """
    In-memory approximate nearest neighbor index over random-hyperplane bins.

    Every corpus vector is assigned to the bin named by the signs of its
    projections onto NB random hyperplanes. Identifiers are stored grouped by
    bin in one contiguous array, in corpus order within a bin; a range table
    maps each bin to its slice. A query is hashed the same way and the members
    of its bin are the candidates.

    Parameters
    ----------
    hasher : RandomProjection
        Hasher owning the hyperplane set. The index takes it over; it is never
        modified.

    identifiers : Sequence
        One caller-chosen label per corpus vector. Uniqueness is up to the caller.

    vectors : np.ndarray
        ``(N, dim)`` corpus matrix, row ``i`` labelled by ``identifiers[i]``.

    Examples
    --------
    >>> rng = np.random.default_rng(0)
    >>> vectors = rng.standard_normal((100, 16)).astype(np.float32)
    >>> db = LSHDB.from_arrays(rng, range(100), vectors, num_hyperplanes=4)
    >>> 7 in db.candidates(vectors[7])
    True
    """

    def __init__(
        self,
        hasher: RandomProjection,
        identifiers: Sequence[Any],
        vectors: np.ndarray,
    ) -> None:
        ids, arr = _prepare_corpus(identifiers, vectors, hasher.dim, hasher.dtype)

        self._hasher = hasher

        # Hash the whole corpus in one pass
        bins = hasher.bin_batch(arr)

        # Stable sort keeps corpus order inside each bucket
        order = np.argsort(bins, kind="stable")
        sorted_bins = bins[order]

        self._buf: List[Any] = [ids[i] for i in order]
        self._bin_idx = BinTable(sorted_bins, hasher.num_bins)

        logger.debug(
            f"Built LSHDB: {len(self._buf)} vectors, "
            f"{self._bin_idx.occupied}/{hasher.num_bins} bins occupied "
            f"({hasher.strategy.value})"
        )

    # ---------------------------------------------------------------------
    # Construction
    # ---------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        rng: RNGLike,
        corpus: Corpus,
        *,
        num_hyperplanes: int,
        strategy: Union[Strategy, str] = Strategy.CONCATENATE,
        dtype: Any = np.float32,
        dim: Optional[int] = None,
    ) -> "LSHDB":
        """
        One-shot construction from ``(identifier, vector)`` pairs.

        Parameters
        ----------
        rng : numpy.random.Generator, RandomState or seed
            Randomness for the hyperplanes. Borrowed, not retained: the same
            seed and corpus always produce the same index. Other objects raise
            ``TypeError``.

        corpus : iterable of (identifier, vector)
            The vectors to index.

        num_hyperplanes : int
            NB, the number of random hyperplanes.

        strategy : Strategy or str, default="concatenate"
            Bin identifier construction, ``"concatenate"`` or ``"tree"``.

        dtype : default=np.float32
            Scalar type of hyperplanes and vectors (float32 or float64).

        dim : int, optional
            Vector dimension. Inferred from the corpus; required when it is empty.

        Raises
        ------
        ConfigurationTooWide
            If bin identifiers would not fit in a machine word. Raised before
            any hyperplane is sampled.
        ConfigurationError
            On other invalid configurations.
        ShapeMismatch
            If vectors do not all have the same, expected dimension.
        """
        pairs = list(corpus)
        if pairs:
            identifiers, vectors = zip(*pairs)
        else:
            identifiers, vectors = (), ()

        return cls.from_arrays(
            rng,
            list(identifiers),
            list(vectors),
            num_hyperplanes=num_hyperplanes,
            strategy=strategy,
            dtype=dtype,
            dim=dim,
        )

    @classmethod
    def from_arrays(
        cls,
        rng: RNGLike,
        identifiers: Iterable[Any],
        vectors: Union[np.ndarray, Sequence[Sequence[float]]],
        *,
        num_hyperplanes: int,
        strategy: Union[Strategy, str] = Strategy.CONCATENATE,
        dtype: Any = np.float32,
        dim: Optional[int] = None,
    ) -> "LSHDB":
        """
        Like :meth:`build`, with identifiers and vectors as separate columns.

        ``vectors`` is an ``(N, dim)`` array; ``identifiers`` has N entries.
        """
        ids, arr = _prepare_corpus(identifiers, vectors, dim, dtype)

        config = IndexConfig(
            num_hyperplanes=num_hyperplanes,
            dim=arr.shape[1],
            strategy=strategy,
            dtype=dtype,
        )
        hasher = RandomProjection.sample(_as_generator(rng), config)
        return cls(hasher, ids, arr)

    @classmethod
    def from_hyperplanes(
        cls,
        hyperplanes: np.ndarray,
        corpus: Corpus,
        *,
        strategy: Union[Strategy, str] = Strategy.CONCATENATE,
    ) -> "LSHDB":
        """
        Build over a caller-supplied ``(NB, dim)`` hyperplane set instead of sampling one.

        Row order of ``hyperplanes`` fixes bit order (Concatenate) or tree node
        numbering (Tree). Normals are used as given.
        """
        hasher = RandomProjection(hyperplanes, strategy)
        pairs = list(corpus)
        identifiers = [ident for ident, _ in pairs]
        vectors = [vec for _, vec in pairs]
        return cls(hasher, identifiers, vectors)

    # ---------------------------------------------------------------------
    # Query helpers
    # ---------------------------------------------------------------------

    def bin_of(self, query: np.ndarray) -> int:
        """Bin identifier ``query`` hashes to."""
        return self._hasher.bin(query)

    def candidates(self, query: np.ndarray) -> BucketView:
        """
        Identifiers sharing the query's bin, in stored order.

        Returns an empty view when the bin is empty; this is not an error.

        Raises
        ------
        ShapeMismatch
            If ``query`` does not have ``dim`` elements.
        """
        return self._bucket(self.bin_of(query))

    def pick_random(self, rng: RNGLike, query: np.ndarray) -> Optional[Any]:
        """
        One identifier drawn uniformly from ``candidates(query)``.

        Returns ``None`` when the query's bin is empty.
        """
        gen = _as_generator(rng)
        bucket = self.candidates(query)
        if not bucket:
            return None
        return bucket[int(gen.integers(len(bucket)))]

    def nearest_bucket(self, query: np.ndarray, max_distance: int = 1) -> BucketView:
        """
        The query's own bucket, or the nearest non-empty one in Hamming distance.

        If the query's bin is empty, bins are tried in order of Hamming distance
        from it (ascending bin value within a distance) up to ``max_distance``,
        and the first non-empty bucket is returned.

        Parameters
        ----------
        max_distance : int, default=1
            Largest Hamming distance to search. ``0`` behaves like
            :meth:`candidates`.

        Returns
        -------
        BucketView
            Possibly empty if nothing lies within ``max_distance``.
        """
        home = self.bin_of(query)
        for bin_id in bins_within_radius(home, self._hasher.bin_bits, max_distance):
            bucket = self._bucket(bin_id)
            if bucket:
                if bin_id != home:
                    logger.debug(f"Bin {home} empty; falling back to bin {bin_id}")
                return bucket
        return BucketView.empty()

    # ---------------------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------------------

    @property
    def hasher(self) -> RandomProjection:
        return self._hasher

    @property
    def config(self) -> IndexConfig:
        return self._hasher.config

    @property
    def buf(self) -> BucketView:
        """Identifiers grouped by ascending bin; corpus order within a bin. Read-only view."""
        return BucketView(self._buf, 0, len(self._buf))

    @property
    def bin_idx(self) -> BinTable:
        """Per-bin ``(start, end)`` ranges into :attr:`buf`."""
        return self._bin_idx

    def __len__(self) -> int:
        return len(self._buf)

    def stats(self) -> Dict[str, Any]:
        """
        Return a configuration and occupancy snapshot for monitoring and debugging.

        Examples
        --------
        >>> db.stats()
        {
            'size': 1024,
            'dimension': 16,
            'num_hyperplanes': 4,
            'strategy': 'concatenate',
            'dtype': 'float32',
            'bin_bits': 4,
            'num_bins': 16,
            'occupied_bins': 16,
            'max_bucket_size': 97
        }
        """
        sizes = self._bin_idx.bucket_sizes()
        return {
            "size": len(self._buf),
            "dimension": self.config.dim,
            "num_hyperplanes": self.config.num_hyperplanes,
            "strategy": self.config.strategy.value,
            "dtype": self.config.dtype.name,
            "bin_bits": self.config.bin_bits,
            "num_bins": self.config.num_bins,
            "occupied_bins": self._bin_idx.occupied,
            "max_bucket_size": int(sizes.max()) if sizes.size else 0,
        }

    def __repr__(self) -> str:  # pragma: no cover - convenience
        return (
            "LSHDB("
            f"size={len(self._buf)}, "
            f"dim={self.config.dim}, "
            f"num_hyperplanes={self.config.num_hyperplanes}, "
            f"strategy='{self.config.strategy.value}'"
            ")"
        )

    # ---------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------

    def _bucket(self, bin_id: int) -> BucketView:
        bounds = self._bin_idx.get(bin_id)
        if bounds is None:
            return BucketView.empty()
        return BucketView(self._buf, *bounds)


def _as_generator(rng: RNGLike) -> np.random.Generator:
    """Return a Generator drawing from ``rng``; seeds go through ``default_rng``."""
    if isinstance(rng, np.random.Generator):
        return rng
    if isinstance(rng, np.random.RandomState):
        # Same bit generator, so draws advance the caller's RandomState
        return np.random.Generator(rng._bit_generator)
    if rng is None or isinstance(
        rng, (int, np.integer, np.random.SeedSequence, np.random.BitGenerator)
    ):
        return np.random.default_rng(rng)
    raise TypeError(
        "rng must be a numpy Generator, RandomState, BitGenerator, SeedSequence, "
        f"integer seed or None; received {type(rng).__name__}"
    )


def _as_matrix(vectors: Any, dim: Optional[int], dtype: Any) -> np.ndarray:
    """Coerce ``vectors`` to an ``(n, dim)`` array, accepting an empty corpus when ``dim`` is known."""
    try:
        arr = np.asarray(vectors, dtype=dtype)
    except ValueError as exc:
        # Ragged rows
        raise ShapeMismatch(f"Vectors do not share one dimensionality: {exc}") from exc

    if arr.size == 0 and arr.ndim < 2:
        if dim is None:
            raise ShapeMismatch("dim must be given to build an index over an empty corpus")
        arr = arr.reshape(0, dim)

    if arr.ndim != 2:
        raise ShapeMismatch(f"Vectors must have shape (n, dim); received {arr.shape}")
    if dim is not None and arr.shape[1] != dim:
        raise ShapeMismatch(
            f"Vectors must have shape (n, {dim}); received {arr.shape}"
        )
    return arr


def _prepare_corpus(
    identifiers: Iterable[Any],
    vectors: Any,
    dim: Optional[int],
    dtype: Any,
) -> Tuple[List[Any], np.ndarray]:
    """Validate and align the identifier column with the vector matrix."""
    ids = list(identifiers)
    arr = _as_matrix(vectors, dim, dtype)

    if arr.shape[0] != len(ids):
        raise ShapeMismatch(
            "Number of vectors does not match number of identifiers "
            f"(received {arr.shape[0]} vectors for {len(ids)} identifiers)"
        )

    return ids, arr
