"""Shared test fixtures and fake random generators."""

from __future__ import annotations

from typing import List, Tuple

import numpy as np
import pytest

from eanndb import LSHDB


class RecordingRNG:
    """Wraps a Generator and records every standard_normal call."""

    def __init__(self, seed: int = 0) -> None:
        self._rng = np.random.default_rng(seed)
        self.standard_normal_calls = 0

    def standard_normal(self, size=None, dtype=np.float64):
        self.standard_normal_calls += 1
        return self._rng.standard_normal(size, dtype=dtype)

    def integers(self, *args, **kwargs):
        return self._rng.integers(*args, **kwargs)


class ZeroRNG:
    """Degenerate generator whose normal draws are all zero."""

    def __init__(self) -> None:
        self.standard_normal_calls = 0

    def standard_normal(self, size=None, dtype=np.float64):
        self.standard_normal_calls += 1
        return np.zeros(size, dtype=dtype)


class ZeroOnceRNG(ZeroRNG):
    """Returns one all-zero draw, then behaves like a seeded Generator."""

    def __init__(self, seed: int = 0) -> None:
        super().__init__()
        self._rng = np.random.default_rng(seed)

    def standard_normal(self, size=None, dtype=np.float64):
        self.standard_normal_calls += 1
        if self.standard_normal_calls == 1:
            return np.zeros(size, dtype=dtype)
        return self._rng.standard_normal(size, dtype=dtype)


def make_corpus(
    rng: np.random.Generator, n: int, dim: int, dtype=np.float32
) -> List[Tuple[int, np.ndarray]]:
    """``n`` labelled vectors with identifiers ``0..n-1``."""
    vectors = rng.standard_normal((n, dim)).astype(dtype)
    return [(i, vectors[i]) for i in range(n)]


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded random generator for deterministic tests."""
    return np.random.default_rng(12345)


@pytest.fixture
def corpus(rng) -> List[Tuple[int, np.ndarray]]:
    """1024 float32 vectors of dimension 16, labelled 0..1023."""
    return make_corpus(rng, 1024, 16)


@pytest.fixture
def make_db():
    """Factory for building an LSHDB from a seed with sensible test defaults."""

    def _make(
        corpus,
        num_hyperplanes: int = 4,
        strategy: str = "concatenate",
        seed: int = 42,
        dtype=np.float32,
    ) -> LSHDB:
        return LSHDB.build(
            np.random.default_rng(seed),
            corpus,
            num_hyperplanes=num_hyperplanes,
            strategy=strategy,
            dtype=dtype,
        )

    return _make
