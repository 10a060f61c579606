"""
Random hyperplane normals and sign projections.

A hyperplane through the origin is described by its unit normal. The side of
the hyperplane a vector falls on is the sign of its inner product with that
normal; these signs are the raw bits every bin identifier is assembled from.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any

import numpy as np

from eanndb.errors import DegenerateSample, ShapeMismatch
from eanndb.similarity import l2_normalize

logger = logging.getLogger(__name__)

# Zero-norm draws are retried this many times before DegenerateSample surfaces.
SAMPLE_RETRIES = 1


class Sign(IntEnum):
    """
    Side of a hyperplane.

    NEGATIVE is zero so that unused high-order bits of a packed bin identifier
    contribute nothing; an inner product of exactly zero maps to NEGATIVE.
    """

    NEGATIVE = 0
    POSITIVE = 1

    @classmethod
    def from_value(cls, x: float) -> "Sign":
        return cls.POSITIVE if x > 0 else cls.NEGATIVE


def sample_unit_vector(
    rng: np.random.Generator,
    dim: int,
    dtype: Any = np.float32,
) -> np.ndarray:
    """
    Draw a vector uniformly distributed on the unit sphere in ``dim`` dimensions.

    Each component is an independent standard normal draw; the result is divided
    by its L2 norm, which yields an isotropic direction.

    Args:
        rng: Source of randomness; anything with a numpy-style ``standard_normal``.
        dim: Vector dimension, at least 1.
        dtype: ``float32`` or ``float64``.

    Returns:
        1D array of shape ``(dim,)`` with unit L2 norm.

    Raises:
        ValueError: If ``dim`` is not positive.
        DegenerateSample: If every attempt produced a zero vector.
    """
    if dim <= 0:
        raise ValueError("dim must be > 0")

    for attempt in range(SAMPLE_RETRIES + 1):
        draw = np.asarray(rng.standard_normal(dim, dtype=dtype), dtype=dtype)
        try:
            return l2_normalize(draw).astype(dtype, copy=False)
        except DegenerateSample:
            logger.warning(
                f"Zero-norm unit vector draw (attempt {attempt + 1} of {SAMPLE_RETRIES + 1})"
            )

    raise DegenerateSample(
        f"Sampled a zero vector {SAMPLE_RETRIES + 1} times in a row; "
        "the random number generator looks degenerate"
    )


def build_random_unit_hyperplanes(
    rng: np.random.Generator,
    count: int,
    dim: int,
    dtype: Any = np.float32,
) -> np.ndarray:
    """
    Sample ``count`` hyperplane normals of dimension ``dim``.

    Returns a read-only ``(count, dim)`` array; row ``i`` is the normal that
    decides bit ``i`` of a concatenated bin identifier (or tree node ``i``).
    """
    planes = np.empty((count, dim), dtype=dtype)
    for row in range(count):
        planes[row] = sample_unit_vector(rng, dim, dtype)
    planes.setflags(write=False)
    return planes


def project(vectors: np.ndarray, normals: np.ndarray) -> np.ndarray:
    """
    Inner products of every vector with every normal.

    The sum over dimensions is accumulated strictly left to right, one
    dimension at a time, so the value computed for a given (vector, normal)
    pair does not depend on how many other vectors are in the batch.

    Args:
        vectors: ``(n, dim)`` array.
        normals: ``(m, dim)`` array.

    Returns:
        ``(n, m)`` array of inner products in the vectors' dtype.
    """
    if vectors.shape[1] != normals.shape[1]:
        raise ShapeMismatch(
            f"Cannot project {vectors.shape[1]}-dimensional vectors onto "
            f"{normals.shape[1]}-dimensional normals"
        )

    acc = np.zeros((vectors.shape[0], normals.shape[0]), dtype=vectors.dtype)
    for d in range(vectors.shape[1]):
        acc += vectors[:, d, None] * normals[None, :, d]
    return acc


def project_paired(vectors: np.ndarray, normals: np.ndarray) -> np.ndarray:
    """Row-wise inner products ``<vectors[i], normals[i]>``, accumulated like :func:`project`."""
    acc = np.zeros(vectors.shape[0], dtype=vectors.dtype)
    for d in range(vectors.shape[1]):
        acc += vectors[:, d] * normals[:, d]
    return acc


def sign_of_dot(a: np.ndarray, b: np.ndarray) -> Sign:
    """
    Sign of the inner product of ``a`` and ``b``.

    Example:
        >>> sign_of_dot(np.array([1.0, 0.0]), np.array([-1.0, 0.0]))
        <Sign.NEGATIVE: 0>
    """
    va = np.asarray(a).reshape(1, -1)
    vb = np.asarray(b).reshape(1, -1)
    if va.dtype.kind != "f":
        va = va.astype(np.float64)
    return Sign.from_value(project(va, vb.astype(va.dtype, copy=False))[0, 0])
