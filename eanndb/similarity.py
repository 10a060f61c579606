from __future__ import annotations

import math

import numpy as np

from eanndb.errors import DegenerateSample


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Return the L2-normalized version of ``vector`` in its own floating dtype."""
    vec = np.asarray(vector).reshape(-1)
    if vec.dtype.kind != "f":
        vec = vec.astype(np.float64)
    norm = np.linalg.norm(vec)
    if not norm > 0:
        raise DegenerateSample("Cannot normalize zero vector")
    return vec / norm


def angular_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Angle in radians between ``a`` and ``b``."""
    cos = float(np.dot(l2_normalize(a).astype(np.float64), l2_normalize(b).astype(np.float64)))
    return math.acos(min(1.0, max(-1.0, cos)))


def collision_probability(a: np.ndarray, b: np.ndarray) -> float:
    """
    Probability that one random hyperplane puts ``a`` and ``b`` on the same side.

    For sign-random-projection hashing this is ``1 - theta / pi``.
    """
    return 1.0 - angular_distance(a, b) / math.pi
