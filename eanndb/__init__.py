"""In-memory approximate nearest neighbor index built on random-hyperplane LSH."""

from __future__ import annotations

from eanndb._config.config import WORD_BITS, IndexConfig, Strategy
from eanndb.core.main import LSHDB
from eanndb.errors import (
    ConfigurationError,
    ConfigurationTooWide,
    DegenerateSample,
    LSHError,
    ShapeMismatch,
)
from eanndb.hash.hyperplane import (
    Sign,
    build_random_unit_hyperplanes,
    sample_unit_vector,
    sign_of_dot,
)
from eanndb.hash.lsh import RandomProjection, pack_signs
from eanndb.storage import BinTable, BucketView

__version__ = "0.1.0"

__all__ = [
    "LSHDB",
    "RandomProjection",
    "IndexConfig",
    "Strategy",
    "Sign",
    "BinTable",
    "BucketView",
    "WORD_BITS",
    "pack_signs",
    "sign_of_dot",
    "sample_unit_vector",
    "build_random_unit_hyperplanes",
    "LSHError",
    "ConfigurationError",
    "ConfigurationTooWide",
    "DegenerateSample",
    "ShapeMismatch",
]
