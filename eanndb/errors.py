"""
Exception hierarchy for the eanndb package.

Every error derives from :class:`LSHError`; the configuration and shape errors
also derive from :class:`ValueError` so callers that already guard index
construction with ``except ValueError`` keep working.
"""

from __future__ import annotations

__all__ = [
    "LSHError",
    "ConfigurationError",
    "ConfigurationTooWide",
    "DegenerateSample",
    "ShapeMismatch",
]


class LSHError(Exception):
    """Base class for all eanndb errors."""


class ConfigurationError(LSHError, ValueError):
    """An index configuration is invalid (non-positive sizes, bad dtype, ...)."""


class ConfigurationTooWide(ConfigurationError):
    """The bin identifier space does not fit in a single machine word."""

    def __init__(self, bits: int, word_bits: int, strategy: str) -> None:
        self.bits = bits
        self.word_bits = word_bits
        self.strategy = strategy
        super().__init__(
            f"{strategy} construction needs {bits} bits per bin identifier, "
            f"which exceeds the {word_bits}-bit word"
        )


class DegenerateSample(LSHError, ValueError):
    """A random unit-vector draw produced a zero vector."""


class ShapeMismatch(LSHError, ValueError):
    """A vector, corpus or identifier column has the wrong shape or length."""
