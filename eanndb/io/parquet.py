"""
Corpus reader for Parquet files.

A corpus file holds one row per vector: an identifier column and a list column
with the vector's components. Rows come out as ``(identifier, vector)`` pairs,
the shape :meth:`eanndb.LSHDB.build` consumes:

    >>> from eanndb.io.parquet import read_parquet_corpus
    >>> db = LSHDB.build(rng, read_parquet_corpus("embeddings.parquet"), num_hyperplanes=8)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator, Optional, Tuple, Union

import numpy as np

from eanndb.errors import ShapeMismatch

# Rows pulled from disk per record batch
READ_CHUNK_ROWS = 8192


def read_parquet_corpus(
    source: Union[str, Path],
    *,
    id_column: str = "id",
    vector_column: str = "vector",
    dim: Optional[int] = None,
    dtype: Any = np.float32,
) -> Iterator[Tuple[Any, np.ndarray]]:
    """
    Yield ``(identifier, vector)`` corpus pairs from a Parquet file, row by row.

    Every vector is checked against ``dim`` (or, when ``dim`` is omitted, the
    length of the first row) before it is yielded, so a malformed file fails at
    the offending row with its row number.

    Parameters
    ----------
    source : str or Path
        Parquet file to read.

    id_column : str, default="id"
        Column holding identifiers. Values are yielded as ``pyarrow`` converts
        them to Python; nulls are rejected.

    vector_column : str, default="vector"
        List column holding the vector components.

    dim : int, optional
        Expected vector dimension.

    dtype : default=np.float32
        Scalar type of the yielded vectors.

    Raises
    ------
    ImportError
        If ``pyarrow`` is not installed.
    FileNotFoundError
        If ``source`` does not exist.
    ValueError
        If a column is missing, or a row has a null identifier or vector.
    ShapeMismatch
        If a vector is empty, nested, or its length differs from the expected
        dimension.
    """
    pq = _require_pyarrow()

    path = Path(source).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"No Parquet corpus at '{path}'")

    reader = pq.ParquetFile(path)
    names = reader.schema_arrow.names
    missing = [col for col in (id_column, vector_column) if col not in names]
    if missing:
        raise ValueError(f"Parquet corpus '{path.name}' lacks column(s) {missing}; found {names}")

    expected = dim
    row = 0
    for batch in reader.iter_batches(batch_size=READ_CHUNK_ROWS, columns=[id_column, vector_column]):
        ids = batch.column(id_column).to_pylist()
        rows = batch.column(vector_column).to_pylist()
        for ident, values in zip(ids, rows):
            if ident is None:
                raise ValueError(f"Row {row}: null identifier")
            if values is None:
                raise ValueError(f"Row {row}: null vector for identifier {ident!r}")

            vector = np.asarray(values, dtype=dtype)
            if vector.ndim != 1 or vector.size == 0:
                raise ShapeMismatch(
                    f"Row {row}: vector for identifier {ident!r} must be a non-empty "
                    f"flat list; received shape {vector.shape}"
                )
            if expected is None:
                expected = vector.shape[0]
            elif vector.shape[0] != expected:
                raise ShapeMismatch(
                    f"Row {row}: expected a vector of dimension {expected}, "
                    f"received {vector.shape[0]}"
                )

            yield ident, vector
            row += 1


def _require_pyarrow() -> Any:
    try:
        import pyarrow.parquet as pq
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise ImportError(
            "Reading Parquet corpora needs pyarrow; install it with `pip install eanndb[parquet]`"
        ) from exc
    return pq
