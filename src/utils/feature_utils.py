import numpy as np
import pandas as pd


def is_vector_column(s: pd.Series) -> bool:
    """True when the column holds one ndarray per row (nulls allowed)."""
    if s.dtype != object:
        return False
    first = next((v for v in s if v is not None and not _is_scalar_na(v)), None)
    return isinstance(first, np.ndarray)


def _is_scalar_na(v) -> bool:
    return not isinstance(v, np.ndarray) and bool(pd.isna(v))


def null_vector_mask(s: pd.Series) -> np.ndarray:
    """Rows whose vector cell is missing or contains a NaN."""
    return np.array(
        [v is None or _is_scalar_na(v) or bool(np.isnan(v).any()) for v in s],
        dtype=bool,
    )


def vector_widths(s: pd.Series) -> set:
    return {int(v.shape[0]) for v in s if isinstance(v, np.ndarray)}


def stack_vectors(s: pd.Series, width: int) -> np.ndarray:
    """
    Stack a vector column into a (n_rows, width) float matrix.
    Missing cells become rows of NaN.
    """
    out = np.full((len(s), width), np.nan, dtype=float)
    for i, v in enumerate(s):
        if isinstance(v, np.ndarray):
            out[i] = v
    return out


def to_vector_series(X: np.ndarray, index: pd.Index, valid: np.ndarray | None = None) -> pd.Series:
    """One ndarray per row; rows where `valid` is False become None."""
    cells = [row.copy() for row in np.asarray(X, dtype=float)]
    if valid is not None:
        cells = [c if ok else None for c, ok in zip(cells, valid)]
    return pd.Series(cells, index=index, dtype=object)
