# schema.py
"""
Schema definition for the joined Rossmann dataset, the feature stages and the target.
"""

from typing import Iterable, List

import numpy as np
import pandas as pd

from utils.errors import SchemaError
from utils.constants import INDEXED_SUFFIX, VECTOR_SUFFIX

SALES_COLUMNS = [
    "Store", "DayOfWeek", "Sales", "Customers", "Open",
    "Promo", "StateHoliday", "SchoolHoliday",
]

STORE_COLUMNS = [
    "Store", "StoreType", "Assortment", "CompetitionDistance", "Promo2", "PromoInterval",
]

# String columns: read as text, indexed before one-hot expansion
INDEX_COLS = ["StateHoliday", "StoreType", "Assortment", "PromoInterval"]

# Already integer-coded, expanded directly
RAW_CATEGORICAL_COLS = ["DayOfWeek"]

NUMERIC_COLS = [
    "Customers", "Open", "Promo", "SchoolHoliday", "CompetitionDistance", "Promo2",
]

TARGET_COL = "Sales"


def indexed_col(col: str) -> str:
    return col + INDEXED_SUFFIX


def vector_col(col: str) -> str:
    return col + VECTOR_SUFFIX


def onehot_input_cols(index_cols: Iterable[str], raw_categorical_cols: Iterable[str]) -> List[str]:
    return list(raw_categorical_cols) + [indexed_col(c) for c in index_cols]


def feature_cols(
    index_cols: Iterable[str], raw_categorical_cols: Iterable[str], numeric_cols: Iterable[str]
) -> List[str]:
    """Assembler input, in order: one-hot vectors first, then raw numeric columns."""
    return [vector_col(c) for c in onehot_input_cols(index_cols, raw_categorical_cols)] + list(numeric_cols)


ONEHOT_INPUT_COLS = onehot_input_cols(INDEX_COLS, RAW_CATEGORICAL_COLS)
FEATURE_COLS = feature_cols(INDEX_COLS, RAW_CATEGORICAL_COLS, NUMERIC_COLS)


def require_columns(df: pd.DataFrame, columns: Iterable[str], where: str) -> None:
    """Raise SchemaError listing every column of `columns` missing from `df`."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaError(f"{where}: missing required columns {missing}")


def describe_schema(df: pd.DataFrame) -> str:
    """
    Tree-style schema summary, one line per column.
    Vector columns report their dimension (taken from the first non-null cell).
    """
    lines: List[str] = ["root"]
    for col in df.columns:
        s = df[col]
        kind = str(s.dtype)
        nullable = bool(s.isna().any())
        if s.dtype == object:
            first = next((v for v in s if isinstance(v, np.ndarray)), None)
            if first is not None:
                kind = f"vector[{first.shape[0]}]"
                nullable = any(v is None for v in s)
        lines.append(f" |-- {col}: {kind} (nullable = {str(nullable).lower()})")
    return "\n".join(lines)
