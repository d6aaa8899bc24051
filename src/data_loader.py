"""
data_loader.py
CSV loader for the Rossmann sales and store tables, with schema checks.
- Ensures required columns exist (from utils.schema), raising SchemaError otherwise.
- Enforces dtypes:
    * categorical columns (StateHoliday, StoreType, ...) -> string (mixed 0/"0" become "0")
    * Store -> Int64, non-null
    * numeric columns -> float64 (allow NA; the feature assembler skips such rows)
- Rows with a null Store raise DataLoaderError with a concise summary.
- join_sales_and_stores() inner-joins on Store, one store row per Store.
"""

import logging

import pandas as pd

from utils.constants import JOIN_COL, NA_VALUES
from utils.schema import (
    SALES_COLUMNS, STORE_COLUMNS, INDEX_COLS, require_columns,
)

logger = logging.getLogger(__name__)


class DataLoaderError(Exception):
    """Raised when source rows violate the join contract."""


def _read_table(path: str, required: list, name: str) -> pd.DataFrame:
    df = pd.read_csv(
        path,
        dtype={c: "string" for c in INDEX_COLS},
        keep_default_na=True,
        na_values=NA_VALUES,
        low_memory=False,
    )
    require_columns(df, required, where=f"{name} table ({path})")

    # Join key: required and non-null
    store = pd.to_numeric(df[JOIN_COL], errors="coerce")
    bad = store.isna()
    if bad.any():
        example_idx = list(df.index[bad][:5])
        raise DataLoaderError(
            f"{name} table has {int(bad.sum())} row(s) without a valid {JOIN_COL}. "
            f"Row indices (first 5): {example_idx}."
        )
    df[JOIN_COL] = store.astype("Int64")

    # Numeric columns: coerce, unparseable values become NA
    for c in required:
        if c == JOIN_COL or c in INDEX_COLS:
            continue
        df[c] = pd.to_numeric(df[c], errors="coerce").astype("float64")

    # Categorical columns: strip whitespace so " a" and "a" agree
    for c in INDEX_COLS:
        if c in df.columns:
            df[c] = df[c].str.strip()

    logger.info("Read %d row(s) from %s table %s", len(df), name, path)
    return df


def load_sales(path: str) -> pd.DataFrame:
    return _read_table(path, SALES_COLUMNS, "sales")


def load_stores(path: str) -> pd.DataFrame:
    return _read_table(path, STORE_COLUMNS, "store")


def join_sales_and_stores(sales: pd.DataFrame, stores: pd.DataFrame) -> pd.DataFrame:
    """
    Inner-join sales with store metadata on Store.
    Every sales row must match at most one store row; duplicated store ids raise DataLoaderError.
    """
    require_columns(sales, [JOIN_COL], where="sales table")
    require_columns(stores, [JOIN_COL], where="store table")

    dup = stores[JOIN_COL].duplicated()
    if dup.any():
        raise DataLoaderError(
            f"store table lists {int(dup.sum())} duplicated {JOIN_COL} id(s): "
            f"{stores.loc[dup, JOIN_COL].head(5).tolist()}"
        )

    overlap = [c for c in stores.columns if c in sales.columns and c != JOIN_COL]
    merged = sales.merge(
        stores.drop(columns=overlap), on=JOIN_COL, how="inner", validate="m:1"
    ).reset_index(drop=True)

    unmatched = len(sales) - len(merged)
    if unmatched:
        logger.warning("%d sales row(s) had no matching store metadata and were dropped", unmatched)
    return merged


def load_data(sales_path: str, store_path: str) -> pd.DataFrame:
    """Read both CSVs and return the joined, typed DataFrame."""
    return join_sales_and_stores(load_sales(sales_path), load_stores(store_path))
