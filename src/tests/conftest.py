# src/tests/conftest.py
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add the parent directory of this tests folder (i.e., src/) to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


def _make_sales(n_rows: int = 120, seed: int = 0) -> pd.DataFrame:
    """Small Rossmann-shaped sales table: 4 stores, a week cycle, some holidays."""
    rng = np.random.default_rng(seed)
    store = np.tile([1, 2, 3, 4], n_rows // 4)
    day_of_week = (np.arange(n_rows) // 4) % 7 + 1
    open_flag = (day_of_week != 7).astype(int)
    promo = rng.integers(0, 2, n_rows)
    customers = np.where(open_flag == 1, rng.integers(300, 900, n_rows), 0)
    sales = np.where(open_flag == 1, 4 * customers + 800 * promo + rng.normal(0, 50, n_rows), 0).round(0)
    state_holiday = np.array(["0", "0", "0", "0", "a", "0", "b", "0"] * (n_rows // 8 + 1))[:n_rows]

    return pd.DataFrame({
        "Store": store,
        "DayOfWeek": day_of_week,
        "Date": pd.date_range("2015-01-01", periods=n_rows, freq="6h").strftime("%Y-%m-%d"),
        "Sales": sales,
        "Customers": customers,
        "Open": open_flag,
        "Promo": promo,
        "StateHoliday": state_holiday,
        "SchoolHoliday": rng.integers(0, 2, n_rows),
    })


def _make_stores() -> pd.DataFrame:
    return pd.DataFrame({
        "Store": [1, 2, 3, 4],
        "StoreType": ["a", "b", "c", "a"],
        "Assortment": ["a", "c", "a", "b"],
        # store 4 has no competition distance -> its rows are skipped by the assembler
        "CompetitionDistance": [1270.0, 570.0, 14130.0, np.nan],
        "Promo2": [0, 1, 1, 0],
        "PromoInterval": [None, "Jan,Apr,Jul,Oct", "Feb,May,Aug,Nov", None],
    })


@pytest.fixture
def sales_df() -> pd.DataFrame:
    return _make_sales()


@pytest.fixture
def stores_df() -> pd.DataFrame:
    return _make_stores()


@pytest.fixture
def csv_paths(tmp_path, sales_df, stores_df):
    sales_path = tmp_path / "train.csv"
    store_path = tmp_path / "store.csv"
    sales_df.to_csv(sales_path, index=False)
    stores_df.to_csv(store_path, index=False)
    return str(sales_path), str(store_path)


@pytest.fixture
def joined_df(csv_paths) -> pd.DataFrame:
    from data_loader import load_data
    return load_data(*csv_paths)
