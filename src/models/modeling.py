# modeling.py
"""
Train/evaluate workflow for the sales regressor.
- split(): reproducible row-level random partition.
- train(): fits an XGBoost gradient-boosted-tree regressor on a vector feature column.
- predict() / evaluate(): predictions and regression error metrics (RMSE by default).
"""

import logging
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from xgboost import XGBRegressor

from utils.constants import SEED, PREDICTION_COL, METRICS
from utils.errors import EmptyDatasetError
from utils.feature_utils import is_vector_column, vector_widths, stack_vectors
from utils.math_utils import mape
from utils.schema import require_columns

logger = logging.getLogger(__name__)


# ------------------ Input checks ------------------
def _check_schema(df: pd.DataFrame, feature_col: str, label_col: Optional[str] = None):
    """Ensure the frame carries the feature vector column (and the label, when given)."""
    cols = [feature_col] + ([label_col] if label_col is not None else [])
    require_columns(df, cols, where="modeling input")


def _feature_matrix(df: pd.DataFrame, feature_col: str) -> np.ndarray:
    """Stack the vector column into a 2D float matrix; NaN and mixed widths are rejected."""
    s = df[feature_col]
    if not is_vector_column(s):
        raise ValueError(f"Column '{feature_col}' does not hold feature vectors.")
    widths = vector_widths(s)
    if len(widths) != 1:
        raise ValueError(f"Column '{feature_col}' holds vectors of differing widths {sorted(widths)}.")
    X = stack_vectors(s, widths.pop())
    if np.isnan(X).any():
        raise ValueError(f"Column '{feature_col}' contains null or NaN features. Handle missing data first.")
    return X


def _check_inputs(df: pd.DataFrame, feature_col: str, label_col: str, what: str) -> Tuple[np.ndarray, np.ndarray]:
    """Type, emptiness and NA checks before training/evaluation."""
    if not isinstance(df, pd.DataFrame):
        raise TypeError(f"{what} set must be a pandas DataFrame.")
    _check_schema(df, feature_col, label_col)
    if df.empty:
        raise EmptyDatasetError(f"{what} set is empty.")

    X = _feature_matrix(df, feature_col)
    y = pd.to_numeric(df[label_col], errors="coerce").to_numpy(dtype=float, na_value=np.nan)
    if np.isnan(y).any():
        raise ValueError(f"Label column '{label_col}' contains NaN values.")
    return X, y


# ------------------ Split ------------------
def split(df: pd.DataFrame, ratio: float = 0.8, seed: int = SEED) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Row-level random partition: each row lands in train with probability `ratio`.
    The same seed gives the same partition; every row lands in exactly one side.
    """
    if not 0.0 < ratio < 1.0:
        raise ValueError(f"Split ratio must be in (0, 1), got {ratio}.")
    rng = np.random.default_rng(seed)
    in_train = rng.random(len(df)) < ratio
    train_df, val_df = df.loc[in_train].copy(), df.loc[~in_train].copy()
    logger.info("Split %d row(s) into %d train / %d validation", len(df), len(train_df), len(val_df))
    return train_df, val_df


# ------------------ Training ------------------
def train(
    train_df: pd.DataFrame,
    feature_col: str,
    label_col: str,
    hyperparameters: Optional[Dict] = None,
) -> XGBRegressor:
    """
    Train an XGBoost regressor on the vectors in `feature_col`.
    `hyperparameters` are passed to XGBRegressor as-is.
    """
    X, y = _check_inputs(train_df, feature_col, label_col, what="Training")

    params = {"random_state": SEED, "n_jobs": -1, "verbosity": 0}
    params.update(hyperparameters or {})
    model = XGBRegressor(**params)
    model.fit(X, y)
    logger.info("Trained %s on %d row(s) x %d feature(s)", type(model).__name__, X.shape[0], X.shape[1])
    return model


# ------------------ Prediction & evaluation ------------------
def predict(model, df: pd.DataFrame, feature_col: str, prediction_col: str = PREDICTION_COL) -> pd.DataFrame:
    _check_schema(df, feature_col)
    out = df.copy()
    if out.empty:
        out[prediction_col] = pd.Series(dtype=float)
        return out
    X = _feature_matrix(out, feature_col)
    out[prediction_col] = np.asarray(model.predict(X), dtype=float).ravel()
    return out


def compute_metric(metric: str, y_true, y_pred) -> float:
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()
    if y_true.size == 0:
        raise EmptyDatasetError(f"Cannot compute {metric} on an empty set.")

    if metric == "rmse":
        return float(np.sqrt(mean_squared_error(y_true, y_pred)))
    if metric == "mse":
        return float(mean_squared_error(y_true, y_pred))
    if metric == "mae":
        return float(mean_absolute_error(y_true, y_pred))
    if metric == "r2":
        return float(r2_score(y_true, y_pred))
    if metric == "mape":
        return mape(y_true, y_pred)
    raise ValueError(f"Unsupported metric '{metric}', expected one of {METRICS}.")


def evaluate(model, validation_df: pd.DataFrame, feature_col: str, label_col: str, metric: str = "rmse") -> float:
    """Predict on the validation set and return the requested error metric."""
    if metric not in METRICS:
        raise ValueError(f"Unsupported metric '{metric}', expected one of {METRICS}.")
    X, y = _check_inputs(validation_df, feature_col, label_col, what="Validation")
    y_pred = np.asarray(model.predict(X), dtype=float).ravel()
    return compute_metric(metric, y, y_pred)


def evaluate_all(model, validation_df: pd.DataFrame, feature_col: str, label_col: str) -> Dict[str, float]:
    """Every supported metric on one prediction pass."""
    X, y = _check_inputs(validation_df, feature_col, label_col, what="Validation")
    y_pred = np.asarray(model.predict(X), dtype=float).ravel()
    return {m: compute_metric(m, y, y_pred) for m in METRICS}
