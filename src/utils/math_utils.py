import numpy as np


def mape(y_true, y_pred) -> float:
    """Mean Absolute Percentage Error (MAPE) in %."""
    y_true = np.asarray(y_true).ravel()
    y_pred = np.asarray(y_pred).ravel()
    mask = y_true != 0
    if not np.any(mask):
        return np.nan
    return float(np.mean(np.abs((y_true[mask] - y_pred[mask]) / y_true[mask])) * 100.0)


def min_max_scale(
    X: np.ndarray, data_min: np.ndarray, data_max: np.ndarray, lower: float = 0.0, upper: float = 1.0
) -> np.ndarray:
    """
    Rescale each column of X from [data_min, data_max] onto [lower, upper].
    Values outside the fitted range are clipped. Zero-variance columns map to `lower`.
    """
    X = np.asarray(X, dtype=float)
    span = data_max - data_min
    constant = span == 0
    safe_span = np.where(constant, 1.0, span)

    unit = (X - data_min) / safe_span
    unit = np.clip(unit, 0.0, 1.0)
    unit[:, constant] = 0.0
    return unit * (upper - lower) + lower
