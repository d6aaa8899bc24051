# pipeline.py
"""
Rossmann sales forecasting: feature pipeline + gradient-boosted-tree regressor.

CLI:
  python pipeline.py path/to/train.csv path/to/store.csv
  rossmann-forecast path/to/train.csv path/to/store.csv

Steps: load & join -> split -> fit features on train -> transform train/validation
-> train XGBoost -> print predictions sample and RMSE.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from data_loader import load_data
from features import FeaturePipeline, build_stages
from models.modeling import split, train, predict, compute_metric

from utils.constants import FEATURES_COL, SCALED_FEATURES_COL, PREDICTION_COL, SEED, METRICS
from utils.io_utils import load_config
from utils.schema import TARGET_COL, describe_schema

logger = logging.getLogger(__name__)


# ---------- Commands ----------
def cmd_train(sales_path: str, store_path: str, config_path: Optional[str] = None) -> float:
    cfg = load_config(config_path)
    split_cfg, eval_cfg, scaler_cfg = cfg["split"], cfg["evaluation"], cfg["scaler"]
    metric = eval_cfg.get("metric", "rmse")
    if metric not in METRICS:
        raise ValueError(f"Unsupported metric '{metric}' in config, expected one of {METRICS}.")

    df = load_data(sales_path, store_path)
    print(f"Loaded {len(df)} joined rows")

    # Split before fitting so validation rows never shape the vocabularies or min/max
    train_raw, val_raw = split(
        df,
        ratio=float(split_cfg.get("train_ratio", 0.8)),
        seed=int(split_cfg.get("seed", SEED)),
    )

    feature_pipeline = FeaturePipeline(build_stages(
        scaler_min=float(scaler_cfg.get("min", 0.0)),
        scaler_max=float(scaler_cfg.get("max", 1.0)),
    ))
    logger.info("Fitting %d feature stage(s) on the training split", len(feature_pipeline.stages))
    fitted = feature_pipeline.fit(train_raw)

    keep_cols = [FEATURES_COL, SCALED_FEATURES_COL, TARGET_COL]
    train_df, train_report = fitted.transform_with_report(train_raw)
    val_df, val_report = fitted.transform_with_report(val_raw)
    train_df, val_df = train_df[keep_cols], val_df[keep_cols]

    for name, rows, report in (("train", len(train_df), train_report), ("validation", len(val_df), val_report)):
        dropped = sum(r.dropped for r in report)
        print(f"{name}: {rows} rows after features ({dropped} dropped for invalid inputs)")

    print(describe_schema(train_df))
    print(f"Feature vector size: {fitted.feature_size}")

    model = train(train_df, SCALED_FEATURES_COL, TARGET_COL, cfg["gbt"])

    preds = predict(model, val_df, SCALED_FEATURES_COL)
    print(preds[[PREDICTION_COL, TARGET_COL]].head(int(eval_cfg.get("show_rows", 5))).to_string(index=False))

    # empty validation raises EmptyDatasetError here
    score = compute_metric(metric, preds[TARGET_COL], preds[PREDICTION_COL])
    if metric == "rmse":
        print(f"Root Mean Squared Error (RMSE) on test data = {score}")
    else:
        print(f"{metric.upper()} on test data = {score}")
    return score


# ---------- CLI ----------
def run(argv: Optional[Sequence[str]] = None) -> float:
    parser = argparse.ArgumentParser(description="Rossmann sales forecasting")
    parser.add_argument("sales", help="Path to the daily sales CSV (train.csv)")
    parser.add_argument("stores", help="Path to the store metadata CSV (store.csv)")
    parser.add_argument("--config", default=None, help="Path to training.yaml (defaults to models/training.yaml)")
    args = parser.parse_args(argv)
    return cmd_train(args.sales, args.stores, config_path=args.config)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
    try:
        run(argv)
    except Exception as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
