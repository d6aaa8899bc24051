# tests/test_feature_pipeline.py
import numpy as np
import pandas as pd
import pytest

from features import (
    FeaturePipeline, CategoricalIndexer, OneHotExpander, FeatureAssembler, RangeScaler, build_stages,
)
from utils.constants import FEATURES_COL, SCALED_FEATURES_COL
from utils.errors import SchemaError
from utils.schema import INDEX_COLS, RAW_CATEGORICAL_COLS, NUMERIC_COLS, ONEHOT_INPUT_COLS, FEATURE_COLS


def _matrix(df: pd.DataFrame, col: str) -> np.ndarray:
    return np.vstack(list(df[col]))


def test_transform_is_deterministic(joined_df):
    fitted = FeaturePipeline(build_stages()).fit(joined_df)
    first = fitted.transform(joined_df)
    second = fitted.transform(joined_df)

    assert first.index.equals(second.index)
    for col in (FEATURES_COL, SCALED_FEATURES_COL):
        assert _matrix(first, col).tobytes() == _matrix(second, col).tobytes()


def test_feature_dimension_matches_cardinalities_plus_numeric(joined_df):
    fitted = FeaturePipeline(build_stages()).fit(joined_df)
    out = fitted.transform(joined_df)

    cards = fitted.onehot_cardinalities
    assert set(cards) == set(ONEHOT_INPUT_COLS)
    expected = sum(cards.values()) + len(NUMERIC_COLS)

    assert fitted.feature_size == expected
    assert {len(v) for v in out[FEATURES_COL]} == {expected}
    assert {len(v) for v in out[SCALED_FEATURES_COL]} == {expected}


def test_scaled_features_lie_in_unit_interval(joined_df):
    out = FeaturePipeline(build_stages()).fit(joined_df).transform(joined_df)
    scaled = _matrix(out, SCALED_FEATURES_COL)
    assert ((scaled >= 0.0) & (scaled <= 1.0)).all()


def test_rows_with_missing_numeric_inputs_are_dropped_and_reported(joined_df):
    fitted = FeaturePipeline(build_stages()).fit(joined_df)
    out, report = fitted.transform_with_report(joined_df)

    missing = int(joined_df["CompetitionDistance"].isna().sum())
    assert missing > 0
    assert len(out) == len(joined_df) - missing

    by_stage = {r.stage: r for r in report}
    assert by_stage["assemble"].dropped == missing
    assert sum(r.dropped for r in report) == missing


def test_unseen_categories_reuse_fitted_models(joined_df):
    train = joined_df[joined_df["StoreType"] != "c"]
    fitted = FeaturePipeline(build_stages()).fit(train)
    labels_before = fitted.model_for("index[StoreType]").labels

    out = fitted.transform(joined_df)

    assert "c" not in labels_before
    assert fitted.model_for("index[StoreType]").labels == labels_before
    unknown = fitted.model_for("index[StoreType]").unknown_code
    assert (out.loc[out["StoreType"] == "c", "StoreType_indexed"] == unknown).all()
    assert {len(v) for v in out[SCALED_FEATURES_COL]} == {fitted.feature_size}


def test_source_columns_of_default_stages():
    pipeline = FeaturePipeline(build_stages())
    assert set(pipeline.source_columns) == set(INDEX_COLS + RAW_CATEGORICAL_COLS + NUMERIC_COLS)


def test_default_assembler_order_comes_from_schema():
    assembler = next(s for s in build_stages() if isinstance(s, FeatureAssembler))
    assert list(assembler.columns) == FEATURE_COLS

    custom = next(s for s in build_stages(["StoreType"], [], ["Promo"]) if isinstance(s, FeatureAssembler))
    assert custom.columns == ("StoreType_indexed_vector", "Promo")


def test_missing_source_column_fails_fast(joined_df):
    pipeline = FeaturePipeline(build_stages())
    with pytest.raises(SchemaError, match="Promo2"):
        pipeline.fit(joined_df.drop(columns=["Promo2"]))


def test_stage_errors_name_the_stage(joined_df):
    fitted = FeaturePipeline(build_stages()).fit(joined_df)
    with pytest.raises(SchemaError, match=r"index\[Assortment\]"):
        fitted.transform(joined_df.drop(columns=["Assortment"]))


def test_wiring_is_validated_at_construction():
    with pytest.raises(SchemaError, match="before"):
        FeaturePipeline([
            OneHotExpander("c_idx", "c_vec"),
            CategoricalIndexer("c", "c_idx"),
        ])
    with pytest.raises(SchemaError, match="produced by both"):
        FeaturePipeline([
            CategoricalIndexer("a", "x"),
            CategoricalIndexer("b", "x"),
        ])
    with pytest.raises(SchemaError, match="duplicated stage names"):
        FeaturePipeline([
            CategoricalIndexer("a", "a_idx", name="idx"),
            CategoricalIndexer("b", "b_idx", name="idx"),
        ])
    with pytest.raises(SchemaError):
        FeaturePipeline([])


def test_small_custom_pipeline_end_to_end():
    fit_df = pd.DataFrame({
        "StateHoliday": ["0", "0", "a"],
        "Promo": [0.0, 1.0, 1.0],
    })
    stages = [
        CategoricalIndexer("StateHoliday", "sh_idx"),
        OneHotExpander("sh_idx", "sh_vec"),
        FeatureAssembler(("sh_vec", "Promo")),
        RangeScaler(),
    ]
    fitted = FeaturePipeline(stages).fit(fit_df)
    assert fitted.feature_size == 3

    out = fitted.transform(pd.DataFrame({"StateHoliday": ["b"], "Promo": [1.0]}))
    np.testing.assert_array_equal(out[FEATURES_COL].iloc[0], [0.0, 0.0, 1.0])
    np.testing.assert_array_equal(out[SCALED_FEATURES_COL].iloc[0], [0.0, 0.0, 1.0])
