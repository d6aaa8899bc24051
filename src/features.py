# features.py
"""
Feature stages for the sales model and the pipeline that replays them.

Each stage is a small frozen config (its input/output column names and policies)
with two operations:
    fit(df)              -> fitted model (vocabulary, cardinality, widths, min/max)
    transform(df, model) -> new DataFrame with the output column added

FeaturePipeline validates the column wiring once, fits every stage on the output
of the previous stage's transform, and returns a FittedPipelineModel that only
ever replays transforms.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from utils.constants import (
    FEATURES_COL, SCALED_FEATURES_COL, ORDER_TYPES, ORDER_FREQUENCY_DESC,
    ORDER_FREQUENCY_ASC, ORDER_ALPHABET_DESC,
    INVALID_POLICIES, KEEP, SKIP, ERROR,
)
from utils.errors import SchemaError, EmptyDatasetError
from utils.feature_utils import (
    is_vector_column, null_vector_mask, stack_vectors, to_vector_series, vector_widths,
)
from utils.math_utils import min_max_scale
from utils.schema import (
    INDEX_COLS, RAW_CATEGORICAL_COLS, NUMERIC_COLS, indexed_col, vector_col, onehot_input_cols, feature_cols,
    require_columns,
)

logger = logging.getLogger(__name__)


def _check_policy(name: str, value: str, allowed: Sequence[str]) -> None:
    if value not in allowed:
        raise ValueError(f"{name}: unsupported option {value!r}, expected one of {list(allowed)}")


class Stage(ABC):
    """A named fit/transform step reading `input_cols` and writing `output_col`."""

    name: str
    output_col: str

    @property
    @abstractmethod
    def input_cols(self) -> Tuple[str, ...]:
        ...

    @abstractmethod
    def fit(self, df: pd.DataFrame):
        ...

    @abstractmethod
    def transform(self, df: pd.DataFrame, model) -> pd.DataFrame:
        ...


# ------------------ Categorical indexing ------------------
@dataclass(frozen=True)
class CategoricalIndexModel:
    input_col: str
    output_col: str
    labels: Tuple[str, ...]

    @property
    def unknown_code(self) -> int:
        """Reserved code for values absent from the vocabulary (and nulls)."""
        return len(self.labels)

    @property
    def index(self) -> Dict[str, int]:
        return {label: i for i, label in enumerate(self.labels)}


def _as_text(s: pd.Series) -> pd.Series:
    # numeric categories compare by their string form, e.g. 0 and 0.0 -> "0"
    if pd.api.types.is_float_dtype(s):
        present = s.dropna()
        if (present == np.floor(present)).all():
            s = s.astype("Int64")
    return s.astype("string")


@dataclass(frozen=True)
class CategoricalIndexer(Stage):
    """
    Maps each distinct string value to an integer code.

    Codes follow `order`; the default "frequency_desc" gives code 0 to the most
    frequent value and breaks ties by first appearance in the fit data.
    `handle_invalid`:
      - "keep"  : unseen values and nulls get `model.unknown_code`
      - "skip"  : rows with unseen values or nulls are dropped
      - "error" : raise ValueError
    """

    input_col: str
    output_col: str
    handle_invalid: str = KEEP
    order: str = ORDER_FREQUENCY_DESC
    name: str = ""

    def __post_init__(self):
        if not self.name:
            object.__setattr__(self, "name", f"index[{self.input_col}]")
        _check_policy(self.name, self.handle_invalid, INVALID_POLICIES)
        _check_policy(self.name, self.order, ORDER_TYPES)

    @property
    def input_cols(self) -> Tuple[str, ...]:
        return (self.input_col,)

    def fit(self, df: pd.DataFrame) -> CategoricalIndexModel:
        require_columns(df, self.input_cols, where=self.name)
        values = _as_text(df[self.input_col]).dropna()

        codes, uniques = pd.factorize(values)  # uniques in order of appearance
        counts = np.bincount(codes, minlength=len(uniques))
        labels = [str(u) for u in uniques]

        if self.order == ORDER_FREQUENCY_DESC:
            ranked = np.argsort(-counts, kind="stable")
        elif self.order == ORDER_FREQUENCY_ASC:
            ranked = np.argsort(counts, kind="stable")
        else:
            ranked = sorted(
                range(len(labels)),
                key=lambda i: labels[i],
                reverse=self.order == ORDER_ALPHABET_DESC,
            )

        model = CategoricalIndexModel(
            input_col=self.input_col,
            output_col=self.output_col,
            labels=tuple(labels[i] for i in ranked),
        )
        logger.debug("%s: %d label(s) %s", self.name, len(model.labels), list(model.labels)[:10])
        return model

    def transform(self, df: pd.DataFrame, model: CategoricalIndexModel) -> pd.DataFrame:
        require_columns(df, self.input_cols, where=self.name)
        lookup = model.index
        unknown = model.unknown_code

        text = _as_text(df[self.input_col]).to_numpy(dtype=object, na_value=None)
        codes = np.fromiter((lookup.get(v, unknown) for v in text), dtype=np.int64, count=len(text))
        invalid = codes == unknown

        out = df.copy()
        if invalid.any():
            n_bad = int(invalid.sum())
            if self.handle_invalid == ERROR:
                sample = sorted({str(v) for v in text[invalid]})[:5]
                raise ValueError(
                    f"{self.name}: {n_bad} unseen or null value(s) in column '{self.input_col}', e.g. {sample}"
                )
            if self.handle_invalid == SKIP:
                logger.info("%s: skipped %d row(s) with unseen or null values", self.name, n_bad)
                out = out.loc[~invalid].copy()
                codes = codes[~invalid]
            else:
                logger.info("%s: %d row(s) mapped to unknown code %d", self.name, n_bad, unknown)

        out[self.output_col] = codes
        return out


# ------------------ One-hot expansion ------------------
@dataclass(frozen=True)
class OneHotModel:
    input_col: str
    output_col: str
    cardinality: int


def _as_codes(s: pd.Series, where: str) -> np.ndarray:
    try:
        numeric = pd.to_numeric(s)
    except (ValueError, TypeError) as e:
        raise SchemaError(f"{where}: column '{s.name}' is not integer-coded") from e
    codes = pd.Series(numeric).to_numpy(dtype=float, na_value=np.nan)

    present = codes[~np.isnan(codes)]
    if (present < 0).any() or (present != np.floor(present)).any():
        raise ValueError(f"{where}: column '{s.name}' holds negative or fractional category codes")
    return codes


@dataclass(frozen=True)
class OneHotExpander(Stage):
    """
    Expands an integer code column into an indicator vector of length `cardinality`.
    Cardinality is max(code) + 1 over the fit data. Codes at or beyond it become the
    all-zero vector; null codes give a null vector cell.
    """

    input_col: str
    output_col: str
    name: str = ""

    def __post_init__(self):
        if not self.name:
            object.__setattr__(self, "name", f"onehot[{self.input_col}]")

    @property
    def input_cols(self) -> Tuple[str, ...]:
        return (self.input_col,)

    def fit(self, df: pd.DataFrame) -> OneHotModel:
        require_columns(df, self.input_cols, where=self.name)
        codes = _as_codes(df[self.input_col], self.name)
        present = codes[~np.isnan(codes)]
        if present.size == 0:
            raise EmptyDatasetError(f"{self.name}: no non-null codes in column '{self.input_col}' to fit on")
        return OneHotModel(self.input_col, self.output_col, cardinality=int(present.max()) + 1)

    def transform(self, df: pd.DataFrame, model: OneHotModel) -> pd.DataFrame:
        require_columns(df, self.input_cols, where=self.name)
        codes = _as_codes(df[self.input_col], self.name)
        null = np.isnan(codes)
        in_range = ~null & (codes < model.cardinality)

        onehot = np.zeros((len(codes), model.cardinality), dtype=float)
        rows = np.nonzero(in_range)[0]
        onehot[rows, codes[in_range].astype(np.int64)] = 1.0

        out_of_range = int((~null & ~in_range).sum())
        if out_of_range:
            logger.info(
                "%s: %d code(s) >= cardinality %d encoded as all-zero vectors",
                self.name, out_of_range, model.cardinality,
            )

        out = df.copy()
        out[self.output_col] = to_vector_series(onehot, out.index, valid=~null)
        return out


# ------------------ Feature assembly ------------------
@dataclass(frozen=True)
class AssemblerModel:
    input_cols: Tuple[str, ...]
    widths: Tuple[int, ...]
    vector_cols: frozenset = field(default_factory=frozenset)

    @property
    def size(self) -> int:
        return int(sum(self.widths))


@dataclass(frozen=True)
class FeatureAssembler(Stage):
    """
    Concatenates scalar and vector columns, in the configured order, into one vector per row.
    `handle_invalid`:
      - "skip"  : drop rows where any input is null/NaN
      - "keep"  : emit NaN in the affected positions
      - "error" : raise ValueError
    """

    columns: Tuple[str, ...]
    output_col: str = FEATURES_COL
    handle_invalid: str = SKIP
    name: str = "assemble"

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))
        if not self.columns:
            raise SchemaError(f"{self.name}: no input columns configured")
        if len(set(self.columns)) != len(self.columns):
            raise SchemaError(f"{self.name}: duplicated input columns {list(self.columns)}")
        _check_policy(self.name, self.handle_invalid, INVALID_POLICIES)

    @property
    def input_cols(self) -> Tuple[str, ...]:
        return self.columns

    def fit(self, df: pd.DataFrame) -> AssemblerModel:
        require_columns(df, self.columns, where=self.name)
        widths: List[int] = []
        vector_cols = set()
        for c in self.columns:
            s = df[c]
            if is_vector_column(s):
                ws = vector_widths(s)
                if len(ws) != 1:
                    raise SchemaError(f"{self.name}: column '{c}' holds vectors of differing widths {sorted(ws)}")
                widths.append(ws.pop())
                vector_cols.add(c)
            elif pd.api.types.is_numeric_dtype(s) or pd.api.types.is_bool_dtype(s):
                widths.append(1)
            else:
                raise SchemaError(f"{self.name}: column '{c}' ({s.dtype}) is neither numeric nor a vector column")
        return AssemblerModel(self.columns, tuple(widths), frozenset(vector_cols))

    def _matrix(self, df: pd.DataFrame, model: AssemblerModel) -> np.ndarray:
        blocks = []
        for c, width in zip(model.input_cols, model.widths):
            s = df[c]
            if c in model.vector_cols:
                ws = vector_widths(s)
                if ws - {width}:
                    raise SchemaError(
                        f"{self.name}: column '{c}' has vector width(s) {sorted(ws)}, fitted width is {width}"
                    )
                blocks.append(stack_vectors(s, width))
            else:
                if not (pd.api.types.is_numeric_dtype(s) or pd.api.types.is_bool_dtype(s)):
                    raise SchemaError(f"{self.name}: column '{c}' ({s.dtype}) is not numeric")
                blocks.append(s.to_numpy(dtype=float, na_value=np.nan).reshape(-1, 1))
        return np.hstack(blocks) if len(df) else np.empty((0, model.size))

    def invalid_rows(self, df: pd.DataFrame, model: AssemblerModel) -> np.ndarray:
        """Boolean mask of rows with a null/NaN input."""
        require_columns(df, model.input_cols, where=self.name)
        return np.isnan(self._matrix(df, model)).any(axis=1)

    def transform(self, df: pd.DataFrame, model: AssemblerModel) -> pd.DataFrame:
        require_columns(df, model.input_cols, where=self.name)
        X = self._matrix(df, model)
        invalid = np.isnan(X).any(axis=1)

        keep = np.ones(len(df), dtype=bool)
        if invalid.any():
            n_bad = int(invalid.sum())
            if self.handle_invalid == ERROR:
                raise ValueError(f"{self.name}: {n_bad} row(s) with null or NaN inputs")
            if self.handle_invalid == SKIP:
                keep = ~invalid
                logger.info("%s: dropped %d of %d row(s) with null or NaN inputs", self.name, n_bad, len(df))

        out = df.loc[keep].copy()
        out[self.output_col] = to_vector_series(X[keep], out.index)
        return out


# ------------------ Range scaling ------------------
@dataclass(frozen=True, eq=False)
class ScalerModel:
    input_col: str
    output_col: str
    data_min: np.ndarray
    data_max: np.ndarray
    lower: float = 0.0
    upper: float = 1.0

    @property
    def size(self) -> int:
        return int(self.data_min.shape[0])


@dataclass(frozen=True)
class RangeScaler(Stage):
    """
    Per-dimension min/max rescaling onto [lower, upper].
    Values outside the fitted range are clipped; zero-variance dimensions map to `lower`.
    """

    input_col: str = FEATURES_COL
    output_col: str = SCALED_FEATURES_COL
    lower: float = 0.0
    upper: float = 1.0
    name: str = "scale"

    def __post_init__(self):
        if not self.lower < self.upper:
            raise ValueError(f"{self.name}: lower ({self.lower}) must be below upper ({self.upper})")

    @property
    def input_cols(self) -> Tuple[str, ...]:
        return (self.input_col,)

    def fit(self, df: pd.DataFrame) -> ScalerModel:
        require_columns(df, self.input_cols, where=self.name)
        s = df[self.input_col]
        ws = vector_widths(s)
        if not ws:
            raise EmptyDatasetError(f"{self.name}: no feature vectors in column '{self.input_col}' to fit on")
        if len(ws) != 1:
            raise SchemaError(f"{self.name}: column '{self.input_col}' holds vectors of differing widths {sorted(ws)}")

        X = stack_vectors(s, ws.pop())
        X = X[~np.isnan(X).any(axis=1)]
        if X.shape[0] == 0:
            raise EmptyDatasetError(f"{self.name}: every vector in '{self.input_col}' contains NaN")

        return ScalerModel(
            self.input_col, self.output_col,
            data_min=X.min(axis=0), data_max=X.max(axis=0),
            lower=float(self.lower), upper=float(self.upper),
        )

    def transform(self, df: pd.DataFrame, model: ScalerModel) -> pd.DataFrame:
        require_columns(df, self.input_cols, where=self.name)
        s = df[self.input_col]
        ws = vector_widths(s)
        if ws - {model.size}:
            raise SchemaError(
                f"{self.name}: column '{self.input_col}' has vector width(s) {sorted(ws)}, fitted width is {model.size}"
            )

        X = stack_vectors(s, model.size)
        valid = ~null_vector_mask(s)
        scaled = min_max_scale(X, model.data_min, model.data_max, model.lower, model.upper)

        out = df.copy()
        out[self.output_col] = to_vector_series(scaled, out.index, valid=valid)
        return out


# ------------------ Pipeline ------------------
def _validate_stages(stages: Sequence[Stage]) -> Tuple[str, ...]:
    """
    Check the column wiring of an ordered stage list; return the source columns
    the input DataFrame must provide.
    """
    if not stages:
        raise SchemaError("feature pipeline: no stages configured")

    names = [s.name for s in stages]
    dup_names = sorted({n for n in names if names.count(n) > 1})
    if dup_names:
        raise SchemaError(f"feature pipeline: duplicated stage names {dup_names}")

    producer = {}
    for pos, stage in enumerate(stages):
        if stage.output_col in producer:
            raise SchemaError(
                f"feature pipeline: column '{stage.output_col}' is produced by both "
                f"'{stages[producer[stage.output_col]].name}' and '{stage.name}'"
            )
        producer[stage.output_col] = pos

    sources: List[str] = []
    for pos, stage in enumerate(stages):
        for col in stage.input_cols:
            if col in producer:
                if producer[col] >= pos:
                    raise SchemaError(
                        f"feature pipeline: stage '{stage.name}' reads '{col}' before "
                        f"stage '{stages[producer[col]].name}' produces it"
                    )
            elif col not in sources:
                sources.append(col)
    return tuple(sources)


def _run_stage(stage: Stage, op: str, *args):
    try:
        return getattr(stage, op)(*args)
    except ValueError as e:
        if type(e) not in (SchemaError, EmptyDatasetError, ValueError):
            raise
        raise type(e)(f"[{op} {stage.name}] {e}") from e


@dataclass(frozen=True)
class StageReport:
    stage: str
    rows_in: int
    rows_out: int

    @property
    def dropped(self) -> int:
        return self.rows_in - self.rows_out


@dataclass(frozen=True)
class FittedPipelineModel:
    stages: Tuple[Stage, ...]
    models: tuple

    def transform_with_report(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, List[StageReport]]:
        """Replay every stage's transform with its fitted model; never refits."""
        report = []
        current = df
        for stage, model in zip(self.stages, self.models):
            rows_in = len(current)
            current = _run_stage(stage, "transform", current, model)
            report.append(StageReport(stage.name, rows_in, len(current)))
        return current, report

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        out, report = self.transform_with_report(df)
        dropped = sum(r.dropped for r in report)
        if dropped:
            logger.info("feature pipeline dropped %d of %d row(s)", dropped, len(df))
        return out

    def model_for(self, stage_name: str):
        for stage, model in zip(self.stages, self.models):
            if stage.name == stage_name:
                return model
        raise KeyError(f"No stage named '{stage_name}'")

    @property
    def onehot_cardinalities(self) -> Dict[str, int]:
        return {m.input_col: m.cardinality for m in self.models if isinstance(m, OneHotModel)}

    @property
    def feature_size(self) -> Optional[int]:
        """Dimension of the assembled feature vector (None if the pipeline has no assembler)."""
        sizes = [m.size for m in self.models if isinstance(m, AssemblerModel)]
        return sizes[-1] if sizes else None


class FeaturePipeline:
    """Ordered list of stages; wiring is validated here, once."""

    def __init__(self, stages: Sequence[Stage]):
        self.stages: Tuple[Stage, ...] = tuple(stages)
        self.source_columns = _validate_stages(self.stages)

    def fit(self, df: pd.DataFrame) -> FittedPipelineModel:
        require_columns(df, self.source_columns, where="feature pipeline input")
        models = []
        current = df
        for stage in self.stages:
            model = _run_stage(stage, "fit", current)
            current = _run_stage(stage, "transform", current, model)
            models.append(model)
        logger.info("Fitted %d feature stage(s) on %d row(s)", len(models), len(df))
        return FittedPipelineModel(self.stages, tuple(models))


def build_stages(
    index_cols: Sequence[str] = INDEX_COLS,
    raw_categorical_cols: Sequence[str] = RAW_CATEGORICAL_COLS,
    numeric_cols: Sequence[str] = NUMERIC_COLS,
    scaler_min: float = 0.0,
    scaler_max: float = 1.0,
) -> List[Stage]:
    """
    Default stage list: index string columns -> one-hot every categorical ->
    assemble vectors + numeric columns -> min/max scale.
    """
    index_cols, raw_categorical_cols = list(index_cols), list(raw_categorical_cols)
    indexers = [CategoricalIndexer(c, indexed_col(c)) for c in index_cols]
    onehot_inputs = onehot_input_cols(index_cols, raw_categorical_cols)
    expanders = [OneHotExpander(c, vector_col(c)) for c in onehot_inputs]
    assembler = FeatureAssembler(tuple(feature_cols(index_cols, raw_categorical_cols, numeric_cols)))
    scaler = RangeScaler(FEATURES_COL, SCALED_FEATURES_COL, lower=scaler_min, upper=scaler_max)
    return [*indexers, *expanders, assembler, scaler]
