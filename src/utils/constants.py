# utils/constants.py

SEED = 42

# Join key shared by the sales and store tables
JOIN_COL = "Store"

# Column naming used by the feature stages
INDEXED_SUFFIX = "_indexed"
VECTOR_SUFFIX = "_vector"
FEATURES_COL = "features"
SCALED_FEATURES_COL = "scaled_features"
PREDICTION_COL = "prediction"

# Values treated as missing when reading the raw CSVs
NA_VALUES = ["", "NA", "N/A", "na", "n/a", "NULL", "null", "NaN", "nan"]

# Categorical ordering policies accepted by the indexer
ORDER_FREQUENCY_DESC = "frequency_desc"
ORDER_FREQUENCY_ASC = "frequency_asc"
ORDER_ALPHABET_ASC = "alphabet_asc"
ORDER_ALPHABET_DESC = "alphabet_desc"
ORDER_TYPES = [ORDER_FREQUENCY_DESC, ORDER_FREQUENCY_ASC, ORDER_ALPHABET_ASC, ORDER_ALPHABET_DESC]

# Invalid-row policies
KEEP = "keep"
SKIP = "skip"
ERROR = "error"
INVALID_POLICIES = [KEEP, SKIP, ERROR]

METRICS = ["rmse", "mse", "mae", "r2", "mape"]
