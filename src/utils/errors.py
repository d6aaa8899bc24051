# utils/errors.py
"""
Errors shared by the loader, the feature stages and the modeling workflow.
"""


class SchemaError(ValueError):
    """Raised when a configured column is absent from the input schema or has an unusable shape/type."""


class EmptyDatasetError(ValueError):
    """Raised when a step needs at least one row (fit reductions, training, metrics) and got none."""
