from .exceptions import (
    AssayNotFoundError,
    DimensionError,
    EvaluationError,
    ExpressionSyntaxError,
    FilterConditionError,
    FilterValueTypeError,
    ScpFilterError,
    ScpTypeError,
    ScpValueError,
    ValidationError,
)
from .expression import FeatureExpression, parse_expression
from .filtering import (
    FeatureFilter,
    as_feature_filter,
    compute_feature_masks,
    filter_features,
    reconcile_mask,
)
from .filters import (
    CharacterVariableFilter,
    NumericVariableFilter,
    VariableFilter,
    normalize_condition,
)
from .structures import AggregationLink, Assay, MaskCode, ProvenanceLog, ScpContainer, ScpMatrix

__all__ = [
    # Structures
    "ScpContainer",
    "Assay",
    "ScpMatrix",
    "AggregationLink",
    "ProvenanceLog",
    "MaskCode",
    # Filters
    "VariableFilter",
    "CharacterVariableFilter",
    "NumericVariableFilter",
    "normalize_condition",
    "FeatureExpression",
    "parse_expression",
    "FeatureFilter",
    "as_feature_filter",
    "reconcile_mask",
    "compute_feature_masks",
    "filter_features",
    # Exceptions
    "ScpFilterError",
    "ScpValueError",
    "ScpTypeError",
    "FilterValueTypeError",
    "FilterConditionError",
    "ExpressionSyntaxError",
    "EvaluationError",
    "AssayNotFoundError",
    "DimensionError",
    "ValidationError",
]
