"""scpfilter: Feature filtering for multi-assay single-cell proteomics data.

Filters the features (rows of the feature metadata) of every assay of a
ScpContainer (ScpContainer -> Assay -> ScpMatrix) with one filter, given
either as a typed variable filter or as a predicate expression.

Key Features:
    - Variable filters on character or numeric feature variables
    - Predicate expressions in Python syntax or as polars expressions
    - One missing-value policy (na_rm) for both kinds of filters
    - Assays lacking a variable are emptied instead of failing the call
    - Filtering returns a new container and records provenance

Quick Start:
    >>> from scpfilter import VariableFilter, filter_features
    >>> filtered = filter_features(container, VariableFilter("location", "Mitochondrion"))
    >>> filtered = filter_features(container, "pval <= 0.03", na_rm=True)
    >>> filtered = container.filter_features("not_na(location)").filter_features(
    ...     VariableFilter("location", "Mito", "starts_with")
    ... )

Version: v0.1.0
"""

from __future__ import annotations

__version__ = "0.1.0"
__author__ = "scpfilter Team"

from scpfilter.core import (
    AggregationLink,
    Assay,
    AssayNotFoundError,
    CharacterVariableFilter,
    DimensionError,
    EvaluationError,
    ExpressionSyntaxError,
    FeatureExpression,
    FeatureFilter,
    FilterConditionError,
    FilterValueTypeError,
    MaskCode,
    NumericVariableFilter,
    ProvenanceLog,
    ScpContainer,
    ScpFilterError,
    ScpMatrix,
    ScpTypeError,
    ScpValueError,
    ValidationError,
    VariableFilter,
    as_feature_filter,
    compute_feature_masks,
    filter_features,
    normalize_condition,
    parse_expression,
    reconcile_mask,
)

__all__ = [
    "__version__",
    # Core structures
    "ScpContainer",
    "Assay",
    "ScpMatrix",
    "AggregationLink",
    "ProvenanceLog",
    "MaskCode",
    # Filtering
    "filter_features",
    "compute_feature_masks",
    "reconcile_mask",
    "as_feature_filter",
    "VariableFilter",
    "CharacterVariableFilter",
    "NumericVariableFilter",
    "normalize_condition",
    "FeatureExpression",
    "FeatureFilter",
    "parse_expression",
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
