"""Filter features of a multi-assay container on their metadata.

A filter is given once and applied to every assay of a ScpContainer. It is
either a variable filter (see :func:`scpfilter.core.filters.VariableFilter`)
or a predicate expression (see :class:`scpfilter.core.expression.FeatureExpression`,
also accepted as a plain string or polars expression).

For each assay the filter produces a tri-state mask over the features. Null
entries come from missing metadata values and are resolved by a single
policy, ``na_rm``: kept when False (default), dropped when True. A filter
that cannot be evaluated on an assay (missing column, incompatible types)
selects no feature of that assay; the other assays are filtered normally.
For predicate expressions this holds for any error raised during evaluation,
including errors from Python functions called by a polars expression.

Examples
--------
>>> filter_features(container, VariableFilter("location", "Mitochondrion"))
>>> filter_features(container, "location == 'Mitochondrion'", na_rm=True)
>>> filter_features(container, VariableFilter("pval", 0.03, "<="))
>>> filter_features(container, pl.col("location").str.starts_with("Mito"))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np
import polars as pl

from scpfilter.core.exceptions import EvaluationError, ScpTypeError
from scpfilter.core.expression import FeatureExpression
from scpfilter.core.filters import CharacterVariableFilter, NumericVariableFilter

if TYPE_CHECKING:
    from scpfilter.core.structures import ScpContainer
    from scpfilter.core.types import FeatureMask, RawMask

logger = logging.getLogger(__name__)

type FeatureFilter = CharacterVariableFilter | NumericVariableFilter | FeatureExpression

_VARIABLE_FILTERS = (CharacterVariableFilter, NumericVariableFilter)

# Errors that belong to one assay's metadata rather than to the filter
_EVALUATION_ERRORS = (pl.exceptions.PolarsError, EvaluationError)

# Expressions may run user code (UDFs); PanicException is not an Exception subclass
_EXPRESSION_ERRORS = (Exception, pl.exceptions.PanicException)


def as_feature_filter(filter: Any) -> FeatureFilter:
    """Normalize a filter argument.

    Variable filters and FeatureExpression objects are returned as is;
    strings and polars expressions are wrapped in a FeatureExpression.

    Raises
    ------
    ScpTypeError
        If ``filter`` is of any other type.
    ExpressionSyntaxError
        If a string expression cannot be translated.
    """
    if isinstance(filter, (*_VARIABLE_FILTERS, FeatureExpression)):
        return filter
    if isinstance(filter, (str, pl.Expr)):
        return FeatureExpression(filter)
    raise ScpTypeError(
        f"filter must be a VariableFilter, a FeatureExpression, a string or a polars "
        f"expression, got {type(filter).__name__}"
    )


def reconcile_mask(raw_mask: RawMask | list | np.ndarray, na_rm: bool = False) -> FeatureMask:
    """Resolve undefined entries of a feature mask.

    Parameters
    ----------
    raw_mask : pl.Series | list | np.ndarray
        Tri-state mask: True, False or null/None.
    na_rm : bool, default False
        If True, undefined entries are dropped (False); otherwise they are
        kept (True). Defined entries are never changed.

    Returns
    -------
    np.ndarray
        Boolean array without undefined entries.

    Examples
    --------
    >>> reconcile_mask(pl.Series([True, False, None]))
    array([ True, False,  True])
    >>> reconcile_mask([True, False, None], na_rm=True)
    array([ True, False, False])
    """
    series = raw_mask if isinstance(raw_mask, pl.Series) else pl.Series(list(raw_mask), dtype=pl.Boolean)
    return series.cast(pl.Boolean).fill_null(not na_rm).to_numpy().astype(bool, copy=False)


def _evaluate_assay(feature_filter: FeatureFilter, assay_name: str, var: pl.DataFrame) -> RawMask:
    """Raw mask of one assay; no feature selected if the filter fails there."""
    if isinstance(feature_filter, _VARIABLE_FILTERS) and feature_filter.field not in var.columns:
        logger.debug(
            "Feature variable '%s' not found in assay '%s'; no feature selected.",
            feature_filter.field,
            assay_name,
        )
    if isinstance(feature_filter, FeatureExpression):
        contained = _EXPRESSION_ERRORS
    else:
        contained = _EVALUATION_ERRORS
    try:
        return feature_filter.evaluate(var)
    except contained as e:
        logger.debug(
            "Filter %r could not be evaluated on assay '%s' (%s: %s); no feature selected.",
            feature_filter.describe(),
            assay_name,
            type(e).__name__,
            e,
        )
        return pl.Series(assay_name, np.zeros(var.height, dtype=bool))


def compute_feature_masks(
    container: ScpContainer,
    filter: FeatureFilter | str | pl.Expr,
    na_rm: bool = False,
) -> dict[str, FeatureMask]:
    """Compute the final feature mask of every assay without subsetting.

    Parameters
    ----------
    container : ScpContainer
        Container whose assays are evaluated.
    filter : VariableFilter | FeatureExpression | str | pl.Expr
        Filter to evaluate.
    na_rm : bool, default False
        Whether features with an undefined outcome are removed.

    Returns
    -------
    dict[str, np.ndarray]
        Boolean mask per assay name, in assay order, each aligned with the
        features of its assay.

    Raises
    ------
    FilterConditionError
        If a variable filter uses a condition its variant does not support.
    ScpValueError
        If an ordering condition is given several values.
    """
    feature_filter = as_feature_filter(filter)
    is_variable = isinstance(feature_filter, _VARIABLE_FILTERS)
    if is_variable:
        # configuration errors abort before any assay is evaluated
        feature_filter.validate()

    masks = {}
    for name, assay in container.assays.items():
        raw_mask = _evaluate_assay(feature_filter, name, assay.var)
        masks[name] = reconcile_mask(raw_mask, na_rm=na_rm)

    if is_variable and feature_filter.not_:
        masks = {name: ~mask for name, mask in masks.items()}

    return masks


def filter_features(
    container: ScpContainer,
    filter: FeatureFilter | str | pl.Expr,
    na_rm: bool = False,
) -> ScpContainer:
    """
    Filter features of all assays based on their feature metadata (var).

    Parameters
    ----------
    container : ScpContainer
        Input container. Not modified.
    filter : VariableFilter | FeatureExpression | str | pl.Expr
        A variable filter created with VariableFilter(), or a predicate
        expression over var columns, as a FeatureExpression, a string such
        as ``"pval <= 0.03"`` or a polars expression.
    na_rm : bool, default False
        Whether features for which the filter is undefined because of missing
        metadata values are removed. By default they are kept.

    Returns
    -------
    ScpContainer
        New container with the matching features of every assay. Assays
        without any match are kept with zero features. The operation is
        recorded in the history.

    Raises
    ------
    ScpTypeError
        If ``filter`` is not a supported filter type.
    FilterConditionError
        If a variable filter uses an unsupported condition.
    ExpressionSyntaxError
        If a string expression cannot be translated.

    Examples
    --------
    >>> filtered = filter_features(container, VariableFilter("location", "Mito", "starts_with"))
    >>> filtered = filter_features(container, "not_na(location) and location != 'unknown'")
    >>> filtered = filter_features(container, VariableFilter("foo", "bar"))  # every assay emptied
    """
    feature_filter = as_feature_filter(filter)
    masks = compute_feature_masks(container, feature_filter, na_rm=na_rm)

    new_container = container.subset_features(masks)

    n_kept = {name: int(mask.sum()) for name, mask in masks.items()}
    n_total = {name: int(mask.shape[0]) for name, mask in masks.items()}
    summary = ", ".join(f"{name}: {n_kept[name]}/{n_total[name]}" for name in masks)
    logger.info("filter_features(%s): kept %s features", feature_filter.describe(), summary)

    new_container.log_operation(
        action="filter_features",
        params={
            "filter": feature_filter.describe(),
            "filter_type": type(feature_filter).__name__,
            "na_rm": na_rm,
            "n_features_kept": n_kept,
        },
        description=f"Filtered features on {feature_filter.describe()}; kept {summary}.",
    )

    return new_container


__all__ = [
    "FeatureFilter",
    "as_feature_filter",
    "reconcile_mask",
    "compute_feature_masks",
    "filter_features",
]
