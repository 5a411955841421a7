"""Variable filters on feature metadata.

A variable filter names one column of an assay's ``var`` table, one or more
values and a comparison condition. Two variants exist, chosen from the type
of the value when the filter is built with :func:`VariableFilter`:

- :class:`CharacterVariableFilter` for character values, supporting
  ``"=="``, ``"!="``, ``"starts_with"``, ``"ends_with"`` and ``"contains"``
- :class:`NumericVariableFilter` for numeric values, supporting
  ``"=="``, ``"!="``, ``">"``, ``"<"``, ``">="`` and ``"<="``

Conditions are checked when the filter is evaluated, not when it is built.

Examples
--------
>>> VariableFilter("location", "Mitochondrion")
CharacterVariableFilter(field='location', value='Mitochondrion', condition='==')
>>> VariableFilter("pval", 0.03, "<=")
NumericVariableFilter(field='pval', value=0.03, condition='<=')
>>> VariableFilter("location", "unknown", condition="!=", not_=True).describe()
"!(location != 'unknown')"
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import ClassVar

import numpy as np
import polars as pl

from scpfilter.core.exceptions import (
    FilterConditionError,
    FilterValueTypeError,
    ScpValueError,
)
from scpfilter.core.types import FilterScalar, FilterValue, RawMask

# Alternative spellings accepted for each canonical condition
_CONDITION_ALIASES: dict[str, str] = {
    "==": "==",
    "=": "==",
    "eq": "==",
    "equals": "==",
    "!=": "!=",
    "ne": "!=",
    "not_equals": "!=",
    "not-equals": "!=",
    ">": ">",
    "gt": ">",
    "greater_than": ">",
    "greater-than": ">",
    "<": "<",
    "lt": "<",
    "less_than": "<",
    "less-than": "<",
    ">=": ">=",
    "ge": ">=",
    "greater_or_equal": ">=",
    "greater-or-equal": ">=",
    "<=": "<=",
    "le": "<=",
    "less_or_equal": "<=",
    "less-or-equal": "<=",
    "starts_with": "starts_with",
    "starts-with": "starts_with",
    "startswith": "starts_with",
    "startsWith": "starts_with",
    "ends_with": "ends_with",
    "ends-with": "ends_with",
    "endswith": "ends_with",
    "endsWith": "ends_with",
    "contains": "contains",
}

_ORDERING_CONDITIONS = frozenset({">", "<", ">=", "<="})


def normalize_condition(condition: str) -> str:
    """Map a condition spelling to its canonical name.

    Unknown spellings are returned unchanged so that the variant reports
    them as unsupported.
    """
    return _CONDITION_ALIASES.get(str(condition), str(condition))


def _any_of(exprs: list[pl.Expr]) -> pl.Expr:
    # Kleene OR: null only when nothing is true and something is null
    return exprs[0] if len(exprs) == 1 else pl.any_horizontal(exprs)


def _all_of(exprs: list[pl.Expr]) -> pl.Expr:
    return exprs[0] if len(exprs) == 1 else pl.all_horizontal(exprs)


@dataclass(frozen=True)
class _VariableFilterBase:
    """Shared shape of the variable filter variants.

    Attributes
    ----------
    field : str
        Name of the var column the filter operates on.
    value : tuple
        Values to compare against, always stored as a tuple.
    condition : str
        Comparison condition, as given by the caller.
    not_ : bool
        Whether the final selection is negated.
    """

    SUPPORTED_CONDITIONS: ClassVar[frozenset[str]] = frozenset()

    field: str
    value: tuple
    condition: str = "=="
    not_: bool = False

    @property
    def canonical_condition(self) -> str:
        """Condition mapped to its canonical name, validated for this variant.

        Raises
        ------
        FilterConditionError
            If the condition is not supported by this variant.
        """
        condition = normalize_condition(self.condition)
        if condition not in self.SUPPORTED_CONDITIONS:
            raise FilterConditionError(
                self.condition,
                type(self).__name__,
                sorted(self.SUPPORTED_CONDITIONS),
            )
        return condition

    def validate(self) -> None:
        """Check the condition vocabulary and the number of values."""
        condition = self.canonical_condition
        if condition in _ORDERING_CONDITIONS and len(self.value) != 1:
            raise ScpValueError(
                f"Condition '{self.condition}' compares against a single value, "
                f"got {len(self.value)} values.",
                parameter="value",
                value=self.value,
            )

    def _comparison(self, condition: str) -> Callable[[pl.Expr, FilterScalar], pl.Expr]:
        return {
            "==": lambda col, v: col == v,
            "!=": lambda col, v: col != v,
            ">": lambda col, v: col > v,
            "<": lambda col, v: col < v,
            ">=": lambda col, v: col >= v,
            "<=": lambda col, v: col <= v,
        }[condition]

    def to_expr(self) -> pl.Expr:
        """Build the polars expression for this filter, without negation.

        Several values combine with OR, except for ``"!="`` where a feature
        must differ from all of them.
        """
        self.validate()
        condition = self.canonical_condition
        column = pl.col(self.field)
        compare = self._comparison(condition)
        exprs = [compare(column, v) for v in self.value]
        if condition == "!=":
            return _all_of(exprs)
        return _any_of(exprs)

    def evaluate(self, var: pl.DataFrame) -> RawMask:
        """Evaluate the filter against one assay's feature metadata.

        Parameters
        ----------
        var : pl.DataFrame
            Feature metadata table of an assay.

        Returns
        -------
        pl.Series
            Boolean mask with one entry per feature. Null where the metadata
            value is missing. All False if ``field`` is not a column of ``var``.

        Raises
        ------
        FilterConditionError
            If the condition is not supported by this variant.
        polars.exceptions.PolarsError
            If the column cannot be compared with the filter value.
        """
        expr = self.to_expr()
        if self.field not in var.columns:
            return pl.Series(self.field, np.zeros(var.height, dtype=bool))
        return var.select(expr.alias(self.field)).to_series()

    def describe(self) -> str:
        """Readable one-line form, used in provenance records."""
        shown = self.value[0] if len(self.value) == 1 else list(self.value)
        text = f"{self.field} {self.condition} {shown!r}"
        return f"!({text})" if self.not_ else text

    def __repr__(self) -> str:
        shown = self.value[0] if len(self.value) == 1 else list(self.value)
        negated = ", not_=True" if self.not_ else ""
        return (
            f"{type(self).__name__}(field={self.field!r}, value={shown!r}, "
            f"condition={self.condition!r}{negated})"
        )


@dataclass(frozen=True, repr=False)
class CharacterVariableFilter(_VariableFilterBase):
    """Variable filter on a character feature variable."""

    SUPPORTED_CONDITIONS: ClassVar[frozenset[str]] = frozenset(
        {"==", "!=", "starts_with", "ends_with", "contains"}
    )

    def _comparison(self, condition: str) -> Callable[[pl.Expr, FilterScalar], pl.Expr]:
        if condition == "starts_with":
            return lambda col, v: col.str.starts_with(v)
        if condition == "ends_with":
            return lambda col, v: col.str.ends_with(v)
        if condition == "contains":
            # punctuation such as '.', '(' or ')' is matched as is
            return lambda col, v: col.str.contains(v, literal=True)
        return super()._comparison(condition)


@dataclass(frozen=True, repr=False)
class NumericVariableFilter(_VariableFilterBase):
    """Variable filter on a numeric feature variable."""

    SUPPORTED_CONDITIONS: ClassVar[frozenset[str]] = frozenset(
        {"==", "!=", ">", "<", ">=", "<="}
    )

    def evaluate(self, var: pl.DataFrame) -> RawMask:
        if self.field in var.columns and var.schema[self.field].is_float():
            # NaN counts as missing, like null
            var = var.select(pl.col(self.field).fill_nan(None))
        return super().evaluate(var)


def _is_numeric_scalar(x: object) -> bool:
    return isinstance(x, (int, float, np.integer, np.floating)) and not isinstance(
        x, (bool, np.bool_)
    )


def _is_character_scalar(x: object) -> bool:
    return isinstance(x, (str, np.str_))


def _as_value_tuple(value: FilterValue) -> tuple:
    if isinstance(value, pl.Series):
        return tuple(value.to_list())
    if isinstance(value, np.ndarray):
        return tuple(value.tolist())
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


def VariableFilter(
    field: str,
    value: FilterValue,
    condition: str = "==",
    not_: bool = False,
) -> CharacterVariableFilter | NumericVariableFilter:
    """Create a variable filter, choosing the variant from the value type.

    Parameters
    ----------
    field : str
        Name of the feature variable (var column) to filter on.
    value : str | int | float | sequence
        Value(s) to compare against. All numeric values create a
        NumericVariableFilter, all character values a CharacterVariableFilter.
    condition : str, default "=="
        Comparison condition. For numeric filters one of ``"=="``, ``"!="``,
        ``">"``, ``"<"``, ``">="``, ``"<="``; for character filters one of
        ``"=="``, ``"!="``, ``"starts_with"``, ``"ends_with"``, ``"contains"``.
        Aliases such as ``"equals"`` or ``"startsWith"`` are accepted.
        Not validated here: an unsupported condition raises when the filter
        is applied.
    not_ : bool, default False
        Negate the selection.

    Returns
    -------
    CharacterVariableFilter | NumericVariableFilter

    Raises
    ------
    FilterValueTypeError
        If ``value`` is neither wholly numeric nor wholly character.

    Examples
    --------
    >>> VariableFilter("my_var", "value_to_keep")
    CharacterVariableFilter(field='my_var', value='value_to_keep', condition='==')
    >>> VariableFilter("my_num_var", 0.05, condition="<=")
    NumericVariableFilter(field='my_num_var', value=0.05, condition='<=')
    """
    values = _as_value_tuple(value)

    if values and all(_is_numeric_scalar(v) for v in values):
        # plain Python scalars keep the polars literals simple
        values = tuple(v.item() if isinstance(v, np.generic) else v for v in values)
        return NumericVariableFilter(
            field=str(field), value=values, condition=str(condition), not_=bool(not_)
        )
    if values and all(_is_character_scalar(v) for v in values):
        values = tuple(str(v) for v in values)
        return CharacterVariableFilter(
            field=str(field), value=values, condition=str(condition), not_=bool(not_)
        )
    raise FilterValueTypeError(value)


__all__ = [
    "VariableFilter",
    "CharacterVariableFilter",
    "NumericVariableFilter",
    "normalize_condition",
]
