"""
Tests for predicate expressions.

This module tests translation of Python-syntax strings into polars
expressions and the evaluation of FeatureExpression on a var table.
"""

import polars as pl
import pytest

from scpfilter.core import (
    EvaluationError,
    ExpressionSyntaxError,
    FeatureExpression,
    ScpTypeError,
    parse_expression,
)


@pytest.fixture
def var() -> pl.DataFrame:
    return pl.DataFrame({
        "_index": ["A", "B", "C", "D"],
        "location": ["Mitochondrion", "Cytoplasm", None, "Mito-like"],
        "pval": [0.01, 0.5, None, float("nan")],
        "n": [1, 2, 3, 4],
    })


def evaluate(source, var) -> list:
    return FeatureExpression(source).evaluate(var).to_list()


class TestParseExpression:
    """Test parse_expression()."""

    def test_returns_polars_expression(self):
        assert isinstance(parse_expression("pval <= 0.03"), pl.Expr)

    def test_surrounding_whitespace(self):
        assert isinstance(parse_expression("  pval <= 0.03\n"), pl.Expr)

    @pytest.mark.parametrize(
        "source",
        [
            "location ==",
            "location = 'a'",
            "",
            "pval <= ",
        ],
    )
    def test_invalid_python(self, source):
        with pytest.raises(ExpressionSyntaxError, match="Invalid expression"):
            parse_expression(source)

    @pytest.mark.parametrize(
        ("source", "message"),
        [
            ("location[0] == 'a'", "Unsupported syntax 'Subscript'"),
            ("(lambda x: x)(location)", "Unsupported function call"),
            ("lambda x: x", "Unsupported syntax 'Lambda'"),
            ("unknown_func(location)", "Unknown function 'unknown_func'"),
            ("location is 'a'", "'is' only supports comparison with None"),
            ("location in other", "'in' expects a list"),
            ("location in [other]", "Membership values must be literals"),
            ("starts_with(location, prefix='a')", "Keyword arguments"),
            ("starts_with(location, other)", "expects a string literal"),
            ("is_na(location, pval)", "takes exactly one argument"),
            ("location.upper() == 'A'", "Unsupported method 'upper'"),
            ("n @ n", "Unsupported operator"),
            ("b'x' == location", "Unsupported constant"),
        ],
    )
    def test_unsupported_syntax(self, source, message):
        with pytest.raises(ExpressionSyntaxError, match=message):
            parse_expression(source)

    def test_error_carries_expression(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("location[0]")
        assert exc_info.value.expression == "location[0]"
        assert exc_info.value.parameter == "expression"


class TestFeatureExpressionEvaluation:
    """Test evaluation semantics of string expressions."""

    def test_equality(self, var):
        assert evaluate("location == 'Mitochondrion'", var) == [True, False, None, False]

    def test_membership_with_none(self, var):
        assert evaluate("location in ['Mitochondrion', None]", var) == [True, False, True, False]

    def test_membership_is_never_null(self, var):
        assert evaluate("location not in ['Mitochondrion']", var) == [False, True, True, True]

    def test_numeric_membership(self, var):
        assert evaluate("n in (1, 4)", var) == [True, False, False, True]
        assert evaluate("-n in [-2]", var) == [False, True, False, False]

    def test_na_functions(self, var):
        assert evaluate("is_na(location)", var) == [False, False, True, False]
        assert evaluate("not_na(location)", var) == [True, True, False, True]
        assert evaluate("location is None", var) == [False, False, True, False]
        assert evaluate("location is not None", var) == [True, True, False, True]

    def test_nan_is_missing(self, var):
        assert evaluate("pval is None", var) == [False, False, True, True]
        assert evaluate("pval < 0.1", var) == [True, False, None, None]

    def test_kleene_logic(self, var):
        """Test that null and False is False, null and True is null."""
        assert evaluate("pval <= 0.03 and not_na(location)", var) == [True, False, False, None]
        assert evaluate("pval <= 0.03 or n == 4", var) == [True, False, None, True]

    def test_substring_membership(self, var):
        assert evaluate("'Mito' in location", var) == [True, False, False, True]
        assert evaluate("'Mito' not in location", var) == [False, True, True, False]

    def test_string_functions(self, var):
        assert evaluate("starts_with(location, 'Mito')", var) == [True, False, None, True]
        assert evaluate("ends_with(location, 'like')", var) == [False, False, None, True]
        assert evaluate("contains(location, 'to')", var) == [True, True, None, True]
        assert evaluate("location.startswith('Cyto')", var) == [False, True, None, False]
        assert evaluate("location.endswith('ion')", var) == [True, False, None, False]

    def test_chained_comparison(self, var):
        assert evaluate("0 < n < 3", var) == [True, True, False, False]

    def test_arithmetic(self, var):
        assert evaluate("n * 2 >= 6", var) == [False, False, True, True]
        assert evaluate("-n < -2", var) == [False, False, True, True]
        assert evaluate("abs(n - 3) <= 1", var) == [False, True, True, True]
        assert evaluate("n % 2 == 0", var) == [False, True, False, True]

    def test_bitwise_operators(self, var):
        assert evaluate("(n == 1) | (n == 4)", var) == [True, False, False, True]
        assert evaluate("~(n == 1)", var) == [False, True, True, True]
        assert evaluate("(n > 1) & (n < 4)", var) == [False, True, True, False]

    def test_col_function(self, var):
        assert evaluate("col('n') == 1", var) == [True, False, False, False]

    def test_null_literal(self, var):
        assert evaluate("None", var) == [None, None, None, None]

    def test_non_boolean_result(self, var):
        with pytest.raises(EvaluationError, match="boolean"):
            FeatureExpression("n + 1").evaluate(var)

    def test_missing_column(self, var):
        with pytest.raises(pl.exceptions.ColumnNotFoundError):
            FeatureExpression("foo == 1").evaluate(var)

    def test_does_not_modify_var(self, var):
        before = var.clone()
        FeatureExpression("pval < 0.1").evaluate(var)
        assert var.equals(before)


class TestFeatureExpressionObject:
    """Test construction and description of FeatureExpression."""

    def test_from_string(self):
        f = FeatureExpression("pval <= 0.03")
        assert f.source == "pval <= 0.03"
        assert f.describe() == "pval <= 0.03"
        assert repr(f) == "FeatureExpression('pval <= 0.03')"

    def test_from_polars_expression(self, var):
        f = FeatureExpression(pl.col("n") > 2)
        assert f.source is None
        assert "n" in f.describe()
        assert f.evaluate(var).to_list() == [False, False, True, True]

    def test_invalid_type(self):
        with pytest.raises(ScpTypeError):
            FeatureExpression(42)

    def test_syntax_error_at_construction(self):
        with pytest.raises(ExpressionSyntaxError):
            FeatureExpression("location ==")
