"""Predicate expressions on feature metadata.

A :class:`FeatureExpression` is a free-form boolean expression over the
columns of an assay's ``var`` table. It is built either from a ready polars
expression or from a string in Python syntax, in which every bare name
refers to the var column of that name::

    FeatureExpression("location == 'Mitochondrion'")
    FeatureExpression("pval <= 0.03 and not is_na(location)")
    FeatureExpression("location in ['Mitochondrion', None]")
    FeatureExpression(pl.col("location").str.starts_with("Mito"))

Strings are parsed with :mod:`ast` and translated node by node into a polars
expression, which is then evaluated once per assay with
``var.with_columns``. Comparisons involving a missing value are null, as in
polars; membership tests (``in``/``not in``) and the ``is_na`` family are
never null. This includes the substring form: ``'sub' in x`` is False for a
missing ``x`` and never depends on ``na_rm``, while ``contains(x, 'sub')``
is null there, like the other string functions.

Supported syntax
----------------
- literals: str, int, float, True, False, None
- comparisons: ``== != < <= > >=`` (chained comparisons are combined with and)
- ``x is None`` / ``x is not None``
- boolean logic: ``and or not`` and ``& | ~``
- arithmetic: ``+ - * / // % **``
- membership: ``x in [...]``, ``x not in (...)``, and ``'sub' in x`` for substrings
- functions: ``is_na``, ``is_null``, ``not_na``, ``is_not_null``, ``starts_with``,
  ``ends_with``, ``contains``, ``abs``, ``log2``, ``log10``, ``col``
- methods: ``x.startswith('...')``, ``x.endswith('...')``
"""

from __future__ import annotations

import ast
import operator
from collections.abc import Callable
from functools import reduce
from typing import Any

import polars as pl
import polars.selectors as cs

from scpfilter.core.exceptions import EvaluationError, ExpressionSyntaxError, ScpTypeError
from scpfilter.core.types import RawMask

_MASK_COLUMN = "__scpfilter_mask__"

_BINARY_OPERATORS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.BitAnd: operator.and_,
    ast.BitOr: operator.or_,
}

_COMPARE_OPERATORS: dict[type[ast.cmpop], Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}


def _literal_string(node: ast.expr, func_name: str) -> str:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    raise ExpressionSyntaxError(f"{func_name}() expects a string literal pattern")


class _ExpressionTranslator(ast.NodeVisitor):
    """Translate a parsed Python expression into a polars expression."""

    def __init__(self, source: str):
        self.source = source

    def fail(self, message: str) -> ExpressionSyntaxError:
        return ExpressionSyntaxError(f"{message} in expression {self.source!r}", self.source)

    def generic_visit(self, node: ast.AST) -> pl.Expr:
        raise self.fail(f"Unsupported syntax '{type(node).__name__}'")

    def visit_Expression(self, node: ast.Expression) -> pl.Expr:
        return self.visit(node.body)

    def visit_Name(self, node: ast.Name) -> pl.Expr:
        return pl.col(node.id)

    def visit_Constant(self, node: ast.Constant) -> pl.Expr:
        if node.value is None or isinstance(node.value, (str, int, float, bool)):
            return pl.lit(node.value)
        raise self.fail(f"Unsupported constant {node.value!r}")

    def visit_BoolOp(self, node: ast.BoolOp) -> pl.Expr:
        combine = operator.and_ if isinstance(node.op, ast.And) else operator.or_
        return reduce(combine, [self.visit(v) for v in node.values])

    def visit_UnaryOp(self, node: ast.UnaryOp) -> pl.Expr:
        operand = self.visit(node.operand)
        if isinstance(node.op, (ast.Not, ast.Invert)):
            return ~operand
        if isinstance(node.op, ast.USub):
            return -operand
        return operand

    def visit_BinOp(self, node: ast.BinOp) -> pl.Expr:
        op = _BINARY_OPERATORS.get(type(node.op))
        if op is None:
            raise self.fail(f"Unsupported operator '{type(node.op).__name__}'")
        return op(self.visit(node.left), self.visit(node.right))

    def visit_Compare(self, node: ast.Compare) -> pl.Expr:
        parts = []
        left = node.left
        for op, right in zip(node.ops, node.comparators):
            parts.append(self._compare(left, op, right))
            left = right
        return reduce(operator.and_, parts)

    def _compare(self, left: ast.expr, op: ast.cmpop, right: ast.expr) -> pl.Expr:
        if isinstance(op, (ast.In, ast.NotIn)):
            expr = self._membership(left, right)
            return ~expr if isinstance(op, ast.NotIn) else expr
        if isinstance(op, (ast.Is, ast.IsNot)):
            if not (isinstance(right, ast.Constant) and right.value is None):
                raise self.fail("'is' only supports comparison with None")
            operand = self.visit(left)
            return operand.is_null() if isinstance(op, ast.Is) else operand.is_not_null()
        return _COMPARE_OPERATORS[type(op)](self.visit(left), self.visit(right))

    def _membership(self, left: ast.expr, right: ast.expr) -> pl.Expr:
        if isinstance(right, (ast.List, ast.Tuple, ast.Set)):
            values = [self._literal(elt) for elt in right.elts]
            return _is_in(self.visit(left), values)
        if isinstance(left, ast.Constant) and isinstance(left.value, str):
            # substring test, never null
            return self.visit(right).str.contains(left.value, literal=True).fill_null(False)
        raise self.fail("'in' expects a list, tuple or set literal")

    def _literal(self, node: ast.expr) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub):
            if isinstance(node.operand, ast.Constant) and isinstance(node.operand.value, (int, float)):
                return -node.operand.value
        raise self.fail("Membership values must be literals")

    def visit_Call(self, node: ast.Call) -> pl.Expr:
        if node.keywords:
            raise self.fail("Keyword arguments are not supported")

        if isinstance(node.func, ast.Attribute):
            return self._method_call(node)
        if not isinstance(node.func, ast.Name):
            raise self.fail("Unsupported function call")

        name = node.func.id
        if name == "col":
            if len(node.args) != 1:
                raise self.fail("col() takes exactly one argument")
            return pl.col(_literal_string(node.args[0], "col"))

        unary = {
            "is_na": lambda x: x.is_null(),
            "is_null": lambda x: x.is_null(),
            "not_na": lambda x: x.is_not_null(),
            "is_not_null": lambda x: x.is_not_null(),
            "abs": lambda x: x.abs(),
            "log2": lambda x: x.log(2),
            "log10": lambda x: x.log10(),
        }
        binary = {
            "starts_with": lambda x, s: x.str.starts_with(s),
            "ends_with": lambda x, s: x.str.ends_with(s),
            "contains": lambda x, s: x.str.contains(s, literal=True),
        }
        if name in unary:
            if len(node.args) != 1:
                raise self.fail(f"{name}() takes exactly one argument")
            return unary[name](self.visit(node.args[0]))
        if name in binary:
            if len(node.args) != 2:
                raise self.fail(f"{name}() takes exactly two arguments")
            return binary[name](self.visit(node.args[0]), _literal_string(node.args[1], name))
        raise self.fail(f"Unknown function '{name}'")

    def _method_call(self, node: ast.Call) -> pl.Expr:
        method = node.func.attr
        methods = {
            "startswith": lambda x, s: x.str.starts_with(s),
            "endswith": lambda x, s: x.str.ends_with(s),
        }
        if method not in methods or len(node.args) != 1:
            raise self.fail(f"Unsupported method '{method}'")
        return methods[method](self.visit(node.func.value), _literal_string(node.args[0], method))


def _is_in(operand: pl.Expr, values: list[Any]) -> pl.Expr:
    """Membership that is never null: a null operand is in values only if None is."""
    non_null = [v for v in values if v is not None]
    member = operand.is_in(non_null) if non_null else pl.lit(False)
    return pl.when(operand.is_null()).then(pl.lit(None in values)).otherwise(member)


def parse_expression(source: str) -> pl.Expr:
    """Translate a Python-syntax predicate string into a polars expression.

    Parameters
    ----------
    source : str
        Expression over var column names, e.g. ``"pval <= 0.03"``.

    Returns
    -------
    pl.Expr

    Raises
    ------
    ExpressionSyntaxError
        If the string is not a valid expression or uses unsupported syntax.
    """
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionSyntaxError(f"Invalid expression {source!r}: {e.msg}", source) from e
    return _ExpressionTranslator(source).visit(tree)


class FeatureExpression:
    """Boolean predicate evaluated against each assay's var table.

    Parameters
    ----------
    expr : str | pl.Expr
        Python-syntax expression string, or a polars expression.

    Raises
    ------
    ExpressionSyntaxError
        If a string expression cannot be translated.
    ScpTypeError
        If ``expr`` is neither a string nor a polars expression.

    Examples
    --------
    >>> f = FeatureExpression("location == 'Mitochondrion'")
    >>> f.describe()
    "location == 'Mitochondrion'"
    """

    def __init__(self, expr: str | pl.Expr):
        if isinstance(expr, pl.Expr):
            self.source: str | None = None
            self.expr = expr
        elif isinstance(expr, str):
            self.source = expr
            self.expr = parse_expression(expr)
        else:
            raise ScpTypeError(
                f"Filter expression must be a string or a polars expression, got {type(expr).__name__}"
            )

    def evaluate(self, var: pl.DataFrame) -> RawMask:
        """Evaluate the expression row-wise on one var table.

        Returns
        -------
        pl.Series
            Boolean mask with one entry per feature, null where undefined.

        Raises
        ------
        polars.exceptions.PolarsError
            If the expression references a missing column or cannot be computed.
        EvaluationError
            If the expression does not produce a boolean result.
        """
        # NaN counts as missing, like null
        var = var.with_columns(cs.float().fill_nan(None))
        result = var.with_columns(self.expr.alias(_MASK_COLUMN)).get_column(_MASK_COLUMN)
        if result.dtype == pl.Null:
            result = result.cast(pl.Boolean)
        if result.dtype != pl.Boolean:
            raise EvaluationError(
                f"Expression {self.describe()!r} must produce boolean result, got {result.dtype}"
            )
        return result

    def describe(self) -> str:
        """Readable one-line form, used in provenance records."""
        return self.source if self.source is not None else str(self.expr)

    def __repr__(self) -> str:
        return f"FeatureExpression({self.describe()!r})"


__all__ = ["FeatureExpression", "parse_expression"]
