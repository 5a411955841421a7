"""Exception hierarchy for scpfilter.

Errors fall in two groups. Errors in the shape of a filter (a value of
unsupported type, an unknown condition, an unparsable expression) abort the
whole call. Errors that belong to one assay's data are never raised here:
the filtering functions turn them into an empty selection for that assay.
"""

from __future__ import annotations

from typing import Any


class ScpFilterError(Exception):
    """Base class for exceptions in scpfilter."""

    pass


class ScpValueError(ScpFilterError, ValueError):
    """Raised when an argument has an invalid value.

    Parameters
    ----------
    message : str
        Human-readable description.
    parameter : str, optional
        Name of the offending parameter.
    value : Any, optional
        The offending value.
    """

    def __init__(self, message: str, parameter: str | None = None, value: Any = None):
        super().__init__(message)
        self.parameter = parameter
        self.value = value


class ScpTypeError(ScpFilterError, TypeError):
    """Raised when an argument has an unsupported type."""

    pass


class FilterValueTypeError(ScpTypeError):
    """Raised when a variable filter value is neither numeric nor textual."""

    def __init__(self, value: Any):
        super().__init__(
            f"Undefined value type: {type(value).__name__} ({value!r}). "
            f"Filter values must be all numeric or all character."
        )
        self.value = value


class FilterConditionError(ScpValueError):
    """Raised when a variable filter uses a condition its variant does not support."""

    def __init__(self, condition: str, filter_class: str, supported: list[str]):
        supported_str = ", ".join(f"'{c}'" for c in supported)
        super().__init__(
            f"Condition '{condition}' is not supported by {filter_class}. "
            f"Supported conditions: {supported_str}.",
            parameter="condition",
            value=condition,
        )
        self.supported = supported


class ExpressionSyntaxError(ScpValueError):
    """Raised when a filter expression cannot be translated."""

    def __init__(self, message: str, expression: str | None = None):
        super().__init__(message, parameter="expression", value=expression)
        self.expression = expression


class AssayNotFoundError(ScpFilterError, KeyError):
    """Raised when an assay name is not registered in the container."""

    def __init__(self, assay_name: str, available_assays: list[str] | None = None):
        message = f"Assay '{assay_name}' not found."
        if available_assays is not None:
            message += f" Available assays: {available_assays}."
        super().__init__(message)
        self.assay_name = assay_name
        self.available_assays = available_assays

    def __str__(self) -> str:
        # KeyError quotes its argument otherwise
        return str(self.args[0])


class DimensionError(ScpFilterError, ValueError):
    """Raised when array dimensions do not match."""

    def __init__(
        self,
        message: str,
        expected_shape: tuple[int, ...] | None = None,
        actual_shape: tuple[int, ...] | None = None,
    ):
        super().__init__(message)
        self.expected_shape = expected_shape
        self.actual_shape = actual_shape


class ValidationError(ScpFilterError, ValueError):
    """Raised when a data structure fails validation."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class EvaluationError(ScpFilterError):
    """Raised when a filter cannot be evaluated on one assay's feature metadata.

    Filtering functions catch it and select no feature of that assay.
    """

    pass
