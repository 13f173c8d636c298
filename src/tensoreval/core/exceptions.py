from __future__ import annotations

from typing import Any, List, Optional, Sequence


class TensorEvalError(Exception):
    """Base class for tensoreval-specific exceptions."""


class ParseError(TensorEvalError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        line: Optional[int] = None,
        column: Optional[int] = None,
        line_text: Optional[str] = None,
    ):
        detail = _format_location(line, column, line_text)
        super().__init__(f"{message}{detail}")
        self.line = line
        self.column = column
        self.line_text = line_text


class ShapeError(TensorEvalError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        line: Optional[int] = None,
        column: Optional[int] = None,
        line_text: Optional[str] = None,
    ):
        detail = _format_location(line, column, line_text)
        super().__init__(f"{message}{detail}")
        self.line = line
        self.column = column
        self.line_text = line_text


class ContractError(TensorEvalError, RuntimeError):
    """Raised when an evaluator's precondition does not hold.

    These describe an inconsistent operation description (rank mismatches,
    wrong dynamic operand counts, element access outside a view) rather than
    a runtime data condition, so they are not routed through the failure
    channel.
    """


class OwnershipError(ContractError):
    pass


class EvaluationError(TensorEvalError, RuntimeError):
    def __init__(self, message: str, *, failures: Optional[Sequence[Any]] = None):
        super().__init__(message)
        self.failures: List[Any] = list(failures or [])


def _format_location(
    line: Optional[int],
    column: Optional[int],
    line_text: Optional[str],
) -> str:
    if line is None and column is None:
        return ""
    location = []
    if line is not None:
        location.append(f"line {line}")
    if column is not None:
        location.append(f"col {column}")
    location_str = f" ({', '.join(location)})"
    if line_text is None or column is None or column < 1:
        return location_str
    caret = " " * (column - 1) + "^"
    return f"{location_str}\n  {line_text}\n  {caret}"
