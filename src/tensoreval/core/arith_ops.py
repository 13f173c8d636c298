"""Scalar arithmetic evaluated inside generate/pad regions."""

from __future__ import annotations

from typing import Any, Callable, List, Sequence

import numpy as np

from .exceptions import ContractError
from .ir import ElementType, Operation, TensorType
from .state import EvaluationContext
from .tensor import TensorValue, make_tensor

Handler = Callable[[EvaluationContext, Operation, Sequence[Any]], List[Any]]


def _scalar_result_type(op: Operation) -> ElementType:
    ty = op.result_type
    if not isinstance(ty, ElementType):
        raise ContractError(f"{op.name} must produce a scalar, got {ty}")
    return ty


def _wrap_int(value: int, bits: int) -> int:
    mask = (1 << bits) - 1
    value &= mask
    if bits > 1 and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def constant(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    ty = op.result_type
    value = op.attr("value")
    if isinstance(ty, TensorType):
        if isinstance(value, list):
            array = np.asarray(value, dtype=ty.element_type.dtype).reshape(ty.shape)
            return [TensorValue.from_array(array, ty.element_type)]
        splat = make_tensor(ty.element_type, ty.shape)
        splat.fill(lambda _: value)
        return [splat]
    if ty.is_integer:
        return [ty.coerce(_wrap_int(int(value), ty.bitwidth))]
    return [ty.coerce(value)]


def _integer_op(fn: Callable[[int, int], int]) -> Handler:
    def handler(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
        lhs, rhs = operands
        ty = _scalar_result_type(op)
        return [ty.coerce(_wrap_int(fn(int(lhs), int(rhs)), ty.bitwidth))]

    return handler


def _float_op(fn: Callable[[Any, Any], Any]) -> Handler:
    def handler(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
        lhs, rhs = operands
        ty = _scalar_result_type(op)
        scalar = ty.dtype.type
        with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
            return [ty.coerce(fn(scalar(lhs), scalar(rhs)))]

    return handler


def _truncating_div(lhs: int, rhs: int) -> int:
    quotient = abs(lhs) // abs(rhs)
    return -quotient if (lhs < 0) != (rhs < 0) else quotient


def _signed_division(remainder: bool) -> Handler:
    def handler(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
        lhs, rhs = (int(v) for v in operands)
        ty = _scalar_result_type(op)
        if rhs == 0:
            ctx.add_failure("integer division by zero")
            return [ty.coerce(0)]
        quotient = _truncating_div(lhs, rhs)
        value = lhs - quotient * rhs if remainder else quotient
        return [ty.coerce(_wrap_int(value, ty.bitwidth))]

    return handler


addi = _integer_op(lambda a, b: a + b)
subi = _integer_op(lambda a, b: a - b)
muli = _integer_op(lambda a, b: a * b)
divsi = _signed_division(remainder=False)
remsi = _signed_division(remainder=True)
addf = _float_op(lambda a, b: a + b)
subf = _float_op(lambda a, b: a - b)
mulf = _float_op(lambda a, b: a * b)
divf = _float_op(lambda a, b: a / b)


def index_cast(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    (value,) = operands
    ty = _scalar_result_type(op)
    return [ty.coerce(_wrap_int(int(value), ty.bitwidth))]


def sitofp(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    (value,) = operands
    ty = _scalar_result_type(op)
    if not ty.is_float:
        raise ContractError(f"{op.name} must produce a float, got {ty}")
    return [ty.coerce(int(value))]
