"""Static handler table for every supported operation kind.

The supported operation set is closed: adding an operation means adding an
``OpKind`` member and its entry here.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Sequence

from . import arith_ops, tensor_ops
from .ir import OpKind, Operation
from .state import EvaluationContext

Handler = Callable[[EvaluationContext, Operation, Sequence[Any]], List[Any]]

HANDLERS: Dict[OpKind, Handler] = {
    OpKind.DIM: tensor_ops.dim,
    OpKind.EMPTY: tensor_ops.empty,
    OpKind.EXTRACT: tensor_ops.extract,
    OpKind.FROM_ELEMENTS: tensor_ops.from_elements,
    OpKind.COLLAPSE_SHAPE: tensor_ops.collapse_shape,
    OpKind.EXPAND_SHAPE: tensor_ops.expand_shape,
    OpKind.EXTRACT_SLICE: tensor_ops.extract_slice,
    OpKind.INSERT_SLICE: tensor_ops.insert_slice,
    OpKind.PARALLEL_INSERT_SLICE: tensor_ops.parallel_insert_slice,
    OpKind.GENERATE: tensor_ops.generate,
    OpKind.INSERT: tensor_ops.insert,
    OpKind.PAD: tensor_ops.pad,
    OpKind.CAST: tensor_ops.passthrough,
    OpKind.YIELD: tensor_ops.noop_terminator,
    OpKind.CONSTANT: arith_ops.constant,
    OpKind.ADDI: arith_ops.addi,
    OpKind.SUBI: arith_ops.subi,
    OpKind.MULI: arith_ops.muli,
    OpKind.DIVSI: arith_ops.divsi,
    OpKind.REMSI: arith_ops.remsi,
    OpKind.ADDF: arith_ops.addf,
    OpKind.SUBF: arith_ops.subf,
    OpKind.MULF: arith_ops.mulf,
    OpKind.DIVF: arith_ops.divf,
    OpKind.INDEX_CAST: arith_ops.index_cast,
    OpKind.SITOFP: arith_ops.sitofp,
    OpKind.RETURN: tensor_ops.noop_terminator,
}


def lookup_handler(kind: OpKind) -> Handler:
    try:
        return HANDLERS[kind]
    except KeyError:
        raise KeyError(f"No evaluator registered for '{kind.value}'") from None


def evaluate_op(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    handler = lookup_handler(op.kind)
    return list(handler(ctx, op, operands))
