"""Static consistency checks the evaluators rely on.

The evaluators treat these as preconditions; checking them once up front
turns a malformed operation into a ``ShapeError`` pointing at its line
instead of a contract violation halfway through a run.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .exceptions import ShapeError
from .ir import (
    ElementType,
    Function,
    OpKind,
    Operation,
    Region,
    TensorType,
    Type,
    is_dynamic_dim,
)
from .shapes import count_dynamic, rank_reduced_dims

_SLICE_KINDS = {OpKind.EXTRACT_SLICE, OpKind.INSERT_SLICE, OpKind.PARALLEL_INSERT_SLICE}

_BINARY_KINDS = {
    OpKind.ADDI,
    OpKind.SUBI,
    OpKind.MULI,
    OpKind.DIVSI,
    OpKind.REMSI,
    OpKind.ADDF,
    OpKind.SUBF,
    OpKind.MULF,
    OpKind.DIVF,
}


def verify_function(fn: Function) -> None:
    _verify_region(fn.body, OpKind.RETURN, len(fn.result_types), owner=None)


def _error(op: Optional[Operation], message: str) -> None:
    if op is None:
        raise ShapeError(message)
    raise ShapeError(
        f"{op.name}: {message}",
        line=op.line,
        column=op.column,
        line_text=op.source,
    )


def _verify_region(
    region: Region,
    terminator: OpKind,
    num_values: int,
    owner: Optional[Operation],
) -> None:
    last = region.terminator
    if last is None or last.kind != terminator:
        where = region.operations[-1] if region.operations else owner
        _error(where, f"region must end with '{terminator.value}'")
    if len(last.operands) != num_values:
        _error(last, f"expected {num_values} terminator operands, got {len(last.operands)}")
    for op in region.operations[:-1]:
        if op.kind.is_terminator:
            _error(op, "terminator must be the last operation of its region")
        _verify_op(op)


def _tensor(op: Operation, ty: Type, what: str) -> TensorType:
    if not isinstance(ty, TensorType):
        _error(op, f"{what} must be a tensor, got {ty}")
    return ty


def _expect_operands(op: Operation, expected: int) -> None:
    if len(op.operands) != expected:
        _error(op, f"expected {expected} operands, got {len(op.operands)}")


def _expect_results(op: Operation, expected: int) -> None:
    if len(op.results) != expected:
        _error(op, f"expected {expected} results, got {len(op.results)}")


def _verify_body(op: Operation, rank: int) -> None:
    if len(op.regions) != 1:
        _error(op, f"expected one region, got {len(op.regions)}")
    body = op.regions[0]
    if len(body.arguments) != rank:
        _error(op, f"region takes {len(body.arguments)} arguments, expected {rank} indices")
    for arg in body.arguments:
        if not (isinstance(arg.type, ElementType) and arg.type.is_index):
            _error(op, f"region argument %{arg.name} must be an index")
    _verify_region(body, OpKind.YIELD, 1, owner=op)


def _check_static_list(op: Operation, name: str, rank: int) -> List[int]:
    values = op.attr(name)
    if not isinstance(values, list) or len(values) != rank:
        _error(op, f"'{name}' must list {rank} values, got {values}")
    return values


def _verify_reassociation(op: Operation, groups: Sequence[Sequence[int]], rank: int) -> None:
    flat = [dim for group in groups for dim in group]
    if flat != list(range(rank)) or any(not group for group in groups):
        _error(op, f"reassociation {groups} must cover dimensions 0..{rank - 1} in order")


def _verify_op(op: Operation) -> None:
    kind = op.kind

    if kind == OpKind.DIM:
        _expect_operands(op, 2)
        _tensor(op, op.operand_types[0], "source")
    elif kind in (OpKind.EMPTY, OpKind.GENERATE):
        _expect_results(op, 1)
        result = _tensor(op, op.result_type, "result")
        if len(op.operands) != result.num_dynamic:
            _error(
                op,
                f"{result.num_dynamic} dynamic extents need as many operands, got {len(op.operands)}",
            )
        if kind == OpKind.GENERATE:
            _verify_body(op, result.rank)
    elif kind == OpKind.EXTRACT:
        source = _tensor(op, op.operand_types[0] if op.operand_types else None, "source")
        _expect_operands(op, 1 + source.rank)
    elif kind == OpKind.INSERT:
        if len(op.operand_types) < 2:
            _error(op, "expected a scalar and a destination tensor")
        dest = _tensor(op, op.operand_types[1], "destination")
        _expect_operands(op, 2 + dest.rank)
    elif kind == OpKind.FROM_ELEMENTS:
        result = _tensor(op, op.result_type, "result")
        if not result.is_static:
            _error(op, f"result shape must be static, got {result}")
        expected = 1
        for size in result.shape:
            expected *= size
        _expect_operands(op, expected)
    elif kind == OpKind.COLLAPSE_SHAPE:
        _expect_operands(op, 1)
        source = _tensor(op, op.operand_types[0], "source")
        result = _tensor(op, op.result_type, "result")
        groups = op.attr("reassociation")
        _verify_reassociation(op, groups, source.rank)
        if len(groups) != result.rank:
            _error(op, f"{len(groups)} groups collapse into a rank {result.rank} result")
        for group, size in zip(groups, result.shape):
            dims = [source.shape[d] for d in group]
            if is_dynamic_dim(size) or any(is_dynamic_dim(d) for d in dims):
                continue
            product = 1
            for d in dims:
                product *= d
            if product != size:
                _error(op, f"group {group} collapses to {product}, result declares {size}")
    elif kind == OpKind.EXPAND_SHAPE:
        _expect_operands(op, 1)
        source = _tensor(op, op.operand_types[0], "source")
        result = _tensor(op, op.result_type, "result")
        groups = op.attr("reassociation")
        if len(groups) != source.rank:
            _error(op, f"{len(groups)} groups expand a rank {source.rank} source")
        _verify_reassociation(op, groups, result.rank)
        for group in groups:
            if sum(1 for d in group if is_dynamic_dim(result.shape[d])) > 1:
                _error(op, f"group {group} has more than one dynamic extent")
    elif kind in _SLICE_KINDS:
        _verify_slice(op)
    elif kind == OpKind.PAD:
        source = _tensor(op, op.operand_types[0] if op.operand_types else None, "source")
        lows = _check_static_list(op, "static_low", source.rank)
        highs = _check_static_list(op, "static_high", source.rank)
        _expect_operands(op, 1 + count_dynamic(lows) + count_dynamic(highs))
        _verify_body(op, source.rank)
    elif kind == OpKind.CAST:
        _expect_operands(op, 1)
        _expect_results(op, 1)
    elif kind == OpKind.CONSTANT:
        _expect_operands(op, 0)
        op.attr("value")
    elif kind in _BINARY_KINDS:
        _expect_operands(op, 2)
        _expect_results(op, 1)
    elif kind in (OpKind.INDEX_CAST, OpKind.SITOFP):
        _expect_operands(op, 1)
        _expect_results(op, 1)


def _verify_slice(op: Operation) -> None:
    fixed = 1 if op.kind == OpKind.EXTRACT_SLICE else 2
    if len(op.operand_types) < fixed:
        _error(op, f"expected at least {fixed} tensor operands")
    target = _tensor(op, op.operand_types[fixed - 1], "sliced tensor")
    offsets = _check_static_list(op, "static_offsets", target.rank)
    sizes = _check_static_list(op, "static_sizes", target.rank)
    strides = _check_static_list(op, "static_strides", target.rank)
    _expect_operands(
        op, fixed + count_dynamic(offsets) + count_dynamic(sizes) + count_dynamic(strides)
    )
    if op.kind == OpKind.EXTRACT_SLICE:
        result = _tensor(op, op.result_type, "result")
        dropped = rank_reduced_dims(sizes, list(result.shape))
        if len(sizes) - len(dropped) != result.rank:
            _error(op, f"slice of sizes {sizes} does not produce a rank {result.rank} result")
    else:
        _expect_results(op, 1 if op.kind == OpKind.INSERT_SLICE else 0)
        source = _tensor(op, op.operand_types[0], "source")
        if source.rank > target.rank:
            _error(op, f"cannot insert rank {source.rank} into rank {target.rank}")
