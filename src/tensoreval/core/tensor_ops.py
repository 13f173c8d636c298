"""Evaluators for the tensor dialect.

Every evaluator takes the evaluation context, the operation descriptor and
the already-evaluated operand values, and returns the list of result values.
Operands that extend a static attribute list (one per ``?`` entry) follow the
fixed operands in attribute order.
"""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from .exceptions import ContractError
from .ir import DYNAMIC, Operation, TensorType, is_dynamic_dim
from .shapes import (
    collapsed_sizes,
    count_dynamic,
    expanded_sizes,
    extract_offsets_sizes_strides,
    inserted_unit_dims,
    rank_reduced_dims,
    replace_dynamic_vals,
    reshape_tensor,
)
from .state import EvaluationContext
from .tensor import Index, TensorValue, make_tensor


OUT_OF_BOUNDS = "array index out of bounds"


def _split_dynamic(
    op: Operation,
    operands: Sequence[Any],
    start: int,
    *static_lists: Sequence[int],
) -> Tuple[List[int], ...]:
    groups: List[List[int]] = []
    position = start
    for values in static_lists:
        count = count_dynamic(values)
        groups.append([int(v) for v in operands[position : position + count]])
        position += count
    if position != len(operands):
        raise ContractError(
            f"{op.name} expects {position} operands, got {len(operands)}"
        )
    return tuple(groups)


def _tensor_result_type(op: Operation) -> TensorType:
    ty = op.result_type
    if not isinstance(ty, TensorType):
        raise ContractError(f"{op.name} must produce a tensor, got {ty}")
    return ty


def _declared_shape(ty: TensorType) -> List[int]:
    return [DYNAMIC if is_dynamic_dim(size) else int(size) for size in ty.shape]


def _as_indices(values: Sequence[Any]) -> List[int]:
    return [int(v) for v in values]


def dim(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    tensor, index = operands
    index = int(index)
    if not 0 <= index < tensor.rank:
        ctx.add_failure("dimension index out of bounds")
        return [0]
    return [tensor.sizes[index]]


def empty(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    ty = _tensor_result_type(op)
    sizes = replace_dynamic_vals(_declared_shape(ty), _as_indices(operands))
    return [make_tensor(ty.element_type, sizes)]


def extract(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    tensor, *indices = operands
    indices = _as_indices(indices)
    if not tensor.view.in_bounds(indices):
        ctx.add_failure(OUT_OF_BOUNDS)
        return [None]
    return [tensor.extract_element(indices)]


def from_elements(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    ty = _tensor_result_type(op)
    if not ty.is_static:
        raise ContractError(f"{op.name} requires a static result shape, got {ty}")
    result = make_tensor(ty.element_type, ty.shape)
    if len(operands) != result.view.num_elements:
        raise ContractError(
            f"{op.name} expects {result.view.num_elements} elements, got {len(operands)}"
        )
    elements = iter(operands)
    result.fill(lambda _: next(elements))
    return [result]


def collapse_shape(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    (tensor,) = operands
    sizes = collapsed_sizes(tensor.sizes, op.attr("reassociation"))
    return [reshape_tensor(tensor, sizes)]


def expand_shape(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    (tensor,) = operands
    ty = _tensor_result_type(op)
    sizes = expanded_sizes(tensor.sizes, list(ty.shape), op.attr("reassociation"))
    return [reshape_tensor(tensor, sizes)]


def extract_slice(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    tensor = operands[0]
    static_offsets = op.attr("static_offsets")
    static_sizes = op.attr("static_sizes")
    static_strides = op.attr("static_strides")
    dyn_offsets, dyn_sizes, dyn_strides = _split_dynamic(
        op, operands, 1, static_offsets, static_sizes, static_strides
    )
    v = extract_offsets_sizes_strides(
        dyn_offsets, dyn_sizes, dyn_strides, static_offsets, static_sizes, static_strides
    )
    if v.rank != tensor.rank:
        raise ContractError(f"{op.name} slices rank {v.rank} out of a rank {tensor.rank} tensor")

    def _source_element(indices: Index) -> Any:
        source = [idx * stride + offset for idx, stride, offset in zip(indices, v.strides, v.offsets)]
        return tensor.extract_element(source)

    out = tensor.typed_alike(v.sizes)
    out.fill(_source_element)
    declared = list(_tensor_result_type(op).shape)
    out.drop_dims(rank_reduced_dims(static_sizes, declared))
    return [out]


def _insert_slice(
    ctx: EvaluationContext,
    op: Operation,
    operands: Sequence[Any],
    *,
    in_place: bool,
) -> TensorValue:
    src, dest = operands[0], operands[1]
    if not in_place:
        dest = dest.clone()
    static_offsets = op.attr("static_offsets")
    static_sizes = op.attr("static_sizes")
    static_strides = op.attr("static_strides")
    dyn_offsets, dyn_sizes, dyn_strides = _split_dynamic(
        op, operands, 2, static_offsets, static_sizes, static_strides
    )
    v = extract_offsets_sizes_strides(
        dyn_offsets, dyn_sizes, dyn_strides, static_offsets, static_sizes, static_strides
    )
    if v.rank != dest.rank:
        raise ContractError(f"{op.name} writes rank {v.rank} into a rank {dest.rank} tensor")

    write = dest.write_through if in_place else dest.insert_element
    inserted = inserted_unit_dims(static_sizes, src.sizes)
    for src_indices in src.view.indices():
        expanded = list(src_indices)
        for dim_index in inserted:
            expanded.insert(dim_index, 0)
        dst_indices = [
            idx * stride + offset for idx, stride, offset in zip(expanded, v.strides, v.offsets)
        ]
        write(dst_indices, src.extract_element(src_indices))
    return dest


def insert_slice(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    return [_insert_slice(ctx, op, operands, in_place=False)]


def parallel_insert_slice(
    ctx: EvaluationContext, op: Operation, operands: Sequence[Any]
) -> List[Any]:
    # Writes into the destination in place, through any aliases.
    _insert_slice(ctx, op, operands, in_place=True)
    return []


def generate(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    ty = _tensor_result_type(op)
    sizes = replace_dynamic_vals(_declared_shape(ty), _as_indices(operands))
    result = make_tensor(ty.element_type, sizes)
    body = op.regions[0]

    def _element(indices: Index) -> Any:
        outcome = ctx.invoke_region(body, indices)
        if outcome.failed or not outcome.values:
            # Whatever the zero-filled buffer holds at this coordinate.
            return result.extract_element(indices)
        return outcome.values[0]

    result.fill(_element)
    return [result]


def insert(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    value, tensor, *indices = operands
    indices = _as_indices(indices)
    result = tensor.clone()
    if result.view.in_bounds(indices):
        result.insert_element(indices, value)
    else:
        ctx.add_failure(OUT_OF_BOUNDS)
    return [result]


def pad(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    tensor = operands[0]
    static_low = op.attr("static_low")
    static_high = op.attr("static_high")
    dyn_lows, dyn_highs = _split_dynamic(op, operands, 1, static_low, static_high)
    lows = replace_dynamic_vals(static_low, dyn_lows)
    highs = replace_dynamic_vals(static_high, dyn_highs)
    if not len(lows) == len(highs) == tensor.rank:
        raise ContractError(
            f"{op.name} needs {tensor.rank} low/high amounts, got {len(lows)} and {len(highs)}"
        )

    result_sizes = [size + low + high for size, low, high in zip(tensor.sizes, lows, highs)]
    result = tensor.typed_alike(result_sizes)
    body = op.regions[0]

    def _element(out_index: Index) -> Any:
        in_index = [idx - low for idx, low in zip(out_index, lows)]
        if tensor.view.in_bounds(in_index):
            return tensor.extract_element(in_index)
        outcome = ctx.invoke_region(body, out_index)
        if outcome.failed or not outcome.values:
            return result.extract_element(out_index)
        return outcome.values[0]

    result.fill(_element)
    return [result]


def passthrough(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    return [v.share() if isinstance(v, TensorValue) else v for v in operands]


def noop_terminator(ctx: EvaluationContext, op: Operation, operands: Sequence[Any]) -> List[Any]:
    return []
