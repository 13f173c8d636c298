from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from .exceptions import ContractError
from .ir import is_dynamic, is_dynamic_dim
from .tensor import TensorValue, _prod


@dataclass
class OffsetsSizesStrides:
    offsets: List[int]
    sizes: List[int]
    strides: List[int]

    @property
    def rank(self) -> int:
        return len(self.offsets)


def count_dynamic(values: Sequence[int]) -> int:
    return sum(1 for value in values if is_dynamic(value))


def replace_dynamic_vals(static_values: Sequence[int], dynamic_values: Sequence[int]) -> List[int]:
    expected = count_dynamic(static_values)
    if expected != len(dynamic_values):
        raise ContractError(
            f"Expected {expected} dynamic values for {list(static_values)}, got {len(dynamic_values)}"
        )
    dynamic_iter = iter(dynamic_values)
    return [int(next(dynamic_iter)) if is_dynamic(value) else int(value) for value in static_values]


def extract_offsets_sizes_strides(
    dynamic_offsets: Sequence[int],
    dynamic_sizes: Sequence[int],
    dynamic_strides: Sequence[int],
    static_offsets: Sequence[int],
    static_sizes: Sequence[int],
    static_strides: Sequence[int],
) -> OffsetsSizesStrides:
    result = OffsetsSizesStrides(
        offsets=replace_dynamic_vals(static_offsets, dynamic_offsets),
        sizes=replace_dynamic_vals(static_sizes, dynamic_sizes),
        strides=replace_dynamic_vals(static_strides, dynamic_strides),
    )
    if not len(result.offsets) == len(result.sizes) == len(result.strides):
        raise ContractError(
            "Offsets, sizes and strides must have equal rank, got "
            f"{len(result.offsets)}, {len(result.sizes)} and {len(result.strides)}"
        )
    return result


def reshape_tensor(tensor: TensorValue, sizes: Sequence[int]) -> TensorValue:
    """Copy ``tensor`` into a fresh value of shape ``sizes`` in row-major order."""
    sizes = [int(s) for s in sizes]
    if _prod(sizes) != tensor.view.num_elements:
        raise ContractError(f"Cannot reshape {list(tensor.shape)} into {sizes}")
    result = tensor.typed_alike(sizes)
    elements = iter(tensor.view.indices())
    result.fill(lambda _: tensor.extract_element(next(elements)))
    return result


def _check_reassociation(reassociation: Sequence[Sequence[int]], rank: int) -> None:
    flat = [int(dim) for group in reassociation for dim in group]
    if flat != list(range(rank)):
        raise ContractError(
            f"Reassociation {[list(g) for g in reassociation]} does not cover {rank} dimensions in order"
        )


def collapsed_sizes(sizes: Sequence[int], reassociation: Sequence[Sequence[int]]) -> List[int]:
    _check_reassociation(reassociation, len(sizes))
    return [_prod([sizes[dim] for dim in group]) for group in reassociation]


def expanded_sizes(
    sizes: Sequence[int],
    result_shape: Sequence[int],
    reassociation: Sequence[Sequence[int]],
) -> List[int]:
    """Resolve the dynamic extents of ``result_shape`` from the source ``sizes``.

    Each reassociation group maps one source dimension to a run of result
    dimensions; at most one of them may be dynamic, and it absorbs whatever
    the static extents leave over.
    """
    if len(reassociation) != len(sizes):
        raise ContractError(
            f"Expected {len(sizes)} reassociation groups, got {len(reassociation)}"
        )
    _check_reassociation(reassociation, len(result_shape))
    resolved = [int(s) for s in result_shape]
    for src_dim, group in enumerate(reassociation):
        size = int(sizes[src_dim])
        dynamic_dim = None
        known = 1
        for dim in group:
            if is_dynamic_dim(resolved[dim]):
                if dynamic_dim is not None:
                    raise ContractError(
                        f"Reassociation group {list(group)} has more than one dynamic extent"
                    )
                dynamic_dim = dim
            else:
                known *= resolved[dim]
        if dynamic_dim is None:
            if known != size:
                raise ContractError(f"Group {list(group)} expands {size} into {known} elements")
            continue
        if known == 0 or size % known != 0:
            raise ContractError(
                f"Cannot resolve dynamic extent of group {list(group)}: {size} is not divisible by {known}"
            )
        resolved[dynamic_dim] = size // known
    return resolved


def rank_reduced_dims(static_sizes: Sequence[int], result_shape: Sequence[int]) -> List[int]:
    """Dimensions of a slice that the declared result shape drops.

    A dimension is dropped when its static size is 1 and the declared result
    does not keep a size-1 dimension at the same output position. Comparing
    against the declared shape keeps dynamic result extents apart from
    statically known unit dimensions.
    """
    dropped: List[int] = []
    rank = len(static_sizes)
    dim = 0
    while dim < rank - len(dropped):
        source_dim = dim + len(dropped)
        if static_sizes[source_dim] == 1 and (dim >= len(result_shape) or result_shape[dim] != 1):
            dropped.append(source_dim)
        else:
            dim += 1
    return dropped


def inserted_unit_dims(static_sizes: Sequence[int], source_sizes: Sequence[int]) -> List[int]:
    """Destination dimensions absent from an inserted source of lower rank."""
    inserted: List[int] = []
    position = 0
    for dim, size in enumerate(static_sizes):
        if position == len(source_sizes) or (
            source_sizes[position] != size and not is_dynamic(size)
        ):
            if size != 1:
                raise ContractError(
                    f"Can only insert unit dimensions, got size {size} at dimension {dim}"
                )
            inserted.append(dim)
        else:
            position += 1
    if position != len(source_sizes):
        raise ContractError(
            f"Source shape {list(source_sizes)} does not fit slice sizes {list(static_sizes)}"
        )
    return inserted
