from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import ContractError, OwnershipError
from .ir import ElementType, TensorType

Index = Tuple[int, ...]


def _prod(values: Sequence[int]) -> int:
    result = 1
    for value in values:
        result *= int(value)
    return result


def default_strides(sizes: Sequence[int]) -> List[int]:
    strides = [1] * len(sizes)
    running = 1
    for dim in reversed(range(len(sizes))):
        strides[dim] = running
        running *= int(sizes[dim])
    return strides


class IndexSpace:
    """Every index tuple of a view, last dimension fastest.

    Iterating twice restarts the enumeration; nothing is materialised.
    """

    def __init__(self, sizes: Sequence[int]):
        self.sizes = tuple(int(s) for s in sizes)

    def __iter__(self) -> Iterator[Index]:
        return itertools.product(*(range(size) for size in self.sizes))

    def __len__(self) -> int:
        return _prod(self.sizes)

    def __repr__(self) -> str:  # pragma: no cover - repr only used for debugging
        return f"IndexSpace(sizes={self.sizes})"


@dataclass
class View:
    sizes: List[int]
    strides: List[int]

    def __post_init__(self):
        self.sizes = [int(s) for s in self.sizes]
        self.strides = [int(s) for s in self.strides]
        if len(self.sizes) != len(self.strides):
            raise ContractError(
                f"View has {len(self.sizes)} sizes but {len(self.strides)} strides"
            )
        if any(size < 0 for size in self.sizes):
            raise ContractError(f"View sizes must be non-negative, got {self.sizes}")

    @classmethod
    def row_major(cls, sizes: Sequence[int]) -> "View":
        return cls(list(sizes), default_strides(sizes))

    @property
    def rank(self) -> int:
        return len(self.sizes)

    @property
    def num_elements(self) -> int:
        return _prod(self.sizes)

    def in_bounds(self, indices: Sequence[int]) -> bool:
        if len(indices) != self.rank:
            return False
        return all(0 <= int(idx) < size for idx, size in zip(indices, self.sizes))

    def offset(self, indices: Sequence[int]) -> int:
        return sum(int(idx) * stride for idx, stride in zip(indices, self.strides))

    def indices(self) -> IndexSpace:
        return IndexSpace(self.sizes)

    def copy(self) -> "View":
        return View(list(self.sizes), list(self.strides))


class _Storage:
    __slots__ = ("data", "shared")

    def __init__(self, data: np.ndarray):
        self.data = data
        self.shared = False


class TensorValue:
    """A typed, shaped, strided array value over a flat numpy buffer.

    A value exclusively owns its storage until ``share`` hands out a second
    handle; from then on the storage is read-only for every handle and
    writers must ``clone`` (or ``ensure_exclusive``) first. ``write_through``
    is the one writer that ignores sharing.
    """

    def __init__(self, element_type: ElementType, view: View, storage: _Storage):
        self.element_type = element_type
        self.view = view
        self._storage = storage

    # Factories -----------------------------------------------------------------
    @classmethod
    def make(cls, element_type: ElementType, sizes: Sequence[int]) -> "TensorValue":
        view = View.row_major(sizes)
        data = np.zeros(view.num_elements, dtype=element_type.dtype)
        return cls(element_type, view, _Storage(data))

    @classmethod
    def from_array(
        cls,
        array: Any,
        element_type: Optional[ElementType] = None,
    ) -> "TensorValue":
        arr = np.asarray(array)
        if element_type is None:
            element_type = ElementType.from_dtype(arr.dtype)
        data = np.array(arr, dtype=element_type.dtype, copy=True).reshape(-1)
        return cls(element_type, View.row_major(arr.shape), _Storage(data))

    def typed_alike(self, sizes: Sequence[int]) -> "TensorValue":
        return TensorValue.make(self.element_type, sizes)

    def clone(self) -> "TensorValue":
        return TensorValue(
            self.element_type,
            self.view.copy(),
            _Storage(self._storage.data.copy()),
        )

    # Ownership -----------------------------------------------------------------
    @property
    def is_exclusive(self) -> bool:
        return not self._storage.shared

    def share(self) -> "TensorValue":
        self._storage.shared = True
        return TensorValue(self.element_type, self.view.copy(), self._storage)

    def ensure_exclusive(self) -> "TensorValue":
        if self.is_exclusive:
            return self
        return self.clone()

    def _check_writable(self) -> None:
        if self._storage.shared:
            raise OwnershipError("Cannot write to a tensor whose storage is shared; clone it first")

    # Shape ---------------------------------------------------------------------
    @property
    def sizes(self) -> List[int]:
        return self.view.sizes

    @property
    def strides(self) -> List[int]:
        return self.view.strides

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.view.sizes)

    @property
    def rank(self) -> int:
        return self.view.rank

    @property
    def type(self) -> TensorType:
        return TensorType(self.shape, self.element_type)

    def drop_dims(self, dims: Sequence[int]) -> None:
        """Remove the listed dimensions from this handle's view."""
        dropped = set(dims)
        for dim in dropped:
            if self.view.sizes[dim] != 1:
                raise ContractError(f"Cannot drop dimension {dim} of size {self.view.sizes[dim]}")
        keep = [dim for dim in range(self.rank) if dim not in dropped]
        self.view = View(
            [self.view.sizes[dim] for dim in keep],
            [self.view.strides[dim] for dim in keep],
        )

    # Element access ------------------------------------------------------------
    def extract_element(self, indices: Sequence[int]) -> Any:
        if not self.view.in_bounds(indices):
            raise ContractError(f"Index {tuple(indices)} out of bounds for shape {self.shape}")
        return self.element_type.coerce(self._storage.data[self.view.offset(indices)])

    def insert_element(self, indices: Sequence[int], value: Any) -> None:
        self._check_writable()
        if not self.view.in_bounds(indices):
            raise ContractError(f"Index {tuple(indices)} out of bounds for shape {self.shape}")
        self._storage.data[self.view.offset(indices)] = self.element_type.coerce(value)

    def write_through(self, indices: Sequence[int], value: Any) -> None:
        """Write one element even when the storage is shared.

        Only the parallel slice insert uses this: its destination is updated
        in place and the write is visible through every alias.
        """
        if not self.view.in_bounds(indices):
            raise ContractError(f"Index {tuple(indices)} out of bounds for shape {self.shape}")
        self._storage.data[self.view.offset(indices)] = self.element_type.coerce(value)

    def fill(self, generator: Callable[[Index], Any]) -> None:
        self._check_writable()
        data = self._storage.data
        for indices in self.view.indices():
            data[self.view.offset(indices)] = self.element_type.coerce(generator(indices))

    def to_numpy(self) -> np.ndarray:
        data = self._storage.data
        itemsize = data.dtype.itemsize
        strided = np.lib.stride_tricks.as_strided(
            data,
            shape=tuple(self.view.sizes),
            strides=tuple(stride * itemsize for stride in self.view.strides),
            writeable=False,
        )
        return np.array(strided, copy=True)

    def __array__(self, dtype=None, copy=None):
        arr = self.to_numpy()
        if dtype is not None:
            return arr.astype(dtype)
        return arr

    def __repr__(self) -> str:
        return f"TensorValue({self.type}, exclusive={self.is_exclusive})"


def make_tensor(element_type: ElementType, sizes: Sequence[int]) -> TensorValue:
    return TensorValue.make(element_type, sizes)
