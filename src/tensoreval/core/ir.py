from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .exceptions import ShapeError

# Sentinel for a dynamic extent, offset or stride (int64 minimum).
DYNAMIC = -(2**63)

_ELEMENT_DTYPES = {
    "i1": np.bool_,
    "i8": np.int8,
    "i16": np.int16,
    "i32": np.int32,
    "i64": np.int64,
    "index": np.int64,
    "f16": np.float16,
    "f32": np.float32,
    "f64": np.float64,
}


def is_dynamic(value: int) -> bool:
    return value == DYNAMIC


def is_dynamic_dim(size: int) -> bool:
    # Hand-built shapes may use -1 for an unknown extent.
    return size < 0


@dataclass(frozen=True)
class ElementType:
    name: str

    def __post_init__(self):
        if self.name not in _ELEMENT_DTYPES:
            raise ValueError(f"Unsupported element type '{self.name}'")

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(_ELEMENT_DTYPES[self.name])

    @property
    def is_index(self) -> bool:
        return self.name == "index"

    @property
    def is_integer(self) -> bool:
        return self.name.startswith("i")

    @property
    def is_float(self) -> bool:
        return self.name.startswith("f")

    @property
    def bitwidth(self) -> int:
        if self.is_index:
            return 64
        return int(self.name[1:])

    def coerce(self, value: Any) -> Any:
        """Convert ``value`` to a scalar of this type, wrapping integers at the bit width."""
        if self.is_index:
            return int(value)
        return np.asarray(value).astype(self.dtype)[()]

    @classmethod
    def from_dtype(cls, dtype: Any) -> "ElementType":
        dtype = np.dtype(dtype)
        for name, candidate in _ELEMENT_DTYPES.items():
            if name != "index" and np.dtype(candidate) == dtype:
                return cls(name)
        raise ValueError(f"No element type for dtype {dtype}")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class TensorType:
    shape: Tuple[int, ...]
    element_type: ElementType

    @property
    def rank(self) -> int:
        return len(self.shape)

    @property
    def num_dynamic(self) -> int:
        return sum(1 for size in self.shape if is_dynamic_dim(size))

    @property
    def is_static(self) -> bool:
        return self.num_dynamic == 0

    def __str__(self) -> str:
        dims = "".join(("?" if is_dynamic_dim(size) else str(size)) + "x" for size in self.shape)
        return f"tensor<{dims}{self.element_type}>"


Type = Union[TensorType, ElementType]


class OpKind(Enum):
    # tensor dialect
    DIM = "tensor.dim"
    EMPTY = "tensor.empty"
    EXTRACT = "tensor.extract"
    FROM_ELEMENTS = "tensor.from_elements"
    COLLAPSE_SHAPE = "tensor.collapse_shape"
    EXPAND_SHAPE = "tensor.expand_shape"
    EXTRACT_SLICE = "tensor.extract_slice"
    INSERT_SLICE = "tensor.insert_slice"
    PARALLEL_INSERT_SLICE = "tensor.parallel_insert_slice"
    GENERATE = "tensor.generate"
    INSERT = "tensor.insert"
    PAD = "tensor.pad"
    CAST = "tensor.cast"
    YIELD = "tensor.yield"
    # scalar arithmetic used inside regions
    CONSTANT = "arith.constant"
    ADDI = "arith.addi"
    SUBI = "arith.subi"
    MULI = "arith.muli"
    DIVSI = "arith.divsi"
    REMSI = "arith.remsi"
    ADDF = "arith.addf"
    SUBF = "arith.subf"
    MULF = "arith.mulf"
    DIVF = "arith.divf"
    INDEX_CAST = "arith.index_cast"
    SITOFP = "arith.sitofp"
    RETURN = "func.return"

    @property
    def is_terminator(self) -> bool:
        return self in (OpKind.YIELD, OpKind.RETURN)

    @property
    def mnemonic(self) -> str:
        return self.value


@dataclass
class BlockArgument:
    name: str
    type: Type


@dataclass
class Region:
    arguments: List[BlockArgument] = field(default_factory=list)
    operations: List["Operation"] = field(default_factory=list)

    @property
    def terminator(self) -> Optional["Operation"]:
        if self.operations and self.operations[-1].kind.is_terminator:
            return self.operations[-1]
        return None


_MISSING = object()


@dataclass
class Operation:
    kind: OpKind
    operands: List[str] = field(default_factory=list)
    results: List[str] = field(default_factory=list)
    operand_types: List[Type] = field(default_factory=list)
    result_types: List[Type] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)
    regions: List[Region] = field(default_factory=list)
    line: Optional[int] = None
    column: Optional[int] = None
    source: Optional[str] = None

    @property
    def name(self) -> str:
        return self.kind.mnemonic

    @property
    def result_type(self) -> Type:
        if not self.result_types:
            raise ShapeError(f"{self.name} has no result type", line=self.line)
        return self.result_types[0]

    def attr(self, name: str, default: Any = _MISSING) -> Any:
        if name in self.attributes:
            return self.attributes[name]
        if default is not _MISSING:
            return default
        raise ShapeError(
            f"{self.name} is missing required attribute '{name}'",
            line=self.line,
            column=self.column,
            line_text=self.source,
        )


@dataclass
class Function:
    name: str
    arguments: List[BlockArgument]
    result_types: List[Type]
    body: Region

    def operations(self) -> Iterable[Operation]:
        return _walk(self.body)


def _walk(region: Region) -> Iterable[Operation]:
    for op in region.operations:
        yield op
        for nested in op.regions:
            yield from _walk(nested)


def describe_value(value: Any) -> Dict[str, Any]:
    shape = getattr(value, "shape", None)
    if shape is not None and not isinstance(value, np.generic):
        return {"shape": list(shape), "element_type": str(getattr(value, "element_type", ""))}
    return {"scalar": json_ready(value)}


def format_static_list(values: Sequence[int]) -> str:
    return "[" + ", ".join("?" if is_dynamic(v) else str(v) for v in values) + "]"


def json_ready(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (np.integer, np.floating, np.bool_)):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_ready(v) for v in value]
    return str(value)
