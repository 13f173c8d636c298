try:
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as _load_version
except ImportError:  # pragma: no cover
    from importlib_metadata import (  # type: ignore
        PackageNotFoundError,
    )
    from importlib_metadata import (
        version as _load_version,
    )

from .core.exceptions import (
    ContractError,
    EvaluationError,
    OwnershipError,
    ParseError,
    ShapeError,
    TensorEvalError,
)
from .core.interpreter import ExecutionConfig, Interpreter
from .core.ir import DYNAMIC, ElementType, OpKind, TensorType
from .core.program import Program
from .core.state import EvaluationContext, Failure
from .core.tensor import TensorValue, View, make_tensor

try:
    __version__ = _load_version("tensoreval")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "Program",
    "ExecutionConfig",
    "Interpreter",
    "EvaluationContext",
    "Failure",
    "TensorValue",
    "View",
    "make_tensor",
    "ElementType",
    "TensorType",
    "OpKind",
    "DYNAMIC",
    "TensorEvalError",
    "ParseError",
    "ShapeError",
    "ContractError",
    "OwnershipError",
    "EvaluationError",
    "__version__",
]
