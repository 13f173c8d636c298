"""Core runtime modules for tensoreval."""

__all__ = [
    "arith_ops",
    "exceptions",
    "interpreter",
    "ir",
    "parser",
    "program",
    "registry",
    "shapes",
    "state",
    "tensor",
    "tensor_ops",
    "verifier",
]
