import hashlib
from typing import Any, Dict, List, Optional

from .interpreter import ExecutionConfig, Interpreter
from .ir import Function, OpKind, format_static_list, json_ready
from .parser import parse
from .verifier import verify_function

_STATIC_LIST_ATTRS = (
    "static_offsets",
    "static_sizes",
    "static_strides",
    "static_low",
    "static_high",
)


def compute_program_hash(src: str) -> str:
    hasher = hashlib.sha256()
    hasher.update(src.encode("utf-8"))
    return hasher.hexdigest()


class Program:
    def __init__(self, src: str):
        self.src = src
        self.function: Function = parse(src)
        verify_function(self.function)
        self.digest = compute_program_hash(self.src)

    @property
    def name(self) -> str:
        return self.function.name

    def compile(self, config: Optional[ExecutionConfig] = None) -> Interpreter:
        """Return an interpreter bound to this program's function.

        The configuration is normalized up front so an invalid failure policy
        surfaces here rather than on the first run.
        """
        cfg = (config or ExecutionConfig()).normalized()
        return Interpreter(self.function, config=cfg)

    def __call__(self, *args: Any, **named: Any) -> List[Any]:
        return self.compile()(*args, **named)

    def explain(self, *, json: bool = False) -> Any:
        arguments = [
            {"name": arg.name, "type": str(arg.type)} for arg in self.function.arguments
        ]
        operations: List[Dict[str, Any]] = []
        for op in self.function.operations():
            entry: Dict[str, Any] = {
                "name": op.name,
                "results": list(op.results),
                "operands": list(op.operands),
                "result_types": [str(ty) for ty in op.result_types],
                "regions": len(op.regions),
                "line": op.line,
                "column": op.column,
            }
            static = {
                key: op.attributes[key]
                for key in _STATIC_LIST_ATTRS
                if key in op.attributes
            }
            if static:
                entry["static"] = static
            if op.kind in (OpKind.COLLAPSE_SHAPE, OpKind.EXPAND_SHAPE):
                entry["reassociation"] = op.attributes.get("reassociation")
            operations.append(entry)

        payload = {
            "digest": self.digest,
            "function": self.function.name,
            "arguments": arguments,
            "results": [str(ty) for ty in self.function.result_types],
            "operations": operations,
        }
        if json:
            return json_ready(payload)

        lines: List[str] = []
        for arg in arguments:
            lines.append(f"[arg] %{arg['name']} : {arg['type']}")
        for entry in operations:
            defs = ", ".join(f"%{name}" for name in entry["results"]) or "-"
            uses = ", ".join(f"%{name}" for name in entry["operands"])
            text = f"[op] {defs} = {entry['name']}({uses})"
            for key, values in entry.get("static", {}).items():
                text += f" {key[len('static_'):]}={format_static_list(values)}"
            if entry["regions"]:
                text += f" regions={entry['regions']}"
            if entry["result_types"]:
                text += " : " + ", ".join(entry["result_types"])
            lines.append(text)
        lines.append(f"[ret] {', '.join(payload['results']) or '-'}")
        return "\n".join(lines)
