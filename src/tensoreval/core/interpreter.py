from __future__ import annotations

import logging
import time
from collections import ChainMap
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .exceptions import ContractError, EvaluationError, ShapeError
from .ir import (
    BlockArgument,
    ElementType,
    Function,
    Operation,
    Region,
    describe_value,
    is_dynamic_dim,
    json_ready,
)
from .registry import evaluate_op
from .state import EvaluationContext, Failure
from .tensor import TensorValue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Switches for one interpreter run.

    * ``on_failure`` decides what ``run`` does when an evaluation failure was
      recorded: ``"raise"`` raises :class:`EvaluationError` carrying every
      failure, ``"return"`` hands back the best-effort results and leaves the
      failures on ``Interpreter.failures``.
    * ``explain_timings`` records wall time per top-level operation.
    * ``record_values`` stores a shape or scalar summary of every result in the
      logs.
    * ``max_region_depth`` bounds how deeply regions may nest while running.
    """

    on_failure: str = "raise"  # "raise" | "return"
    explain_timings: bool = True
    record_values: bool = False
    max_region_depth: int = 64

    def normalized(self) -> "ExecutionConfig":
        on_failure = (self.on_failure or "raise").lower()
        if on_failure not in {"raise", "return"}:
            raise ValueError(f"Unsupported failure policy: {self.on_failure}")
        depth = int(self.max_region_depth)
        if depth <= 0:
            raise ValueError("max_region_depth must be positive")
        return replace(
            self,
            on_failure=on_failure,
            explain_timings=bool(self.explain_timings),
            record_values=bool(self.record_values),
            max_region_depth=depth,
        )


class Interpreter:
    """Walks a function body op by op, dispatching each to its evaluator.

    The interpreter is also the region runner handed to the evaluators: a
    generate or pad body runs in a child scope of the scope its operation
    lives in, so it sees every value defined before it.
    """

    def __init__(self, function: Function, config: Optional[ExecutionConfig] = None):
        self.function = function
        self.config = (config or ExecutionConfig()).normalized()
        self.logs: List[Dict[str, Any]] = []
        self.failures: List[Failure] = []
        self._scopes: List[ChainMap] = []
        self._region_calls = 0
        self._active = self.config

    # Public API ----------------------------------------------------------------
    def __call__(self, *args: Any, config: Optional[ExecutionConfig] = None, **named: Any):
        return self.run(*args, config=config, **named)

    def run(
        self,
        *args: Any,
        config: Optional[ExecutionConfig] = None,
        **named: Any,
    ) -> List[Any]:
        cfg = (config or self.config).normalized()
        self._active = cfg
        self.logs.clear()
        self.failures = []
        self._region_calls = 0
        bound = self._bind_arguments(args, named)

        ctx = EvaluationContext(region_runner=self)
        self._scopes = [ChainMap()]
        try:
            results = self.run_region(ctx, self.function.body, bound)
        finally:
            self._scopes = []
        self.failures = list(ctx.failures)

        if not results and self.function.result_types:
            results = [None] * len(self.function.result_types)
        if ctx.has_failure:
            for failure in ctx.failures:
                self.logs.append({"kind": "failure", "failure": failure})
            logger.info("evaluation of @%s recorded %d failure(s)", self.function.name, len(ctx.failures))
            if cfg.on_failure == "raise":
                raise EvaluationError(
                    f"Evaluation of @{self.function.name} failed: {ctx.failure}",
                    failures=ctx.failures,
                )
        return results

    def run_region(
        self,
        ctx: EvaluationContext,
        region: Region,
        args: Sequence[Any],
    ) -> List[Any]:
        if len(self._scopes) > self._active.max_region_depth:
            raise ContractError(
                f"Region nesting exceeds max_region_depth={self._active.max_region_depth}"
            )
        if len(args) != len(region.arguments):
            raise ContractError(
                f"Region expects {len(region.arguments)} arguments, got {len(args)}"
            )
        scope = self._scopes[-1].new_child() if self._scopes else ChainMap()
        for arg, value in zip(region.arguments, args):
            scope[arg.name] = value
        self._scopes.append(scope)
        self._region_calls += 1
        try:
            return self._run_operations(ctx, region, scope)
        finally:
            self._scopes.pop()

    def explain(self, *, json: bool = False):
        lines: List[str] = []
        total_ms = 0.0
        for entry in self.logs:
            kind = entry.get("kind")
            if kind == "op":
                op = entry["op"]
                duration = op.get("duration_ms")
                if duration is not None:
                    total_ms += float(duration)
                timing = f" {duration:.3f}ms" if duration is not None else ""
                calls = op.get("region_calls")
                note = f" regions={calls}" if calls else ""
                results = op.get("results")
                if results:
                    note += " -> " + ", ".join(_format_summary(r) for r in results)
                location = f" line {op['line']}" if op.get("line") is not None else ""
                lines.append(f"[op] {op['name']}{location}{timing}{note}")
            elif kind == "failure":
                lines.append(f"[failure] {entry['failure']}")
        lines.append(f"[perf] total={total_ms:.3f}ms ops={sum(1 for e in self.logs if e.get('kind') == 'op')}")

        if json:
            payload: Dict[str, Any] = {
                "logs": [_entry_json(entry) for entry in self.logs],
                "summary": {"total_ms": total_ms, "failures": len(self.failures)},
            }
            return payload
        return "\n".join(lines)

    # Internal helpers ----------------------------------------------------------
    def _run_operations(
        self,
        ctx: EvaluationContext,
        region: Region,
        scope: ChainMap,
    ) -> List[Any]:
        start_failures = len(ctx.failures)
        top_level = len(self._scopes) == 2
        for op in region.operations:
            operands = [self._lookup(scope, name, op) for name in op.operands]
            ctx.current_op = op
            calls_before = self._region_calls
            started = time.perf_counter()
            results = evaluate_op(ctx, op, operands)
            duration_ms = (time.perf_counter() - started) * 1e3
            if top_level:
                self._log_op(op, results, duration_ms, self._region_calls - calls_before)

            if op.kind.is_terminator:
                if ctx.unabsorbed_since(start_failures):
                    return []
                return operands

            if len(results) != len(op.results):
                raise ContractError(
                    f"{op.name} produced {len(results)} results for {len(op.results)} names"
                )
            for name, value in zip(op.results, results):
                scope[name] = value
            if ctx.unabsorbed_since(start_failures):
                logger.debug("stopping region after failure in %s", op.name)
                return []
        return []

    def _lookup(self, scope: ChainMap, name: str, op: Operation) -> Any:
        try:
            return scope[name]
        except KeyError:
            raise ContractError(f"{op.name} uses undefined value %{name}") from None

    def _log_op(
        self,
        op: Operation,
        results: Sequence[Any],
        duration_ms: float,
        region_calls: int,
    ) -> None:
        logger.debug("%s -> %d result(s)", op.name, len(results))
        entry: Dict[str, Any] = {
            "name": op.name,
            "line": op.line,
            "duration_ms": duration_ms if self._active.explain_timings else None,
            "region_calls": region_calls,
        }
        if self._active.record_values:
            entry["results"] = [describe_value(value) for value in results]
        self.logs.append({"kind": "op", "op": entry})

    def _bind_arguments(self, args: Sequence[Any], named: Dict[str, Any]) -> List[Any]:
        params = self.function.arguments
        if len(args) > len(params):
            raise TypeError(f"@{self.function.name} takes {len(params)} arguments, got {len(args)}")
        values: List[Any] = []
        for position, param in enumerate(params):
            if position < len(args):
                if param.name in named:
                    raise TypeError(f"Argument %{param.name} given twice")
                raw = args[position]
            elif param.name in named:
                raw = named.pop(param.name)
            else:
                raise TypeError(f"Missing argument %{param.name}")
            values.append(_coerce_argument(param, raw))
        unknown = sorted(set(named) - {p.name for p in params})
        if unknown:
            raise TypeError(f"Unknown arguments: {', '.join(unknown)}")
        return values


def _coerce_argument(param: BlockArgument, raw: Any) -> Any:
    ty = param.type
    if isinstance(ty, ElementType):
        return ty.coerce(raw)
    if isinstance(raw, TensorValue):
        value = raw
        if value.element_type != ty.element_type:
            raise ShapeError(
                f"Argument %{param.name} has element type {value.element_type}, expected {ty.element_type}"
            )
    else:
        value = TensorValue.from_array(np.asarray(raw), ty.element_type)
    if value.rank != ty.rank or any(
        not is_dynamic_dim(expected) and expected != actual
        for expected, actual in zip(ty.shape, value.shape)
    ):
        raise ShapeError(f"Argument %{param.name} has shape {list(value.shape)}, expected {ty}")
    return value


def _format_summary(summary: Dict[str, Any]) -> str:
    if "shape" in summary:
        dims = "x".join(str(s) for s in summary["shape"])
        return f"{summary['element_type']}[{dims}]"
    return str(summary.get("scalar"))


def _entry_json(entry: Dict[str, Any]) -> Any:
    if entry.get("kind") == "failure":
        failure = entry["failure"]
        return {
            "kind": "failure",
            "failure": {
                "message": failure.message,
                "op": failure.op,
                "line": failure.line,
                "absorbed": failure.absorbed,
            },
        }
    return json_ready(entry)
