"""Per-evaluation state shared by the operation evaluators.

The context owns the failure list of one evaluation and the region runner
the host injected. Failures are data here: evaluators record them and keep
producing shape-complete results, and only the interpreter boundary turns
them into an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence

from .ir import Operation, Region

logger = logging.getLogger(__name__)


@dataclass
class Failure:
    message: str
    op: Optional[str] = None
    line: Optional[int] = None
    # Set once a generate/pad evaluator has substituted its fallback value.
    absorbed: bool = False

    def __str__(self) -> str:
        where = ""
        if self.op is not None:
            where = f" in {self.op}"
            if self.line is not None:
                where += f" (line {self.line})"
        return f"{self.message}{where}"


@dataclass
class RegionOutcome:
    values: List[Any] = field(default_factory=list)
    failure: Optional[Failure] = None

    @property
    def failed(self) -> bool:
        return self.failure is not None


class RegionRunner(Protocol):
    def run_region(
        self,
        ctx: "EvaluationContext",
        region: Region,
        args: Sequence[Any],
    ) -> List[Any]: ...


class EvaluationContext:
    def __init__(self, region_runner: Optional[RegionRunner] = None):
        self.region_runner = region_runner
        self.failures: List[Failure] = []
        self.current_op: Optional[Operation] = None

    @property
    def has_failure(self) -> bool:
        return bool(self.failures)

    def unabsorbed_since(self, start: int) -> bool:
        return any(not failure.absorbed for failure in self.failures[start:])

    @property
    def failure(self) -> Optional[Failure]:
        return self.failures[0] if self.failures else None

    def add_failure(self, message: str) -> Failure:
        op = self.current_op
        failure = Failure(
            message=message,
            op=op.name if op is not None else None,
            line=op.line if op is not None else None,
        )
        self.failures.append(failure)
        logger.debug("evaluation failure: %s", failure)
        return failure

    def invoke_region(self, region: Region, args: Sequence[Any]) -> RegionOutcome:
        """Run ``region`` once and report whether this invocation failed."""
        if self.region_runner is None:
            raise RuntimeError("EvaluationContext has no region runner")
        before = len(self.failures)
        op = self.current_op
        try:
            values = self.region_runner.run_region(self, region, list(args))
        finally:
            self.current_op = op
        raised = self.failures[before:]
        for failure in raised:
            failure.absorbed = True
        return RegionOutcome(values=list(values), failure=raised[0] if raised else None)
