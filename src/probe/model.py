# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Repeat:
    """Launch a job's steps `count` times, `interval` seconds apart."""
    count: int
    interval: int = 0

    @property
    def runs(self) -> int:
        # count == 0 behaves like an absent repeat
        return max(self.count, 1)


@dataclass(frozen=True)
class Step:
    """One action invocation plus its templated input."""
    name: str
    uses: str
    with_: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Job:
    """
    An ordered sequence of steps, optionally repeated.

    `defaults` is carried through from the definition untouched.
    """
    name: str
    steps: Tuple[Step, ...]
    repeat: Optional[Repeat] = None
    defaults: Any = None


@dataclass(frozen=True)
class Workflow:
    name: str
    jobs: Tuple[Job, ...]


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorInfo:
        return cls(kind=type(exc).__name__, message=str(exc))

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": self.message}


@dataclass
class StepResult:
    """
    Outcome of one step execution.

    `output` is everything the action returned; `request`/`response` are
    its request/response sub-maps when the action produced them.
    """
    index: int
    name: str
    uses: str
    request: Dict[str, Any] = field(default_factory=dict)
    response: Dict[str, Any] = field(default_factory=dict)
    output: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ErrorInfo] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_context(self) -> Dict[str, Any]:
        """The mapping that `{steps.N...}` expressions look into."""
        view: Dict[str, Any] = dict(self.output)
        view["request"] = self.request
        view["response"] = self.response
        view["error"] = self.error.to_dict() if self.error else None
        return view


@dataclass
class ExecutionContext:
    """
    Per-run state: the read-only environment and the growing step log.

    Each job (and each repetition) works on its own fork; forks share the
    environment and start from a copy of the log.
    """
    environment: Mapping[str, str]
    step_log: List[StepResult] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.environment, MappingProxyType):
            self.environment = MappingProxyType(dict(self.environment))

    def fork(self) -> ExecutionContext:
        return ExecutionContext(environment=self.environment, step_log=list(self.step_log))


@dataclass
class JobRun:
    """One finished run of a job (repetition 0 when the job is not repeated)."""
    job: Job
    repetition: int
    context: ExecutionContext

    @property
    def results(self) -> List[StepResult]:
        return self.context.step_log

    @property
    def failed(self) -> List[StepResult]:
        return [r for r in self.context.step_log if not r.ok]
