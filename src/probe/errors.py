# errors.py
from __future__ import annotations

from typing import List, Optional


class ProbeError(Exception):
    """Base class for every error raised by probe."""


class WorkflowDefinitionError(ProbeError):
    """
    The workflow file is missing, unparsable, or violates the schema.

    Raised before any job is scheduled; the run is aborted.
    """

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def __str__(self) -> str:
        lines = [self.message]
        for d in self.details:
            lines.append(f"  {d}")
        return "\n".join(lines)


class ExpressionError(ProbeError):
    """A `{env.X}` / `{steps.N...}` reference could not be resolved."""

    def __init__(self, reference: str, message: str):
        super().__init__(f"{reference}: {message}")
        self.reference = reference
        self.message = message


class DispatchError(ProbeError):
    """An action could not be invoked or did not produce a result."""

    def __init__(self, action: str, message: str):
        super().__init__(f"[{action}] {message}")
        self.action = action
        self.message = message


class UnknownActionError(DispatchError):
    def __init__(self, action: str):
        super().__init__(action, f"unknown action {action!r}")


class ActionFailedError(DispatchError):
    """The action ran and reported failure."""


class ActionTimeoutError(DispatchError):
    def __init__(self, action: str, timeout: float):
        super().__init__(action, f"no result within {timeout:g}s")
        self.timeout = timeout
