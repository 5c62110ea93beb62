"""Console output formatting utilities for probe."""

from __future__ import annotations

import sys
import threading
from typing import Any, List, Mapping, Optional

from ..model import JobRun, StepResult

STEP_RULE = "----------"


def _field_lines(data: Mapping[str, Any]) -> List[str]:
    lines = []
    for key, value in data.items():
        if isinstance(value, Mapping):
            lines.append(f"  {key}:")
            for nested_key, nested_value in value.items():
                lines.append(f"    {nested_key}: {nested_value!r}")
        else:
            lines.append(f"  {key}: {value!r}")
    return lines


def format_step_report(result: StepResult) -> str:
    """
    Render the verbose report of one step.

    Actions that produced request/response mappings get one line per field
    (nested mappings indented one level); anything else is dumped raw.
    """
    lines = [f"{STEP_RULE} Step {result.index} {STEP_RULE}"]
    request = result.output.get("request")
    response = result.output.get("response")
    if isinstance(request, Mapping) and isinstance(response, Mapping):
        lines.append("Request:")
        lines.extend(_field_lines(result.request))
        lines.append("Response:")
        lines.extend(_field_lines(result.response))
    else:
        lines.append(repr(result.output))
    if result.error is not None:
        lines.append(f"Error: {result.error.kind}: {result.error.message}")
    return "\n".join(lines)


class Console:
    """Centralized console output formatting.

    Jobs run concurrently, so every message is written as one block under a
    lock; blocks from different jobs never interleave.
    """

    def __init__(self, verbose: bool = False, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            verbose: If True, print a full request/response report per step
            debug: If True, show detailed output including stack traces
        """
        self.verbose = verbose
        self.debug = debug
        self._lock = threading.Lock()

    def _emit(self, text: str, err: bool = False) -> None:
        with self._lock:
            print(text, file=sys.stderr if err else sys.stdout, flush=True)

    def print_run_started(self, workflow: str, job_count: int) -> None:
        """Print run start information."""
        self._emit(f"\nRUN STARTED\nWorkflow: {workflow}\nJobs: {job_count}\n")

    def print_job_start(self, name: str, repetition: Optional[int] = None) -> None:
        if repetition is None:
            self._emit(f"JOB STARTED: {name}")
        else:
            self._emit(f"JOB STARTED: {name} (repeat #{repetition + 1})")

    def print_step(self, job: str, result: StepResult) -> None:
        """Print the outcome of one step: full report when verbose, one line otherwise."""
        if self.verbose:
            self._emit(format_step_report(result))
            return
        status = "ok" if result.ok else f"failed ({result.error.message})"
        self._emit(f"[{job}] STEP {result.index}: {result.name} ({result.uses}) {status}")

    def print_results(self, runs: List[JobRun]) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for run in runs:
            label = run.job.name
            if run.job.repeat is not None:
                label = f"{label} #{run.repetition + 1}"
            failed = len(run.failed)
            status = "SUCCESS" if not failed else f"{failed} FAILED"
            lines.append(f"  {label}: {len(run.results)} step(s), {status}")
        self._emit("\n".join(lines))

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        for detail in details or []:
            lines.append(f"  {detail}")
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit("\n".join(lines), err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        self._emit(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
