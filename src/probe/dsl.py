# dsl.py
from __future__ import annotations

from typing import Any, Mapping, Optional

from .model import Job, Repeat, Step, Workflow


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def step(uses: str, with_: Optional[Mapping[str, Any]] = None, *, name: Optional[str] = None) -> Step:
    """Create a step: step("http", {"url": "https://example.com/"})."""
    if not uses:
        raise ValueError("step() needs an action id")
    return Step(name=name or uses, uses=uses, with_=dict(with_ or {}))


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,
    repeat: Optional[int] = None,
    interval: int = 0,
    defaults: Any = None,
) -> Job:
    if not steps:
        raise ValueError(f"job({name!r}) must have at least one step")
    if repeat is not None and not 0 <= repeat < 100:
        raise ValueError(f"job({name!r}): repeat must be in [0, 100), got {repeat}")
    if not 0 <= interval < 600:
        raise ValueError(f"job({name!r}): interval must be in [0, 600), got {interval}")

    return Job(
        name=name,
        steps=tuple(steps),
        repeat=Repeat(count=repeat, interval=interval) if repeat is not None else None,
        defaults=defaults,
    )


# ---------------------------------------------------------------------
# Workflow helper
# ---------------------------------------------------------------------

def workflow(name: str, *jobs: Job) -> Workflow:
    """
    Users can write:
        from probe import workflow, job, step

        wf = workflow(
            "smoke",
            job("greet", step("hello", {"name": "x"})),
        )
    """
    if not jobs:
        raise ValueError(f"workflow({name!r}) must have at least one job")
    return Workflow(name=name, jobs=tuple(jobs))
