from .dsl import job, step, workflow
from .loader import load_workflow
from .model import ExecutionContext, Job, JobRun, Repeat, Step, StepResult, Workflow
from .runner import run_job, run_step, start

__all__ = [
    "job",
    "step",
    "workflow",
    "load_workflow",
    "start",
    "run_job",
    "run_step",
    "ExecutionContext",
    "Job",
    "JobRun",
    "Repeat",
    "Step",
    "StepResult",
    "Workflow",
]
