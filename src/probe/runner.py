# runner.py
from __future__ import annotations

import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Mapping, Optional

from .actions import BUILTIN_ACTIONS, ActionDispatcher, RegistryDispatcher
from .errors import ProbeError
from .expr import evaluate
from .model import ErrorInfo, ExecutionContext, Job, JobRun, Step, StepResult, Workflow
from .ui.console import Console, get_console

logger = logging.getLogger(__name__)

# Execution model:
#   workflow ---(one thread per job)---> job
#   job      ---(one thread per repetition, launched `interval` apart)---> run
#   run      ---(sequential)---> step -> evaluate -> dispatch -> step_log
#
# Every job and every repetition works on its own fork of the context, so
# step logs are never shared between threads and need no locking.


# ----------------------------------------------------------------------
# Result post-processing
# ----------------------------------------------------------------------

def _parse_structured(body: str) -> Any:
    """Return the parsed JSON object/array in `body`, or None if it holds neither."""
    text = body.strip()
    if not text or text[0] not in "{[":
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _fold_output(result: StepResult, output: Mapping[str, Any]) -> None:
    output = dict(output)

    request = output.get("request")
    if isinstance(request, Mapping):
        result.request = dict(request)

    response = output.get("response")
    if isinstance(response, Mapping):
        response = dict(response)
        body = response.get("body")
        if isinstance(body, str):
            parsed = _parse_structured(body)
            if parsed is not None:
                # raw body stays next to the parsed form
                response["bodyjson"] = parsed
        output["response"] = response
        result.response = response

    result.output = output


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def run_step(
    step: Step,
    ctx: ExecutionContext,
    index: int,
    *,
    dispatcher: ActionDispatcher,
    console: Optional[Console] = None,
    job_name: str = "",
    timeout: Optional[float] = None,
) -> StepResult:
    """
    Execute one step against `ctx` and append its result to `ctx.step_log`.

    Expression and dispatch failures are recorded on the result instead of
    raised, so the remaining steps of the job still run.
    """
    console = console or get_console()
    result = StepResult(index=index, name=step.name, uses=step.uses)

    try:
        resolved = evaluate(step.with_, ctx)
        output = dispatcher.dispatch(step.uses, resolved, timeout=timeout)
    except ProbeError as e:
        logger.info("[%s] step %d (%s) failed: %s", job_name, index, step.uses, e)
        result.error = ErrorInfo.from_exception(e)
    else:
        _fold_output(result, output)

    ctx.step_log.append(result)
    console.print_step(job_name, result)
    return result


def _run_steps(
    job: Job,
    ctx: ExecutionContext,
    repetition: int,
    *,
    dispatcher: ActionDispatcher,
    console: Console,
    timeout: Optional[float],
) -> JobRun:
    console.print_job_start(job.name, repetition if job.repeat is not None else None)
    for i, step in enumerate(job.steps):
        run_step(
            step,
            ctx,
            i,
            dispatcher=dispatcher,
            console=console,
            job_name=job.name,
            timeout=timeout,
        )
    return JobRun(job=job, repetition=repetition, context=ctx)


def run_job(
    job: Job,
    ctx: ExecutionContext,
    *,
    dispatcher: ActionDispatcher,
    console: Optional[Console] = None,
    timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[JobRun]:
    """
    Run a job's steps once, or `repeat.count` times when it repeats.

    Repetitions are launched `repeat.interval` seconds apart (between
    launches, so slow runs overlap) and each works on a fresh fork of `ctx`.
    Returns only after every repetition finished.
    """
    console = console or get_console()

    if job.repeat is None:
        return [_run_steps(job, ctx, 0, dispatcher=dispatcher, console=console, timeout=timeout)]

    count, interval = job.repeat.runs, job.repeat.interval
    with ThreadPoolExecutor(max_workers=count, thread_name_prefix="probe-repeat") as pool:
        futures = []
        for i in range(count):
            logger.debug("job %s: launching repetition %d/%d", job.name, i + 1, count)
            futures.append(
                pool.submit(
                    _run_steps,
                    job,
                    ctx.fork(),
                    i,
                    dispatcher=dispatcher,
                    console=console,
                    timeout=timeout,
                )
            )
            if interval and i < count - 1:
                sleep(interval)

        wait(futures)
        return [f.result() for f in futures]


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def start(
    workflow: Workflow,
    *,
    environment: Optional[Mapping[str, str]] = None,
    dispatcher: Optional[ActionDispatcher] = None,
    console: Optional[Console] = None,
    step_timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[JobRun]:
    """
    Run every job of `workflow` concurrently and wait for all of them.

    Args:
      environment: values for `{env.X}`; defaults to a snapshot of the
        process environment taken once, here
      dispatcher: action backend; defaults to the built-in actions
      step_timeout: per-step deadline in seconds, enforced by the dispatcher

    Returns:
      One JobRun per job run (repetitions included), in job declaration order.
    """
    env: Dict[str, str] = dict(os.environ if environment is None else environment)
    root = ExecutionContext(environment=env)
    console = console or get_console()

    own_dispatcher = dispatcher is None
    if dispatcher is None:
        dispatcher = RegistryDispatcher(BUILTIN_ACTIONS)

    logger.debug("workflow %s: starting %d job(s)", workflow.name, len(workflow.jobs))
    try:
        if not workflow.jobs:
            return []
        with ThreadPoolExecutor(
            max_workers=len(workflow.jobs),
            thread_name_prefix="probe-job",
        ) as pool:
            futures = [
                pool.submit(
                    run_job,
                    job,
                    root.fork(),
                    dispatcher=dispatcher,
                    console=console,
                    timeout=step_timeout,
                    sleep=sleep,
                )
                for job in workflow.jobs
            ]
            # no partial cancellation: every job finishes before errors surface
            wait(futures)

        runs: List[JobRun] = []
        for fut in futures:
            runs.extend(fut.result())
        return runs
    finally:
        if own_dispatcher:
            dispatcher.close()
