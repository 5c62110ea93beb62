# cli.py
from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from probe.actions import build_dispatcher
from probe.actions.plugin import serve
from probe.errors import WorkflowDefinitionError
from probe.loader import load_workflow, write_template
from probe.logging_config import setup_logging
from probe.runner import start
from probe.settings import DISPATCHERS, Settings
from probe.ui.console import Console, set_console, get_console

DEFAULT_WORKFLOW_FILES = ("probe.yml", "probe.yaml")


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    current_dir = Path(".")
    found = [current_dir / name for name in DEFAULT_WORKFLOW_FILES if (current_dir / name).exists()]
    for pattern in ("*.probe.yml", "*.probe.yaml"):
        found.extend(current_dir.glob(pattern))
    return sorted(set(found))


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create one with:\n  probe init",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", *[f"  {n}" for n in DEFAULT_WORKFLOW_FILES], "  *.probe.yml"],
            suggestion="Create a workflow file:\n  probe init\n\nOr specify one explicitly:\n  probe run --workflow my_workflow.yml",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion="Specify a workflow explicitly:\n  probe run --workflow probe.yml",
        )
        sys.exit(1)

    return workflow_files[0]


def _load_or_exit(workflow_path: Path, debug: bool):
    console = get_console()
    try:
        return load_workflow(workflow_path)
    except WorkflowDefinitionError as e:
        console.print_error("Failed to load workflow", e.message, details=e.details)
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and debug logs)",
)
@click.pass_context
def cli(ctx, debug):
    """Probe: scenario testing tool."""
    try:
        settings = Settings.from_env(os.environ)
    except ValueError as e:
        raise click.UsageError(f"invalid PROBE_* setting: {e}")
    setup_logging(debug)
    set_console(Console(verbose=settings.verbose, debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["settings"] = settings


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to probe.yml if present)")
@click.option("--verbose", is_flag=True, default=False, help="Print a request/response report per step")
@click.option("--dispatcher", type=click.Choice(DISPATCHERS), default=None, help="Action backend")
@click.option(
    "--step-timeout",
    type=float,
    default=None,
    help=(
        "Fail steps that take longer (seconds). A timed-out builtin action "
        "keeps running in the background and exit waits for it; "
        "--dispatcher subprocess kills it instead"
    ),
)
@click.option("--fail-on-error", is_flag=True, default=False, help="Exit 1 when any step failed")
@click.pass_context
def run(ctx, workflow, verbose, dispatcher, step_timeout, fail_on_error):
    """Run a probe workflow."""
    debug = ctx.obj.get("debug", False)
    try:
        settings = ctx.obj["settings"].override(
            verbose=True if verbose else None,
            dispatcher=dispatcher,
            step_timeout=step_timeout,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    console = Console(verbose=settings.verbose, debug=debug)
    set_console(console)

    workflow_path = discover_workflow(workflow)
    wf = _load_or_exit(workflow_path, debug)

    try:
        console.print_run_started(workflow=wf.name, job_count=len(wf.jobs))
        with build_dispatcher(settings) as action_dispatcher:
            runs = start(
                wf,
                environment=dict(os.environ),
                dispatcher=action_dispatcher,
                console=console,
                step_timeout=settings.step_timeout,
            )
        console.print_results(runs)

        if fail_on_error and any(r.failed for r in runs):
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to probe.yml if present)")
@click.pass_context
def lint(ctx, workflow):
    """Check the syntax of a workflow without running it."""
    workflow_path = discover_workflow(workflow)
    wf = _load_or_exit(workflow_path, ctx.obj.get("debug", False))
    steps = sum(len(j.steps) for j in wf.jobs)
    get_console().print_info(f"{workflow_path}: OK ({len(wf.jobs)} job(s), {steps} step(s))")


@cli.command()
@click.option("--output", default=DEFAULT_WORKFLOW_FILES[0], show_default=True, help="Where to write the template")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file")
def init(output, force):
    """Export a workflow template as a yaml file."""
    console = get_console()
    try:
        path = write_template(output, overwrite=force)
    except FileExistsError:
        console.print_error(
            "File exists",
            f"{output} already exists.",
            suggestion="Use --force to overwrite it or --output to pick another path.",
        )
        sys.exit(1)
    console.print_info(f"Wrote workflow template to {path}")


@cli.command()
@click.argument("action")
def builtin(action):
    """Serve one built-in action over stdin/stdout (plugin protocol)."""
    sys.exit(serve(action, sys.stdin, sys.stdout))


if __name__ == "__main__":
    cli()
