"""
Workflow definition loading.

A workflow file is YAML:

    name: api smoke test
    jobs:
      - name: health
        repeat: {count: 3, interval: 10}
        steps:
          - name: ping
            uses: http
            with:
              url: "{env.API_URL}/health"

Files are validated with pydantic before anything runs; every problem is
reported through WorkflowDefinitionError.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import WorkflowDefinitionError
from .model import Job, Repeat, Step, Workflow

logger = logging.getLogger(__name__)


# -------------------- Schemas --------------------

class RepeatSchema(BaseModel):
    count: int = Field(ge=0, lt=100)
    interval: int = Field(default=0, ge=0, lt=600)


class StepSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    uses: str = Field(min_length=1)
    # a bare `with:` key loads as None
    with_: Optional[Dict[str, Any]] = Field(default_factory=dict, alias="with")


class JobSchema(BaseModel):
    name: str = Field(min_length=1)
    steps: List[StepSchema] = Field(min_length=1)
    repeat: Optional[RepeatSchema] = None
    defaults: Any = None


class WorkflowSchema(BaseModel):
    name: str = Field(min_length=1)
    jobs: List[JobSchema] = Field(min_length=1)


# -------------------- Conversion --------------------

def _to_workflow(schema: WorkflowSchema) -> Workflow:
    jobs = []
    for j in schema.jobs:
        steps = tuple(
            Step(name=s.name or f"{s.uses} #{i}", uses=s.uses, with_=s.with_ or {})
            for i, s in enumerate(j.steps)
        )
        repeat = Repeat(count=j.repeat.count, interval=j.repeat.interval) if j.repeat else None
        jobs.append(Job(name=j.name, steps=steps, repeat=repeat, defaults=j.defaults))
    return Workflow(name=schema.name, jobs=tuple(jobs))


def _describe(e: ValidationError) -> List[str]:
    details = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<root>"
        details.append(f"{loc}: {err['msg']}")
    return details


def parse_workflow(data: Any, source: str = "<workflow>") -> Workflow:
    """Validate an already-decoded definition and build the Workflow."""
    if not isinstance(data, dict):
        raise WorkflowDefinitionError(
            f"Invalid workflow in {source}",
            [f"expected a mapping at the top level, got {type(data).__name__}"],
        )
    try:
        schema = WorkflowSchema.model_validate(data)
    except ValidationError as e:
        raise WorkflowDefinitionError(f"Invalid workflow in {source}", _describe(e)) from e
    return _to_workflow(schema)


def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a YAML file.

    Raises:
      WorkflowDefinitionError: file missing, not YAML, or failing validation
    """
    wf_path = Path(path).expanduser()
    if not wf_path.is_file():
        raise WorkflowDefinitionError(f"Workflow file not found: {wf_path}")

    try:
        with open(wf_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise WorkflowDefinitionError(f"Workflow file is not valid YAML: {wf_path}", [str(e)]) from e

    workflow = parse_workflow(data, source=str(wf_path))
    logger.debug("loaded workflow %r with %d job(s) from %s", workflow.name, len(workflow.jobs), wf_path)
    return workflow


# -------------------- Template --------------------

INIT_TEMPLATE = """\
name: Example workflow
jobs:
  - name: greet
    steps:
      - name: say hello
        uses: hello
        with:
          name: "{env.USER}"
      - name: echo greeting
        uses: hello
        with:
          name: "{steps.0.response.message}"

  - name: http check
    repeat:
      count: 3
      interval: 5
    steps:
      - name: get example.com
        uses: http
        with:
          method: GET
          url: https://example.com/
          headers:
            User-Agent: probe
"""


def write_template(path: str | Path, overwrite: bool = False) -> Path:
    """Write INIT_TEMPLATE to `path`; refuses to clobber an existing file unless `overwrite`."""
    out = Path(path)
    if out.exists() and not overwrite:
        raise FileExistsError(f"{out} already exists")
    out.write_text(INIT_TEMPLATE, encoding="utf-8")
    return out
