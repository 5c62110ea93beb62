"""
Template expressions for step inputs.

A string value may reference the execution context:

    url: "{env.API_URL}/users"
    token: "{ steps.0.response.bodyjson.token }"

Strings are parsed once into a `Template` (literal segments plus
references) and resolved by structural lookup. A string that is exactly
one reference yields the referenced value itself, so mappings and lists
stay structured; references embedded in text are rendered into it.

Unresolvable references raise `ExpressionError`, which fails the step.
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Sequence, Tuple, Union

from .errors import ExpressionError
from .model import ExecutionContext

_REF = re.compile(r"\{\s*(env|steps)((?:\.[A-Za-z0-9_\-]+)+)\s*\}")


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class EnvRef:
    name: str

    def __str__(self) -> str:
        return f"env.{self.name}"


@dataclass(frozen=True)
class StepRef:
    index: int
    path: Tuple[str, ...]

    def __str__(self) -> str:
        return ".".join(["steps", str(self.index), *self.path])


Segment = Union[Literal, EnvRef, StepRef]


@dataclass(frozen=True)
class Template:
    segments: Tuple[Segment, ...]

    @property
    def is_single_reference(self) -> bool:
        return len(self.segments) == 1 and not isinstance(self.segments[0], Literal)

    @property
    def is_literal(self) -> bool:
        return all(isinstance(s, Literal) for s in self.segments)


def _reference(kind: str, dotted: str, raw: str) -> Segment:
    parts = dotted.lstrip(".").split(".")
    if kind == "env":
        if len(parts) != 1:
            raise ExpressionError(raw, "env reference must name a single variable")
        return EnvRef(parts[0])

    try:
        index = int(parts[0])
    except ValueError:
        raise ExpressionError(raw, f"step index must be an integer, got {parts[0]!r}") from None
    return StepRef(index=index, path=tuple(parts[1:]))


@lru_cache(maxsize=1024)
def parse_template(text: str) -> Template:
    segments = []
    pos = 0
    for m in _REF.finditer(text):
        if m.start() > pos:
            segments.append(Literal(text[pos:m.start()]))
        segments.append(_reference(m.group(1), m.group(2), m.group(0)))
        pos = m.end()
    if pos < len(text) or not segments:
        segments.append(Literal(text[pos:]))
    return Template(tuple(segments))


# ----------------------------------------------------------------------
# Resolution
# ----------------------------------------------------------------------

def _lookup_env(ref: EnvRef, ctx: ExecutionContext) -> str:
    try:
        return ctx.environment[ref.name]
    except KeyError:
        raise ExpressionError(str(ref), "environment variable is not set") from None


def _lookup_step(ref: StepRef, ctx: ExecutionContext) -> Any:
    if not 0 <= ref.index < len(ctx.step_log):
        raise ExpressionError(
            str(ref),
            f"step index out of range ({len(ctx.step_log)} step(s) recorded)",
        )

    value: Any = ctx.step_log[ref.index].to_context()
    for key in ref.path:
        if isinstance(value, Mapping):
            if key not in value:
                raise ExpressionError(str(ref), f"no key {key!r}")
            value = value[key]
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            try:
                value = value[int(key)]
            except (ValueError, IndexError):
                raise ExpressionError(str(ref), f"no item {key!r}") from None
        else:
            raise ExpressionError(str(ref), f"cannot index {type(value).__name__} with {key!r}")
    return value


def _resolve(segment: Segment, ctx: ExecutionContext) -> Any:
    if isinstance(segment, Literal):
        return segment.text
    if isinstance(segment, EnvRef):
        return _lookup_env(segment, ctx)
    return _lookup_step(segment, ctx)


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def render_template(template: Template, ctx: ExecutionContext) -> Any:
    if template.is_single_reference:
        # copied so actions never hold references into the step log
        return copy.deepcopy(_resolve(template.segments[0], ctx))
    return "".join(_render(_resolve(s, ctx)) for s in template.segments)


def _evaluate_value(value: Any, ctx: ExecutionContext) -> Any:
    if isinstance(value, str):
        template = parse_template(value)
        if template.is_literal:
            return value
        return render_template(template, ctx)
    if isinstance(value, Mapping):
        return {k: _evaluate_value(v, ctx) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_evaluate_value(v, ctx) for v in value]
    return value


def evaluate(template_input: Mapping[str, Any], ctx: ExecutionContext) -> dict:
    """Resolve every reference in a step's input against `ctx`. Never mutates either."""
    return {k: _evaluate_value(v, ctx) for k, v in template_input.items()}
