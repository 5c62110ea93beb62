"""Shared fixtures: in-process fake actions and a quiet console."""

from __future__ import annotations

import threading

import pytest

from probe.actions import RegistryDispatcher
from probe.actions import hello
from probe.model import ExecutionContext, StepResult
from probe.ui.console import Console


class Recorder:
    """Fake actions that remember what they were called with."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, action, params):
        with self._lock:
            self.calls.append((action, params))

    def echo(self, params):
        self._record("echo", params)
        return {
            "request": dict(params),
            "response": {"status": 200, "body": params.get("body", "")},
        }

    def boom(self, params):
        self._record("boom", params)
        raise ConnectionRefusedError("unreachable host")

    def raw(self, params):
        self._record("raw", params)
        return {"value": params.get("value")}

    def params_of(self, action):
        return [p for a, p in self.calls if a == action]


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def dispatcher(recorder):
    d = RegistryDispatcher(
        {
            "echo": recorder.echo,
            "boom": recorder.boom,
            "raw": recorder.raw,
            "hello": hello.run,
        }
    )
    yield d
    d.close()


@pytest.fixture
def console():
    return Console(verbose=False)


@pytest.fixture
def ctx():
    return ExecutionContext(environment={"HOST": "example.test", "PORT": "8080"})


def make_result(index=0, response=None, request=None, output=None):
    response = response or {}
    request = request or {}
    if output is None:
        output = {"request": request, "response": response}
    return StepResult(
        index=index,
        name=f"step {index}",
        uses="echo",
        request=request,
        response=response,
        output=output,
    )
