# actions/dispatcher.py
from __future__ import annotations

import json
import logging
import subprocess
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from ..errors import (
    ActionFailedError,
    ActionTimeoutError,
    DispatchError,
    ProbeError,
    UnknownActionError,
)
from ..settings import Settings

logger = logging.getLogger(__name__)

Action = Callable[[Dict[str, Any]], Dict[str, Any]]


class ActionDispatcher(ABC):
    """
    The single seam between the engine and action implementations.

    `dispatch` makes exactly one attempt: it returns the action's result
    mapping or raises a DispatchError. Implementations must be safe to call
    from several job threads at once.
    """

    @abstractmethod
    def dispatch(
        self,
        action_id: str,
        resolved_input: Mapping[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _check_result(action_id: str, result: Any) -> Dict[str, Any]:
    if not isinstance(result, dict):
        raise ActionFailedError(
            action_id, f"action returned {type(result).__name__}, expected a mapping"
        )
    return result


# ----------------------------------------------------------------------
# In-process registry
# ----------------------------------------------------------------------

class RegistryDispatcher(ActionDispatcher):
    """Routes action ids to in-process callables."""

    def __init__(self, registry: Mapping[str, Action], max_workers: int = 32):
        self._registry = dict(registry)
        self._max_workers = max_workers
        self._pool: Optional[ThreadPoolExecutor] = None
        self._pool_lock = threading.Lock()

    @property
    def actions(self) -> list[str]:
        return sorted(self._registry)

    def _call(self, action_id: str, action: Action, payload: Dict[str, Any]) -> Any:
        try:
            return action(payload)
        except ProbeError:
            raise
        except Exception as e:
            raise ActionFailedError(action_id, f"{type(e).__name__}: {e}") from e

    def _executor(self) -> ThreadPoolExecutor:
        # created lazily; only calls with a deadline need it.
        # Job threads share one dispatcher, so creation is locked.
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="probe-action",
                )
            return self._pool

    def dispatch(self, action_id, resolved_input, *, timeout=None):
        action = self._registry.get(action_id)
        if action is None:
            raise UnknownActionError(action_id)

        payload = dict(resolved_input)
        logger.debug("dispatching %s in-process", action_id)
        if timeout is None:
            return _check_result(action_id, self._call(action_id, action, payload))

        future = self._executor().submit(self._call, action_id, action, payload)
        try:
            result = future.result(timeout=timeout)
        except FutureTimeout:
            # the worker can't be interrupted; it finishes on its own and
            # interpreter exit joins it
            future.cancel()
            raise ActionTimeoutError(action_id, timeout) from None
        return _check_result(action_id, result)

    def close(self) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)


# ----------------------------------------------------------------------
# Subprocess plugins
# ----------------------------------------------------------------------

class SubprocessDispatcher(ActionDispatcher):
    """
    Runs each action as `command + [action_id]`.

    Protocol: the resolved input is written to stdin as JSON; the plugin
    prints one JSON envelope to stdout, either {"result": {...}} or
    {"error": {"kind": ..., "message": ...}}, and exits 0 on success.
    """

    def __init__(self, command: Sequence[str]):
        if not command:
            raise ValueError("plugin command must not be empty")
        self.command = list(command)

    def dispatch(self, action_id, resolved_input, *, timeout=None):
        argv = [*self.command, action_id]
        logger.debug("dispatching %s via %s", action_id, argv)
        try:
            proc = subprocess.run(
                argv,
                input=json.dumps(dict(resolved_input), default=str),
                text=True,
                capture_output=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise ActionTimeoutError(action_id, timeout) from None
        except OSError as e:
            raise DispatchError(action_id, f"cannot start plugin {argv[0]!r}: {e}") from e

        envelope = self._parse_envelope(action_id, proc)
        if "error" in envelope:
            err = envelope["error"] or {}
            kind = err.get("kind", "ActionFailedError")
            if kind == "UnknownActionError":
                raise UnknownActionError(action_id)
            raise ActionFailedError(action_id, err.get("message", "plugin reported an error"))
        if proc.returncode != 0:
            raise ActionFailedError(
                action_id, f"plugin exited with {proc.returncode}: {proc.stderr[-2000:].strip()}"
            )
        return _check_result(action_id, envelope.get("result"))

    @staticmethod
    def _parse_envelope(action_id: str, proc: subprocess.CompletedProcess) -> Dict[str, Any]:
        out = proc.stdout.strip()
        if not out:
            raise DispatchError(
                action_id,
                f"plugin produced no output (exit={proc.returncode}): {proc.stderr[-2000:].strip()}",
            )
        try:
            envelope = json.loads(out)
        except json.JSONDecodeError as e:
            raise DispatchError(action_id, f"invalid plugin output: {e}") from e
        if not isinstance(envelope, dict) or not ("result" in envelope or "error" in envelope):
            raise DispatchError(action_id, "plugin output is not a result/error envelope")
        return envelope


def build_dispatcher(settings: Settings) -> ActionDispatcher:
    """Pick the dispatcher implementation named by configuration."""
    if settings.dispatcher == "subprocess":
        return SubprocessDispatcher(settings.plugin_command)

    from . import BUILTIN_ACTIONS
    return RegistryDispatcher(BUILTIN_ACTIONS)
