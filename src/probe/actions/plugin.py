# actions/plugin.py
from __future__ import annotations

import json
from typing import IO, Any, Dict, Mapping, Optional

from ..errors import ActionFailedError, UnknownActionError


def _envelope_error(exc: BaseException) -> Dict[str, Any]:
    return {"error": {"kind": type(exc).__name__, "message": getattr(exc, "message", None) or str(exc)}}


def serve(
    action_id: str,
    stdin: IO[str],
    stdout: IO[str],
    registry: Optional[Mapping[str, Any]] = None,
) -> int:
    """
    Plugin side of the subprocess protocol: run one action on the JSON
    input read from `stdin` and write the result envelope to `stdout`.

    Returns the process exit code.
    """
    if registry is None:
        from . import BUILTIN_ACTIONS
        registry = BUILTIN_ACTIONS

    action = registry.get(action_id)
    try:
        if action is None:
            raise UnknownActionError(action_id)
        raw = stdin.read()
        try:
            params = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise ActionFailedError(action_id, f"invalid JSON input: {e}") from e
        if not isinstance(params, dict):
            raise ActionFailedError(action_id, "input must be a JSON object")
        envelope: Dict[str, Any] = {"result": action(params)}
        code = 0
    except Exception as e:
        # reported to the dispatcher through the envelope
        envelope, code = _envelope_error(e), 1

    stdout.write(json.dumps(envelope, default=str))
    stdout.write("\n")
    stdout.flush()
    return code
