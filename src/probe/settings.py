"""Runtime settings for probe.

Read once (from the process environment at the CLI boundary, or built
directly by callers) and passed down. Engine components never consult
`os.environ` themselves.
"""

from __future__ import annotations

import shlex
import sys
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional, Tuple

DISPATCHERS = ("builtin", "subprocess")


def _default_plugin_command() -> Tuple[str, ...]:
    return (sys.executable, "-m", "probe", "builtin")


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    return float(environ.get(key, str(default)))


def _bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    # which ActionDispatcher backs the run: "builtin" or "subprocess"
    dispatcher: str = "builtin"
    # argv prefix for subprocess plugins; the action id is appended
    plugin_command: Tuple[str, ...] = field(default_factory=_default_plugin_command)
    # per-step deadline in seconds (None = wait forever)
    step_timeout: Optional[float] = None
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.dispatcher not in DISPATCHERS:
            raise ValueError(f"dispatcher must be one of {DISPATCHERS}, got {self.dispatcher!r}")
        if self.step_timeout is not None and self.step_timeout <= 0:
            raise ValueError(f"step_timeout must be positive, got {self.step_timeout!r}")
        if not self.plugin_command:
            raise ValueError("plugin_command must not be empty")

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> Settings:
        """
        Build settings from PROBE_* variables.

        PROBE_DISPATCHER       builtin | subprocess
        PROBE_PLUGIN_COMMAND   shell-style argv prefix for plugins
        PROBE_STEP_TIMEOUT     seconds, 0 disables
        PROBE_VERBOSE          1/true/yes/on
        """
        plugin_command = environ.get("PROBE_PLUGIN_COMMAND")
        timeout = _float(environ, "PROBE_STEP_TIMEOUT", 0)
        return cls(
            dispatcher=environ.get("PROBE_DISPATCHER", "builtin"),
            plugin_command=tuple(shlex.split(plugin_command)) if plugin_command else _default_plugin_command(),
            step_timeout=timeout or None,
            verbose=_bool(environ, "PROBE_VERBOSE", False),
        )

    def override(self, **changes) -> Settings:
        """Apply CLI overrides, ignoring options left unset (None)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
