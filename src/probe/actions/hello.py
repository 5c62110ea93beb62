# actions/hello.py
from __future__ import annotations

from typing import Any, Dict


def run(params: Dict[str, Any]) -> Dict[str, Any]:
    """Greeting action: always succeeds, handy for trying out workflows."""
    name = str(params.get("name") or "world")
    return {
        "request": {"name": name},
        "response": {"message": f"Hello {name}!"},
    }
