# actions/http.py
from __future__ import annotations

import json
import time
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

from ..errors import ActionFailedError

ACTION = "http"
DEFAULT_TIMEOUT = 30.0


def _encode_body(body: Any, headers: Dict[str, str]) -> Optional[bytes]:
    if body is None:
        return None
    if isinstance(body, (dict, list)):
        if not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"
        return json.dumps(body).encode("utf-8")
    if isinstance(body, bytes):
        return body
    return str(body).encode("utf-8")


def run(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Perform one HTTP request.

    Input:
        url: absolute URL (required)
        method: HTTP method, default GET
        headers: mapping of request headers
        body: str, or a mapping/list sent as JSON
        timeout: seconds, default 30

    HTTP error statuses (4xx/5xx) are reported as a normal response so the
    workflow can assert on them; only transport failures raise.
    """
    url = params.get("url")
    if not url:
        raise ActionFailedError(ACTION, "input 'url' is required")
    method = str(params.get("method") or "GET").upper()
    headers = {str(k): str(v) for k, v in (params.get("headers") or {}).items()}
    data = _encode_body(params.get("body"), headers)
    timeout = float(params.get("timeout") or DEFAULT_TIMEOUT)

    req = urllib.request.Request(str(url), data=data, headers=headers, method=method)
    request_info = {
        "method": method,
        "url": str(url),
        "headers": headers,
        "body": data.decode("utf-8", errors="replace") if data is not None else "",
    }

    started = time.monotonic()
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status, reason = resp.status, resp.reason
            resp_headers = dict(resp.headers.items())
            raw = resp.read()
    except urllib.error.HTTPError as e:
        status, reason = e.code, e.reason
        resp_headers = dict(e.headers.items()) if e.headers else {}
        raw = e.read() if e.fp else b""
    except urllib.error.URLError as e:
        raise ActionFailedError(ACTION, f"{method} {url} failed: {e.reason}") from e
    except TimeoutError as e:
        raise ActionFailedError(ACTION, f"{method} {url} timed out after {timeout:g}s") from e

    return {
        "request": request_info,
        "response": {
            "status": status,
            "reason": reason,
            "headers": resp_headers,
            "body": raw.decode("utf-8", errors="replace"),
            "elapsed_ms": round((time.monotonic() - started) * 1000, 3),
        },
    }
