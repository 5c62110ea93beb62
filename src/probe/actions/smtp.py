# actions/smtp.py
from __future__ import annotations

import smtplib
import time
from email.message import EmailMessage
from typing import Any, Dict, List

from ..errors import ActionFailedError

ACTION = "smtp"
DEFAULT_PORT = 25
DEFAULT_TIMEOUT = 30.0


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr, DEFAULT_PORT
    try:
        return host, int(port)
    except ValueError:
        raise ActionFailedError(ACTION, f"invalid port in addr {addr!r}") from None


def _recipients(value: Any) -> List[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value or []]


def run(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deliver one message over SMTP.

    Input:
        addr: "host:port" of the server (required)
        from: envelope and header sender (required)
        to: recipient or list of recipients (required)
        subject, data: message subject and body
        helo: name announced in EHLO/HELO
        timeout: seconds, default 30
    """
    addr = params.get("addr")
    sender = params.get("from")
    rcpts = _recipients(params.get("to"))
    if not addr or not sender or not rcpts:
        raise ActionFailedError(ACTION, "inputs 'addr', 'from' and 'to' are required")

    host, port = _split_addr(str(addr))
    msg = EmailMessage()
    msg["From"] = str(sender)
    msg["To"] = ", ".join(rcpts)
    msg["Subject"] = str(params.get("subject") or "")
    msg.set_content(str(params.get("data") or ""))

    helo = params.get("helo") or None
    timeout = float(params.get("timeout") or DEFAULT_TIMEOUT)

    started = time.monotonic()
    try:
        with smtplib.SMTP(host, port, local_hostname=helo, timeout=timeout) as client:
            refused = client.send_message(msg, from_addr=str(sender), to_addrs=rcpts)
    except smtplib.SMTPRecipientsRefused as e:
        refused = e.recipients
    except (smtplib.SMTPException, OSError) as e:
        raise ActionFailedError(ACTION, f"delivery to {host}:{port} failed: {e}") from e

    refused_info = {
        rcpt: {"code": code, "message": text.decode("utf-8", errors="replace") if isinstance(text, bytes) else str(text)}
        for rcpt, (code, text) in (refused or {}).items()
    }
    return {
        "request": {
            "addr": f"{host}:{port}",
            "from": str(sender),
            "to": rcpts,
            "subject": msg["Subject"],
        },
        "response": {
            "sent": len(rcpts) - len(refused_info),
            "refused": refused_info,
            "elapsed_ms": round((time.monotonic() - started) * 1000, 3),
        },
    }
