"""Response builders for the two output modes.

`ga` mode answers with exactly one GitHub Actions annotation line
(`::notice::`, `::warning::`, `::error::`) as plain text. The default mode
answers with a JSON object that always carries `success` and `message`.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from flask import Response, jsonify

NOTICE = "notice"
WARNING = "warning"
ERROR = "error"


def utc_timestamp(epoch: Optional[int] = None) -> str:
    """UTC time formatted like MySQL DATETIME."""
    moment = datetime.now(timezone.utc) if epoch is None else datetime.fromtimestamp(epoch, timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def annotation(level: str, message: str) -> str:
    # One line per response, whatever the message contains
    flat = " ".join(str(message).split())
    return f"::{level}::{flat}\n"


def text_response(level: str, message: str, status: int, headers: Optional[Dict[str, str]] = None) -> Response:
    response = Response(annotation(level, message), status=status, content_type="text/plain; charset=utf-8")
    for name, value in (headers or {}).items():
        response.headers[name] = value
    return response


def json_response(payload: Dict[str, Any], status: int, headers: Optional[Dict[str, str]] = None):
    response = jsonify(payload)
    response.status_code = status
    for name, value in (headers or {}).items():
        response.headers[name] = value
    return response


def respond(
    ga_mode: bool,
    level: str,
    message: str,
    status: int,
    payload: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
):
    """Build the response for either output mode.

    Args:
        ga_mode: Plain-text annotation mode
        level: Annotation level used in ga mode
        message: Human-readable message
        status: HTTP status code
        payload: Extra JSON fields for structured mode
        headers: Extra response headers for both modes
    """
    if ga_mode:
        return text_response(level, message, status, headers)

    body = {"success": level != ERROR and status < 400, "message": message}
    body.update(payload or {})
    body.setdefault("timestamp", utc_timestamp())
    return json_response(body, status, headers)
