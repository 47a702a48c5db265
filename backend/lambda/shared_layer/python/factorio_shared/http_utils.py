"""factorio_shared.http_utils — Lambda proxy responses."""

from __future__ import annotations

import json
from typing import Any, Dict


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    """Build an API Gateway / function URL JSON response."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, default=str),
    }


def _unauthorized(message: str = "Invalid header") -> Dict[str, Any]:
    return {
        "statusCode": 401,
        "headers": {"Content-Type": "text/html"},
        "body": message,
    }
