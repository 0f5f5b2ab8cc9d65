"""
Logging helpers with secret masking.

Bearer tokens, refresh tokens, passwords and client secrets pass through the
auth and ledger layers; nothing logged by the SDK may contain them.

Usage:
    from cbtc_sdk.logging import log_request, log_response, mask_sensitive_data

    logger = logging.getLogger(__name__)
    log_request(logger, "POST", url, headers, body)
    log_response(logger, 200, response_body, duration_ms)
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional, Sequence

from .constants import LoggingConfig

_SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "x-api-key"})

_INLINE_PATTERNS = [
    (re.compile(r"(Bearer\s+)[a-zA-Z0-9._-]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"(Basic\s+)[a-zA-Z0-9+/=]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"(https?://)[^:/\s]+:[^@/\s]+@", re.IGNORECASE), r"\1***:***@"),
    (re.compile(r"\beyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\b"), "***JWT***"),
    (re.compile(r"((?:password|client_secret|refresh_token)=)[^&\s]+", re.IGNORECASE), r"\1***"),
]


def mask_value(value: str, show_chars: int = 4) -> str:
    """Mask a sensitive value, showing only its first and last characters."""
    if not value or len(value) <= show_chars * 2:
        return LoggingConfig.MASK_PATTERN
    return f"{value[:show_chars]}...{value[-show_chars:]}"


def is_sensitive_key(key: str) -> bool:
    """Check if a key name indicates sensitive data."""
    key_lower = key.lower().replace("-", "_")
    return (
        key_lower in LoggingConfig.SENSITIVE_FIELDS
        or key_lower.endswith("_token")
        or any(s in key_lower for s in ("secret", "password", "credential_value"))
    )


def mask_sensitive_data(
    data: Any,
    additional_fields: Optional[Sequence[str]] = None,
    _depth: int = 0,
    _max_depth: int = 10,
) -> Any:
    """Return a copy of ``data`` with sensitive values masked."""
    if _depth > _max_depth:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_sensitive_key(str(key)) or (additional_fields and key in additional_fields):
                result[key] = LoggingConfig.MASK_PATTERN
            else:
                result[key] = mask_sensitive_data(value, additional_fields, _depth + 1, _max_depth)
        return result

    if isinstance(data, (list, tuple)):
        return type(data)(
            mask_sensitive_data(item, additional_fields, _depth + 1, _max_depth) for item in data
        )

    if isinstance(data, str):
        return _mask_inline_patterns(data)

    return data


def _mask_inline_patterns(text: str) -> str:
    if len(text) > LoggingConfig.MAX_LOG_MESSAGE_LENGTH:
        text = text[: LoggingConfig.MAX_LOG_MESSAGE_LENGTH] + "...[truncated]"
    for pattern, replacement in _INLINE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Mask sensitive HTTP headers."""
    return {
        key: LoggingConfig.MASK_PATTERN if key.lower() in _SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def _truncated_json(body: Any) -> str:
    body_str = json.dumps(mask_sensitive_data(body), default=str)
    if len(body_str) > LoggingConfig.MAX_RESPONSE_BODY_LOG_LENGTH:
        body_str = body_str[: LoggingConfig.MAX_RESPONSE_BODY_LOG_LENGTH] + "..."
    return body_str


def log_request(
    logger: logging.Logger,
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Any] = None,
) -> None:
    """Log an outgoing HTTP request at DEBUG with secrets masked."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    log_data: Dict[str, Any] = {
        "direction": "request",
        "method": method,
        "url": _mask_inline_patterns(url),
    }
    if headers:
        log_data["headers"] = mask_headers(headers)
    if body is not None:
        log_data["body"] = _truncated_json(body)
    logger.debug("HTTP %s %s", method, log_data["url"], extra={"data": log_data})


def log_response(
    logger: logging.Logger,
    status_code: int,
    body: Optional[Any] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Log an HTTP response; failures at WARNING, the rest at DEBUG."""
    level = logging.DEBUG if status_code < 400 else logging.WARNING
    if not logger.isEnabledFor(level):
        return
    log_data: Dict[str, Any] = {"direction": "response", "status_code": status_code}
    if duration_ms is not None:
        log_data["duration_ms"] = duration_ms
    if body is not None:
        log_data["body"] = _truncated_json(body)

    message = f"HTTP {status_code}"
    if duration_ms is not None:
        message += f" ({duration_ms:.0f}ms)"
    logger.log(level, message, extra={"data": log_data})


__all__ = [
    "mask_value",
    "is_sensitive_key",
    "mask_sensitive_data",
    "mask_headers",
    "log_request",
    "log_response",
]
