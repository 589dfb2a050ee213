from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any
from urllib.parse import urlsplit, urlunsplit

URL_TOKEN_RE = re.compile(r"https?://[^\s\"'<>]+", re.IGNORECASE)
SECRET_ASSIGNMENT_RE = re.compile(
    r"(?i)((?:api[-_]?key|private[-_]?key|secret)\s*[:=]\s*)([^\s,;\"'&]+)"
)
API_KEY_QUERY_RE = re.compile(r"(?i)([?&](?:api[-_]?key)=)([^&#\s]+)")
# a raw 64 byte keypair written as a JSON array
KEY_BYTES_RE = re.compile(r"\[\s*(?:\d{1,3}\s*,\s*){63}\d{1,3}\s*\]")

_PUNCTUATION = ".,);]}"


def _strip_url_query(token: str) -> str:
    body = token.rstrip(_PUNCTUATION)
    tail = token[len(body) :]
    parts = urlsplit(body)
    if parts.scheme.lower() not in {"http", "https"} or not parts.netloc:
        return token
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")) + tail


def sanitize_text(value: str) -> str:
    masked = URL_TOKEN_RE.sub(lambda match: _strip_url_query(match.group(0)), value)
    for pattern, replacement in (
        (API_KEY_QUERY_RE, r"\1***"),
        (SECRET_ASSIGNMENT_RE, r"\1***"),
        (KEY_BYTES_RE, "[***]"),
    ):
        masked = pattern.sub(replacement, masked)
    return masked


def sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: sanitize_value(child) for key, child in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_value(item) for item in value)
    # solders keys and hashes render as base58
    return sanitize_text(str(value))


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def log_event(
    logger: logging.Logger,
    *,
    level: str,
    event: str,
    message: str,
    **fields: Any,
) -> None:
    extra = {"event": event}
    extra.update({key: sanitize_value(value) for key, value in fields.items()})
    safe_message = sanitize_text(message)

    if level == "exception":
        logger.exception(safe_message, extra=extra)
        return

    logger.log(_LEVELS.get(level, logging.INFO), safe_message, extra=extra)
