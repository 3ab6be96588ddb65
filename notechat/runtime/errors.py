from __future__ import annotations

from notechat.types import ErrorKind

_STATUS_KINDS: dict[int, ErrorKind] = {
    400: "bad_request",
    401: "auth",
    403: "auth",
    408: "timeout",
    429: "rate_limit",
}

# Checked in order; the first matching group wins.
_MESSAGE_KINDS: list[tuple[ErrorKind, tuple[str, ...]]] = [
    ("cors", ("cors",)),
    ("auth", ("401", "unauthorized", "invalid api key", "authentication")),
    ("rate_limit", ("429", "rate limit", "too many requests")),
    ("timeout", ("timeout", "timed out", "etimedout")),
    ("network", ("network", "fetch", "connection", "unreachable")),
    ("bad_request", ("400", "bad request")),
    ("server", ("500", "502", "503", "internal server", "overloaded")),
]

_USER_MESSAGES: dict[ErrorKind, str] = {
    "cors": "Cross-origin request blocked, check the API base URL configuration",
    "auth": "API key is invalid or expired",
    "rate_limit": "Too many requests, please retry later",
    "timeout": "Request timed out, check your network connection",
    "network": "Network connection failed, check your network status",
    "bad_request": "Invalid request parameters, check the model configuration",
    "server": "Provider server error, please retry later",
}

GENERIC_ERROR_MESSAGE = "API request failed"


def classify_error(exc: BaseException) -> ErrorKind:
    """Map a provider failure to a coarse kind.

    Structured status codes win over the exception type name, and the
    message text is only consulted when neither is conclusive.
    """
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        if status_code in _STATUS_KINDS:
            return _STATUS_KINDS[status_code]
        if status_code >= 500:
            return "server"

    exc_name = type(exc).__name__.lower()
    if "timeout" in exc_name:
        return "timeout"
    if "connection" in exc_name or "network" in exc_name:
        return "network"
    if "ratelimit" in exc_name:
        return "rate_limit"
    if "authentication" in exc_name or "permissiondenied" in exc_name:
        return "auth"

    message = str(exc).lower()
    for kind, needles in _MESSAGE_KINDS:
        if any(needle in message for needle in needles):
            return kind
    return "unknown"


def format_error_message(exc: BaseException) -> str:
    kind = classify_error(exc)
    if kind in _USER_MESSAGES:
        return _USER_MESSAGES[kind]
    return str(exc).strip() or GENERIC_ERROR_MESSAGE
