"""Custom structlog processors"""

import re
import socket
from typing import Any

from structlog.types import EventDict, WrappedLogger

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = ("password", "token", "secret", "authorization", "credentials")

# user:password@ in URLs that git echoes on stderr
_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)
_BASIC_HEADER = re.compile(r"\bBasic\s+[A-Za-z0-9+/=]{8,}")


class ServiceContext:
    """Stamp every event with application name, environment and host"""

    def __init__(self, service: str, environment: str):
        self.service = service
        self.environment = environment
        try:
            self.hostname = socket.gethostname()
        except OSError:
            self.hostname = None

    def __call__(
        self, logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict["app"] = self.service
        event_dict["environment"] = self.environment
        if self.hostname:
            event_dict["hostname"] = self.hostname
        return event_dict


def _is_sensitive(key: Any) -> bool:
    lower_key = str(key).lower()
    return any(sensitive in lower_key for sensitive in SENSITIVE_KEYS)


def _scrub_text(value: str) -> str:
    value = _URL_CREDENTIALS.sub(rf"\g<scheme>{REDACTED}@", value)
    return _BASIC_HEADER.sub(f"Basic {REDACTED}", value)


def _sanitize(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if _is_sensitive(k) else _sanitize(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    if isinstance(value, str):
        return _scrub_text(value)
    return value


def sanitize_sensitive_data(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask credential-like keys and credentials embedded in strings"""
    return _sanitize(event_dict)


def set_log_severity(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Severity field for log aggregation systems"""
    if "level" in event_dict:
        event_dict["severity"] = str(event_dict["level"]).upper()
    return event_dict
