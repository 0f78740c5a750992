"""Centralized secret redaction for log output.

Two sources of secret values: well-known credential env vars, and every
value the Secret Broker fetches at deploy time (registered via
``register_secret``).
"""

import logging
import os
import re

# Env vars whose values should be redacted from all output
_SECRET_ENV_VARS = [
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
]
_SECRET_ENV_PREFIX = "STACKDOCK_SECRET_"

_MIN_SECRET_LENGTH = 8  # skip short env values to avoid false positives

# Values registered at runtime are always redacted, whatever their length.
_registered: set[str] = set()


def _collect_secret_values() -> set[str]:
    values = set()
    for var, val in os.environ.items():
        if var in _SECRET_ENV_VARS or var.startswith(_SECRET_ENV_PREFIX):
            if len(val) >= _MIN_SECRET_LENGTH:
                values.add(val)
    values.update(v for v in _registered if v)
    return values


def _build_patterns(values: set[str]) -> list[re.Pattern]:
    # Sort by length descending so longer values match first
    return [re.compile(re.escape(v)) for v in sorted(values, key=len, reverse=True)]


# Lazy-initialized module cache
_patterns: list[re.Pattern] | None = None


def _get_patterns() -> list[re.Pattern]:
    global _patterns
    if _patterns is None:
        _patterns = _build_patterns(_collect_secret_values())
    return _patterns


def register_secret(value: str):
    """Redact value from all subsequent log output."""
    global _patterns
    if value and value not in _registered:
        _registered.add(value)
        _patterns = None


def clear_registered_secrets():
    """Forget runtime-registered values.

    Registered values stay redacted for the life of the process, so error lines
    logged after a failed deploy are still scrubbed.
    """
    global _patterns
    _registered.clear()
    _patterns = None


def redact_secrets(text: str) -> str:
    """Replace known secret values with '***'."""
    return _apply(text, _get_patterns())


def _apply(text: str, patterns: list[re.Pattern]) -> str:
    for p in patterns:
        text = p.sub("***", text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Logging filter that replaces secret values in log records with '***'.

    Attach to handlers so records from every logger pass through it.
    Handles both f-string messages (msg is pre-formatted) and
    %-style messages (msg + args).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        patterns = _get_patterns()
        if patterns:
            record.msg = _apply(str(record.msg), patterns)
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {k: _apply(v, patterns) if isinstance(v, str) else v for k, v in record.args.items()}
                elif isinstance(record.args, tuple):
                    record.args = tuple(_apply(a, patterns) if isinstance(a, str) else a for a in record.args)
        return True
