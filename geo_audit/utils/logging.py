"""
Structured JSON logging for GEO Audit.

Every log line is a single JSON object written to stderr so that stdout
stays free for audit output. Lines carry:
- timestamp: UTC ISO 8601 with 'Z' suffix
- level and component (the logger name)
- context: structured fields passed via extra={"context": {...}}
- audit_id: the audit invocation a line belongs to, when known

Provider credentials travel in Authorization headers (HTTP Basic for
DataForSEO, Bearer for Tavily). SecretRedactingFilter masks both forms as
well as raw Tavily keys before anything reaches a handler.

Examples:
    >>> from geo_audit.utils.logging import setup_logging, log_with_context
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger("geo_audit.audit.orchestrator")
    >>> log_with_context(logger, logging.INFO, "Fan-out started",
    ...                  context={"providers": 5}, audit_id="2025-...")
"""

import json
import logging
import re
import sys
from typing import Any

from geo_audit.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """Format log records as one-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if hasattr(record, "audit_id"):
            log_entry["audit_id"] = record.audit_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class SecretRedactingFilter(logging.Filter):
    """
    Mask credentials that could leak into log messages.

    Covers HTTP Basic and Bearer authorization values, Tavily keys
    ("tvly-...") and any other long opaque token. Only the last four
    characters survive:
        "Basic bG9naW46cGFzc3dvcmQ=" -> "Basic ***cmQ="
        "tvly-abcdef1234567890" -> "tvly-...7890"
    """

    SECRET_PATTERNS = [
        (re.compile(r"\bBasic\s+[A-Za-z0-9+/=]{8,}"), "Basic ***{last4}"),
        (re.compile(r"\bBearer\s+[A-Za-z0-9_.-]{12,}"), "Bearer ***{last4}"),
        (re.compile(r"\btvly-[A-Za-z0-9_-]{8,}\b"), "tvly-...{last4}"),
        (re.compile(r"\b[A-Za-z0-9_-]{32,}\b"), "***{last4}"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redact_secrets(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._redact_secrets(str(v)) for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_secrets(str(arg)) for arg in record.args
                )

        if hasattr(record, "context") and isinstance(record.context, dict):
            record.context = self._redact_dict(record.context)

        return True

    def _redact_secrets(self, text: str) -> str:
        for pattern, template in self.SECRET_PATTERNS:

            def redact_match(match: re.Match) -> str:
                return template.format(last4=match.group(0)[-4:])

            text = pattern.sub(redact_match, text)

        return text

    def _redact_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, str):
                result[key] = self._redact_secrets(value)
            elif isinstance(value, dict):
                result[key] = self._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    self._redact_secrets(v) if isinstance(v, str) else v for v in value
                ]
            else:
                result[key] = value
        return result


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure JSON logging on stderr for the whole process.

    Args:
        verbose: DEBUG level when True, INFO otherwise.
        quiet_logs: Raise the threshold to WARNING unless verbose is set.
            Used by the CLI in human mode so tables are not interleaved
            with JSON lines.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactingFilter())
    root_logger.addHandler(handler)

    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    audit_id: str | None = None,
) -> None:
    """
    Log a message with structured context and an optional audit id.

    Equivalent to logger.log(level, message, extra={...}).

    Example:
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Provider call completed",
        ...     context={"provider": "chatgpt", "latency_ms": 812},
        ...     audit_id="2025-11-02T08-30-00Z-3f9a1c2e",
        ... )
    """
    extra: dict[str, Any] = {}

    if context is not None:
        extra["context"] = context

    if audit_id is not None:
        extra["audit_id"] = audit_id

    logger.log(level, message, extra=extra or None)
