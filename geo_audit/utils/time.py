"""
UTC time helpers for GEO Audit.

Every timestamp produced by an audit is timezone-aware UTC. Audit records,
log lines and stored rows all use the ISO 8601 form with a 'Z' suffix.

Examples:
    >>> from geo_audit.utils.time import utc_timestamp, new_audit_id
    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
    >>> new_audit_id()
    '2025-11-02T08-30-45Z-3f9a1c2e'
"""

import uuid
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def utc_timestamp(dt: datetime | None = None) -> str:
    """
    Return an ISO 8601 timestamp string with 'Z' suffix.

    Args:
        dt: Optional aware datetime. Defaults to utc_now().

    Returns:
        Timestamp like "2025-11-02T08:30:45Z"
    """
    if dt is None:
        dt = utc_now()
    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_audit_id(dt: datetime | None = None) -> str:
    """
    Generate a unique, chronologically sortable audit identifier.

    The prefix is a filesystem-safe timestamp (hyphens instead of colons),
    followed by eight random hex characters so that two audits started in
    the same second never collide.

    Args:
        dt: Optional aware datetime for the prefix. Defaults to utc_now().

    Returns:
        Identifier like "2025-11-02T08-30-45Z-3f9a1c2e"

    Raises:
        ValueError: If dt is naive
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware (use timezone.utc)")

    prefix = dt.astimezone(UTC).strftime("%Y-%m-%dT%H-%M-%SZ")
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse a 'Z'-suffixed ISO 8601 timestamp into an aware datetime.

    Raises:
        ValueError: If the string lacks the 'Z' suffix or is malformed
    """
    if not timestamp_str.endswith("Z"):
        raise ValueError(f"Timestamp must end with 'Z' (UTC): {timestamp_str}")

    try:
        return datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid ISO 8601 timestamp format: {timestamp_str}") from e
