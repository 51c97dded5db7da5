"""Shared transition timeline event helper utilities."""

from __future__ import annotations

from datetime import datetime, timezone
import time
from typing import Any


def domain_utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string.

    Returns:
        str: Current UTC timestamp.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return datetime.now(timezone.utc).isoformat()


def domain_build_transition_event(
    service_name: str,
    from_state: str,
    to_state: str,
    sequence: int,
    details: dict[str, Any] | None = None,
) -> dict[str, object]:
    """Build one structured lifecycle transition event payload.

    Args:
        service_name: Service that transitioned.
        from_state: Previous lifecycle state value.
        to_state: New lifecycle state value.
        sequence: Process-wide monotonically increasing event number.
        details: Optional structured details object.

    Returns:
        dict[str, object]: Structured transition event.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    event_payload: dict[str, object] = {
        "service": service_name,
        "from_state": from_state,
        "to_state": to_state,
        "sequence": sequence,
        "at_utc": domain_utc_now_iso(),
        "monotonic": time.monotonic(),
    }
    if details is not None:
        event_payload["details"] = details
    return event_payload
