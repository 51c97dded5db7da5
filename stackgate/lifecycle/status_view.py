"""Shared read-only status view published by lifecycle drivers."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Sequence
import itertools
import threading
from typing import Any

from stackgate.domain import LifecycleState, ServiceStatusSnapshot, domain_build_transition_event


class ServiceStatusView:
    """Latest snapshot per service plus a bounded transition history.

    Drivers publish from the event loop; API handlers may read from worker
    threads, so reads and writes are guarded by a lock. Waiters are woken on
    every publish through a replaced-on-notify `asyncio.Event`.
    """

    def __init__(self, service_names: Sequence[str], history_limit: int = 2000):
        """Initialize empty view for a fixed set of services.

        Args:
            service_names: Service names in declaration order.
            history_limit: Maximum retained transition events.

        Raises:
            ValueError: Raised when history_limit is not positive.
        """

        if history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        self._service_names = tuple(service_names)
        self._snapshots: dict[str, ServiceStatusSnapshot] = {}
        self._ever_ready: set[str] = set()
        self._transitions: deque[dict[str, object]] = deque(maxlen=history_limit)
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()
        self._changed = asyncio.Event()

    def status_service_names(self) -> tuple[str, ...]:
        return self._service_names

    def status_publish(
        self,
        snapshot: ServiceStatusSnapshot,
        from_state: LifecycleState | None = None,
        details: dict[str, Any] | None = None,
    ) -> dict[str, object] | None:
        """Store a snapshot, record a transition event if given, and wake waiters.

        Args:
            snapshot: New snapshot for one service.
            from_state: Previous state when the publish reflects a transition.
            details: Optional structured details stored on the transition event.

        Returns:
            dict[str, object] | None: Recorded transition event, if any.

        Raises:
            KeyError: Raised when the service is not part of this view.
        """

        if snapshot.service_name not in self._service_names:
            raise KeyError(snapshot.service_name)

        event: dict[str, object] | None = None
        with self._lock:
            self._snapshots[snapshot.service_name] = snapshot
            if snapshot.state is LifecycleState.READY:
                self._ever_ready.add(snapshot.service_name)
            if from_state is not None:
                event = domain_build_transition_event(
                    service_name=snapshot.service_name,
                    from_state=from_state.value,
                    to_state=snapshot.state.value,
                    sequence=next(self._sequence),
                    details=details,
                )
                self._transitions.append(event)

        previous_event, self._changed = self._changed, asyncio.Event()
        previous_event.set()
        return event

    def status_get(self, service_name: str) -> ServiceStatusSnapshot | None:
        with self._lock:
            return self._snapshots.get(service_name)

    def status_list(self) -> tuple[ServiceStatusSnapshot, ...]:
        """Return published snapshots in declaration order.

        Returns:
            tuple[ServiceStatusSnapshot, ...]: Snapshots for services that published at least once.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        with self._lock:
            return tuple(self._snapshots[name] for name in self._service_names if name in self._snapshots)

    def status_state_of(self, service_name: str) -> LifecycleState | None:
        snapshot = self.status_get(service_name)
        return snapshot.state if snapshot is not None else None

    def status_has_been_ready(self, service_name: str) -> bool:
        """Return whether a service was observed `ready` at least once."""

        with self._lock:
            return service_name in self._ever_ready

    def status_transitions(self, service_name: str | None = None) -> list[dict[str, object]]:
        """Return recorded transition events, optionally for one service.

        Args:
            service_name: Optional service filter.

        Returns:
            list[dict[str, object]]: Events ordered by sequence number.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        with self._lock:
            events = list(self._transitions)
        if service_name is None:
            return events
        return [event for event in events if event["service"] == service_name]

    def status_counts_by_state(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for snapshot in self.status_list():
            counts[snapshot.state.value] = counts.get(snapshot.state.value, 0) + 1
        return counts

    def status_change_event(self) -> asyncio.Event:
        """Return the event the next publish will set.

        Callers that inspect state and then wait must take this event before
        inspecting, so a publish landing in between is not missed.
        """

        return self._changed

    async def status_wait_for_change(
        self,
        timeout_seconds: float | None = None,
        change_event: asyncio.Event | None = None,
    ) -> bool:
        """Suspend until the next publish or until the timeout elapses.

        Args:
            timeout_seconds: Maximum wait; None waits indefinitely.
            change_event: Event obtained earlier from `status_change_event`;
                defaults to the current one.

        Returns:
            bool: True when woken by a publish, False on timeout.

        Raises:
            asyncio.CancelledError: Raised when the waiting task is cancelled.
        """

        changed_event = change_event if change_event is not None else self._changed
        try:
            await asyncio.wait_for(changed_event.wait(), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            return False
        return True
