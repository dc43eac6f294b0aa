"""Rate-limited round-robin polling of SIRI vehicle monitoring."""

import logging
import threading
import time
from datetime import tzinfo
from typing import Callable, Dict, List, Optional, Tuple

from .projector import project
from .resource import ResourceRefreshController
from .siri_client import SiriClient, SiriClientError, parse_siri_ref
from .store import RealtimeStore

logger = logging.getLogger(__name__)


class SiriPoller:
    """
    Visits the operating lines one at a time, forever.

    Every network call is spaced by at least the rate limit, measured from
    the start of the previous call. A line whose fetch fails is retried
    once; a second consecutive failure skips it.
    """

    def __init__(
        self,
        client: SiriClient,
        controller: ResourceRefreshController,
        store: RealtimeStore,
        rate_limit_seconds: float = 2.5,
        lines_refresh_seconds: float = 7200,
        local_timezone: Optional[tzinfo] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._controller = controller
        self._store = store
        self._rate_limit_seconds = rate_limit_seconds
        self._lines_refresh_seconds = lines_refresh_seconds
        self._local_timezone = local_timezone
        self._monotonic = monotonic
        self._cursor = 0
        self._retry_available = True
        self._monitored_lines: Optional[Dict[str, str]] = None  # route_id -> SIRI LineRef
        self._monitored_lines_at: Optional[float] = None
        self._last_call_at: Optional[float] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def cursor(self) -> int:
        return self._cursor

    def polled_lines(self) -> List[Tuple[str, str]]:
        """
        Lines to visit, as (route_id, line_ref) pairs.

        Operating routes are intersected with the monitored lines once
        discovery has succeeded; before that every operating route is
        polled with its route id as line reference.
        """
        route_ids = self._controller.snapshot.operating_route_ids
        if self._monitored_lines is None:
            return [(route_id, route_id) for route_id in route_ids]
        return [
            (route_id, self._monitored_lines[route_id])
            for route_id in route_ids
            if route_id in self._monitored_lines
        ]

    def refresh_monitored_lines(self) -> bool:
        """Refresh the monitored lines, keeping the previous list on failure."""
        logger.info("Updating monitored lines from SIRI service")
        try:
            line_refs = self._client.fetch_monitored_lines()
        except SiriClientError as e:
            logger.error(f"Failed to update monitored lines, using previous ones for now: {e}")
            return False
        # Only a successful discovery postpones the next one
        self._monitored_lines_at = self._monotonic()
        self._monitored_lines = {parse_siri_ref(line_ref): line_ref for line_ref in line_refs}
        return True

    def poll_once(self) -> Optional[bool]:
        """
        Fetch the line under the cursor and store its projected entities.

        Returns:
            True on success, False on failure, None when no line operates.
        """
        lines = self.polled_lines()
        if not lines:
            logger.debug("No operating line to poll")
            return None

        self._cursor %= len(lines)
        route_id, line_ref = lines[self._cursor]
        logger.debug(f"Fetching monitored vehicles for line '{route_id}'")

        try:
            observations = self._client.fetch_vehicle_observations(line_ref)
        except SiriClientError as e:
            logger.error(f"Failed to fetch monitored vehicles for line '{route_id}': {e}")
            if self._retry_available:
                logger.warning(f"Will retry line '{route_id}'")
                self._retry_available = False
            else:
                logger.warning(f"Skipping line '{route_id}'")
                self._cursor += 1
                self._retry_available = True
            return False

        self._cursor += 1
        self._retry_available = True
        self._store_observations(observations)
        return True

    def start(self) -> None:
        """Start the background polling thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="siri-poller", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Signal the polling thread to stop."""
        self._stop_event.set()

    def _store_observations(self, observations) -> None:
        snapshot = self._controller.snapshot
        for observation in observations:
            projection = project(
                observation,
                snapshot.schedule,
                snapshot.operating_services,
                local_timezone=self._local_timezone,
            )
            if projection.trip_update is not None:
                self._store.put_trip_update(projection.trip_update)
            if projection.vehicle_position is not None:
                self._store.put_vehicle_position(projection.vehicle_position)

    def _lines_due(self) -> bool:
        if self._monitored_lines_at is None:
            return True
        return self._monotonic() - self._monitored_lines_at >= self._lines_refresh_seconds

    def _wait_for_rate_limit(self) -> bool:
        """Sleep out the rest of the spacing; False when stopped meanwhile."""
        if self._last_call_at is not None:
            remaining = self._rate_limit_seconds - (self._monotonic() - self._last_call_at)
            if remaining > 0 and self._stop_event.wait(timeout=remaining):
                return False
        self._last_call_at = self._monotonic()
        return not self._stop_event.is_set()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                if self._lines_due():
                    if not self._wait_for_rate_limit():
                        break
                    self.refresh_monitored_lines()
                if not self._wait_for_rate_limit():
                    break
                self.poll_once()
            except Exception:
                logger.exception("SIRI polling iteration failed")
