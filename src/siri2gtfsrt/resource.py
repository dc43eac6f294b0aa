"""Keeps the GTFS static schedule current without interrupting service."""

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Optional, Tuple

import requests

from .gtfs_loader import ResourceError, load_resource
from .models import Schedule, Service
from .operating import (
    OPERATING_DAY_CUTOFF_HOUR,
    current_operating_date,
    get_operating_route_ids,
    get_operating_services,
)

logger = logging.getLogger(__name__)


class ControllerState(enum.Enum):
    FRESH = "fresh"
    CHECKING = "checking"


@dataclass(frozen=True)
class ScheduleSnapshot:
    """A schedule together with its operating set for one operating date."""
    schedule: Schedule
    operating_date: date
    operating_services: Tuple[Service, ...]
    operating_route_ids: Tuple[str, ...]


def build_snapshot(schedule: Schedule, operating_date: date) -> ScheduleSnapshot:
    """Derive the operating set of a schedule for a date."""
    return ScheduleSnapshot(
        schedule=schedule,
        operating_date=operating_date,
        operating_services=tuple(get_operating_services(schedule, operating_date)),
        operating_route_ids=tuple(get_operating_route_ids(schedule, operating_date)),
    )


class ResourceRefreshController:
    """
    Owns the current schedule snapshot and the loops that refresh it.

    A staleness loop probes the resource location on a fixed interval and
    reloads the schedule when its Last-Modified marker changes. A rollover
    loop recomputes the operating set once a day at the cutoff hour.
    Readers only ever see complete snapshots; each swap replaces the whole
    snapshot at once.
    """

    def __init__(
        self,
        resource_url: str,
        timezone: tzinfo,
        check_interval_seconds: float = 300,
        timeout_seconds: float = 30,
        loader: Callable[..., Schedule] = load_resource,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._resource_url = resource_url
        self._timezone = timezone
        self._check_interval_seconds = check_interval_seconds
        self._timeout_seconds = timeout_seconds
        self._loader = loader
        self._clock = clock or (lambda: datetime.now(self._timezone))
        self._snapshot: Optional[ScheduleSnapshot] = None
        self._state = ControllerState.FRESH
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads = []

    @property
    def snapshot(self) -> ScheduleSnapshot:
        """Return the current snapshot."""
        with self._lock:
            if self._snapshot is None:
                raise RuntimeError("GTFS resource has not been loaded yet")
            return self._snapshot

    @property
    def state(self) -> ControllerState:
        return self._state

    def load_initial(self) -> ScheduleSnapshot:
        """
        Perform the first resource load.

        Failures propagate: without a schedule the service cannot start.
        """
        schedule = self._loader(self._resource_url, timeout=self._timeout_seconds)
        return self._swap(schedule)

    def check_staleness(self) -> bool:
        """
        Probe the resource and reload it when it changed.

        Probe and reload failures keep the current schedule in force.

        Returns:
            True if a new schedule was swapped in.
        """
        logger.info("Checking for GTFS resource staleness")
        self._state = ControllerState.CHECKING
        try:
            try:
                response = requests.head(
                    self._resource_url, timeout=self._timeout_seconds, allow_redirects=True
                )
            except requests.RequestException as e:
                logger.error(f"GTFS staleness probe failed: {e}")
                return False

            if not response.ok:
                logger.warning(f"Unable to fetch GTFS staleness data (HTTP {response.status_code})")
                return False

            last_modified = response.headers.get("Last-Modified")
            if last_modified is None:
                logger.warning("GTFS staleness probe returned no Last-Modified header, keeping current resource")
                return False
            if last_modified == self.snapshot.schedule.last_modified:
                logger.info("GTFS resource is up-to-date")
                return False

            logger.info("GTFS resource is stale, requesting update")
            try:
                schedule = self._loader(self._resource_url, timeout=self._timeout_seconds)
            except ResourceError as e:
                logger.error(f"Failed to update GTFS resource, keeping the current one: {e}")
                return False

            with self._write_lock:
                self._swap(schedule)
            return True
        finally:
            self._state = ControllerState.FRESH

    def roll_over(self) -> ScheduleSnapshot:
        """Recompute the operating set of the current schedule for the current operating date."""
        with self._write_lock:
            snapshot = self._swap(self.snapshot.schedule)
        logger.info(f"Rolled operating set over to {snapshot.operating_date}")
        return snapshot

    def seconds_until_rollover(self) -> float:
        """Seconds until the next daily cutoff in operator-local time."""
        now = self._clock()
        rollover = now.replace(hour=OPERATING_DAY_CUTOFF_HOUR, minute=0, second=0, microsecond=0)
        if rollover <= now:
            rollover += timedelta(days=1)
        # Elapsed seconds, so DST nights last 23 or 25 hours
        return rollover.timestamp() - now.timestamp()

    def start(self) -> None:
        """Start the staleness and rollover threads."""
        if any(thread.is_alive() for thread in self._threads):
            return
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._staleness_loop, name="gtfs-staleness", daemon=True),
            threading.Thread(target=self._rollover_loop, name="gtfs-rollover", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        """Signal both threads to stop."""
        self._stop_event.set()

    def _swap(self, schedule: Schedule) -> ScheduleSnapshot:
        snapshot = build_snapshot(schedule, current_operating_date(self._clock()))
        with self._lock:
            self._snapshot = snapshot
        logger.info(
            f"Operating on {snapshot.operating_date}: {len(snapshot.operating_services)} services, "
            f"{len(snapshot.operating_route_ids)} lines"
        )
        return snapshot

    def _staleness_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._check_interval_seconds):
            try:
                self.check_staleness()
            except Exception:
                logger.exception("GTFS update routine failed")

    def _rollover_loop(self) -> None:
        while not self._stop_event.wait(timeout=self.seconds_until_rollover()):
            try:
                self.roll_over()
            except Exception:
                logger.exception("Operating set rollover failed")
