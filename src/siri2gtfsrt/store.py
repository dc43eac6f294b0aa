"""Thread-safe store of GTFS-Realtime entities with TTL eviction."""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from google.transit import gtfs_realtime_pb2

logger = logging.getLogger(__name__)


def last_relevant_time(entity: gtfs_realtime_pb2.FeedEntity) -> int:
    """
    Effective time of a trip update for eviction purposes.

    This is the projected arrival at the last remaining stop, or the
    entity timestamp when no remaining stop has a projected time.
    """
    trip_update = entity.trip_update
    if trip_update.stop_time_update:
        last_stop = trip_update.stop_time_update[-1]
        if last_stop.arrival.time:
            return last_stop.arrival.time
        if last_stop.departure.time:
            return last_stop.departure.time
    return trip_update.timestamp


class RealtimeStore:
    """
    Holds the latest trip updates and vehicle positions.

    Trip updates are keyed by trip id, vehicle positions by vehicle id,
    so repeated observations overwrite earlier ones. Stored entities are
    never mutated: writers always put a new message.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._trip_updates: Dict[str, gtfs_realtime_pb2.FeedEntity] = {}
        self._vehicle_positions: Dict[str, gtfs_realtime_pb2.FeedEntity] = {}

    def put_trip_update(self, entity: gtfs_realtime_pb2.FeedEntity) -> None:
        key = entity.trip_update.trip.trip_id
        with self._lock:
            self._trip_updates[key] = entity

    def put_vehicle_position(self, entity: gtfs_realtime_pb2.FeedEntity) -> None:
        key = entity.vehicle.vehicle.id
        with self._lock:
            self._vehicle_positions[key] = entity

    def get_trip_update(self, trip_id: str) -> Optional[gtfs_realtime_pb2.FeedEntity]:
        with self._lock:
            return self._trip_updates.get(trip_id)

    def get_vehicle_position(self, vehicle_id: str) -> Optional[gtfs_realtime_pb2.FeedEntity]:
        with self._lock:
            return self._vehicle_positions.get(vehicle_id)

    def trip_updates(self) -> List[gtfs_realtime_pb2.FeedEntity]:
        """Snapshot of all trip-update entities."""
        with self._lock:
            return list(self._trip_updates.values())

    def vehicle_positions(self) -> List[gtfs_realtime_pb2.FeedEntity]:
        """Snapshot of all vehicle-position entities."""
        with self._lock:
            return list(self._vehicle_positions.values())

    def sweep(self, now: float, threshold_seconds: float) -> Tuple[int, int]:
        """
        Evict entities older than the threshold.

        A vehicle position is kept while its trip update still projects a
        final arrival in the future, whatever its own age.

        Args:
            now: Current epoch time in seconds.
            threshold_seconds: Maximum age of an entity.

        Returns:
            Number of evicted trip updates and vehicle positions.
        """
        with self._lock:
            stale_trips = [
                trip_id
                for trip_id, entity in self._trip_updates.items()
                if now - last_relevant_time(entity) > threshold_seconds
            ]
            for trip_id in stale_trips:
                del self._trip_updates[trip_id]

            stale_vehicles = []
            for vehicle_id, entity in self._vehicle_positions.items():
                trip_update = self._trip_updates.get(entity.vehicle.trip.trip_id)
                if trip_update is not None and last_relevant_time(trip_update) > now:
                    continue
                if now - entity.vehicle.timestamp > threshold_seconds:
                    stale_vehicles.append(vehicle_id)
            for vehicle_id in stale_vehicles:
                del self._vehicle_positions[vehicle_id]

        return len(stale_trips), len(stale_vehicles)


class StoreSweeper:
    """Background thread that periodically sweeps a RealtimeStore."""

    def __init__(
        self,
        store: RealtimeStore,
        interval_seconds: float = 60,
        threshold_seconds: float = 600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._interval_seconds = interval_seconds
        self._threshold_seconds = threshold_seconds
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_once(self) -> Tuple[int, int]:
        trips, vehicles = self._store.sweep(self._clock(), self._threshold_seconds)
        logger.info(f"Swept {trips} trip updates and {vehicles} vehicle positions")
        return trips, vehicles

    def start(self) -> None:
        """Start the background sweep thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="store-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Signal the sweep thread to stop."""
        self._stop_event.set()

    def _run_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._interval_seconds):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Store sweep failed")
