"""Turns SIRI vehicle observations into GTFS-Realtime entities."""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timezone, tzinfo
from typing import Iterable, List, Optional

from google.transit import gtfs_realtime_pb2

from .models import Schedule, Service, StopTime, Trip, VehicleObservation
from .operating import current_operating_date
from .siri_client import parse_siri_ref

logger = logging.getLogger(__name__)

NO_REPORT = "noReport"

TRIP_UPDATE_PREFIX = "SM:"
VEHICLE_POSITION_PREFIX = "VM:"


@dataclass
class Projection:
    """Entities produced from one observation; both are None when it was dropped."""
    trip_update: Optional[gtfs_realtime_pb2.FeedEntity] = None
    vehicle_position: Optional[gtfs_realtime_pb2.FeedEntity] = None


def rejection_reason(observation: VehicleObservation) -> Optional[str]:
    """
    Validate an observation before projection.

    Returns:
        Why the observation cannot be projected, or None if it is usable.
    """
    if not observation.vehicle_ref:
        return "missing vehicle reference"
    if not observation.journey_ref:
        return "missing journey reference"
    if observation.latitude is None or observation.longitude is None:
        return "missing location"
    call = observation.monitored_call
    if call is None:
        return "missing monitored call"
    if call.arrival_status == NO_REPORT or call.departure_status == NO_REPORT:
        return "monitored call reports noReport"
    return None


def match_trip(
    observation: VehicleObservation, schedule: Schedule, operating_services: Iterable[Service]
) -> Optional[Trip]:
    """Find the trip <service_id><journey_ref> under the first operating service that has one."""
    journey_ref = parse_siri_ref(observation.journey_ref)
    for service in operating_services:
        trip = schedule.trips.get(f"{service.service_id}{journey_ref}")
        if trip is not None:
            return trip
    return None


def find_stop_index(trip: Trip, observation: VehicleObservation, schedule: Schedule) -> Optional[int]:
    """Locate the monitored call in the trip by order, then stop id, then stop name."""
    call = observation.monitored_call
    stop_times = trip.stop_times

    if call.order is not None:
        for index, stop_time in enumerate(stop_times):
            if stop_time.sequence == call.order:
                return index

    if call.stop_point_ref:
        stop_id = parse_siri_ref(call.stop_point_ref)
        for index, stop_time in enumerate(stop_times):
            if stop_time.stop_id == stop_id:
                return index

    if call.stop_point_name:
        for index, stop_time in enumerate(stop_times):
            if schedule.stop_names.get(stop_time.stop_id) == call.stop_point_name:
                return index

    return None


def compute_delay(observation: VehicleObservation) -> Optional[int]:
    """Signed seconds between expected and aimed times, arrival first then departure."""
    call = observation.monitored_call
    if call.aimed_arrival_time is not None and call.expected_arrival_time is not None:
        return int((call.expected_arrival_time - call.aimed_arrival_time).total_seconds())
    if call.aimed_departure_time is not None and call.expected_departure_time is not None:
        return int((call.expected_departure_time - call.aimed_departure_time).total_seconds())
    return None


def is_stopped(observation: VehicleObservation, trip: Trip, stop_index: Optional[int]) -> bool:
    """A vehicle is stopped when flagged at stop, or when its call is the terminus and destination."""
    call = observation.monitored_call
    if call.vehicle_at_stop:
        return True
    if stop_index is None or stop_index < len(trip.stop_times) - 1:
        return False
    if not call.stop_point_ref or not observation.destination_ref:
        return False
    return parse_siri_ref(call.stop_point_ref) == parse_siri_ref(observation.destination_ref)


def service_day_start(service_date, zone: tzinfo) -> datetime:
    """
    GTFS times count from noon minus twelve hours on the service date.

    The twelve hours are elapsed time, not wall-clock time: on DST change
    days the anchor is 23:00 or 01:00 local, not midnight.
    """
    noon = datetime.combine(service_date, time(12), tzinfo=zone)
    return datetime.fromtimestamp(noon.timestamp() - 12 * 3600, zone)


def project(
    observation: VehicleObservation,
    schedule: Schedule,
    operating_services: Iterable[Service],
    local_timezone: Optional[tzinfo] = None,
) -> Projection:
    """
    Project one observation onto its scheduled trip.

    Args:
        observation: Decoded vehicle activity.
        schedule: Current GTFS schedule.
        operating_services: Services operating today, in matching order.
        local_timezone: Operator zone used to anchor scheduled times;
            defaults to the zone of the observation timestamp.

    Returns:
        The trip-update and vehicle-position entities. The trip update is
        None when the call carries no aimed/expected pair; both are None
        when the observation is invalid or matches no trip.
    """
    reason = rejection_reason(observation)
    if reason is not None:
        logger.debug(f"Dropping observation of vehicle {observation.vehicle_ref!r}: {reason}")
        return Projection()

    trip = match_trip(observation, schedule, operating_services)
    if trip is None:
        logger.warning(f"Failed to guess trip for vehicle '{observation.vehicle_ref}', skipping.")
        return Projection()

    recorded_at = observation.recorded_at or datetime.now(timezone.utc)
    zone = local_timezone or recorded_at.tzinfo or timezone.utc
    timestamp = int(recorded_at.timestamp())

    stop_index = find_stop_index(trip, observation, schedule)
    stopped = is_stopped(observation, trip, stop_index)
    if stop_index is None:
        logger.debug(f"No stop of trip {trip.trip_id} matches the call of vehicle {observation.vehicle_ref}")
        remaining: List[StopTime] = []
    else:
        remaining = trip.stop_times[stop_index if stopped else stop_index + 1:]

    projection = Projection()
    delay = compute_delay(observation)
    if delay is not None:
        day_start = service_day_start(current_operating_date(recorded_at.astimezone(zone)), zone)
        projection.trip_update = _build_trip_update(observation, trip, remaining, delay, timestamp, day_start)
    projection.vehicle_position = _build_vehicle_position(observation, trip, remaining, stopped, timestamp)
    return projection


def _fill_trip_descriptor(descriptor, trip: Trip) -> None:
    descriptor.trip_id = trip.trip_id
    descriptor.route_id = trip.route_id
    descriptor.direction_id = trip.direction_id
    descriptor.schedule_relationship = gtfs_realtime_pb2.TripDescriptor.SCHEDULED


def _fill_vehicle_descriptor(descriptor, observation: VehicleObservation) -> None:
    descriptor.id = observation.vehicle_ref
    if observation.destination_name:
        descriptor.label = observation.destination_name


def _build_trip_update(
    observation: VehicleObservation,
    trip: Trip,
    remaining: List[StopTime],
    delay: int,
    timestamp: int,
    day_start: datetime,
) -> gtfs_realtime_pb2.FeedEntity:
    entity = gtfs_realtime_pb2.FeedEntity()
    entity.id = f"{TRIP_UPDATE_PREFIX}{trip.trip_id}"
    trip_update = entity.trip_update
    _fill_trip_descriptor(trip_update.trip, trip)
    _fill_vehicle_descriptor(trip_update.vehicle, observation)
    trip_update.timestamp = timestamp
    trip_update.delay = delay

    base = int(day_start.timestamp())
    for stop_time in remaining:
        update = trip_update.stop_time_update.add()
        update.stop_sequence = stop_time.sequence
        update.stop_id = stop_time.stop_id
        update.schedule_relationship = gtfs_realtime_pb2.TripUpdate.StopTimeUpdate.SCHEDULED

        arrival = stop_time.arrival_time if stop_time.arrival_time is not None else stop_time.departure_time
        departure = stop_time.departure_time if stop_time.departure_time is not None else stop_time.arrival_time
        update.arrival.delay = delay
        update.departure.delay = delay
        if arrival is not None:
            update.arrival.time = base + arrival + delay
        if departure is not None:
            update.departure.time = base + departure + delay
    return entity


def _build_vehicle_position(
    observation: VehicleObservation,
    trip: Trip,
    remaining: List[StopTime],
    stopped: bool,
    timestamp: int,
) -> gtfs_realtime_pb2.FeedEntity:
    entity = gtfs_realtime_pb2.FeedEntity()
    entity.id = f"{VEHICLE_POSITION_PREFIX}{observation.vehicle_ref}"
    vehicle = entity.vehicle
    _fill_trip_descriptor(vehicle.trip, trip)
    _fill_vehicle_descriptor(vehicle.vehicle, observation)
    vehicle.timestamp = timestamp
    vehicle.position.latitude = observation.latitude
    vehicle.position.longitude = observation.longitude
    if observation.bearing is not None:
        vehicle.position.bearing = observation.bearing
    vehicle.current_status = (
        gtfs_realtime_pb2.VehiclePosition.STOPPED_AT
        if stopped
        else gtfs_realtime_pb2.VehiclePosition.IN_TRANSIT_TO
    )
    if remaining:
        vehicle.current_stop_sequence = remaining[0].sequence
        vehicle.stop_id = remaining[0].stop_id
    return entity
