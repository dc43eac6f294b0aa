"""Data models for the SIRI-VM to GTFS-Realtime bridge."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple


@dataclass
class Service:
    """An operating-day calendar from calendar.txt / calendar_dates.txt."""
    service_id: str
    days: Tuple[bool, bool, bool, bool, bool, bool, bool]  # Monday first
    start_date: date
    end_date: date
    included_days: List[date] = field(default_factory=list)
    excluded_days: List[date] = field(default_factory=list)


@dataclass
class StopTime:
    """A scheduled call of a trip at a stop."""
    sequence: int
    stop_id: str
    arrival_time: Optional[int] = None  # Seconds since service-day midnight
    departure_time: Optional[int] = None


@dataclass
class Trip:
    """A scheduled trip with its stop times sorted by sequence."""
    trip_id: str
    service_id: str
    route_id: str
    direction_id: int
    stop_times: List[StopTime] = field(default_factory=list)


@dataclass
class Schedule:
    """All services and trips imported from one GTFS static resource."""
    services: Dict[str, Service]
    trips: Dict[str, Trip]
    stop_names: Dict[str, str] = field(default_factory=dict)  # stop_id -> stop_name
    last_modified: Optional[str] = None
    imported_at: Optional[datetime] = None


@dataclass
class MonitoredCall:
    """The current/next stop call of a monitored vehicle."""
    stop_point_ref: Optional[str] = None
    stop_point_name: Optional[str] = None
    order: Optional[int] = None
    vehicle_at_stop: bool = False
    aimed_arrival_time: Optional[datetime] = None
    expected_arrival_time: Optional[datetime] = None
    aimed_departure_time: Optional[datetime] = None
    expected_departure_time: Optional[datetime] = None
    arrival_status: Optional[str] = None
    departure_status: Optional[str] = None


@dataclass
class VehicleObservation:
    """One vehicle activity decoded from a SIRI VehicleMonitoring delivery."""
    vehicle_ref: Optional[str] = None
    journey_ref: Optional[str] = None
    line_ref: Optional[str] = None
    recorded_at: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    bearing: Optional[float] = None
    destination_ref: Optional[str] = None
    destination_name: Optional[str] = None
    monitored_call: Optional[MonitoredCall] = None
