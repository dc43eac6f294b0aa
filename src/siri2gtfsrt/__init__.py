"""siri2gtfsrt - SIRI-VM vehicle monitoring to GTFS-Realtime bridge."""

__version__ = "0.1.0"

from .models import Service, StopTime, Trip, Schedule, MonitoredCall, VehicleObservation
from .gtfs_loader import GTFSLoader, ResourceError, ResourceImportError, load_resource
from .operating import get_operating_services, get_operating_route_ids, current_operating_date
from .resource import ResourceRefreshController, ScheduleSnapshot
from .siri_client import SiriClient, SiriClientError
from .poller import SiriPoller
from .projector import Projection, project
from .store import RealtimeStore, StoreSweeper

__all__ = [
    "GTFSLoader",
    "ResourceError",
    "ResourceImportError",
    "load_resource",
    "get_operating_services",
    "get_operating_route_ids",
    "current_operating_date",
    "ResourceRefreshController",
    "ScheduleSnapshot",
    "SiriClient",
    "SiriClientError",
    "SiriPoller",
    "Projection",
    "project",
    "RealtimeStore",
    "StoreSweeper",
    "Service",
    "StopTime",
    "Trip",
    "Schedule",
    "MonitoredCall",
    "VehicleObservation",
]
