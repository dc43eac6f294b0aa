"""Operating-day resolution over a GTFS schedule."""

from datetime import date, datetime, timedelta
from typing import List

from .models import Schedule, Service

# Local clock times before this hour still belong to the previous operating day.
OPERATING_DAY_CUTOFF_HOUR = 3


def is_service_operating(service: Service, day: date) -> bool:
    """
    Tell whether a service runs on a given date.

    Calendar exceptions override both the weekly pattern and the validity
    range. Inclusion is checked first, so a date listed as both added and
    removed resolves to operating.
    """
    if day in service.included_days:
        return True
    if day in service.excluded_days:
        return False
    if day < service.start_date or day > service.end_date:
        return False
    return service.days[day.weekday()]


def get_operating_services(schedule: Schedule, day: date) -> List[Service]:
    """Return the services operating on a date, ordered by service id."""
    return [
        service
        for service_id, service in sorted(schedule.services.items())
        if is_service_operating(service, day)
    ]


def get_operating_route_ids(schedule: Schedule, day: date) -> List[str]:
    """Return the sorted, de-duplicated route ids of trips operating on a date."""
    service_ids = {service.service_id for service in get_operating_services(schedule, day)}
    route_ids = {trip.route_id for trip in schedule.trips.values() if trip.service_id in service_ids}
    return sorted(route_ids)


def current_operating_date(now: datetime) -> date:
    """
    Resolve the operating date for an operator-local timestamp.

    Args:
        now: Timestamp expressed in the operator's local time zone.

    Returns:
        The calendar date, or the previous one before the cutoff hour.
    """
    if now.hour < OPERATING_DAY_CUTOFF_HOUR:
        return (now - timedelta(days=1)).date()
    return now.date()
