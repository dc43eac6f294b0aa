"""GTFS static resource download and import."""

import io
import logging
import os
import shutil
import tempfile
import zipfile
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

import pandas as pd
import requests

from .models import Schedule, Service, StopTime, Trip

logger = logging.getLogger(__name__)

# Validity range given to services that only appear in calendar_dates.txt
OPEN_START_DATE = date(2000, 1, 1)
OPEN_END_DATE = date(2099, 12, 31)

WEEKDAY_COLUMNS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

EXCEPTION_ADDED = "1"
EXCEPTION_REMOVED = "2"


class ResourceError(Exception):
    """Raised when the static resource cannot be downloaded or imported."""


class ResourceImportError(ResourceError):
    """Raised when a mandatory GTFS table is missing or unreadable."""


def parse_gtfs_date(value: str) -> date:
    """Parse a GTFS YYYYMMDD date."""
    return datetime.strptime(value.strip(), "%Y%m%d").date()


def parse_gtfs_time(value: str) -> Optional[int]:
    """
    Parse a GTFS HH:MM:SS time into seconds since service-day midnight.

    Hours may exceed 23 for trips running past midnight. Empty values
    return None.
    """
    value = value.strip()
    if not value:
        return None
    hours, minutes, seconds = value.split(":")
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds)


class GTFSLoader:
    """Imports GTFS static tables from a directory into a Schedule."""

    def __init__(self):
        """Initialize the GTFS loader."""
        self.services: Dict[str, Service] = {}
        self.trips: Dict[str, Trip] = {}
        self.stop_names: Dict[str, str] = {}

    def load_from_directory(self, directory: str) -> Schedule:
        """
        Import an extracted GTFS resource.

        calendar.txt, calendar_dates.txt and stops.txt are optional;
        trips.txt and stop_times.txt are mandatory.

        Args:
            directory: Directory containing the GTFS text tables.

        Returns:
            Schedule built from the tables.

        Raises:
            ResourceImportError: If a table is missing or unreadable.
        """
        logger.info(f"Importing GTFS resource from {directory}")

        calendar_path = os.path.join(directory, "calendar.txt")
        if os.path.isfile(calendar_path):
            self._load_calendar(self._read_table(calendar_path))

        calendar_dates_path = os.path.join(directory, "calendar_dates.txt")
        if os.path.isfile(calendar_dates_path):
            self._load_calendar_dates(self._read_table(calendar_dates_path))

        stops_path = os.path.join(directory, "stops.txt")
        if os.path.isfile(stops_path):
            self._load_stops(self._read_table(stops_path))

        self._load_trips(self._read_table(os.path.join(directory, "trips.txt")))
        self._load_stop_times(self._read_table(os.path.join(directory, "stop_times.txt")))

        logger.info(f"Imported {len(self.services)} services and {len(self.trips)} trips")
        return Schedule(
            services=self.services,
            trips=self.trips,
            stop_names=self.stop_names,
            imported_at=datetime.now(timezone.utc),
        )

    @staticmethod
    def _read_table(path: str) -> List[dict]:
        """Read a GTFS table as a list of string-valued records."""
        try:
            frame = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
        except (OSError, ValueError) as e:
            raise ResourceImportError(f"Unable to read {os.path.basename(path)}: {e}") from e
        frame.columns = [column.strip() for column in frame.columns]
        return frame.to_dict("records")

    def _load_calendar(self, records: List[dict]) -> None:
        """Seed services from calendar.txt weekly patterns."""
        try:
            for row in records:
                service_id = row["service_id"]
                self.services[service_id] = Service(
                    service_id=service_id,
                    days=tuple(row[column].strip() == "1" for column in WEEKDAY_COLUMNS),
                    start_date=parse_gtfs_date(row["start_date"]),
                    end_date=parse_gtfs_date(row["end_date"]),
                )
        except (KeyError, ValueError) as e:
            raise ResourceImportError(f"Invalid calendar.txt: {e}") from e

    def _load_calendar_dates(self, records: List[dict]) -> None:
        """Apply calendar_dates.txt exceptions, creating date-only services."""
        try:
            for row in records:
                service_id = row["service_id"]
                service = self.services.get(service_id)
                if service is None:
                    service = Service(
                        service_id=service_id,
                        days=(False,) * 7,
                        start_date=OPEN_START_DATE,
                        end_date=OPEN_END_DATE,
                    )
                    self.services[service_id] = service

                day = parse_gtfs_date(row["date"])
                exception_type = row["exception_type"].strip()
                if exception_type == EXCEPTION_ADDED:
                    service.included_days.append(day)
                elif exception_type == EXCEPTION_REMOVED:
                    service.excluded_days.append(day)
        except (KeyError, ValueError) as e:
            raise ResourceImportError(f"Invalid calendar_dates.txt: {e}") from e

    def _load_stops(self, records: List[dict]) -> None:
        """Index stop names from stops.txt."""
        for row in records:
            stop_id = row.get("stop_id")
            if stop_id:
                self.stop_names[stop_id] = row.get("stop_name", "")

    def _load_trips(self, records: List[dict]) -> None:
        """Parse trips.txt, dropping trips of unknown services."""
        try:
            for row in records:
                if row["service_id"] not in self.services:
                    continue
                direction = row.get("direction_id", "").strip()
                self.trips[row["trip_id"]] = Trip(
                    trip_id=row["trip_id"],
                    service_id=row["service_id"],
                    route_id=row["route_id"],
                    direction_id=int(direction) if direction else 0,
                )
        except (KeyError, ValueError) as e:
            raise ResourceImportError(f"Invalid trips.txt: {e}") from e

    def _load_stop_times(self, records: List[dict]) -> None:
        """Parse stop_times.txt, dropping rows of unknown trips."""
        try:
            for row in records:
                trip = self.trips.get(row["trip_id"])
                if trip is None:
                    continue
                trip.stop_times.append(
                    StopTime(
                        sequence=int(row["stop_sequence"]),
                        stop_id=row["stop_id"],
                        arrival_time=parse_gtfs_time(row.get("arrival_time", "")),
                        departure_time=parse_gtfs_time(row.get("departure_time", "")),
                    )
                )
        except (KeyError, ValueError) as e:
            raise ResourceImportError(f"Invalid stop_times.txt: {e}") from e

        for trip in self.trips.values():
            trip.stop_times.sort(key=lambda stop_time: stop_time.sequence)


def download_resource(resource_url: str, directory: str, timeout: float = 30) -> Optional[str]:
    """
    Download a GTFS archive and extract it into a directory.

    Args:
        resource_url: Location of the zipped GTFS resource.
        directory: Destination directory for the extracted tables.
        timeout: Request timeout in seconds.

    Returns:
        The Last-Modified header of the response, if any.
    """
    logger.info(f"Downloading GTFS resource from {resource_url}")
    try:
        response = requests.get(resource_url, timeout=timeout)
        response.raise_for_status()
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            archive.extractall(directory)
    except (requests.RequestException, zipfile.BadZipFile) as e:
        raise ResourceError(f"Failed to download GTFS resource: {e}") from e
    return response.headers.get("Last-Modified")


def load_resource(resource_url: str, timeout: float = 30) -> Schedule:
    """Download and import a GTFS resource in a temporary working directory."""
    working_directory = tempfile.mkdtemp(prefix="siri2gtfsrt_")
    logger.debug(f"Generated working directory at {working_directory}")
    try:
        last_modified = download_resource(resource_url, working_directory, timeout=timeout)
        schedule = GTFSLoader().load_from_directory(working_directory)
        schedule.last_modified = last_modified
        logger.info("Successfully loaded GTFS resource")
        return schedule
    finally:
        shutil.rmtree(working_directory, ignore_errors=True)
