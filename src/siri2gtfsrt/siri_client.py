"""SIRI SOAP client for line discovery and vehicle monitoring."""

import logging
import uuid
import xml.etree.ElementTree as ET
from datetime import datetime, timezone, tzinfo
from typing import List, Optional
from xml.sax.saxutils import escape

import requests

from .models import MonitoredCall, VehicleObservation

logger = logging.getLogger(__name__)

LINES_DISCOVERY_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/" xmlns:sw="http://wsdl.siri.org.uk" xmlns:siri="http://www.siri.org.uk/siri">
  <soap:Body>
    <sw:LinesDiscovery>
      <Request>
        <siri:RequestTimestamp>{timestamp}</siri:RequestTimestamp>
        <siri:RequestorRef>{requestor_ref}</siri:RequestorRef>
        <siri:MessageIdentifier>{message_id}</siri:MessageIdentifier>
      </Request>
      <RequestExtension/>
    </sw:LinesDiscovery>
  </soap:Body>
</soap:Envelope>"""

VEHICLE_MONITORING_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/" xmlns:sw="http://wsdl.siri.org.uk" xmlns:siri="http://www.siri.org.uk/siri">
  <soap:Body>
    <sw:GetVehicleMonitoring>
      <ServiceRequestInfo>
        <siri:RequestTimestamp>{timestamp}</siri:RequestTimestamp>
        <siri:RequestorRef>{requestor_ref}</siri:RequestorRef>
        <siri:MessageIdentifier>{message_id}</siri:MessageIdentifier>
      </ServiceRequestInfo>
      <Request>
        <siri:RequestTimestamp>{timestamp}</siri:RequestTimestamp>
        <siri:MessageIdentifier>{message_id}</siri:MessageIdentifier>
        <siri:LineRef>{line_ref}</siri:LineRef>
      </Request>
      <RequestExtension/>
    </sw:GetVehicleMonitoring>
  </soap:Body>
</soap:Envelope>"""


class SiriClientError(Exception):
    """Raised when a SIRI request fails or returns an unusable payload."""


def parse_siri_ref(ref: str) -> str:
    """
    Extract the local identifier of a structured SIRI reference.

    "FILIBUS:Line::12:LOC" gives "12". References without that structure
    are returned unchanged.
    """
    parts = ref.split(":")
    if len(parts) >= 4 and parts[2] == "" and parts[3]:
        return parts[3]
    return ref


class SiriClient:
    """Fetches monitored lines and vehicle activities from a SIRI endpoint."""

    def __init__(
        self,
        endpoint: str,
        requestor_ref: str,
        timeout: float = 30,
        local_timezone: Optional[tzinfo] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the SIRI client.

        Args:
            endpoint: SIRI SOAP service URL.
            requestor_ref: Requestor identifier granted by the operator.
            timeout: Request timeout in seconds.
            local_timezone: Zone applied to timestamps sent without an offset.
            session: Optional requests session to reuse connections.
        """
        self.endpoint = endpoint
        self.requestor_ref = requestor_ref
        self.timeout = timeout
        self.local_timezone = local_timezone or timezone.utc
        self._session = session or requests.Session()

    def fetch_monitored_lines(self) -> List[str]:
        """
        List the line references the SIRI service monitors.

        Returns:
            Full SIRI LineRef values.
        """
        root = self._post(LINES_DISCOVERY_TEMPLATE.format(**self._request_fields()))
        line_refs = []
        for node in root.iter():
            if _local_name(node.tag) == "LineRef" and node.text and node.text.strip():
                line_refs.append(node.text.strip())
        line_refs = list(dict.fromkeys(line_refs))
        logger.info(f"SIRI service monitors {len(line_refs)} lines")
        return line_refs

    def fetch_vehicle_observations(self, line_ref: str) -> List[VehicleObservation]:
        """
        Fetch the vehicle activities currently reported for a line.

        Args:
            line_ref: Full SIRI LineRef to monitor.

        Returns:
            Decoded observations, possibly incomplete.
        """
        body = VEHICLE_MONITORING_TEMPLATE.format(line_ref=escape(line_ref), **self._request_fields())
        root = self._post(body)
        observations = decode_vehicle_activities(root, self.local_timezone)
        logger.debug(f"Received {len(observations)} vehicle activities for line {line_ref}")
        return observations

    def _request_fields(self) -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "requestor_ref": escape(self.requestor_ref),
            "message_id": f"{escape(self.requestor_ref)}:{uuid.uuid4()}",
        }

    def _post(self, body: str) -> ET.Element:
        try:
            response = self._session.post(
                self.endpoint,
                data=body.encode("utf-8"),
                headers={"Content-Type": "text/xml; charset=utf-8"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise SiriClientError(f"SIRI request to {self.endpoint} failed: {e}") from e

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise SiriClientError(f"Invalid SIRI payload: {e}") from e

        fault = root.find(".//{*}Fault")
        if fault is not None:
            message = _text(fault, "{*}faultstring") or "unknown fault"
            raise SiriClientError(f"SIRI service returned a fault: {message}")
        return root


def decode_vehicle_activities(root: ET.Element, local_timezone: tzinfo = timezone.utc) -> List[VehicleObservation]:
    """Decode every VehicleActivity element of a VehicleMonitoring delivery."""
    return [
        _decode_vehicle_activity(activity, local_timezone)
        for activity in root.iter()
        if _local_name(activity.tag) == "VehicleActivity"
    ]


def _decode_vehicle_activity(activity: ET.Element, local_timezone: tzinfo) -> VehicleObservation:
    journey = activity.find("{*}MonitoredVehicleJourney")
    if journey is None:
        return VehicleObservation(
            vehicle_ref=_text(activity, "{*}VehicleMonitoringRef"),
            recorded_at=_parse_datetime(_text(activity, "{*}RecordedAtTime"), local_timezone),
        )

    latitude, longitude = _decode_location(journey.find("{*}VehicleLocation"))
    call = journey.find("{*}MonitoredCall")

    return VehicleObservation(
        vehicle_ref=_text(activity, "{*}VehicleMonitoringRef") or _text(journey, "{*}VehicleRef"),
        journey_ref=_text(journey, "{*}FramedVehicleJourneyRef/{*}DatedVehicleJourneyRef"),
        line_ref=_text(journey, "{*}LineRef"),
        recorded_at=_parse_datetime(_text(activity, "{*}RecordedAtTime"), local_timezone),
        latitude=latitude,
        longitude=longitude,
        bearing=_parse_float(_text(journey, "{*}Bearing")),
        destination_ref=_text(journey, "{*}DestinationRef"),
        destination_name=_text(journey, "{*}DestinationName"),
        monitored_call=_decode_call(call, local_timezone) if call is not None else None,
    )


def _decode_call(call: ET.Element, local_timezone: tzinfo) -> MonitoredCall:
    order = _text(call, "{*}Order")
    return MonitoredCall(
        stop_point_ref=_text(call, "{*}StopPointRef"),
        stop_point_name=_text(call, "{*}StopPointName"),
        order=int(order) if order and order.isdigit() else None,
        vehicle_at_stop=(_text(call, "{*}VehicleAtStop") or "").lower() == "true",
        aimed_arrival_time=_parse_datetime(_text(call, "{*}AimedArrivalTime"), local_timezone),
        expected_arrival_time=_parse_datetime(_text(call, "{*}ExpectedArrivalTime"), local_timezone),
        aimed_departure_time=_parse_datetime(_text(call, "{*}AimedDepartureTime"), local_timezone),
        expected_departure_time=_parse_datetime(_text(call, "{*}ExpectedDepartureTime"), local_timezone),
        arrival_status=_text(call, "{*}ArrivalStatus"),
        departure_status=_text(call, "{*}DepartureStatus"),
    )


def _decode_location(location: Optional[ET.Element]):
    """Return (latitude, longitude) from Latitude/Longitude or a GML "lon lat" Coordinates pair."""
    if location is None:
        return None, None
    latitude = _parse_float(_text(location, "{*}Latitude"))
    longitude = _parse_float(_text(location, "{*}Longitude"))
    if latitude is not None and longitude is not None:
        return latitude, longitude

    coordinates = (_text(location, "{*}Coordinates") or "").split()
    if len(coordinates) == 2:
        longitude, latitude = (_parse_float(value) for value in coordinates)
        return latitude, longitude
    return None, None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _text(element: ET.Element, path: str) -> Optional[str]:
    node = element.find(path)
    if node is None or node.text is None:
        return None
    return node.text.strip() or None


def _parse_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_datetime(value: Optional[str], local_timezone: tzinfo) -> Optional[datetime]:
    if value is None:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"Ignoring unparseable SIRI timestamp {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=local_timezone)
    return parsed
