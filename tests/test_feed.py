"""Tests for feed assembly and the HTTP endpoints."""

import sys
import unittest
from pathlib import Path

# Add src to path so we can import siri2gtfsrt
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from google.transit import gtfs_realtime_pb2

from siri2gtfsrt.feed import build_feed_message, create_app
from siri2gtfsrt.store import RealtimeStore

NOW = 1_710_496_800


def make_store():
    store = RealtimeStore()
    trip = gtfs_realtime_pb2.FeedEntity()
    trip.id = "SM:WEEK1234"
    trip.trip_update.trip.trip_id = "WEEK1234"
    trip.trip_update.timestamp = NOW
    store.put_trip_update(trip)

    vehicle = gtfs_realtime_pb2.FeedEntity()
    vehicle.id = "VM:BUS-42"
    vehicle.vehicle.vehicle.id = "BUS-42"
    vehicle.vehicle.timestamp = NOW
    store.put_vehicle_position(vehicle)
    return store


def parse_feed(data):
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.ParseFromString(data)
    return feed


class TestFeedMessage(unittest.TestCase):
    """Test FeedMessage assembly."""

    def test_header(self):
        feed = build_feed_message([], timestamp=NOW)
        self.assertEqual(feed.header.gtfs_realtime_version, "2.0")
        self.assertEqual(feed.header.incrementality, gtfs_realtime_pb2.FeedHeader.FULL_DATASET)
        self.assertEqual(feed.header.timestamp, NOW)
        self.assertEqual(len(feed.entity), 0)

    def test_entities_are_copied(self):
        """Test that later changes to a stored entity do not leak into a built feed."""
        entity = make_store().trip_updates()[0]
        feed = build_feed_message([entity], timestamp=NOW)
        entity.trip_update.timestamp = 0
        self.assertEqual(feed.entity[0].trip_update.timestamp, NOW)


class TestEndpoints(unittest.TestCase):
    """Test the served feeds."""

    def setUp(self):
        self.client = create_app(make_store()).test_client()

    def test_combined_binary_feed(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, "application/x-protobuf")
        self.assertEqual(sorted(e.id for e in parse_feed(response.data).entity), ["SM:WEEK1234", "VM:BUS-42"])

    def test_combined_json_feed(self):
        """Test the JSON rendering of the combined feed."""
        response = self.client.get("/?format=json")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["header"]["gtfsRealtimeVersion"], "2.0")
        self.assertEqual(len(payload["entity"]), 2)

    def test_trip_updates_feed(self):
        feed = parse_feed(self.client.get("/trip-updates").data)
        self.assertEqual([e.id for e in feed.entity], ["SM:WEEK1234"])
        self.assertTrue(feed.entity[0].HasField("trip_update"))

    def test_vehicle_positions_feed(self):
        feed = parse_feed(self.client.get("/vehicle-positions").data)
        self.assertEqual([e.id for e in feed.entity], ["VM:BUS-42"])

    def test_json_feeds(self):
        """Test the per-entity-type JSON endpoints."""
        trips = self.client.get("/trip-updates.json").get_json()
        vehicles = self.client.get("/vehicle-positions.json").get_json()
        self.assertEqual(trips["entity"][0]["tripUpdate"]["trip"]["tripId"], "WEEK1234")
        self.assertEqual(vehicles["entity"][0]["vehicle"]["vehicle"]["id"], "BUS-42")

    def test_empty_store(self):
        """Test that an empty store still serves a valid feed."""
        client = create_app(RealtimeStore()).test_client()
        feed = parse_feed(client.get("/").data)
        self.assertEqual(feed.header.gtfs_realtime_version, "2.0")
        self.assertEqual(len(feed.entity), 0)
        self.assertNotIn("entity", client.get("/trip-updates.json").get_json())


if __name__ == "__main__":
    unittest.main()
