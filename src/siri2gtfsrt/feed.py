"""GTFS-Realtime feed assembly and HTTP endpoints."""

import logging
import time
from typing import Iterable, Optional

from flask import Flask, Response, jsonify, request
from google.protobuf import json_format
from google.transit import gtfs_realtime_pb2

from .store import RealtimeStore

logger = logging.getLogger(__name__)

GTFS_REALTIME_VERSION = "2.0"
PROTOBUF_MIMETYPE = "application/x-protobuf"


def build_feed_message(
    entities: Iterable[gtfs_realtime_pb2.FeedEntity], timestamp: Optional[int] = None
) -> gtfs_realtime_pb2.FeedMessage:
    """Wrap entities in a full-dataset FeedMessage."""
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = GTFS_REALTIME_VERSION
    feed.header.incrementality = gtfs_realtime_pb2.FeedHeader.FULL_DATASET
    feed.header.timestamp = int(time.time()) if timestamp is None else timestamp
    for entity in entities:
        feed.entity.add().CopyFrom(entity)
    return feed


def feed_to_dict(feed: gtfs_realtime_pb2.FeedMessage) -> dict:
    return json_format.MessageToDict(feed)


def create_app(store: RealtimeStore) -> Flask:
    """
    Build the Flask application serving the store.

    Args:
        store: Entity store read on every request.

    Returns:
        Flask app with binary and JSON feed endpoints.
    """
    app = Flask(__name__)

    def binary(feed: gtfs_realtime_pb2.FeedMessage) -> Response:
        return Response(feed.SerializeToString(), mimetype=PROTOBUF_MIMETYPE)

    @app.route("/")
    def combined_feed():
        feed = build_feed_message(store.trip_updates() + store.vehicle_positions())
        if request.args.get("format") == "json":
            return jsonify(feed_to_dict(feed))
        return binary(feed)

    @app.route("/trip-updates")
    def trip_updates():
        return binary(build_feed_message(store.trip_updates()))

    @app.route("/trip-updates.json")
    def trip_updates_json():
        return jsonify(feed_to_dict(build_feed_message(store.trip_updates())))

    @app.route("/vehicle-positions")
    def vehicle_positions():
        return binary(build_feed_message(store.vehicle_positions()))

    @app.route("/vehicle-positions.json")
    def vehicle_positions_json():
        return jsonify(feed_to_dict(build_feed_message(store.vehicle_positions())))

    return app
