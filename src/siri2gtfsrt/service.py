"""Supervises the background loops behind the served feed."""

import logging

from .config import AppConfig
from .feed import create_app
from .poller import SiriPoller
from .resource import ResourceRefreshController
from .siri_client import SiriClient
from .store import RealtimeStore, StoreSweeper

logger = logging.getLogger(__name__)


class FeedService:
    """
    Owns the shared state and every background loop.

    The refresh controller holds the schedule snapshot, the store holds
    the entities; the poller and sweeper share them by reference.
    """

    def __init__(self, config: AppConfig):
        """
        Build all components from configuration without starting them.

        Args:
            config: Loaded application configuration.
        """
        self.config = config
        self.store = RealtimeStore()
        self.controller = ResourceRefreshController(
            config.gtfs_resource_url,
            config.timezone,
            check_interval_seconds=config.staleness_check_seconds,
            timeout_seconds=config.request_timeout_seconds,
        )
        self.client = SiriClient(
            config.siri_endpoint,
            config.requestor_ref,
            timeout=config.request_timeout_seconds,
            local_timezone=config.timezone,
        )
        self.poller = SiriPoller(
            self.client,
            self.controller,
            self.store,
            rate_limit_seconds=config.siri_rate_limit_seconds,
            lines_refresh_seconds=config.monitored_lines_refresh_seconds,
            local_timezone=config.timezone,
        )
        self.sweeper = StoreSweeper(
            self.store,
            interval_seconds=config.sweep_interval_seconds,
            threshold_seconds=config.sweep_threshold_seconds,
        )
        self.app = create_app(self.store)

    def start(self) -> None:
        """Load the schedule, then start every loop. A failed first load is fatal."""
        logger.info("Loading GTFS resource into memory")
        self.controller.load_initial()
        self.controller.start()
        self.poller.start()
        self.sweeper.start()
        logger.info("Background loops started")

    def stop(self) -> None:
        """Signal every loop to stop."""
        self.poller.stop()
        self.sweeper.stop()
        self.controller.stop()
        logger.info("Background loops stopped")

    def serve(self) -> None:
        """Serve the feed until interrupted."""
        logger.info(f"Serving GTFS-Realtime feed on port {self.config.port}")
        self.app.run(host="0.0.0.0", port=self.config.port, threaded=True)
