"""Tests for service wiring and the command-line entry point."""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add src to path so we can import siri2gtfsrt
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from siri2gtfsrt.__main__ import main
from siri2gtfsrt.config import ConfigError, load_config
from siri2gtfsrt.gtfs_loader import ResourceError
from siri2gtfsrt.service import FeedService


class TestFeedService(unittest.TestCase):
    """Test component wiring."""

    def setUp(self):
        self.config = load_config({"SIRI_RATELIMIT_SECONDS": "1", "SWEEP_THRESHOLD_SECONDS": "120"})
        self.service = FeedService(self.config)

    def test_components_share_state(self):
        self.assertIs(self.service.poller._store, self.service.store)
        self.assertIs(self.service.poller._controller, self.service.controller)
        self.assertIs(self.service.sweeper._store, self.service.store)
        self.assertEqual(self.service.sweeper._threshold_seconds, 120)

    def test_failed_first_load_starts_nothing(self):
        """Test that loops are not started when the first schedule load fails."""
        self.service.controller = MagicMock()
        self.service.controller.load_initial.side_effect = ResourceError("unreachable")
        self.service.poller = MagicMock()
        self.service.sweeper = MagicMock()

        with self.assertRaises(ResourceError):
            self.service.start()
        self.service.poller.start.assert_not_called()
        self.service.sweeper.start.assert_not_called()


class TestMain(unittest.TestCase):
    """Test process exit codes."""

    @patch("siri2gtfsrt.__main__.load_config")
    def test_invalid_configuration(self, mock_load_config):
        mock_load_config.side_effect = ConfigError("PORT must be a number")
        self.assertEqual(main(), 2)

    @patch("siri2gtfsrt.__main__.FeedService")
    @patch("siri2gtfsrt.__main__.load_config")
    def test_initial_load_failure(self, mock_load_config, mock_service_cls):
        """Test that a failed first load exits without serving."""
        mock_load_config.return_value = load_config({})
        service = mock_service_cls.return_value
        service.start.side_effect = ResourceError("unreachable")

        self.assertEqual(main(), 1)
        service.serve.assert_not_called()

    @patch("siri2gtfsrt.__main__.FeedService")
    @patch("siri2gtfsrt.__main__.load_config")
    def test_interrupt_stops_loops(self, mock_load_config, mock_service_cls):
        mock_load_config.return_value = load_config({})
        service = mock_service_cls.return_value
        service.serve.side_effect = KeyboardInterrupt

        self.assertEqual(main(), 0)
        service.stop.assert_called_once()


if __name__ == "__main__":
    unittest.main()
