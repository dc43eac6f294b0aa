"""Tests for configuration loading."""

import sys
import unittest
from pathlib import Path
from unittest.mock import patch

# Add src to path so we can import siri2gtfsrt
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from siri2gtfsrt.config import DEFAULT_GTFS_RESOURCE_URL, DEFAULT_SIRI_ENDPOINT, ConfigError, load_config


class TestLoadConfig(unittest.TestCase):
    """Test environment parsing."""

    def test_defaults(self):
        """Test the defaults applied to an empty environment."""
        config = load_config({})
        self.assertEqual(config.gtfs_resource_url, DEFAULT_GTFS_RESOURCE_URL)
        self.assertEqual(config.siri_endpoint, DEFAULT_SIRI_ENDPOINT)
        self.assertEqual(config.requestor_ref, "opendata")
        self.assertEqual(config.port, 3000)
        self.assertEqual(config.siri_rate_limit_seconds, 2.5)
        self.assertEqual(config.sweep_threshold_seconds, 600)
        self.assertEqual(config.sweep_interval_seconds, 60)
        self.assertEqual(config.staleness_check_seconds, 300)
        self.assertEqual(config.monitored_lines_refresh_seconds, 7200)
        self.assertEqual(config.request_timeout_seconds, 30)
        self.assertEqual(str(config.timezone), "Europe/Paris")
        self.assertEqual(config.log_level, "INFO")

    def test_overrides(self):
        config = load_config(
            {
                "GTFS_RESOURCE_URL": "http://example.test/gtfs.zip",
                "SIRI_ENDPOINT": "http://example.test/siri",
                "SIRI_REQUESTOR_REF": "me",
                "PORT": "8080",
                "SIRI_RATELIMIT_SECONDS": "0.5",
                "OPERATOR_TIMEZONE": "America/New_York",
                "LOG_LEVEL": "debug",
            }
        )
        self.assertEqual(config.gtfs_resource_url, "http://example.test/gtfs.zip")
        self.assertEqual(config.siri_endpoint, "http://example.test/siri")
        self.assertEqual(config.requestor_ref, "me")
        self.assertEqual(config.port, 8080)
        self.assertEqual(config.siri_rate_limit_seconds, 0.5)
        self.assertEqual(str(config.timezone), "America/New_York")
        self.assertEqual(config.log_level, "DEBUG")

    def test_empty_values_fall_back_to_defaults(self):
        config = load_config({"PORT": "", "SIRI_REQUESTOR_REF": ""})
        self.assertEqual(config.port, 3000)
        self.assertEqual(config.requestor_ref, "opendata")

    def test_invalid_numbers(self):
        """Test that non-numeric or non-positive values are rejected."""
        for env in ({"PORT": "http"}, {"PORT": "0"}, {"SIRI_RATELIMIT_SECONDS": "-1"}, {"SWEEP_THRESHOLD_SECONDS": "ten"}):
            with self.assertRaises(ConfigError, msg=env):
                load_config(env)

    def test_unknown_timezone(self):
        with self.assertRaises(ConfigError):
            load_config({"OPERATOR_TIMEZONE": "Mars/Olympus_Mons"})

    @patch("siri2gtfsrt.config.load_dotenv")
    def test_process_environment_reads_dotenv(self, mock_load_dotenv):
        """Test that the process environment is used after merging .env."""
        with patch.dict("os.environ", {"SIRI_REQUESTOR_REF": "from-env"}):
            config = load_config()
        mock_load_dotenv.assert_called_once()
        self.assertEqual(config.requestor_ref, "from-env")


if __name__ == "__main__":
    unittest.main()
