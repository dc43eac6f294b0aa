"""Command-line entry point."""

import logging
import sys

from .config import ConfigError, load_config
from .gtfs_loader import ResourceError
from .service import FeedService

logger = logging.getLogger(__name__)


def main() -> int:
    try:
        config = load_config()
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Invalid configuration: {e}")
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("-- SIRI-VM TO GTFS-RT --")

    service = FeedService(config)
    try:
        service.start()
    except ResourceError as e:
        logger.error(f"Failed to load GTFS resource: {e}")
        return 1

    try:
        service.serve()
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
