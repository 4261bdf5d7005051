"""
apexsync - Neptune Apex → InfluxDB logger

Polls the Apex controller, writes readings to InfluxDB 3 and keeps the
database caught up with the controller's retained history.
"""

import asyncio
import logging
import signal
import sys

from apexsync.config import ConfigError, load_config
from apexsync.core import SyncServer
from apexsync.utils.logger import setup_logging

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


async def main():
    """Main entry point"""
    try:
        app_config = load_config()
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)

    server = SyncServer(app_config)
    loop = asyncio.get_running_loop()

    # Handle shutdown signals
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        loop.call_soon_threadsafe(lambda: asyncio.ensure_future(server.stop()))

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await server.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
    finally:
        await server.stop()


def cli():
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server crashed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
