"""Logger setup for apexsync"""

import logging
import os
import sys
from typing import Optional

from .. import config


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    """Setup logging configuration"""
    # DEBUG=true overrides LOG_LEVEL
    level = level or ("DEBUG" if config.DEBUG else config.LOG_LEVEL)
    log_file = log_file or config.LOG_FILE

    # Create logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    # Format
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler
    try:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"Could not create file handler: {e}")

    # The influx client logs every HTTP call at INFO
    logging.getLogger("influxdb_client_3").setLevel(logging.WARNING)

    logger.info("Logging configured")
