#!/usr/bin/env python3
"""
Guild Bank Entry Point

Starts the FastAPI server (port 8090 by default) over the JSON snapshot
configured in GUILD_BANK_DATA_FILE.
"""

import sys

from guild_bank.api import run_server
from guild_bank.config import get_config
from guild_bank.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format)
    logger.info("Starting Guild Bank on %s:%s with snapshot %s",
                config.api_host, config.api_port, config.data_file)
    
    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down Guild Bank")
    except Exception:
        logger.exception("Error starting server")
        sys.exit(1)
