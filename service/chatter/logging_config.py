"""
Logging configuration for the relay.
"""

import logging
import sys

def setup_logging(level: str = "INFO") -> logging.Logger:
    """Setup logging with proper format and handlers."""

    # Create logger
    logger = logging.getLogger("chatter")
    logger.setLevel(level.upper())

    # Remove existing handlers
    logger.handlers.clear()

    # Create console handler with formatting
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Keep records out of the root logger (uvicorn configures it)
    logger.propagate = False

    # Request lines from the HTTP client leak the bot token in the URL
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logger

# Global logger instance
bot_logger = setup_logging()
