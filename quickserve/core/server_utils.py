"""
Utility functions for server configuration and operation.

This module provides core functionality for:
- Logging setup with JSON records and request correlation ids
- Event loop selection with uvloop
- Server kwargs generation for asyncio.start_server
- Client connection error handling
"""

import asyncio
import logging
import sys
from typing import Any, Awaitable, Dict, Optional

from pythonjsonlogger.json import JsonFormatter

from .correlation import RequestIdFilter

if sys.platform != "win32":
    import uvloop
else:
    uvloop = None

LOGGER_NAME = "quickserve"
PLAIN_FORMAT = "%(asctime)s [%(levelname)s] [%(request_id)s] %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s"

default_logger = logging.getLogger(LOGGER_NAME)


class ServerConfigError(Exception):
    """Custom exception for server configuration errors"""
    pass


def configure_logging(level=logging.INFO, log_file=None, json_format=True):
    """Configure logging for the server.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path to log file
        json_format: Emit JSON records through python-json-logger

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Drop handlers from an earlier call so records are not duplicated
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if json_format:
        formatter = JsonFormatter(JSON_FORMAT)
    else:
        formatter = logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def run_event_loop(main: Awaitable[Any]) -> Any:
    """Run ``main`` to completion on uvloop where available.

    Raises:
        ServerConfigError: If the event loop cannot be started
    """
    if uvloop is not None:
        default_logger.info("Using uvloop event loop")
        try:
            return uvloop.run(main)
        except RuntimeError as e:
            default_logger.error(f"Failed to run uvloop: {e}")
            raise ServerConfigError("Failed to initialize event loop") from e
    return asyncio.run(main)


def get_server_kwargs(backlog: int = 2048) -> Dict[str, Any]:
    """Get server configuration arguments for asyncio.start_server.

    Returns:
        Dict containing address reuse and backlog settings
    """
    return {
        "reuse_address": True,
        "backlog": backlog,
        "start_serving": True,
    }


async def handle_client_error(
    writer: asyncio.StreamWriter,
    error: Exception,
    logger: Optional[logging.Logger] = None,
    headers_sent: bool = False,
) -> None:
    """Handle client connection errors gracefully.

    Args:
        writer: StreamWriter for the client connection
        error: Exception that occurred
        logger: Optional logger instance, uses the default logger if None
        headers_sent: Whether a response head already went out

    Logs the error with its traceback and, if nothing was sent yet, answers
    with a generic 500 before closing the connection.
    """
    if logger is None:
        logger = default_logger

    logger.error(f"Error handling client request: {error}", exc_info=error)

    try:
        if not writer.is_closing() and not headers_sent:
            writer.write(
                b"HTTP/1.1 500 Internal Server Error\r\n"
                b"Content-Type: text/plain\r\n"
                b"Content-Length: 21\r\n"
                b"Connection: close\r\n\r\n"
                b"Internal Server Error"
            )
            await writer.drain()
    except (ConnectionError, OSError) as e:
        logger.debug(f"Error while sending error response: {e}")
