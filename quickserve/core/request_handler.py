"""
Per-connection request handling.

This module drives one request through the pipeline:
- Read and validate the request head
- Let the dispatcher classify the request, reading the body on demand
- Dispatch to the matched handler or default behavior
- Emit the access log record and request metrics
"""

import asyncio
import logging

from .config import ServerConfig
from .context import StreamError
from .dispatcher import Dispatcher
from .http_parser import HTTPParser, HTTPParserError
from .metrics import REQ_IN_FLIGHT, REQ_LATENCY
from .response import Response, reason_phrase
from .router import Method
from .server_utils import handle_client_error

logger = logging.getLogger("quickserve.request")

VALID_METHODS = frozenset(m.value for m in Method)


def _access_log_payload(method: str, path: str, status: int, length: int,
                        duration: float, client: str, classification: str):
    return {
        "method": method,
        "path": path,
        "status": status,
        "length": length,
        "duration_s": round(duration, 6),
        "client": client,
        "classification": classification,
    }


class RequestHandler:
    """Handles a single HTTP request on a client connection.

    Args:
        dispatcher: Dispatch state machine shared by all connections
        config: Server configuration
    """

    def __init__(self, dispatcher: Dispatcher, config: ServerConfig):
        self.dispatcher = dispatcher
        self.config = config
        self.maintenance = False

    async def handle_request(self,
                             reader: asyncio.StreamReader,
                             writer: asyncio.StreamWriter,
                             request_id: int = -1,
                             client: str = "unknown") -> None:
        """Process one request from ``reader`` and answer on ``writer``."""
        parser = HTTPParser(max_body_size=self.config.max_body_size,
                            max_header_size=self.config.max_header_size)
        try:
            try:
                if not await parser.read_head(reader, self.config.read_timeout):
                    return
            except HTTPParserError as e:
                logger.warning("Rejected request: %s", e)
                await self._send_error(writer, e.status, str(e))
                return

            method = parser.method
            if method not in VALID_METHODS:
                await self._send_error(writer, 400, f"Invalid method: {method}")
                return

            await self._process(parser, reader, writer, request_id, client)
        finally:
            parser.close()

    async def _process(self, parser: HTTPParser, reader, writer, request_id: int, client: str) -> None:
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        cors = self.config.cors if self.config.cors_enabled else None
        response = Response(writer, head_only=parser.method == "HEAD",
                            cors_config=cors, request_headers=parser.headers)

        async def read_body() -> bytes:
            if parser.expects_continue and not parser.message_complete:
                writer.write(b"HTTP/1.1 100 Continue\r\n\r\n")
                await writer.drain()
            try:
                return await parser.read_body(reader, self.config.read_timeout)
            except HTTPParserError as e:
                raise StreamError(str(e), status=e.status) from e
            except (ConnectionError, asyncio.IncompleteReadError) as e:
                raise StreamError("Connection lost while reading body") from e

        REQ_IN_FLIGHT.inc()
        classification = "-"
        path = parser.url
        try:
            if self.maintenance:
                await response.text("Under Maintenance", status=503)
                return

            ctx = await self.dispatcher.classify(parser.method, parser.url, parser.headers,
                                                 response, read_body, request_id)
            classification = ctx.classification.value
            path = ctx.path
            await self.dispatcher.dispatch(ctx, response)
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.info("Client %s disconnected: %s", client, e)
        except Exception as e:
            await handle_client_error(writer, e, logger, headers_sent=response.headers_sent)
        finally:
            duration = loop.time() - start_time
            REQ_IN_FLIGHT.dec()
            REQ_LATENCY.observe(duration)
            payload = _access_log_payload(parser.method, path, response.status,
                                          response.bytes_sent, duration, client, classification)
            logger.info("access", extra=payload)

    async def _send_error(self, writer: asyncio.StreamWriter, code: int, message: str) -> None:
        """Send a plain-text error response before any routing happened."""
        body = message.encode("utf-8")
        writer.write(
            f"HTTP/1.1 {code} {reason_phrase(code)}\r\n"
            f"Content-Type: text/plain\r\n"
            f"Content-Length: {len(body)}\r\n"
            f"Connection: close\r\n"
            f"\r\n".encode() + body
        )
        await writer.drain()

    def set_maintenance(self, enabled: bool) -> None:
        self.maintenance = enabled
