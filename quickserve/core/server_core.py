"""
Core HTTP server providing asynchronous request dispatch.

This module implements the application-facing server with features including:
- Route registration with named path captures
- Overridable hooks for static files, index and errors
- Maintenance mode and Prometheus metrics exposure
- Graceful shutdown handling
"""

import argparse
import asyncio
import dataclasses
import logging
import signal
import socket
import sys
from typing import Any, Callable, Optional, Set

from quickserve.features.security import make_preflight_responder
from quickserve.features.sessions import SessionStore
from quickserve.features.static import StaticFiles

from .body_decoder import BodyDecoder
from .config import ServerConfig
from .correlation import next_request_id, request_scope
from .dispatcher import Dispatcher, Hook
from .metrics import render_metrics
from .request_handler import RequestHandler
from .router import Method, Router
from .server_utils import configure_logging, default_logger, get_server_kwargs, run_event_loop

PREFLIGHT_METHODS = (Method.POST, Method.PUT, Method.DELETE)


class Server:
    """Asynchronous HTTP server dispatching requests to registered routes.

    Attributes:
        config: Server configuration shared by the request pipeline
        router: Route registry, frozen when the server starts
        sessions: In-memory session store
        bound_port: Port actually bound once started (None before)
    """

    def __init__(self, config: Optional[ServerConfig] = None, max_connections: int = 1000):
        self.config = config or ServerConfig()
        self.router = Router()
        self.sessions = SessionStore()
        self.decoder = BodyDecoder(self.config.upload_dir)
        self.static = StaticFiles(self.config.public_dir)
        self.dispatcher = Dispatcher(self.router, self.decoder, self.static,
                                     self.sessions, self.config)
        self.handler = RequestHandler(self.dispatcher, self.config)
        self.bound_port: Optional[int] = None

        self._preflight = make_preflight_responder(self.config.cors)
        self._server: Optional[asyncio.AbstractServer] = None
        self._shutdown_event = asyncio.Event()
        self._active_connections: Set[asyncio.Task] = set()
        self._request_semaphore = asyncio.Semaphore(max_connections)

    # Route registration

    def route(self,
              pattern: str,
              method: Optional[str] = None,
              handler: Optional[Callable[..., Any]] = None,
              docs: Optional[str] = None):
        """Register ``handler`` for ``pattern``, or return a decorator doing so.

        Args:
            pattern: Slash-delimited path template with optional ``:name`` captures
            method: Method the route is restricted to, or None for any method
            handler: Async callable ``(ctx, response)``
            docs: Optional documentation text

        Raises:
            RuntimeError: If the server has already started
        """
        if handler is None:
            def decorator(fn):
                self.route(pattern, method, fn, docs)
                return fn
            return decorator

        route = self.router.register(pattern, method, handler, docs)
        if self.config.cors_enabled and route.method in PREFLIGHT_METHODS:
            if not self.router.has_route(pattern, Method.OPTIONS):
                self.router.register(pattern, Method.OPTIONS, self._preflight,
                                     docs="CORS preflight")
        return handler

    def get(self, pattern: str, handler=None, docs: Optional[str] = None):
        return self.route(pattern, Method.GET, handler, docs)

    def post(self, pattern: str, handler=None, docs: Optional[str] = None):
        return self.route(pattern, Method.POST, handler, docs)

    def put(self, pattern: str, handler=None, docs: Optional[str] = None):
        return self.route(pattern, Method.PUT, handler, docs)

    def delete(self, pattern: str, handler=None, docs: Optional[str] = None):
        return self.route(pattern, Method.DELETE, handler, docs)

    def option(self, pattern: str, handler=None, docs: Optional[str] = None):
        return self.route(pattern, Method.OPTIONS, handler, docs)

    def any(self, pattern: str, handler=None, docs: Optional[str] = None):
        return self.route(pattern, None, handler, docs)

    # Hooks

    def on_error(self, hook: Hook) -> Hook:
        self.dispatcher.set_error_hook(hook)
        return hook

    def on_file(self, hook: Hook) -> Hook:
        self.dispatcher.set_file_hook(hook)
        return hook

    def on_index(self, hook: Hook) -> Hook:
        self.dispatcher.set_index_hook(hook)
        return hook

    def set_index_predicate(self, predicate: Optional[Callable[[str], bool]]) -> None:
        """Install the condition under which an unrouted path is classified INDEX."""
        self.dispatcher.index_predicate = predicate

    # Maintenance mode

    def down(self) -> None:
        """Answer every request with 503 until ``up()`` is called."""
        default_logger.warning("Server entering maintenance mode")
        self.handler.set_maintenance(True)

    def up(self) -> None:
        default_logger.info("Server leaving maintenance mode")
        self.handler.set_maintenance(False)

    @property
    def maintenance(self) -> bool:
        return self.handler.maintenance

    def expose_metrics(self, path: str = "/metrics") -> None:
        """Serve Prometheus metrics on a GET route at ``path``."""
        async def metrics(ctx, response):
            payload, content_type = render_metrics()
            await response.send(payload, status=200, content_type=content_type)

        self.get(path, metrics, docs="Prometheus metrics")

    # Lifecycle

    async def start(self) -> None:
        """Start the server and serve until ``shutdown()`` is called.

        Freezes the route table, binds the listening socket and begins
        accepting connections.

        Raises:
            OSError: If the server fails to bind to the configured host/port
        """
        configure_logging(self.config.log_level.upper(), json_format=self.config.json_logs)
        self.router.table.freeze()
        self._shutdown_event.clear()

        server_kwargs = get_server_kwargs()
        try:
            self._server = await asyncio.start_server(
                self.handle_client,
                self.config.host,
                self.config.port,
                **server_kwargs
            )
        except OSError as e:
            default_logger.error(f"Failed to bind {self.config.host}:{self.config.port}: {e}")
            raise

        sockets = self._server.sockets or []
        if sockets:
            self.bound_port = sockets[0].getsockname()[1]
        default_logger.info(f"Server started on http://{self.config.host}:{self.bound_port}")
        for method, pattern, docs in self.router.describe():
            default_logger.debug(f"Route {method} {pattern} {docs or ''}".rstrip())

        async with self._server:
            await self._run_server(self._server)

    async def _run_server(self, server: asyncio.AbstractServer) -> None:
        try:
            await self._shutdown_event.wait()
        finally:
            server.close()
            await server.wait_closed()
            if self._active_connections:
                await asyncio.wait(self._active_connections)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Stop accepting connections and wait for in-flight requests.

        Args:
            timeout: Maximum time in seconds to wait for connections to close
        """
        default_logger.info("Initiating graceful shutdown...")
        self._shutdown_event.set()

        tasks = [t for t in self._active_connections if t is not asyncio.current_task()]
        if tasks:
            default_logger.info(f"Waiting for {len(tasks)} active connections to complete...")
            done, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                default_logger.warning(f"Force closing {len(pending)} connections that didn't complete in time")
                for task in pending:
                    task.cancel()
                await asyncio.wait(pending, timeout=5.0)

        default_logger.info("Server shutdown complete")

    async def _serve_with_signals(self) -> None:
        loop = asyncio.get_running_loop()
        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(self.shutdown()))
        await self.start()

    def run(self) -> None:
        """Blocking entry point: run the server on uvloop until shut down."""
        try:
            run_event_loop(self._serve_with_signals())
        except KeyboardInterrupt:
            default_logger.info("Interrupted")

    # Connections

    async def handle_client(self,
                            reader: asyncio.StreamReader,
                            writer: asyncio.StreamWriter) -> None:
        """Serve exactly one request on a new connection, then close it.

        The correlation id is taken before any await so ids follow accept
        order.
        """
        request_id = next_request_id()
        with request_scope(request_id):
            if self._shutdown_event.is_set():
                writer.close()
                return

            sock = writer.get_extra_info('socket')
            if sock is not None and sock.family in (socket.AF_INET, socket.AF_INET6):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

            peername = writer.get_extra_info('peername')
            client = f"{peername[0]}:{peername[1]}" if peername else "unknown"
            default_logger.debug(f"incoming connection from {client}")

            async with self._request_semaphore:
                task = asyncio.current_task()
                if task:
                    self._active_connections.add(task)
                try:
                    await self.handler.handle_request(reader, writer, request_id, client)
                finally:
                    if task:
                        self._active_connections.discard(task)
                    try:
                        writer.close()
                        await writer.wait_closed()
                    except (ConnectionError, OSError) as e:
                        default_logger.debug(f"Error closing connection: {e}")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Serve a public directory with quickserve")

    parser.add_argument("--host", help="Host address to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: 8000)")
    parser.add_argument("--public-dir", help="Directory static files are served from")
    parser.add_argument("--upload-dir", help="Directory multipart uploads are written to")
    parser.add_argument(
        "--cors",
        action="store_true",
        default=None,
        help="Enable CORS headers and OPTIONS preflight routes",
    )
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Emit JSON log records",
    )

    return parser.parse_args(argv)


def main(argv=None) -> None:
    """Command line entry point: serve static files only."""
    args = parse_args(argv)
    overrides = {
        "host": args.host,
        "port": args.port,
        "public_dir": args.public_dir,
        "upload_dir": args.upload_dir,
        "cors_enabled": args.cors,
        "log_level": args.log_level,
        "json_logs": args.json_logs,
    }
    try:
        config = dataclasses.replace(
            ServerConfig.from_env(),
            **{k: v for k, v in overrides.items() if v is not None}
        )
    except ValueError as e:
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        sys.exit(2)

    Server(config).run()


if __name__ == "__main__":
    main()
