"""
Response sink handed to route handlers, hooks and default behaviors.

The response writes straight to the connection's StreamWriter. Headers are
sent on the first body write, so a handler can set status and headers
freely until then. Every response carries ``Connection: close``.
"""

import asyncio
import json as jsonlib
from http import HTTPStatus
from typing import Any, Dict, List, Optional, Tuple, Union

from quickserve.features.security import CORSConfig, apply_cors_headers


def reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


class Response:
    """Mutable HTTP response bound to one connection.

    Args:
        writer: StreamWriter for the client connection
        head_only: Suppress the body (HEAD requests)
        cors_config: Adds CORS headers to the response head when set
        request_headers: Request headers used for CORS origin matching
    """

    def __init__(self,
                 writer: asyncio.StreamWriter,
                 head_only: bool = False,
                 cors_config: Optional[CORSConfig] = None,
                 request_headers: Optional[Dict[str, str]] = None):
        self.writer = writer
        self.head_only = head_only
        self.cors_config = cors_config
        self.request_headers = request_headers
        self.status = 200
        self.headers: List[Tuple[str, str]] = []
        self.headers_sent = False
        self.finished = False
        self.bytes_sent = 0

    def set_header(self, name: str, value: str) -> None:
        """Set a header, replacing any existing values for ``name``."""
        lower = name.lower()
        self.headers = [(n, v) for n, v in self.headers if n.lower() != lower]
        self.headers.append((name, value))

    def add_header(self, name: str, value: str) -> None:
        """Append a header, keeping existing values (e.g. ``Set-Cookie``)."""
        self.headers.append((name, value))

    def get_header(self, name: str) -> Optional[str]:
        lower = name.lower()
        for n, v in reversed(self.headers):
            if n.lower() == lower:
                return v
        return None

    async def write_head(self, status: Optional[int] = None) -> None:
        """Send the status line and headers.

        Raises:
            RuntimeError: If the head was already sent
        """
        if self.headers_sent:
            raise RuntimeError("Response headers already sent")
        if status is not None:
            self.status = status

        headers = list(self.headers)
        if self.get_header("Content-Type") is None:
            headers.append(("Content-Type", "text/plain"))
        headers.append(("Connection", "close"))
        if self.cors_config is not None and self.get_header("Access-Control-Allow-Origin") is None:
            headers = apply_cors_headers(headers, self.cors_config, self.request_headers)

        parts = [f"HTTP/1.1 {self.status} {reason_phrase(self.status)}\r\n".encode()]
        for name, value in headers:
            parts.append(f"{name}: {value}\r\n".encode("latin-1"))
        parts.append(b"\r\n")

        self.headers_sent = True
        self.writer.write(b"".join(parts))
        await self.writer.drain()

    async def write(self, data: Union[bytes, str]) -> None:
        """Write a body chunk, sending the head first if needed."""
        if self.finished:
            raise RuntimeError("Response already finished")
        if not self.headers_sent:
            await self.write_head()
        if isinstance(data, str):
            data = data.encode("utf-8")
        if data and not self.head_only:
            self.writer.write(data)
            await self.writer.drain()
        self.bytes_sent += len(data)

    async def end(self, data: Union[bytes, str] = b"") -> None:
        """Finish the response with an optional final chunk."""
        if self.finished:
            return
        if not self.headers_sent:
            if isinstance(data, str):
                data = data.encode("utf-8")
            self.set_header("Content-Length", str(len(data)))
        await self.write(data)
        self.finished = True

    async def send(self,
                   body: Union[bytes, str],
                   status: Optional[int] = None,
                   content_type: Optional[str] = None) -> None:
        """Send a complete response in one call."""
        if status is not None:
            self.status = status
        if content_type is not None:
            self.set_header("Content-Type", content_type)
        await self.end(body)

    async def text(self, body: str, status: int = 200) -> None:
        await self.send(body, status=status, content_type="text/plain; charset=utf-8")

    async def json(self, data: Any, status: int = 200) -> None:
        await self.send(jsonlib.dumps(data), status=status, content_type="application/json")

    async def redirect(self, location: str, status: int = 302) -> None:
        self.set_header("Location", location)
        await self.send(b"", status=status)
