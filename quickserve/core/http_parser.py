"""
HTTP request parser using httptools for efficient parsing.

This module provides a request parser with:
- Strict size limits for security
- Separate head and body phases, so the body is only accumulated once
  the caller has decided it needs it
- Read timeouts on every chunk
- Proper error handling and validation
"""

import asyncio
from typing import Dict, Optional

import httptools


class HTTPParserError(Exception):
    """Custom exception for HTTP parsing errors.

    Attributes:
        status: HTTP status code to answer the client with
    """

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


class HTTPParser:
    """Parses HTTP requests using httptools with validation and safety checks.

    This parser implements callbacks from httptools.HttpRequestParser and manages
    the state of an HTTP request as it's being parsed.

    Constants:
        MAX_BODY_SIZE: Maximum allowed request body size (10MB)
        MAX_HEADER_SIZE: Maximum size per header (8KB)
        MAX_HEADERS: Maximum number of headers per request (100)
        MAX_URL_SIZE: Maximum request target length (8KB)
        READ_SIZE: Bytes requested from the stream per read
    """
    MAX_BODY_SIZE = 10485760  # 10MB limit
    MAX_HEADER_SIZE = 8192    # 8KB per header
    MAX_HEADERS = 100         # Maximum number of headers
    MAX_URL_SIZE = 8192
    READ_SIZE = 8192

    def __init__(self,
                 max_body_size: Optional[int] = None,
                 max_header_size: Optional[int] = None):
        self.max_body_size = self.MAX_BODY_SIZE if max_body_size is None else max_body_size
        self.max_header_size = max_header_size or self.MAX_HEADER_SIZE
        self.parser = httptools.HttpRequestParser(self)

        self.headers: Dict[str, str] = {}
        self.body = bytearray()
        self.url = ""
        self.method: Optional[str] = None
        self.headers_complete = False
        self.message_complete = False
        self.body_too_large = False
        self._url_parts = []

    # httptools callbacks

    def on_url(self, url: bytes) -> None:
        # httptools may deliver the URL in several pieces
        self._url_parts.append(url)
        if sum(len(p) for p in self._url_parts) > self.MAX_URL_SIZE:
            raise HTTPParserError("URL too long", status=414)

    def on_header(self, name: bytes, value: bytes) -> None:
        if len(self.headers) >= self.MAX_HEADERS:
            raise HTTPParserError("Too many headers", status=431)
        try:
            name_str = name.decode('ascii')
            value_str = value.decode('latin-1')
        except UnicodeDecodeError:
            raise HTTPParserError("Invalid header encoding")
        if len(name_str) > 256:
            raise HTTPParserError("Header name too long", status=431)
        if len(value_str) > self.max_header_size:
            raise HTTPParserError(f"Header too long: {name_str}", status=431)
        self.headers[name_str.lower()] = value_str

    def on_headers_complete(self) -> None:
        self.method = self.parser.get_method().decode('ascii')
        self.url = b''.join(self._url_parts).decode('latin-1')
        self.headers_complete = True

    def on_body(self, body: bytes) -> None:
        if len(self.body) + len(body) > self.max_body_size:
            self.body_too_large = True
            return
        self.body += body

    def on_message_complete(self) -> None:
        self.message_complete = True

    # Feeding

    def feed_data(self, data: bytes) -> None:
        """Feed raw request data to the parser.

        Raises:
            HTTPParserError: If parsing fails
        """
        try:
            self.parser.feed_data(data)
        except httptools.HttpParserCallbackError as e:
            cause = e.__context__
            if isinstance(cause, HTTPParserError):
                raise cause
            raise HTTPParserError(f"Parser error: {e}")
        except httptools.HttpParserUpgrade:
            # Upgrades are not supported; anything after the head is ignored
            self.message_complete = True
        except httptools.HttpParserError as e:
            raise HTTPParserError(f"Malformed request: {e}")

    async def _read_chunk(self, reader: asyncio.StreamReader, timeout: Optional[float]) -> bytes:
        if timeout is None:
            return await reader.read(self.READ_SIZE)
        return await asyncio.wait_for(reader.read(self.READ_SIZE), timeout=timeout)

    async def read_head(self, reader: asyncio.StreamReader, timeout: Optional[float] = None) -> bool:
        """Read until the request line and headers are parsed.

        Body bytes that arrive in the same chunks are buffered but not
        interpreted.

        Args:
            reader: StreamReader for the connection
            timeout: Seconds to wait for each chunk

        Returns:
            False if the client closed the connection without sending anything

        Raises:
            HTTPParserError: On malformed or incomplete headers, or timeout
        """
        received = 0
        while not self.headers_complete:
            try:
                chunk = await self._read_chunk(reader, timeout)
            except asyncio.TimeoutError:
                raise HTTPParserError("Request timeout", status=408)
            if not chunk:
                if received == 0:
                    return False
                raise HTTPParserError("Incomplete request headers")
            received += len(chunk)
            self.feed_data(chunk)
        return True

    async def read_body(self, reader: asyncio.StreamReader, timeout: Optional[float] = None) -> bytes:
        """Accumulate the rest of the request body.

        Args:
            reader: StreamReader for the connection
            timeout: Seconds to wait for each chunk

        Returns:
            The complete request body

        Raises:
            HTTPParserError: If the body is too large, truncated, malformed
                or the read times out
        """
        while not self.message_complete:
            if self.body_too_large:
                break
            try:
                chunk = await self._read_chunk(reader, timeout)
            except asyncio.TimeoutError:
                raise HTTPParserError("Request body timeout", status=408)
            if not chunk:
                raise HTTPParserError("Incomplete request body")
            self.feed_data(chunk)

        if self.body_too_large:
            raise HTTPParserError("Request body too large", status=413)
        return bytes(self.body)

    @property
    def expects_continue(self) -> bool:
        return self.headers.get('expect', '').lower() == '100-continue'

    @property
    def is_complete(self) -> bool:
        """Check if parsing is complete"""
        return self.message_complete

    def close(self) -> None:
        """Explicitly cleanup parser resources"""
        self.parser = None
