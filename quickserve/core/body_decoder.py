"""
Request body decoding by content type.

This module turns the accumulated request bytes into a payload mapping:
- ``application/x-www-form-urlencoded`` pairs
- ``application/json`` objects (malformed JSON yields an empty mapping)
- ``multipart/form-data`` text fields and file uploads

File parts are written to the upload directory one at a time, in the
order they appear in the body, so the ``files`` list always matches part
order. A failed write is recorded on its UploadResult and does not stop
the remaining parts.
"""

import asyncio
import json
import logging
import os
import time
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

from python_multipart.multipart import parse_options_header

from .context import UploadResult
from .metrics import UPLOAD_FAILURES

logger = logging.getLogger("quickserve.body")

FORM_URLENCODED = "application/x-www-form-urlencoded"
JSON = "application/json"
MULTIPART = "multipart/form-data"

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

CRLF = b"\r\n"


def parse_query_string(query: str) -> Dict[str, str]:
    """Parse ``a=1&b=2`` style data.

    Pairs are split on the first ``=`` and values are percent-decoded.
    Pairs with an empty key are dropped and the last duplicate wins.

    Args:
        query: Raw query string or urlencoded body

    Returns:
        Mapping of key to decoded value
    """
    result: Dict[str, str] = {}
    if not query:
        return result
    for pair in query.split("&"):
        key, _, value = pair.partition("=")
        if not key:
            continue
        result[key] = unquote(value)
    return result


def parse_header_params(value: str) -> Tuple[str, Dict[str, str]]:
    """Split a header value into its main token and ``;`` parameters.

    Quoted parameter values may contain ``;``.

    Args:
        value: Header value such as ``form-data; name="a"; filename="b.txt"``

    Returns:
        Tuple of lowercased main value and parameter mapping with
        lowercased names and unquoted values
    """
    main, options = parse_options_header(value.encode("utf-8"))
    params = {
        name.decode("utf-8", errors="replace").lower(): param.decode("utf-8", errors="replace")
        for name, param in options.items()
    }
    return main.decode("utf-8", errors="replace").strip().lower(), params


def parse_content_type(content_type: Optional[str]) -> Tuple[Optional[str], Dict[str, str]]:
    """Return the media type and parameters of a Content-Type header."""
    if not content_type:
        return None, {}
    return parse_header_params(content_type)


def safe_filename(filename: str) -> str:
    """Reduce a declared upload filename to a bare file name.

    Directory components are stripped. An empty result falls back to the
    current timestamp in milliseconds.
    """
    name = PurePosixPath(filename.replace("\\", "/")).name
    if name in ("", ".", ".."):
        name = str(int(time.time() * 1000))
    return name


class MultipartPart:
    """One part of a multipart body: header block and raw content."""

    def __init__(self, headers: Dict[str, str], content: bytes):
        self.headers = headers
        self.content = content
        disposition = headers.get("content-disposition", "")
        _, self.params = parse_header_params(disposition)

    @property
    def name(self) -> Optional[str]:
        return self.params.get("name")

    @property
    def filename(self) -> Optional[str]:
        return self.params.get("filename")

    @property
    def is_file(self) -> bool:
        return "filename" in self.params


def split_multipart(body: bytes, boundary: str) -> List[MultipartPart]:
    """Group the CRLF-delimited lines of ``body`` into parts.

    Lines before the first delimiter and after the closing delimiter are
    ignored. A part's header block ends at its first blank line.

    Args:
        body: Raw request body
        boundary: Boundary token from the Content-Type header

    Returns:
        Parts in the order they appear in the body
    """
    delimiter = b"--" + boundary.encode("latin-1")
    closing = delimiter + b"--"

    parts: List[MultipartPart] = []
    current: Optional[List[bytes]] = None

    for line in body.split(CRLF):
        stripped = line.rstrip(b" \t")
        if stripped == delimiter or stripped == closing:
            if current is not None:
                parts.append(_build_part(current))
            current = None if stripped == closing else []
            if stripped == closing:
                break
            continue
        if current is not None:
            current.append(line)

    # Unterminated final part
    if current:
        parts.append(_build_part(current))
    return parts


def _build_part(lines: List[bytes]) -> MultipartPart:
    headers: Dict[str, str] = {}
    try:
        blank = lines.index(b"")
    except ValueError:
        blank = len(lines)
    for raw in lines[:blank]:
        name, sep, value = raw.decode("utf-8", errors="replace").partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()
    content = CRLF.join(lines[blank + 1:])
    return MultipartPart(headers, content)


def _write_file(destination: Path, content: bytes) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    with open(destination, "wb") as fh:
        fh.write(content)


class BodyDecoder:
    """Decodes request bodies according to their declared content type.

    Args:
        upload_dir: Directory multipart file parts are written to
    """

    def __init__(self, upload_dir: str):
        self.upload_dir = upload_dir

    @staticmethod
    def accepts_body(method: str) -> bool:
        """Whether the body of a ``method`` request is read and decoded."""
        return method not in BODYLESS_METHODS

    async def decode(self, body: bytes, content_type: Optional[str]) -> Dict[str, Any]:
        """Decode a request body.

        Args:
            body: Accumulated request bytes
            content_type: Content-Type header value, if present

        Returns:
            Payload mapping. Unsupported or missing content types and
            malformed JSON all decode to an empty mapping.
        """
        media_type, params = parse_content_type(content_type)
        if media_type is None:
            return {}
        if media_type == FORM_URLENCODED:
            return parse_query_string(body.decode("utf-8", errors="replace"))
        if media_type == JSON:
            return self._decode_json(body)
        if media_type == MULTIPART:
            boundary = params.get("boundary")
            if not boundary:
                logger.debug("multipart body without boundary ignored")
                return {}
            return await self._decode_multipart(body, boundary)

        logger.debug("Unsupported content type %s, body ignored", media_type)
        return {}

    def _decode_json(self, body: bytes) -> Dict[str, Any]:
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            logger.debug("Malformed JSON body ignored: %s", e)
            return {}
        if not isinstance(payload, dict):
            logger.debug("JSON body is not an object, ignored")
            return {}
        return payload

    async def _decode_multipart(self, body: bytes, boundary: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        files: List[UploadResult] = []

        for part in split_multipart(body, boundary):
            if part.name is None:
                continue
            if part.is_file:
                # One write at a time keeps ``files`` in part order
                files.append(await self._save_part(part))
            else:
                payload[part.name] = part.content.decode("utf-8", errors="replace").strip()

        payload["files"] = files
        return payload

    async def _save_part(self, part: MultipartPart) -> UploadResult:
        destination = Path(self.upload_dir) / safe_filename(part.filename or "")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _write_file, destination, part.content)
        except OSError as e:
            UPLOAD_FAILURES.inc()
            logger.warning("Failed to write upload %s: %s", destination, e)
            return UploadResult(os.fspath(destination), e)
        logger.debug("Stored upload %s (%d bytes)", destination, len(part.content))
        return UploadResult(os.fspath(destination))
