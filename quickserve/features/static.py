"""
Static asset lookup and streaming from the public directory.

Request paths are mapped under the configured public directory after
traversal checks. Files are streamed in fixed-size chunks with a
Content-Type derived from the file extension.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Union
from urllib.parse import unquote

from .security import is_safe_path

logger = logging.getLogger("quickserve.static")

CHUNK_SIZE = 65536

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    ".txt": "text/plain",
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".eot": "font/eot",
    ".otf": "font/otf",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".rar": "application/x-rar-compressed",
    ".tar": "application/x-tar",
    ".tgz": "application/x-gzip",
    ".7z": "application/x-7z-compressed",
    ".exe": "application/x-msdownload",
    ".elf": "application/x-executable",
    ".dmg": "application/x-apple-diskimage",
    ".jar": "application/java-archive",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".aac": "audio/aac",
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
}

_TEXT_TYPES = {"application/json", "application/javascript", "image/svg+xml"}


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """Get the MIME type for a file based on its extension.

    Args:
        path: File path or name with extension
        default: MIME type for unknown extensions

    Returns:
        The MIME type string, ``application/octet-stream`` if unknown
    """
    extension = Path(path).suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """Content-Type header value for a file, with charset for text types."""
    mime_type = get_mime_type(path)
    if mime_type.startswith("text/") or mime_type in _TEXT_TYPES:
        return f"{mime_type}; charset={charset}"
    return mime_type


class StaticFiles:
    """Serves files below ``public_dir``.

    Args:
        public_dir: Root directory for static assets
    """

    def __init__(self, public_dir: Union[str, Path]):
        self.root = Path(public_dir)

    def resolve(self, path: str) -> Optional[Path]:
        """Map a request path onto the public directory.

        Returns:
            Candidate file path, or None if the path is unsafe
        """
        if not is_safe_path(path):
            return None
        relative = unquote(path).lstrip("/")
        if not relative or "\0" in relative:
            return None
        candidate = self.root / relative
        root = self.root.resolve()
        resolved = candidate.resolve()
        if resolved != root and root not in resolved.parents:
            return None
        return candidate

    def exists(self, path: str) -> bool:
        """Whether a regular file exists for the request path."""
        candidate = self.resolve(path)
        return candidate is not None and candidate.is_file()

    async def stream_to(self, response, path: str) -> None:
        """Stream the file for ``path`` to ``response``.

        A file that is missing at stream time yields ``404 File not found``.
        """
        candidate = self.resolve(path)
        loop = asyncio.get_running_loop()
        try:
            if candidate is None:
                raise FileNotFoundError(path)
            fh = await loop.run_in_executor(None, open, candidate, "rb")
        except OSError as e:
            logger.warning("Requested file doesn't exist: %s (%s)", path, e)
            await response.send("File not found", status=404, content_type="text/plain")
            return

        try:
            size = os.fstat(fh.fileno()).st_size
            response.set_header("Content-Type", get_content_type(candidate))
            response.set_header("Content-Length", str(size))
            await response.write_head(200)
            while True:
                chunk = await loop.run_in_executor(None, fh.read, CHUNK_SIZE)
                if not chunk:
                    break
                await response.write(chunk)
            await response.end()
        finally:
            fh.close()
