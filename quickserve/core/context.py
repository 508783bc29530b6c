"""
Request data model shared by the router, body decoder and dispatcher.

This module defines:
- The request classification outcomes
- The per-request context handed to handlers and hooks
- Upload results produced by multipart decoding
- The error taxonomy surfaced as HTTP responses
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional


class Classification(str, Enum):
    """Outcome category assigned to a request before dispatch."""
    ROUTE = "route"
    FILE = "file"
    INDEX = "index"
    ERROR = "error"


class QuickServeError(Exception):
    """Base class for request processing errors."""
    pass


class NotFoundError(QuickServeError):
    """No route matched and no static file exists."""

    def __init__(self, message: str = "Not Found"):
        super().__init__(message)


class StreamError(QuickServeError):
    """Request body bytes could not be accumulated.

    The original failure is chained as ``__cause__``; ``status`` is the
    HTTP status the ERROR response is sent with.
    """

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class UploadResult:
    """Outcome of persisting one multipart file part.

    Attributes:
        file: Destination path the part was written to
        error: Exception raised by the write, if any
    """
    file: str
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, str]:
        result = {"file": self.file}
        if self.error is not None:
            result["error"] = str(self.error)
        return result


Handler = Callable[["RequestContext", Any], Awaitable[Any]]


@dataclass
class RequestContext:
    """Everything known about one inbound request.

    Created by the dispatcher once the request has been classified and
    discarded once the response is finalized. ``classification`` can only
    be assigned once.
    """
    classification: Classification
    method: str
    path: str
    request_id: int = -1
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    captures: Dict[str, str] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)
    cookies: Optional[Any] = None
    session: Optional[Any] = None
    error: Optional[BaseException] = None
    handler: Optional[Handler] = field(default=None, repr=False)
    file_path: Optional[str] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "classification" and "classification" in self.__dict__:
            raise AttributeError("classification is already assigned")
        super().__setattr__(name, value)

    @property
    def files(self):
        """Upload results from a multipart body, in part order."""
        return self.body.get("files", [])
