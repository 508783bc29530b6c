"""
Path router matching a request method and path against registered patterns.

Patterns are slash-delimited. A segment beginning with ``:`` and longer than
one character is a named capture; every other segment must match literally.
Routes are tried in registration order and the first match wins, so more
specific patterns must be registered before general ones.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union


class Method(str, Enum):
    """HTTP methods a route can be restricted to."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    PATCH = "PATCH"
    HEAD = "HEAD"

    @classmethod
    def parse(cls, value: Union[str, "Method"]) -> "Method":
        """Return the member for ``value``.

        Raises:
            ValueError: If ``value`` is not a supported method
        """
        if isinstance(value, Method):
            return value
        try:
            return cls(value.upper())
        except (AttributeError, ValueError):
            raise ValueError(f"Invalid method: {value}")


@dataclass(frozen=True)
class Route:
    """A registered route. Immutable once created.

    Attributes:
        pattern: Slash-delimited path template
        method: Required method, or None to accept any method
        handler: Async callable invoked with the request context and response
        docs: Optional documentation text
    """
    pattern: str
    method: Optional[Method]
    handler: Callable[..., Any]
    docs: Optional[str] = None

    @property
    def segments(self) -> List[str]:
        return self.pattern.split("/")


@dataclass(frozen=True)
class RouteMatch:
    """Result of a successful match: the route and its path captures."""
    route: Route
    captures: Dict[str, str]

    @property
    def handler(self) -> Callable[..., Any]:
        return self.route.handler


class RouteTable:
    """Ordered, append-only list of routes.

    The table is populated at start-up and frozen before the server accepts
    connections; reads are safe from any task after that.
    """

    def __init__(self):
        self._routes: List[Route] = []
        self._frozen = False

    def add(self, route: Route) -> Route:
        if self._frozen:
            raise RuntimeError("Route table is frozen; register routes before starting the server")
        self._routes.append(route)
        return route

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def routes(self) -> Tuple[Route, ...]:
        return tuple(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)


def match_pattern(pattern: str, path: str) -> Optional[Dict[str, str]]:
    """Match ``path`` against a single pattern.

    Args:
        pattern: Route pattern such as ``/users/:id``
        path: Request path without query string

    Returns:
        Capture mapping on success, None otherwise. Captured segments are
        returned verbatim; no percent-decoding is applied.
    """
    pattern_segments = pattern.split("/")
    path_segments = path.split("/")

    # No prefix or wildcard-length matching
    if len(pattern_segments) != len(path_segments):
        return None

    captures: Dict[str, str] = {}
    for expected, actual in zip(pattern_segments, path_segments):
        if expected.startswith(":") and len(expected) > 1:
            captures[expected[1:]] = actual
        elif expected != actual:
            return None
    return captures


class Router:
    """Matches requests against a ``RouteTable``.

    Complexity is O(routes x segments), which is fine for the small static
    tables this is built for.
    """

    def __init__(self, table: Optional[RouteTable] = None):
        self.table = table if table is not None else RouteTable()

    def register(self,
                 pattern: str,
                 method: Optional[Union[str, Method]],
                 handler: Callable[..., Any],
                 docs: Optional[str] = None) -> Route:
        """Append a route to the table.

        Args:
            pattern: Slash-delimited path template
            method: Method the route is restricted to, or None for any
            handler: Async route handler
            docs: Optional documentation text

        Returns:
            The registered Route

        Raises:
            ValueError: If the method is unsupported or the handler is not callable
            RuntimeError: If the table is already frozen
        """
        if not callable(handler):
            raise ValueError("Route handler must be callable")
        route_method = Method.parse(method) if method is not None else None
        return self.table.add(Route(pattern, route_method, handler, docs))

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """Find the first route matching ``method`` and ``path``.

        Args:
            method: Request method
            path: Request path without query string

        Returns:
            RouteMatch for the first matching route, or None
        """
        for route in self.table:
            captures = match_pattern(route.pattern, path)
            if captures is None:
                continue
            if route.method is None or route.method.value == method:
                return RouteMatch(route, captures)
        return None

    def has_route(self, pattern: str, method: Optional[Method]) -> bool:
        """Check whether an identical pattern/method pair is registered."""
        return any(r.pattern == pattern and r.method == method for r in self.table)

    def describe(self) -> List[Tuple[str, str, Optional[str]]]:
        """List ``(method, pattern, docs)`` in registration order."""
        return [
            (route.method.value if route.method else "ANY", route.pattern, route.docs)
            for route in self.table.routes()
        ]
