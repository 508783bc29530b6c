"""
Dispatch state machine: classify each request and run what it resolves to.

Every request ends up in exactly one classification:

- ROUTE: a registered route matched; the body is decoded (for methods that
  carry one) and the route handler runs
- FILE: no route matched but a static file exists under the public directory
- INDEX: the application's index predicate claimed the path
- ERROR: nothing matched (404) or the body could not be accumulated

For FILE, INDEX and ERROR an overridable hook runs first; the default
behavior only runs when the hook returns a falsy result. Handler faults
become ``500`` responses carrying the fault's message.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from quickserve.features.sessions import CookieJar, Session, SessionStore
from quickserve.features.static import StaticFiles

from .body_decoder import BodyDecoder, parse_query_string
from .config import ServerConfig
from .context import Classification, NotFoundError, RequestContext, StreamError
from .metrics import REQ_ERRORS, REQ_TOTAL
from .response import Response
from .router import Router

logger = logging.getLogger("quickserve.dispatch")

Hook = Callable[[RequestContext, Response], Awaitable[Any]]


async def _noop_hook(ctx: RequestContext, response: Response) -> None:
    return None


class DispatchHooks:
    """Overrides for the default FILE, INDEX and ERROR behaviors.

    Each hook is an async callable ``(ctx, response)``. A truthy result means
    the hook handled the request and the default behavior is skipped.
    """

    def __init__(self,
                 on_error: Optional[Hook] = None,
                 on_file: Optional[Hook] = None,
                 on_index: Optional[Hook] = None):
        self.on_error = on_error or _noop_hook
        self.on_file = on_file or _noop_hook
        self.on_index = on_index or _noop_hook

    def replace(self, **hooks: Hook) -> "DispatchHooks":
        current = {"on_error": self.on_error, "on_file": self.on_file, "on_index": self.on_index}
        for name, hook in hooks.items():
            if name not in current:
                raise ValueError(f"Unknown hook: {name}")
            if not callable(hook):
                raise ValueError("Hook must be callable")
            current[name] = hook
        return DispatchHooks(**current)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def split_target(target: str):
    """Split a request target into path and query string."""
    target = target.partition("#")[0]
    path, _, query = target.partition("?")
    return path or "/", query


class Dispatcher:
    """Classifies requests and dispatches them to handlers or defaults.

    Args:
        router: Router holding the registered routes
        decoder: Body decoder for routed requests
        static: Static-asset collaborator
        sessions: Session store owned by the server
        config: Server configuration
        index_predicate: Application-owned condition for INDEX classification
    """

    def __init__(self,
                 router: Router,
                 decoder: BodyDecoder,
                 static: StaticFiles,
                 sessions: SessionStore,
                 config: ServerConfig,
                 index_predicate: Optional[Callable[[str], bool]] = None):
        self.router = router
        self.decoder = decoder
        self.static = static
        self.sessions = sessions
        self.config = config
        self.index_predicate = index_predicate
        self.hooks = DispatchHooks()

    def set_hooks(self, hooks: DispatchHooks) -> None:
        self.hooks = hooks

    def set_error_hook(self, hook: Hook) -> None:
        self.hooks = self.hooks.replace(on_error=hook)

    def set_file_hook(self, hook: Hook) -> None:
        self.hooks = self.hooks.replace(on_file=hook)

    def set_index_hook(self, hook: Hook) -> None:
        self.hooks = self.hooks.replace(on_index=hook)

    def _attach_state(self, headers: Dict[str, str], response: Response):
        cookies = CookieJar(headers, response)
        return cookies, Session(self.sessions, cookies)

    async def classify(self,
                       method: str,
                       target: str,
                       headers: Dict[str, str],
                       response: Response,
                       read_body: Callable[[], Awaitable[bytes]],
                       request_id: int = -1) -> RequestContext:
        """Classify a request and build its context.

        Args:
            method: Request method
            target: Request target (path and optional query string)
            headers: Request headers with lowercased names
            response: Response the cookie jar writes to
            read_body: Coroutine function returning the accumulated body;
                raises StreamError when accumulation fails
            request_id: Correlation id of the request

        Returns:
            RequestContext with its classification assigned
        """
        path, query_string = split_target(target)
        query = parse_query_string(query_string)
        base = dict(method=method, path=path, query=query, headers=headers, request_id=request_id)

        match = self.router.match(method, path)
        if match is not None:
            body: Dict[str, Any] = {}
            if self.decoder.accepts_body(method):
                try:
                    raw = await read_body()
                except StreamError as e:
                    logger.warning("Failed to read request body: %s", e)
                    return RequestContext(Classification.ERROR, status=e.status,
                                          error=e, **base)
                body = await self.decoder.decode(raw, headers.get("content-type"))

            cookies, session = self._attach_state(headers, response)
            return RequestContext(Classification.ROUTE, captures=match.captures, body=body,
                                  cookies=cookies, session=session, handler=match.handler, **base)

        if self.index_predicate is not None and self.index_predicate(path):
            return RequestContext(Classification.INDEX, **base)

        if self.static.exists(path):
            cookies, session = self._attach_state(headers, response)
            resolved = self.static.resolve(path)
            return RequestContext(Classification.FILE, cookies=cookies, session=session,
                                  file_path=str(resolved), **base)

        return RequestContext(Classification.ERROR, status=404, error=NotFoundError(), **base)

    async def dispatch(self, ctx: RequestContext, response: Response) -> None:
        """Run the handler or default behavior for a classified request.

        Never raises for handler or hook faults; a fault becomes a 500
        response when the head has not been sent yet.
        """
        REQ_TOTAL.labels(ctx.classification.value).inc()
        logger.info("ROUTING [%s] %s %s %s", ctx.method, ctx.classification.value, ctx.status, ctx.path)
        try:
            if ctx.classification is Classification.ROUTE:
                await _call(ctx.handler, ctx, response)
            elif ctx.classification is Classification.ERROR:
                if not await _call(self.hooks.on_error, ctx, response):
                    await self._default_error(ctx, response)
            elif ctx.classification is Classification.FILE:
                if not await _call(self.hooks.on_file, ctx, response):
                    await self.static.stream_to(response, ctx.path)
            elif ctx.classification is Classification.INDEX:
                if not await _call(self.hooks.on_index, ctx, response):
                    await response.redirect(self.config.index_path)
        except Exception as e:
            await self._handle_fault(ctx, response, e)

        if not response.finished:
            await response.end()
        logger.info("done")

    async def _default_error(self, ctx: RequestContext, response: Response) -> None:
        message = str(ctx.error) if ctx.error is not None else ""
        await response.send(message or str(ctx.status), status=ctx.status, content_type="text/plain")

    async def _handle_fault(self, ctx: RequestContext, response: Response, error: BaseException) -> None:
        REQ_ERRORS.inc()
        logger.error("Handler fault on %s %s: %s", ctx.method, ctx.path, error, exc_info=error)
        if response.headers_sent:
            response.finished = True
            return
        await response.send(str(error) or "Internal Server Error", status=500, content_type="text/plain")
