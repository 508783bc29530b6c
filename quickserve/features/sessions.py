"""
Cookie and session accessors attached to routed requests.

``CookieJar`` reads the request's Cookie header and writes ``Set-Cookie``
headers onto the response. Every client is given an ``_id`` cookie holding a
random token; ``SessionStore`` keys server-side session data by that token.
The store is owned by the server instance rather than a global.
"""

import secrets
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote

SESSION_COOKIE = "_id"

# Attribute names that can show up when clients echo Set-Cookie values back
_COOKIE_ATTRIBUTES = {"samesite", "httponly", "path", "domain", "expires", "max-age", "secure"}


def generate_session_id() -> str:
    """Generate a cryptographically secure random id."""
    return secrets.token_hex(16)


def parse_cookies(header: Optional[str]) -> Dict[str, str]:
    """Parse a ``Cookie`` header value into a name-value dict.

    Returns an empty dict for empty or missing headers.
    """
    cookies: Dict[str, str] = {}
    if not header:
        return cookies
    for pair in header.split(";"):
        pair = pair.strip()
        if "=" not in pair:
            continue
        key, _, value = pair.partition("=")
        key = key.strip()
        if key.lower() in _COOKIE_ATTRIBUTES:
            continue
        cookies[key] = unquote(value.strip())
    return cookies


def format_set_cookie(name: str, value: str, max_age: Optional[int] = None) -> str:
    """Serialize a ``Set-Cookie`` header value."""
    parts = [f"{name}={quote(value, safe='')}", "Path=/"]
    if max_age is not None:
        parts.append(f"Max-Age={max_age}")
    parts.append("HttpOnly")
    parts.append("SameSite=Strict")
    return "; ".join(parts)


class CookieJar:
    """Request cookies with write-through to the response.

    Args:
        request_headers: Request headers with lowercased names
        response: Response receiving ``Set-Cookie`` headers
    """

    def __init__(self, request_headers: Dict[str, str], response: Any):
        self._response = response
        self._cookies = parse_cookies(request_headers.get("cookie"))
        if not self._cookies.get(SESSION_COOKIE):
            self.set(SESSION_COOKIE, generate_session_id())

    @property
    def session_id(self) -> str:
        return self._cookies[SESSION_COOKIE]

    def get(self) -> Dict[str, str]:
        return dict(self._cookies)

    def set(self, name: str, value: Any) -> "CookieJar":
        self._cookies[name] = str(value)
        self._response.add_header("Set-Cookie", format_set_cookie(name, str(value)))
        return self

    def remove(self, name: str) -> "CookieJar":
        if self._cookies.pop(name, None) is not None:
            self._response.add_header("Set-Cookie", format_set_cookie(name, "", max_age=0))
        return self

    def clear(self) -> "CookieJar":
        for name in list(self._cookies):
            self.remove(name)
        return self


class SessionStore:
    """Server-side session data keyed by session id."""

    def __init__(self):
        self._sessions: Dict[str, Dict[str, str]] = {}

    def get(self, session_id: str) -> Dict[str, str]:
        """Return the session for ``session_id``, creating it if needed."""
        session = self._sessions.get(session_id)
        if session is None:
            session = {SESSION_COOKIE: session_id}
            self._sessions[session_id] = session
        return session

    def set(self, session_id: str, data: Dict[str, str]) -> None:
        self._sessions[session_id] = data

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class Session:
    """Accessor for the current client's session data.

    Args:
        store: Session store owned by the server
        cookies: Cookie jar providing the session id
    """

    def __init__(self, store: SessionStore, cookies: CookieJar):
        self._store = store
        self._id = cookies.session_id
        self._data = store.get(self._id)

    @property
    def id(self) -> str:
        return self._id

    def get(self) -> Dict[str, str]:
        return dict(self._data)

    def set(self, name: str, value: Any) -> "Session":
        self._data[name] = str(value)
        self._store.set(self._id, self._data)
        return self

    def remove(self, name: str) -> "Session":
        self._data.pop(name, None)
        self._store.set(self._id, self._data)
        return self

    def clear(self) -> "Session":
        self._data.clear()
        self._data[SESSION_COOKIE] = self._id
        self._store.set(self._id, self._data)
        return self
