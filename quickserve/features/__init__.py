"""
Optional server features
"""

from .security import CORSConfig
from .sessions import CookieJar, Session, SessionStore
from .static import StaticFiles

__all__ = ["CORSConfig", "CookieJar", "Session", "SessionStore", "StaticFiles"]
