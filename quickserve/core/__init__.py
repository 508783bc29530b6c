"""
Core server components
"""

from .server_core import Server
from .config import ServerConfig
from .router import Router, Method
from .body_decoder import BodyDecoder
from .dispatcher import Dispatcher
from .context import RequestContext, Classification
from .response import Response

# Expose public interface
__all__ = ["Server", "ServerConfig", "Router", "Method", "BodyDecoder",
           "Dispatcher", "RequestContext", "Classification", "Response"]
