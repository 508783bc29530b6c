from .core import (
    Server, ServerConfig, Router, Method, BodyDecoder, Dispatcher,
    RequestContext, Classification, Response
)
from .core.context import NotFoundError, QuickServeError, StreamError, UploadResult
from .features import CORSConfig, Session, SessionStore, StaticFiles

__version__ = '1.0.0'

__all__ = [
    # Core components
    'Server',
    'ServerConfig',
    'Router',
    'Method',
    'BodyDecoder',
    'Dispatcher',
    'RequestContext',
    'Classification',
    'Response',

    # Errors and results
    'QuickServeError',
    'NotFoundError',
    'StreamError',
    'UploadResult',

    # Features
    'CORSConfig',
    'Session',
    'SessionStore',
    'StaticFiles',
]
