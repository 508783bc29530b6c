"""
Security features implementation including CORS and path validation.

This module provides security-related features for the server including:
- CORS configuration and preflight handling
- CORS response headers
- Request path validation for static file lookups
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass
class CORSConfig:
    """CORS configuration settings."""
    allowed_origins: List[str] = None
    allowed_methods: List[str] = None
    allowed_headers: List[str] = None
    allow_credentials: bool = False
    max_age: int = 86400  # 24 hours

    def __post_init__(self):
        # Set defaults if None
        self.allowed_origins = self.allowed_origins or ['*']
        self.allowed_methods = self.allowed_methods or ['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS']
        self.allowed_headers = self.allowed_headers or ['Content-Type']


def apply_cors_headers(headers: List[Tuple[str, str]],
                       cors_config: CORSConfig,
                       request_headers: Optional[Dict[str, str]] = None) -> List[Tuple[str, str]]:
    """Apply CORS headers to response.

    Args:
        headers: List of response header tuples
        cors_config: CORS configuration
        request_headers: Request headers with lowercased names

    Returns:
        Headers with CORS headers added
    """
    # Access-Control-Allow-Origin must be a single origin or '*', not a comma-separated list
    origin_value = '*'

    if request_headers is not None and cors_config.allowed_origins != ['*']:
        request_origin = request_headers.get('origin')
        origin_value = 'null'
        if request_origin:
            for allowed_origin in cors_config.allowed_origins:
                # Allow exact match or wildcard subdomain match (*.example.com)
                if (request_origin == allowed_origin or
                        (allowed_origin.startswith('*.') and
                         request_origin.endswith(allowed_origin[1:]))):
                    origin_value = request_origin
                    break

    cors_headers = [
        ('Access-Control-Allow-Origin', origin_value),
        ('Access-Control-Allow-Methods', ','.join(cors_config.allowed_methods)),
        ('Access-Control-Allow-Headers', ','.join(cors_config.allowed_headers)),
        ('Access-Control-Max-Age', str(cors_config.max_age)),
    ]

    # Credentials cannot be used with wildcard origin
    if cors_config.allow_credentials and origin_value != '*':
        cors_headers.append(('Access-Control-Allow-Credentials', 'true'))

    if origin_value != '*':
        cors_headers.append(('Vary', 'Origin'))

    return headers + cors_headers


def make_preflight_responder(cors_config: CORSConfig):
    """Build the fixed handler mapped to auto-registered OPTIONS routes.

    Args:
        cors_config: CORS configuration used for the preflight headers

    Returns:
        Async route handler answering ``204 No Content`` with CORS headers
    """
    async def preflight(ctx, response):
        for name, value in apply_cors_headers([], cors_config, ctx.headers):
            response.set_header(name, value)
        await response.send(b'', status=204)
        return True

    return preflight


def is_safe_path(path: str) -> bool:
    """Check a request path before it is mapped onto the filesystem.

    Args:
        path: Request path without query string

    Returns:
        True if the path may be resolved under the public directory
    """
    if not path.startswith('/'):
        return False

    # Path traversal prevention
    lowered = path.lower()
    if '..' in path or '%2e%2e' in lowered or '%252e%252e' in lowered:
        return False

    for part in path.split('/'):
        # Null bytes and extremely long segments
        if '\0' in part or '%00' in part.lower():
            return False
        if len(part) > 255:
            return False

    return True
