#!/usr/bin/env python3
"""
Test suite for security features implementation
"""
import asyncio
import unittest

from quickserve.core.context import Classification, RequestContext
from quickserve.core.response import Response
from quickserve.features.security import (
    CORSConfig,
    apply_cors_headers,
    is_safe_path,
    make_preflight_responder,
)


class MockStreamWriter:
    def __init__(self):
        self.buffer = []

    def write(self, data):
        self.buffer.append(data)

    async def drain(self):
        pass


class TestCORSConfig(unittest.TestCase):
    def test_default_initialization(self):
        """Test CORS config initializes with default values"""
        cors_config = CORSConfig()
        self.assertEqual(cors_config.allowed_origins, ['*'])
        self.assertEqual(cors_config.allowed_methods, ['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'])
        self.assertEqual(cors_config.allowed_headers, ['Content-Type'])
        self.assertEqual(cors_config.max_age, 86400)
        self.assertFalse(cors_config.allow_credentials)

    def test_custom_initialization(self):
        """Test CORS config with custom values"""
        cors_config = CORSConfig(
            allowed_origins=['https://example.com'],
            allowed_methods=['GET', 'POST'],
            allowed_headers=['X-Custom-Header'],
            allow_credentials=True,
            max_age=3600
        )
        self.assertEqual(cors_config.allowed_origins, ['https://example.com'])
        self.assertEqual(cors_config.allowed_methods, ['GET', 'POST'])
        self.assertEqual(cors_config.allowed_headers, ['X-Custom-Header'])
        self.assertTrue(cors_config.allow_credentials)
        self.assertEqual(cors_config.max_age, 3600)


class TestCORSHeaders(unittest.TestCase):
    def test_default_cors_headers(self):
        """Test default CORS headers application"""
        headers = [('Content-Type', 'text/plain')]
        new_headers = apply_cors_headers(headers, CORSConfig())

        self.assertEqual(new_headers[0], ('Content-Type', 'text/plain'))
        self.assertIn(('Access-Control-Allow-Origin', '*'), new_headers)
        self.assertIn(('Access-Control-Allow-Methods', 'GET,POST,PUT,DELETE,OPTIONS'), new_headers)
        self.assertNotIn(('Vary', 'Origin'), new_headers)

    def test_matching_origin(self):
        """Test custom CORS headers for an allowed origin"""
        cors_config = CORSConfig(
            allowed_origins=['https://example.com'],
            allowed_methods=['GET'],
            allow_credentials=True
        )
        new_headers = apply_cors_headers([], cors_config, {'origin': 'https://example.com'})

        self.assertIn(('Access-Control-Allow-Origin', 'https://example.com'), new_headers)
        self.assertIn(('Access-Control-Allow-Methods', 'GET'), new_headers)
        self.assertIn(('Access-Control-Allow-Credentials', 'true'), new_headers)
        self.assertIn(('Vary', 'Origin'), new_headers)

    def test_wildcard_subdomain(self):
        cors_config = CORSConfig(allowed_origins=['*.example.com'])
        new_headers = apply_cors_headers([], cors_config, {'origin': 'https://api.example.com'})
        self.assertIn(('Access-Control-Allow-Origin', 'https://api.example.com'), new_headers)

    def test_disallowed_origin(self):
        cors_config = CORSConfig(allowed_origins=['https://example.com'])
        new_headers = apply_cors_headers([], cors_config, {'origin': 'https://evil.test'})
        self.assertIn(('Access-Control-Allow-Origin', 'null'), new_headers)


class TestPreflightResponder(unittest.TestCase):
    def test_preflight_response(self):
        loop = asyncio.new_event_loop()
        try:
            writer = MockStreamWriter()
            response = Response(writer)
            ctx = RequestContext(Classification.ROUTE, method='OPTIONS', path='/items')
            preflight = make_preflight_responder(CORSConfig())
            handled = loop.run_until_complete(preflight(ctx, response))
        finally:
            loop.close()

        raw = b''.join(writer.buffer)
        self.assertTrue(handled)
        self.assertTrue(raw.startswith(b'HTTP/1.1 204 No Content\r\n'))
        self.assertIn(b'Access-Control-Allow-Origin: *\r\n', raw)
        self.assertIn(b'Access-Control-Max-Age: 86400\r\n', raw)


class TestPathValidation(unittest.TestCase):
    def test_safe_paths(self):
        self.assertTrue(is_safe_path('/index.html'))
        self.assertTrue(is_safe_path('/css/site.css'))

    def test_path_traversal(self):
        """Test path traversal prevention"""
        self.assertFalse(is_safe_path('/../etc/passwd'))
        self.assertFalse(is_safe_path('/a/%2E%2E/b'))
        self.assertFalse(is_safe_path('/a/%252e%252e/b'))

    def test_null_bytes_and_long_segments(self):
        self.assertFalse(is_safe_path('/a%00.txt'))
        self.assertFalse(is_safe_path('/' + 'a' * 256))

    def test_relative_path(self):
        self.assertFalse(is_safe_path('index.html'))


if __name__ == '__main__':
    unittest.main()
