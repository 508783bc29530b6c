#!/usr/bin/env python3
"""
Test suite for static file lookup and MIME types
"""
import asyncio
import os
import tempfile
import unittest

from quickserve.core.response import Response
from quickserve.features.static import StaticFiles, get_content_type, get_mime_type


class MockStreamWriter:
    def __init__(self):
        self.buffer = []

    def write(self, data):
        self.buffer.append(data)

    async def drain(self):
        pass


class TestMimeTypes(unittest.TestCase):
    def test_known_extensions(self):
        self.assertEqual(get_mime_type("index.html"), "text/html")
        self.assertEqual(get_mime_type("/a/b/logo.PNG"), "image/png")
        self.assertEqual(get_mime_type("app.js"), "application/javascript")

    def test_unknown_extension(self):
        self.assertEqual(get_mime_type("data.bin"), "application/octet-stream")
        self.assertEqual(get_mime_type("Makefile"), "application/octet-stream")
        self.assertEqual(get_mime_type("data.bin", default="text/plain"), "text/plain")

    def test_content_type_charset(self):
        self.assertEqual(get_content_type("a.html"), "text/html; charset=utf-8")
        self.assertEqual(get_content_type("a.json"), "application/json; charset=utf-8")
        self.assertEqual(get_content_type("a.png"), "image/png")


class TestStaticFiles(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = os.path.join(self.tmp.name, "public")
        os.makedirs(os.path.join(self.root, "docs"))
        with open(os.path.join(self.root, "docs", "read me.txt"), "wb") as fh:
            fh.write(b"hello static")
        with open(os.path.join(self.tmp.name, "secret.txt"), "wb") as fh:
            fh.write(b"secret")
        self.static = StaticFiles(self.root)
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

    def tearDown(self):
        self.loop.close()
        self.tmp.cleanup()

    def test_exists(self):
        self.assertTrue(self.static.exists("/docs/read%20me.txt"))
        self.assertFalse(self.static.exists("/docs"))
        self.assertFalse(self.static.exists("/docs/missing.txt"))
        self.assertFalse(self.static.exists("/"))

    def test_traversal_rejected(self):
        self.assertIsNone(self.static.resolve("/../secret.txt"))
        self.assertIsNone(self.static.resolve("/%2e%2e/secret.txt"))
        self.assertIsNone(self.static.resolve("/docs/%00.txt"))
        self.assertIsNone(self.static.resolve("relative.txt"))

    def test_stream_to(self):
        writer = MockStreamWriter()
        response = Response(writer)
        self.loop.run_until_complete(self.static.stream_to(response, "/docs/read%20me.txt"))
        raw = b''.join(writer.buffer)
        self.assertTrue(raw.startswith(b'HTTP/1.1 200 OK\r\n'))
        self.assertIn(b'Content-Type: text/plain; charset=utf-8\r\n', raw)
        self.assertIn(b'Content-Length: 12\r\n', raw)
        self.assertTrue(raw.endswith(b'\r\n\r\nhello static'))
        self.assertTrue(response.finished)

    def test_stream_missing_file(self):
        writer = MockStreamWriter()
        response = Response(writer)
        with self.assertLogs("quickserve.static", level="WARNING"):
            self.loop.run_until_complete(self.static.stream_to(response, "/gone.txt"))
        raw = b''.join(writer.buffer)
        self.assertTrue(raw.startswith(b'HTTP/1.1 404 Not Found\r\n'))
        self.assertTrue(raw.endswith(b'File not found'))


if __name__ == '__main__':
    unittest.main()
