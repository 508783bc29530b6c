#!/usr/bin/env python3
"""
Test suite for request correlation ids
"""
import asyncio
import logging
import unittest

from quickserve.core.correlation import (
    RequestIdFilter,
    current_request_id,
    next_request_id,
    request_scope,
)


class TestCorrelation(unittest.TestCase):
    def test_ids_increase(self):
        first = next_request_id()
        second = next_request_id()
        self.assertEqual(second, first + 1)

    def test_scope_binds_and_resets(self):
        self.assertIsNone(current_request_id())
        with request_scope(11):
            self.assertEqual(current_request_id(), 11)
            with request_scope(12):
                self.assertEqual(current_request_id(), 12)
            self.assertEqual(current_request_id(), 11)
        self.assertIsNone(current_request_id())

    def test_concurrent_tasks_keep_their_own_id(self):
        async def worker(request_id, delay):
            with request_scope(request_id):
                await asyncio.sleep(delay)
                return current_request_id()

        async def main():
            return await asyncio.gather(worker(1, 0.02), worker(2, 0.0), worker(3, 0.01))

        loop = asyncio.new_event_loop()
        try:
            self.assertEqual(loop.run_until_complete(main()), [1, 2, 3])
        finally:
            loop.close()

    def test_filter(self):
        record = logging.LogRecord("quickserve", logging.INFO, __file__, 1, "msg", None, None)
        RequestIdFilter().filter(record)
        self.assertEqual(record.request_id, "-")
        with request_scope(5):
            RequestIdFilter().filter(record)
        self.assertEqual(record.request_id, 5)


if __name__ == '__main__':
    unittest.main()
