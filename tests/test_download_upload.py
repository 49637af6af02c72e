"""Tests for the download and upload samplers against an in-memory transport."""

import asyncio
import unittest
from unittest import mock
from urllib.parse import parse_qs, urlsplit

from netcap.errors import ConfigurationError, RateLimited, TransportError
from netcap.download import DownloadTester
from netcap.rotation import UploadTarget
from netcap.transport import Response, Transport
from netcap.upload import UploadTester, make_payload


class FakeTransport(Transport):
    """Records calls and answers through *handler(method, url, data)*."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    async def request(self, method, url, data=None, headers=None):
        self.calls.append((method, url, headers))
        await asyncio.sleep(0)
        return await self.handler(method, url, data)


class TestDownloadTester(unittest.IsolatedAsyncioTestCase):
    async def test_transfer_once_counts_body(self):
        async def handler(method, url, data):
            return Response(200, b"x" * 4096)

        transport = FakeTransport(handler)
        tester = DownloadTester(transport, download_bytes=4096, url_template="https://dl.test/?bytes={bytes}")

        self.assertEqual(await tester.transfer_once(), 4096)
        method, url, _ = transport.calls[0]
        query = parse_qs(urlsplit(url).query)
        self.assertEqual(method, "GET")
        self.assertEqual(query["bytes"], ["4096"])
        self.assertIn("cacheBust", query)

    async def test_cache_bust_differs_per_request(self):
        async def handler(method, url, data):
            return Response(200, b"x")

        transport = FakeTransport(handler)
        tester = DownloadTester(transport)
        await tester.transfer_once()
        await tester.transfer_once()
        self.assertNotEqual(transport.calls[0][1], transport.calls[1][1])

    async def test_rate_limited_status(self):
        async def handler(method, url, data):
            return Response(429)

        tester = DownloadTester(FakeTransport(handler))
        with self.assertRaises(RateLimited):
            await tester.transfer_once()

    async def test_phase(self):
        async def handler(method, url, data):
            await asyncio.sleep(0.01)
            return Response(200, b"x" * 1000)

        tester = DownloadTester(FakeTransport(handler), duration_seconds=0.2, parallel=2)
        result = await tester.test()
        self.assertEqual(result.bytes_total, result.count * 1000)
        self.assertGreater(result.mbps, 0)


class TestUploadTester(unittest.IsolatedAsyncioTestCase):
    TARGETS = [
        UploadTarget("Primary", "https://primary.test/up"),
        UploadTarget("Backup", "https://backup.test/up"),
    ]

    async def test_no_targets_fails_before_transfer(self):
        async def handler(method, url, data):
            return Response(200)

        transport = FakeTransport(handler)
        tester = UploadTester(transport, [], duration_seconds=0.2)
        with self.assertRaises(ConfigurationError):
            await tester.test()
        self.assertEqual(transport.calls, [])

    async def test_posts_payload(self):
        sizes = []

        async def handler(method, url, data):
            sizes.append(len(data))
            await asyncio.sleep(0.01)
            return Response(200)

        transport = FakeTransport(handler)
        tester = UploadTester(transport, self.TARGETS, duration_seconds=0.2, parallel=2, payload_bytes=2048)
        result = await tester.test()

        self.assertTrue(all(size == 2048 for size in sizes))
        self.assertEqual(result.bytes_total, result.count * 2048)
        method, url, headers = transport.calls[0]
        self.assertEqual(method, "POST")
        self.assertTrue(url.startswith("https://primary.test/up?cacheBust="))
        self.assertEqual(headers["Content-Type"], "application/octet-stream")

    async def test_rate_limited_target_is_abandoned(self):
        async def handler(method, url, data):
            await asyncio.sleep(0.005)
            if url.startswith("https://primary.test"):
                return Response(429)
            return Response(200)

        changes = []
        tester = UploadTester(
            FakeTransport(handler), self.TARGETS, duration_seconds=0.3, parallel=2, payload_bytes=100
        )
        tester.on_target_change = changes.append
        result = await tester.test()

        self.assertGreater(result.count, 0)
        self.assertEqual(changes[0].reason, "initial")
        self.assertEqual(changes[0].name, "Primary")
        self.assertIn("fallback", [c.reason for c in changes])
        self.assertEqual(tester.rotation.current_target().name, "Backup")

    async def test_all_targets_down_raises(self):
        async def handler(method, url, data):
            await asyncio.sleep(0.005)
            raise TransportError("unreachable")

        tester = UploadTester(FakeTransport(handler), self.TARGETS, duration_seconds=0.2, payload_bytes=10)
        with self.assertRaises(TransportError):
            await tester.test()


class TestPayload(unittest.TestCase):
    def test_default_size(self):
        self.assertEqual(len(make_payload()), 2 * 1024 * 1024)

    def test_zero_fallback_without_random_source(self):
        with mock.patch("netcap.upload.os.urandom", side_effect=NotImplementedError):
            payload = make_payload(64)
        self.assertEqual(payload, bytes(64))


if __name__ == "__main__":
    unittest.main()
