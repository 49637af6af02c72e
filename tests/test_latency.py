"""Tests for netcap.latency -- serial round-trip probes."""

import asyncio
import time
import unittest

from netcap.errors import HttpError, TransportError
from netcap.latency import LatencyResult, LatencyTester
from netcap.transport import Response, Transport


class FakeTransport(Transport):
    def __init__(self, handler):
        self.handler = handler
        self.calls = 0

    async def request(self, method, url, data=None, headers=None):
        self.calls += 1
        return await self.handler(self.calls)


async def _ok(_):
    await asyncio.sleep(0.002)
    return Response(200, b"x" * 16)


class TestLatencyTester(unittest.IsolatedAsyncioTestCase):
    async def test_all_probes_succeed(self):
        transport = FakeTransport(_ok)
        result = await LatencyTester(transport, ping_count=5, interval_ms=0).test()

        self.assertEqual(transport.calls, 5)
        self.assertEqual(result.count, 5)
        self.assertEqual(result.drops, 0)
        self.assertEqual(result.loss_percent, 0.0)
        self.assertGreater(result.average_ms, 0)
        self.assertGreaterEqual(result.jitter_ms, 0)

    async def test_drops_count_towards_loss(self):
        async def handler(n):
            if n % 2:
                raise TransportError("timeout")
            return await _ok(n)

        result = await LatencyTester(FakeTransport(handler), ping_count=4, interval_ms=0).test()
        self.assertEqual(result.count, 2)
        self.assertEqual(result.drops, 2)
        self.assertAlmostEqual(result.loss_percent, 50.0)

    async def test_http_error_is_a_drop(self):
        async def handler(n):
            if n == 1:
                return Response(503)
            return await _ok(n)

        result = await LatencyTester(FakeTransport(handler), ping_count=3, interval_ms=0).test()
        self.assertEqual(result.drops, 1)
        self.assertEqual(result.count, 2)

    async def test_all_dropped_raises_last_error(self):
        async def handler(n):
            return Response(500 + n)

        with self.assertRaises(HttpError) as ctx:
            await LatencyTester(FakeTransport(handler), ping_count=3, interval_ms=0).test()
        self.assertEqual(ctx.exception.status, 503)

    async def test_zero_probes_is_degenerate_zero(self):
        transport = FakeTransport(_ok)
        result = await LatencyTester(transport, ping_count=0).test()
        self.assertEqual(transport.calls, 0)
        self.assertEqual((result.average_ms, result.jitter_ms, result.loss_percent), (0.0, 0.0, 0.0))

    async def test_progress_after_every_attempt(self):
        async def handler(n):
            if n == 2:
                raise TransportError("reset")
            return await _ok(n)

        reports = []
        tester = LatencyTester(FakeTransport(handler), ping_count=3, interval_ms=0)
        tester.on_progress = reports.append
        await tester.test()

        self.assertEqual(len(reports), 3)
        self.assertIsNotNone(reports[0].last_ms)
        self.assertIsNotNone(reports[1].error)
        self.assertEqual(reports[1].drops, 1)
        self.assertEqual(reports[2].count, 2)

    async def test_interval_between_probes(self):
        t0 = time.perf_counter()
        await LatencyTester(FakeTransport(_ok), ping_count=3, interval_ms=50).test()
        self.assertGreaterEqual(time.perf_counter() - t0, 0.1)


class TestLatencyCancellation(unittest.IsolatedAsyncioTestCase):
    async def test_stop_mid_probe_counts_nothing(self):
        async def handler(n):
            if n == 1:
                return await _ok(n)
            await asyncio.sleep(10)
            return Response(200)

        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.1, stop.set)
        t0 = time.perf_counter()
        result = await LatencyTester(FakeTransport(handler), ping_count=12, interval_ms=0).test(stop)

        self.assertLess(time.perf_counter() - t0, 1.0)
        self.assertEqual(result.count, 1)
        self.assertEqual(result.drops, 0)

    async def test_stop_during_pause_skips_sleep(self):
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop.set)
        t0 = time.perf_counter()
        result = await LatencyTester(FakeTransport(_ok), ping_count=12, interval_ms=5000).test(stop)

        self.assertLess(time.perf_counter() - t0, 1.0)
        self.assertEqual(result.count, 1)

    async def test_stop_before_any_sample_is_not_an_error(self):
        async def handler(n):
            await asyncio.sleep(10)

        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop.set)
        result = await LatencyTester(FakeTransport(handler), ping_count=3).test(stop)
        self.assertEqual(result.count, 0)


class TestLatencyResult(unittest.TestCase):
    def test_from_samples(self):
        r = LatencyResult.from_samples([10.0, 20.0], drops=2)
        self.assertAlmostEqual(r.average_ms, 15.0)
        self.assertAlmostEqual(r.jitter_ms, 5.0)
        self.assertAlmostEqual(r.loss_percent, 50.0)

    def test_to_dict(self):
        d = LatencyResult.from_samples([10.0], drops=0).to_dict()
        self.assertEqual(d["count"], 1)
        self.assertEqual(d["jitter_ms"], 0.0)


if __name__ == "__main__":
    unittest.main()
