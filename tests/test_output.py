"""Unit tests for ui.output -- JSON creation and text formatting."""

import json
import os
import tempfile
import unittest

from netcap.latency import LatencyResult
from netcap.orchestrator import LogEntry, RunResults
from netcap.rating import rate
from netcap.transfer import ThroughputResult
from ui.output import create_result_json, format_text_result, save_json


def _results(**overrides):
    values = dict(
        download=ThroughputResult(bits_per_second=100e6, count=12, bytes_total=75_000_000, duration_ms=6000),
        upload=ThroughputResult(bits_per_second=20e6, count=6, bytes_total=12_500_000, duration_ms=5000),
        latency=LatencyResult.from_samples([9.0, 10.0, 11.0], drops=0),
    )
    values.update(overrides)
    return RunResults(**values)


class TestCreateResultJson(unittest.TestCase):
    def test_basic_structure(self):
        results = _results()
        r = create_result_json(results, rate(results.measurements()), status="Test complete")
        for key in ("timestamp", "status", "download", "upload", "latency", "errors", "samples", "capabilities"):
            self.assertIn(key, r)
        self.assertEqual(r["status"], "Test complete")
        self.assertEqual(r["samples"], {"download": 12, "upload": 6, "latency": 3})
        self.assertEqual(len(r["capabilities"]), 3)
        self.assertNotIn("log", r)

    def test_latency_fields(self):
        r = create_result_json(_results(), [], status="Test complete")
        self.assertAlmostEqual(r["latency"]["average_ms"], 10.0)
        self.assertEqual(r["latency"]["count"], 3)

    def test_missing_phase_and_error(self):
        results = _results(download=None)
        results.errors["download"] = "Download test was rate limited (HTTP 429)."
        r = create_result_json(results, [], status="Test finished with warnings")
        self.assertIsNone(r["download"])
        self.assertEqual(r["errors"]["download"], "Download test was rate limited (HTTP 429).")

    def test_upload_target_and_log(self):
        r = create_result_json(
            _results(),
            [],
            status="Test complete",
            upload_target={"name": "HTTPBin", "url": "https://httpbin.org/post"},
            log=[LogEntry(0.12345, "Download test started.")],
        )
        self.assertEqual(r["upload_target"]["name"], "HTTPBin")
        self.assertEqual(r["log"], [{"t": 0.123, "message": "Download test started."}])

    def test_serializable(self):
        results = _results()
        json.dumps(create_result_json(results, rate(results.measurements()), status="Test complete"))


class TestSaveJson(unittest.TestCase):
    def test_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "result.json")
            save_json({"status": "Test complete"}, path)
            with open(path, encoding="utf-8") as fh:
                self.assertEqual(json.load(fh), {"status": "Test complete"})
            self.assertEqual(os.listdir(tmpdir), ["result.json"])

    def test_bad_directory(self):
        with self.assertRaises(IOError):
            save_json({}, os.path.join(tempfile.gettempdir(), "no-such-dir-netcap", "r.json"))


class TestFormatText(unittest.TestCase):
    def test_lines(self):
        results = _results()
        text = format_text_result(results, rate(results.measurements()))
        self.assertIn("Download: 100.00 Mbps", text)
        self.assertIn("Upload: 20.00 Mbps", text)
        self.assertIn("Latency: 10.0 ms", text)
        self.assertIn("Teams: PASS - Highest supported quality: Video 720p", text)

    def test_errored_phase_not_accessible(self):
        results = _results(upload=None)
        results.errors["upload"] = "Upload request was forbidden (HTTP 403)."
        text = format_text_result(results, [])
        self.assertIn("Upload: Not accessible (Upload request was forbidden (HTTP 403).)", text)


if __name__ == "__main__":
    unittest.main()
