"""Tests for netcap.config -- settings persistence and upload target lists."""

import json
import os
import tempfile
import unittest
from unittest import mock

from netcap.config import (
    DEFAULTS,
    TestConfig,
    build_upload_targets,
    endpoints_from_env,
    load_config,
    parse_upload_endpoints,
    save_config,
)
from netcap.constants import DEFAULT_UPLOAD_TARGETS
from netcap.rotation import UploadTarget


class TestConfigDefaults(unittest.TestCase):
    def test_defaults_have_required_keys(self):
        for key in ("download_duration", "upload_duration", "download_parallel",
                    "upload_parallel", "ping_count", "upload_endpoints"):
            self.assertIn(key, DEFAULTS)


class TestLoadSaveConfig(unittest.TestCase):
    def test_load_defaults_when_missing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with mock.patch("netcap.config._config_path", return_value=path):
                cfg = load_config()
                self.assertEqual(cfg["download_parallel"], 6)
                self.assertEqual(cfg["upload_endpoints"], [])

    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "sub", "config.json")
            with mock.patch("netcap.config._config_path", return_value=path):
                save_config({"ping_count": 20, "upload_parallel": 2})
                cfg = load_config()
                self.assertEqual(cfg["ping_count"], 20)
                self.assertEqual(cfg["upload_parallel"], 2)
                # Defaults still present
                self.assertEqual(cfg["download_duration"], 6.0)

    def test_corrupt_file_returns_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with open(path, "w") as f:
                f.write("NOT JSON")
            with mock.patch("netcap.config._config_path", return_value=path):
                cfg = load_config()
                self.assertEqual(cfg["ping_count"], 12)

    def test_explicit_path_and_unknown_keys(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "settings.json")
            save_config({"ping_count": 30, "plan": 100}, path)
            with open(path) as f:
                self.assertEqual(json.load(f), {"ping_count": 30})
            cfg = load_config(path)
            self.assertEqual(cfg["ping_count"], 30)
            self.assertNotIn("plan", cfg)
            self.assertEqual(os.listdir(tmpdir), ["settings.json"])

    def test_non_object_file_returns_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with open(path, "w") as f:
                f.write("[1, 2]")
            self.assertEqual(load_config(path), DEFAULTS)


class TestUploadEndpoints(unittest.TestCase):
    def test_parse_trims_and_skips_empty(self):
        targets = parse_upload_endpoints(" https://a.test/up , ,https://b.test/up,")
        self.assertEqual(
            targets,
            [
                UploadTarget("Custom endpoint 1", "https://a.test/up"),
                UploadTarget("Custom endpoint 2", "https://b.test/up"),
            ],
        )

    def test_parse_empty(self):
        self.assertEqual(parse_upload_endpoints(None), [])
        self.assertEqual(parse_upload_endpoints(""), [])

    def test_env_plural_wins(self):
        environ = {
            "NETCAP_UPLOAD_ENDPOINTS": "https://a.test/up,https://b.test/up",
            "NETCAP_UPLOAD_ENDPOINT": "https://c.test/up",
        }
        self.assertEqual([t.url for t in endpoints_from_env(environ)], ["https://a.test/up", "https://b.test/up"])

    def test_env_singular_fallback(self):
        environ = {"NETCAP_UPLOAD_ENDPOINT": "https://c.test/up"}
        self.assertEqual([t.url for t in endpoints_from_env(environ)], ["https://c.test/up"])
        self.assertEqual(endpoints_from_env({}), [])

    def test_build_puts_configured_first_and_dedupes(self):
        builtin_url = DEFAULT_UPLOAD_TARGETS[0][1]
        configured = [
            UploadTarget("Custom endpoint 1", "https://a.test/up"),
            UploadTarget("Custom endpoint 2", builtin_url),
        ]
        targets = build_upload_targets(configured)
        self.assertEqual(targets[0].url, "https://a.test/up")
        self.assertEqual(targets[1].name, "Custom endpoint 2")
        self.assertEqual([t.url for t in targets].count(builtin_url), 1)
        self.assertEqual(len(targets), len(DEFAULT_UPLOAD_TARGETS) + 1)

    def test_builtin_targets_by_default(self):
        self.assertEqual(
            [(t.name, t.url) for t in TestConfig().upload_targets],
            list(DEFAULT_UPLOAD_TARGETS),
        )


class TestFromSettings(unittest.TestCase):
    def test_settings_and_environment_merge(self):
        config = TestConfig.from_settings(
            {"ping_count": 5, "upload_endpoints": ["https://file.test/up"]},
            environ={"NETCAP_UPLOAD_ENDPOINTS": "https://env.test/up"},
        )
        self.assertEqual(config.ping_count, 5)
        self.assertEqual(config.download_parallel, 6)
        self.assertEqual(
            [(t.name, t.url) for t in config.upload_targets[:2]],
            [
                ("Custom endpoint 1", "https://env.test/up"),
                ("Custom endpoint 2", "https://file.test/up"),
            ],
        )

    def test_no_settings(self):
        config = TestConfig.from_settings(environ={})
        self.assertEqual(config.upload_duration, 5.0)
        self.assertEqual(len(config.upload_targets), len(DEFAULT_UPLOAD_TARGETS))


if __name__ == "__main__":
    unittest.main()
