import os
import unittest
from pathlib import Path
from unittest import mock

from rating_analytics.config import load_settings


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            s = load_settings()
        self.assertEqual(s.db_path, Path("ratings.db"))
        self.assertEqual(s.cache_ttl_seconds, 3600)
        self.assertEqual(s.log_level, "INFO")

    def test_environment_overrides(self):
        env = {
            "RATING_ANALYTICS_DB_PATH": "/tmp/r.db",
            "RATING_ANALYTICS_OUT_DIR": "site",
            "RATING_ANALYTICS_CACHE_TTL": "60",
            "RATING_ANALYTICS_LOG_LEVEL": "debug",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            s = load_settings()
        self.assertEqual(s.db_path, Path("/tmp/r.db"))
        self.assertEqual(s.out_dir, Path("site"))
        self.assertEqual(s.cache_ttl_seconds, 60)
        self.assertEqual(s.log_level, "DEBUG")


if __name__ == "__main__":
    unittest.main()
