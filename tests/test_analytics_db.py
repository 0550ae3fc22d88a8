import dataclasses
import os
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("ANALYTICS_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from app.analytics import db as analytics_db  # noqa: E402
from app.core.config import settings  # noqa: E402


class AnalyticsDbTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        enabled = dataclasses.replace(
            settings,
            analytics_enabled=True,
            analytics_db_path=str(Path(self._tmp.name) / "analytics.db"),
        )
        self._patch = patch.object(analytics_db, "settings", enabled)
        self._patch.start()

    def tearDown(self):
        self._patch.stop()
        self._tmp.cleanup()

    def _log_run(self, run_id: str, status: str, passed: int, failed: int, errors: int = 0) -> None:
        now = datetime.now(timezone.utc)
        analytics_db.log_screening_run(
            run_id=run_id,
            session_hash="abc123",
            role="Data Scientist",
            status=status,
            total=passed + failed,
            processed=passed + failed,
            passed=passed,
            failed=failed,
            errors=errors,
            started_at=now,
            finished_at=now,
        )

    def test_summary_aggregates_runs(self):
        self._log_run("run-1", "completed", passed=3, failed=2, errors=1)
        self._log_run("run-2", "aborted", passed=1, failed=0)
        analytics_db.log_ai_analysis_run(
            run_id="call-1", tool_slug="resume-screening", model="m", schema_valid=True, status="success", latency_ms=100
        )
        analytics_db.log_ai_analysis_run(
            run_id="call-2", tool_slug="resume-screening", model="m", schema_valid=False, status="error",
            error_code="timeout", latency_ms=300,
        )

        summary = analytics_db.get_screening_summary()

        self.assertTrue(summary["enabled"])
        self.assertEqual(summary["runs"], 2)
        self.assertEqual(summary["candidates"], 6)
        self.assertEqual(summary["passed"], 4)
        self.assertEqual(summary["failed"], 2)
        self.assertEqual(summary["errors"], 1)
        self.assertEqual(summary["aborted"], 1)
        self.assertEqual(summary["avg_analysis_latency_ms"], 200)

    def test_latest_runs_newest_first(self):
        for index in range(3):
            self._log_run(f"run-{index}", "completed", passed=index, failed=0)

        runs = analytics_db.get_latest_screening_runs(limit=2)

        self.assertEqual([run["run_id"] for run in runs], ["run-2", "run-1"])
        self.assertNotIn("session_hash", runs[0])

    def test_purge_keeps_recent_rows(self):
        self._log_run("run-1", "completed", passed=1, failed=0)
        deleted = analytics_db.purge_old_records()
        self.assertEqual(deleted, {"ai_analysis_runs": 0, "screening_runs": 0})
        self.assertEqual(len(analytics_db.get_latest_screening_runs()), 1)


class AnalyticsDisabledTests(unittest.TestCase):
    def test_disabled_store_is_a_no_op(self):
        disabled = dataclasses.replace(settings, analytics_enabled=False)
        with patch.object(analytics_db, "settings", disabled):
            self._noop_calls()

    def _noop_calls(self):
        analytics_db.init_db()
        self.assertEqual(analytics_db.get_screening_summary(), {"enabled": False})
        self.assertEqual(analytics_db.get_latest_screening_runs(), [])
        self.assertEqual(analytics_db.purge_old_records(), {"ai_analysis_runs": 0, "screening_runs": 0})


if __name__ == "__main__":
    unittest.main()
