import unittest
from unittest import mock

import news_ingest_worker
from borderwatch.config import Settings
from borderwatch.storage.repo import DatabaseError
from tests.fakes import FakeRepo


class StopLoop(Exception):
    pass


def _monitor(summary):
    monitor = mock.Mock()
    monitor.run.return_value.summary = summary
    return monitor


@mock.patch("news_ingest_worker.load_dotenv")
@mock.patch("news_ingest_worker.ContentAnalyzer")
@mock.patch("news_ingest_worker.ConflictAnalyticsStore")
@mock.patch("news_ingest_worker.ensure_schema")
class TestRunOnce(unittest.TestCase):
    def setUp(self):
        self.repo = FakeRepo()
        patcher = mock.patch("news_ingest_worker.MonitorRepo", return_value=self.repo)
        patcher.start()
        self.addCleanup(patcher.stop)
        patcher = mock.patch("news_ingest_worker.NewsMonitor", return_value=_monitor({"success": True, "totalProcessed": 2}))
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_analytics_failure_is_recorded_and_cycle_completes(self, _schema, _store, _analyzer, _dotenv):
        with mock.patch("news_ingest_worker.generate_daily_analytics", side_effect=ValueError("bad figure")):
            results = news_ingest_worker.run_once(Settings(rapidapi_key=""))

        self.assertEqual(results["news"], {"success": True, "totalProcessed": 2})
        self.assertFalse(results["analytics"]["generated"])
        self.assertEqual(results["analytics"]["error"], "bad figure")
        entry = self.repo.last_log("daily_analytics")
        self.assertEqual(entry["status"], "ERROR")
        self.assertIn("bad figure", entry["message"])

    def test_unwritable_analytics_log_does_not_escape(self, _schema, _store, _analyzer, _dotenv):
        self.repo.log = mock.Mock(side_effect=DatabaseError("connection lost"))
        with mock.patch("news_ingest_worker.generate_daily_analytics", side_effect=DatabaseError("connection lost")):
            results = news_ingest_worker.run_once(Settings(rapidapi_key=""))

        self.assertFalse(results["analytics"]["generated"])

    def test_generated_row_reported(self, _schema, _store, _analyzer, _dotenv):
        with mock.patch("news_ingest_worker.generate_daily_analytics", return_value={"date": "2025-07-24"}):
            results = news_ingest_worker.run_once(Settings(rapidapi_key=""))

        self.assertTrue(results["analytics"]["generated"])
        self.assertNotIn("facebook", results)


@mock.patch("news_ingest_worker.ContentAnalyzer")
@mock.patch("news_ingest_worker.ConflictAnalyticsStore")
@mock.patch("news_ingest_worker.MonitorRepo")
class TestSituationUpdate(unittest.TestCase):
    def test_failure_is_reported_not_raised(self, _repo, _store, _analyzer):
        with mock.patch("news_ingest_worker.refresh_situation_analytics", side_effect=DatabaseError("down")):
            result = news_ingest_worker.run_situation_update(Settings())

        self.assertEqual(result, {"success": False, "error": "down"})

    def test_uses_cron_action(self, _repo, _store, _analyzer):
        with mock.patch("news_ingest_worker.refresh_situation_analytics") as refresh:
            result = news_ingest_worker.run_situation_update(Settings())

        self.assertTrue(result["success"])
        self.assertEqual(refresh.call_args.kwargs["action"], "openai_analytics_cron")


class TestRunScheduled(unittest.TestCase):
    @mock.patch("news_ingest_worker.time.sleep", side_effect=StopLoop)
    @mock.patch("news_ingest_worker._scheduled_cycle")
    @mock.patch("news_ingest_worker.schedule")
    def test_registers_cycle_and_situation_jobs(self, schedule, cycle, _sleep):
        settings = Settings(monitor_interval_minutes=30)
        with mock.patch.object(Settings, "from_env", return_value=settings):
            with self.assertRaises(StopLoop):
                news_ingest_worker.run_scheduled()

        cycle.assert_called_once_with(settings)
        schedule.every.assert_any_call(30)
        schedule.every.assert_any_call(news_ingest_worker.SITUATION_REFRESH_HOURS)
        schedule.every.return_value.minutes.do.assert_called_once_with(cycle, settings)
        schedule.every.return_value.hours.do.assert_called_once_with(news_ingest_worker.run_situation_update, settings)
        schedule.run_pending.assert_called_once_with()

    @mock.patch("news_ingest_worker.run_once", side_effect=DatabaseError("database is starting up"))
    def test_cycle_failure_does_not_stop_scheduler(self, _run_once):
        news_ingest_worker._scheduled_cycle(Settings())


if __name__ == "__main__":
    unittest.main()
