import unittest
from datetime import datetime, timedelta, timezone

from borderwatch.pipeline.cleanup import cleanup_duplicates, cleanup_facebook_logs, find_fuzzy_duplicates
from tests.fakes import FakeRepo

T0 = datetime(2025, 7, 24, 8, 0, tzinfo=timezone.utc)
TITLE = "Border clash reported near Preah Vihear temple as troops exchange fire"


def row(aid, title, minutes, source_id=1):
    return {"id": aid, "title": title, "source_id": source_id, "created_at": T0 + timedelta(minutes=minutes)}


class TestFuzzyDuplicates(unittest.TestCase):
    def test_same_prefix_within_two_hours(self):
        title = "Thailand and Cambodia agree to resume border talks next week in Bangkok"
        articles = [
            row(1, title, 0),
            row(2, title.upper() + " (updated)", 30),
            row(3, title + " - live", 200),
            row(4, title, 10, source_id=2),
        ]
        self.assertEqual(find_fuzzy_duplicates(articles), [2])

    def test_window_measured_from_last_kept(self):
        title = "Cambodia closes checkpoint"
        articles = [row(1, title, 0), row(2, title, 100), row(3, title, 130), row(4, title, 240)]
        # 3 is more than 2h after 1, so it is kept and 4 falls inside its window
        self.assertEqual(find_fuzzy_duplicates(articles), [2, 4])

    def test_different_titles_untouched(self):
        self.assertEqual(find_fuzzy_duplicates([row(1, "A", 0), row(2, "B", 1)]), [])


class TestCleanupDuplicates(unittest.TestCase):
    def _article(self, repo, title, source_id, created_at, url):
        aid = repo.create_article(source_id=source_id, title=title, content="c", original_url=url)
        repo.articles[aid]["created_at"] = created_at
        repo.create_timeline_event(article_id=aid, event_type="news_article", event_date=created_at, title=title)
        return aid

    def test_removes_exact_then_fuzzy(self):
        repo = FakeRepo()
        now = datetime.now(timezone.utc) - timedelta(hours=5)
        keep = self._article(repo, TITLE, 1, now, "https://e/1")
        self._article(repo, TITLE, 1, now + timedelta(minutes=5), "https://e/2")
        self._article(repo, TITLE + " overnight", 1, now + timedelta(minutes=20), "https://e/3")
        other = self._article(repo, TITLE, 2, now, "https://e/4")

        result = cleanup_duplicates(repo)

        self.assertEqual(sorted(repo.articles), sorted([keep, other]))
        self.assertEqual(result["totalRemoved"], 2)
        self.assertEqual(result["exactDuplicates"], 1)
        self.assertEqual(result["fuzzyDuplicates"], 1)
        self.assertTrue(result["success"])
        self.assertTrue(all(e["article_id"] in (keep, other) for e in repo.events.values()))
        log = repo.last_log("cleanup_duplicates")
        self.assertEqual(log["status"], "SUCCESS")
        self.assertEqual(log["metadata"]["totalRemoved"], 2)

    def test_nothing_to_remove(self):
        repo = FakeRepo()
        result = cleanup_duplicates(repo)
        self.assertEqual(result["totalRemoved"], 0)
        self.assertEqual(result["message"], "Successfully removed 0 duplicate articles")


class TestCleanupFacebookLogs(unittest.TestCase):
    def test_deletes_matching_logs_only(self):
        repo = FakeRepo()
        repo.log("FACEBOOK_POST", "search_processing", "ERROR", 'Error processing search query "Thailand Cambodia border": 429')
        repo.log("FACEBOOK_POST", "monitoring_completed", "SUCCESS", "Facebook Search done")
        repo.log("NEWS_ARTICLE", "monitoring_completed", "SUCCESS", "News monitoring completed")

        result = cleanup_facebook_logs(repo)

        self.assertEqual(result["deletedCount"], 2)
        self.assertEqual(repo.actions(), ["monitoring_completed", "CLEANUP_FACEBOOK_LOGS"])
        self.assertEqual(repo.logs[0]["source_type"], "NEWS_ARTICLE")


if __name__ == "__main__":
    unittest.main()
