import unittest
from datetime import datetime, timezone
from unittest import mock

import requests

from borderwatch.ingestion.article_types import FeedSource
from borderwatch.ingestion.feeds import NEWS_SOURCES, RSSFetcher, parse_datetime
from borderwatch.ingestion.news_apis import NewsAPIFetcher
from borderwatch.pipeline.monitor import NewsMonitor
from borderwatch.extraction.fulltext import FulltextResult
from tests.fakes import FakeAnalyzer, FakeRepo


RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Border Desk</title>
    <link>https://example.com</link>
    <item>
      <title>Thailand Cambodia border clash</title>
      <link>https://example.com/news/clash</link>
      <pubDate>Thu, 24 Jul 2025 08:00:00 GMT</pubDate>
      <description>Thai and Cambodian troops exchanged fire along the disputed border near the Preah Vihear temple on Thursday, officials said, as diplomats called for calm and talks.</description>
    </item>
    <item>
      <title>Item without link</title>
      <description>Skipped.</description>
    </item>
  </channel>
</rss>
"""


def fake_session(body=RSS, status_error=None):
    resp = mock.Mock()
    resp.content = body
    if status_error:
        resp.raise_for_status.side_effect = status_error
    session = mock.Mock()
    session.get.return_value = resp
    return session


class TestRSSFetcher(unittest.TestCase):
    def test_parses_entries_into_news_items(self):
        items = RSSFetcher(session=fake_session()).fetch("https://example.com/rss")

        self.assertEqual(len(items), 1)
        item = items[0]
        self.assertEqual(item.title, "Thailand Cambodia border clash")
        self.assertEqual(item.url, "https://example.com/news/clash")
        self.assertEqual(item.source_name, "Border Desk")
        self.assertEqual(item.published_at, datetime(2025, 7, 24, 8, 0, tzinfo=timezone.utc))
        self.assertIn("Preah Vihear", item.text)

    def test_http_error_propagates(self):
        session = fake_session(status_error=requests.HTTPError("503"))
        with self.assertRaises(requests.HTTPError):
            RSSFetcher(session=session).fetch("https://example.com/rss")

    def test_unparseable_feed_returns_empty(self):
        self.assertEqual(RSSFetcher(session=fake_session(body=b"not a feed <<<")).fetch("https://example.com/rss"), [])

    def test_end_to_end_rss_item_to_article(self):
        repo = FakeRepo()
        monitor = NewsMonitor(
            repo,
            FakeAnalyzer(),
            rss=RSSFetcher(session=fake_session()),
            feeds=[FeedSource("Border Desk", "https://example.com/rss", "https://example.com")],
            fulltext=lambda url: FulltextResult(text=None, status="error"),
        )

        monitor.run()

        self.assertEqual(len(repo.articles), 1)
        self.assertEqual(len(repo.events), 1)
        completed = repo.last_log("monitoring_completed")
        self.assertGreaterEqual(completed["metadata"]["totalRelevant"], 1)


class TestParseDatetime(unittest.TestCase):
    def test_rfc822(self):
        self.assertEqual(parse_datetime("Thu, 24 Jul 2025 08:00:00 GMT"), datetime(2025, 7, 24, 8, 0, tzinfo=timezone.utc))

    def test_iso_with_z(self):
        self.assertEqual(parse_datetime("2025-07-24T08:00:00Z"), datetime(2025, 7, 24, 8, 0, tzinfo=timezone.utc))

    def test_naive_datetime_made_utc(self):
        self.assertEqual(parse_datetime(datetime(2025, 7, 24)).tzinfo, timezone.utc)

    def test_garbage(self):
        self.assertIsNone(parse_datetime("yesterday-ish"))
        self.assertIsNone(parse_datetime(""))


class TestFeedList(unittest.TestCase):
    def test_feed_urls_unique(self):
        urls = [s.rss_url for s in NEWS_SOURCES]
        self.assertEqual(len(urls), len(set(urls)))
        self.assertEqual(len(NEWS_SOURCES), 30)


class TestNewsAPIFetcher(unittest.TestCase):
    def test_disabled_without_key(self):
        fetcher = NewsAPIFetcher("")
        self.assertFalse(fetcher.enabled)
        with mock.patch("borderwatch.ingestion.news_apis.requests.get") as get:
            self.assertEqual(fetcher.fetch(), [])
        get.assert_not_called()

    @mock.patch("borderwatch.ingestion.news_apis.time.sleep")
    @mock.patch("borderwatch.ingestion.news_apis.requests.get")
    def test_maps_articles(self, get, _sleep):
        get.return_value.status_code = 200
        get.return_value.json.return_value = {
            "totalResults": 2,
            "articles": [
                {
                    "title": "Cambodia and Thailand agree to talks",
                    "url": "https://news.example/talks",
                    "publishedAt": "2025-07-24T08:00:00Z",
                    "description": "Officials met.",
                    "source": {"name": "Example News"},
                },
                {"title": "", "url": "https://news.example/untitled"},
            ],
        }

        items = NewsAPIFetcher("key").fetch("Thailand Cambodia", page_size=500)

        self.assertEqual([i.url for i in items], ["https://news.example/talks"])
        self.assertEqual(items[0].source_name, "Example News")
        params = get.call_args.kwargs["params"]
        self.assertEqual(params["pageSize"], 100)
        self.assertEqual(params["q"], "Thailand Cambodia")
        self.assertIn("facebook.com", params["excludeDomains"])


if __name__ == "__main__":
    unittest.main()
