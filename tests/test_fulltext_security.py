import unittest
from unittest import mock

import requests

from borderwatch.extraction.fulltext import FulltextResult, blocked_reason, extract_text, fetch_and_extract


class TestFulltextSecurity(unittest.TestCase):
    def test_blocks_localhost(self):
        r = fetch_and_extract("http://localhost:1234/")
        self.assertEqual(r.status, "blocked")
        self.assertEqual(r.error, "blocked_host")

    def test_blocks_private_ip(self):
        for url in ("http://127.0.0.1:1234/", "http://10.1.2.3/", "http://192.168.0.10/", "http://[::1]/"):
            self.assertEqual(blocked_reason(url), "blocked_private_ip", url)

    def test_blocks_non_http_scheme(self):
        r = fetch_and_extract("file:///etc/passwd")
        self.assertEqual(r.status, "blocked")
        self.assertEqual(r.error, "bad_scheme")

    def test_public_host_allowed(self):
        self.assertIsNone(blocked_reason("https://www.khmertimeskh.com/news/1"))
        self.assertIsNone(blocked_reason("http://8.8.8.8/"))

    def test_empty_url(self):
        self.assertEqual(fetch_and_extract("").error, "empty_url")


def http_response(status=200, body=b"<html></html>", encoding="utf-8"):
    resp = mock.Mock()
    resp.status_code = status
    resp.encoding = encoding
    resp.iter_content.return_value = [body]
    return resp


@mock.patch("borderwatch.extraction.fulltext.requests.get")
class TestFetchAndExtract(unittest.TestCase):
    def test_extracts_and_caps_text(self, get):
        get.return_value = http_response()
        with mock.patch("borderwatch.extraction.fulltext.trafilatura.extract", return_value="word  " * 2000):
            r = fetch_and_extract("https://example.com/a")
        self.assertTrue(r.ok)
        self.assertEqual(len(r.text), 5000)
        self.assertNotIn("  ", r.text)

    def test_http_error_status(self, get):
        get.return_value = http_response(status=404)
        r = fetch_and_extract("https://example.com/a")
        self.assertEqual(r.status, "http_404")
        self.assertFalse(r.ok)

    def test_too_large(self, get):
        get.return_value = http_response(body=b"x" * 200)
        self.assertEqual(fetch_and_extract("https://example.com/a", max_bytes=100).status, "too_large")

    def test_unknown_encoding_falls_back(self, get):
        get.return_value = http_response(encoding="not-a-codec")
        with mock.patch("borderwatch.extraction.fulltext.trafilatura.extract", return_value="Body text") as extract:
            r = fetch_and_extract("https://example.com/a")
        self.assertEqual(r.text, "Body text")
        extract.assert_called_once()

    def test_network_error(self, get):
        get.side_effect = requests.ConnectionError("refused")
        r = fetch_and_extract("https://example.com/a")
        self.assertEqual(r.status, "error")

    def test_browser_fallback_on_403(self, get):
        get.return_value = http_response(status=403)
        browser = FulltextResult(text="Rendered", status="ok", method="browser")
        with mock.patch("borderwatch.extraction.fulltext._browser_fetch", return_value=browser) as fetch:
            self.assertEqual(fetch_and_extract("https://example.com/a").status, "http_403")
            fetch.assert_not_called()
            r = fetch_and_extract("https://example.com/a", browser_fallback=True)
        self.assertEqual(r.method, "browser")
        fetch.assert_called_once_with("https://example.com/a", 10)


class TestExtractText(unittest.TestCase):
    def test_empty_html(self):
        self.assertEqual(extract_text("   ").status, "empty")

    def test_no_extract(self):
        with mock.patch("borderwatch.extraction.fulltext.trafilatura.extract", return_value=None):
            self.assertEqual(extract_text("<html><body></body></html>").status, "no_extract")


if __name__ == "__main__":
    unittest.main()
