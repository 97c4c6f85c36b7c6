import json
import unittest
from unittest import mock

import openai

from borderwatch.analysis.llm import AnalysisError, ContentAnalyzer, parse_json_reply


def fake_client(*replies):
    client = mock.Mock()
    client.chat.completions.create.side_effect = [
        mock.Mock(choices=[mock.Mock(message=mock.Mock(content=r))]) for r in replies
    ]
    return client


GOOD = {
    "summary": "Thai and Cambodian officials met to ease border tension.",
    "keywords": ["border", "talks"],
    "sentiment": "neutral",
    "importance": 4,
    "conflictRelevance": 8,
}


class TestParseJsonReply(unittest.TestCase):
    def test_fenced_with_trailing_comma(self):
        raw = '```json\n{"a": 1, "b": [1, 2,],}\n```'
        self.assertEqual(parse_json_reply(raw), {"a": 1, "b": [1, 2]})

    def test_empty_reply(self):
        with self.assertRaises(AnalysisError):
            parse_json_reply("   ")

    def test_invalid_json(self):
        with self.assertRaises(AnalysisError):
            parse_json_reply("Sure! Here is the analysis.")

    def test_non_object(self):
        with self.assertRaises(AnalysisError):
            parse_json_reply("[1, 2]")


class TestContentAnalyzer(unittest.TestCase):
    def test_analyze_returns_result(self):
        client = fake_client(json.dumps(GOOD))
        result = ContentAnalyzer(client=client, model="test-model").analyze("content", "title")

        self.assertEqual(result.conflict_relevance, 8)
        self.assertEqual(result.importance, 4)
        self.assertEqual(result.to_dict()["conflictRelevance"], 8)
        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "test-model")
        self.assertEqual(kwargs["temperature"], 0.3)
        self.assertEqual(kwargs["max_tokens"], 1000)
        self.assertEqual(kwargs["response_format"], {"type": "json_object"})
        self.assertIn("Title: title", kwargs["messages"][1]["content"])

    def test_rounds_float_scores(self):
        client = fake_client(json.dumps(dict(GOOD, importance=3.6, conflictRelevance=2.4)))
        result = ContentAnalyzer(client=client).analyze("content")
        self.assertEqual((result.importance, result.conflict_relevance), (4, 2))

    def test_off_contract_reply_raises(self):
        client = fake_client(json.dumps(dict(GOOD, conflictRelevance=42)))
        with self.assertRaises(AnalysisError) as ctx:
            ContentAnalyzer(client=client).analyze("content")
        self.assertIn("conflictRelevance", str(ctx.exception))

    def test_api_error_becomes_analysis_error(self):
        client = mock.Mock()
        client.chat.completions.create.side_effect = openai.OpenAIError("quota")
        with self.assertRaises(AnalysisError):
            ContentAnalyzer(client=client).analyze("content")


if __name__ == "__main__":
    unittest.main()
