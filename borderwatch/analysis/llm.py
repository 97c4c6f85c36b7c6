"""OpenAI-backed relevance analysis for monitored content."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openai

from borderwatch.contracts.analysis import validate_analysis

logger = logging.getLogger(__name__)

ANALYST_SYSTEM_PROMPT = (
    "You are an expert analyst specializing in Thailand-Cambodia relations and Southeast Asian "
    "geopolitics. Provide accurate, unbiased analysis in valid JSON format only."
)

ANALYSIS_PROMPT = """
Analyze the following content for Thailand-Cambodia conflict relevance:

Title: {title}
Content: {content}

Provide analysis in the following JSON format:
{{
  "summary": "A concise 2-3 sentence summary preserving original meaning",
  "keywords": ["keyword1", "keyword2", "keyword3"],
  "sentiment": "positive|negative|neutral",
  "importance": 1-5,
  "conflictRelevance": 1-10
}}

Focus on:
1. Border disputes
2. Diplomatic relations
3. Trade issues
4. Military activities
5. Cultural tensions
6. Government statements

Rate importance (1-5) and conflict relevance (1-10 where 10 is highly relevant).
"""


class AnalysisError(Exception):
    """Raised when the LLM reply is missing, not JSON, or off-contract."""


@dataclass(frozen=True)
class AnalysisResult:
    summary: str
    keywords: List[str]
    sentiment: str
    importance: int
    conflict_relevance: int
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "keywords": list(self.keywords),
            "sentiment": self.sentiment,
            "importance": self.importance,
            "conflictRelevance": self.conflict_relevance,
        }


def parse_json_reply(raw: Optional[str]) -> Dict[str, Any]:
    """Parse a model reply into a JSON object.

    Strips Markdown code fences and trailing commas before `json.loads`.
    """
    if not raw or not raw.strip():
        raise AnalysisError("No response from model")
    cleaned = raw.strip()
    fence = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, re.DOTALL | re.IGNORECASE)
    if fence:
        cleaned = fence.group(1)
    cleaned = re.sub(r",(\s*[}\]])", r"\1", cleaned)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse model response: {raw[:200]}")
        raise AnalysisError(f"Invalid JSON response from model: {e}") from e
    if not isinstance(data, dict):
        raise AnalysisError("Model response is not a JSON object")
    return data


class ContentAnalyzer:
    def __init__(self, api_key: str = "", model: str = "gpt-4o-mini", client: Any = None):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def complete(self, system: str, user: str, *, temperature: float, max_tokens: int, json_mode: bool = True) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            raise AnalysisError(f"Model request failed: {e}") from e
        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    def analyze(self, content: str, title: Optional[str] = None) -> AnalysisResult:
        reply = self.complete(
            ANALYST_SYSTEM_PROMPT,
            ANALYSIS_PROMPT.format(title=title or "N/A", content=content),
            temperature=0.3,
            max_tokens=1000,
        )
        data = parse_json_reply(reply)
        errors = validate_analysis(data)
        if errors:
            raise AnalysisError(f"Analysis reply failed validation: {'; '.join(errors)}")
        return AnalysisResult(
            summary=str(data["summary"]).strip(),
            keywords=[str(k) for k in data["keywords"]],
            sentiment=data["sentiment"],
            importance=int(round(data["importance"])),
            conflict_relevance=int(round(data["conflictRelevance"])),
            raw=data,
        )
