"""Keyword gates deciding whether content concerns Thailand–Cambodia relations.

These are plain substring checks on lowercased text. They only decide which
items are worth sending to the LLM; the LLM's relevance score decides what is
kept.
"""

from __future__ import annotations

import re
from typing import List

ENGLISH_COUNTRY_KEYWORDS = ["thailand", "thai", "cambodia", "cambodian", "khmer"]

KHMER_COUNTRY_KEYWORDS = [
    "កម្ពុជា",  # Cambodia
    "ថៃ",  # Thailand
    "ប្រទេសថៃ",
    "ព្រះរាជាណាចក្រកម្ពុជា",
    "រាជាណាចក្រថៃ",
]

THAILAND_TOKENS = ["thailand", "thai", "ថៃ", "ប្រទេសថៃ", "រាជាណាចក្រថៃ"]
CAMBODIA_TOKENS = ["cambodia", "cambodian", "khmer", "កម្ពុជា", "ព្រះរាជាណាចក្រកម្ពុជា"]

ENGLISH_CONFLICT_KEYWORDS = [
    "border", "dispute", "tension", "conflict", "diplomatic",
    "territory", "maritime", "fishing", "trade", "economic",
    "cooperation", "agreement", "embassy", "ambassador",
    "foreign minister", "preah vihear", "temple", "bilateral",
    "negotiation", "summit", "meeting", "discussion", "ceasefire",
    "talks", "mediation", "shelling", "military", "troops",
]

KHMER_CONFLICT_KEYWORDS = [
    "ព្រំដែន",  # border
    "ជម្លោះ",  # conflict
    "វិវាទ",  # dispute
    "កិច្ចការទូត",  # diplomatic
    "ដែនដី",  # territory
    "កិច្ចសហប្រតិបត្តិការ",  # cooperation
    "កិច្ចព្រមព្រៀង",  # agreement
    "ការចរចា",  # negotiation
    "កិច្ចប្រជុំ",  # meeting
    "ពិភាក្សា",  # discussion
    "យោធា",  # military
    "កងទ័ព",  # troops
]

SOCIAL_CONFLICT_KEYWORDS = [
    "border", "dispute", "territory", "conflict", "tension",
    "diplomatic", "embassy", "ambassador", "foreign minister",
    "trade", "economic", "cooperation", "agreement",
    "preah vihear", "temple", "maritime", "fishing",
    "cambodia", "thailand", "thai", "khmer", "siem reap",
    "aranyaprathet", "poipet", "border crossing",
]

_ENGLISH_KEYWORD_PATTERNS = [
    re.compile(r"\b(thailand|thai|cambodia|cambodian|khmer)\b"),
    re.compile(r"\b(border|dispute|tension|conflict|diplomatic)\b"),
    re.compile(r"\b(territory|maritime|fishing|trade|economic)\b"),
    re.compile(r"\b(cooperation|agreement|embassy|ambassador)\b"),
    re.compile(r"\b(foreign minister|bilateral|negotiation|summit)\b"),
]

_KHMER_KEYWORD_PATTERNS = [
    re.compile("(ព្រះរាជាណាចក្រកម្ពុជា|រាជាណាចក្រថៃ|ប្រទេសថៃ|កម្ពុជា|ថៃ)"),
    re.compile("(ព្រំដែន|ជម្លោះ|វិវាទ|កិច្ចការទូត)"),
    re.compile("(ដែនដី|កិច្ចសហប្រតិបត្តិការ|កិច្ចព្រមព្រៀង)"),
    re.compile("(ការចរចា|កិច្ចប្រជុំ|ពិភាក្សា|យោធា|កងទ័ព)"),
]

MAX_KEYWORDS = 15


def _contains_any(text: str, keywords: List[str]) -> bool:
    return any(k in text for k in keywords)


def is_thailand_cambodia_related(content: str, title: str = "") -> bool:
    text = f"{title} {content}".lower()
    if _contains_any(text, THAILAND_TOKENS) and _contains_any(text, CAMBODIA_TOKENS):
        return True
    if not _contains_any(text, ENGLISH_COUNTRY_KEYWORDS + KHMER_COUNTRY_KEYWORDS):
        return False
    return _contains_any(text, ENGLISH_CONFLICT_KEYWORDS + KHMER_CONFLICT_KEYWORDS)


def is_conflict_related(content: str) -> bool:
    """Looser gate used for social posts."""
    return _contains_any((content or "").lower(), SOCIAL_CONFLICT_KEYWORDS)


def extract_keywords(content: str) -> List[str]:
    """Distinct English/Khmer keyword hits in first-seen order, at most 15."""
    text = (content or "").lower()
    seen: List[str] = []
    for pattern in _ENGLISH_KEYWORD_PATTERNS:
        for match in pattern.findall(text):
            if match not in seen:
                seen.append(match)
    for pattern in _KHMER_KEYWORD_PATTERNS:
        for match in pattern.findall(content or ""):
            if match not in seen:
                seen.append(match)
    return seen[:MAX_KEYWORDS]
