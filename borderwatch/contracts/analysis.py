"""JSON contracts for LLM analysis replies.

The schemas check structure only (types, required keys, score ranges). They
do not judge content.
"""

from __future__ import annotations

from typing import Any, Dict, List

from jsonschema import Draft202012Validator


ANALYSIS_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "ContentAnalysis",
    "type": "object",
    "required": ["summary", "keywords", "sentiment", "importance", "conflictRelevance"],
    "properties": {
        "summary": {"type": "string"},
        "keywords": {"type": "array", "items": {"type": "string"}},
        "sentiment": {"type": "string", "enum": ["positive", "negative", "neutral"]},
        "importance": {"type": "number", "minimum": 1, "maximum": 5},
        "conflictRelevance": {"type": "number", "minimum": 1, "maximum": 10},
    },
    "additionalProperties": True,
}

_COUNTRY = {"type": "string", "enum": ["THAILAND", "CAMBODIA", "UNKNOWN"]}
_IMPACT_TYPES = [
    "DISPLACEMENT",
    "ECONOMIC_LOSS",
    "INFRASTRUCTURE_DAMAGE",
    "CIVILIAN_CASUALTIES",
    "BORDER_CLOSURE",
    "TRADE_DISRUPTION",
]

CONFLICT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "ConflictStatistics",
    "type": "object",
    "required": ["statistics", "casualties", "weapons", "impacts"],
    "properties": {
        "statistics": {
            "type": "object",
            "properties": {
                "casualties": {
                    "type": "object",
                    "properties": {
                        "thailand": {"type": "number", "minimum": 0},
                        "cambodia": {"type": "number", "minimum": 0},
                        "total": {"type": "number", "minimum": 0},
                        "verified": {"type": "boolean"},
                    },
                },
                "population": {
                    "type": "object",
                    "properties": {
                        "affected": {"type": "number", "minimum": 0},
                        "displaced": {"type": "number", "minimum": 0},
                        "areas": {"type": "array", "items": {"type": "string"}},
                    },
                },
                "weapons": {
                    "type": "object",
                    "properties": {"types": {"type": "array", "items": {"type": "string"}}},
                },
                "economy": {
                    "type": "object",
                    "properties": {
                        "loss": {"type": ["number", "null"], "minimum": 0},
                        "tradeDisruption": {"type": "boolean"},
                        "borderStatus": {"type": ["string", "null"]},
                    },
                },
                "diplomacy": {
                    "type": "object",
                    "properties": {
                        "tension": {"type": "number", "minimum": 0, "maximum": 10},
                        "statements": {"type": "number", "minimum": 0},
                        "meetings": {"type": "number", "minimum": 0},
                    },
                },
            },
        },
        "casualties": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["casualties"],
                "properties": {
                    "location": {"type": ["string", "null"]},
                    "date": {"type": ["string", "null"]},
                    "country": _COUNTRY,
                    "casualties": {"type": "number", "minimum": 0},
                    "injured": {"type": "number", "minimum": 0},
                    "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                },
            },
        },
        "weapons": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": ["string", "null"]},
                    "country": _COUNTRY,
                    "threatLevel": {"type": "number"},
                    "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                },
            },
        },
        "impacts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "country": _COUNTRY,
                    "type": {"type": "string", "enum": _IMPACT_TYPES},
                    "affected": {"type": "number", "minimum": 0},
                    "severity": {"type": "number"},
                    "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                },
            },
        },
        "summary": {"type": "string"},
        "keyDevelopments": {"type": "array", "items": {"type": "string"}},
        "riskAssessment": {"type": "number", "minimum": 0, "maximum": 10},
        "overallConfidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
    "additionalProperties": True,
}


_CONFIDENCE = {"type": "number", "minimum": 0, "maximum": 1}

SITUATION_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "CurrentSituation",
    "type": "object",
    "required": ["casualties", "population", "weapons", "diplomatic", "risk"],
    "properties": {
        "casualties": {
            "type": "object",
            "required": ["total", "thailand", "cambodia"],
            "properties": {
                "total": {"type": "number", "minimum": 0},
                "thailand": {"type": "number", "minimum": 0},
                "cambodia": {"type": "number", "minimum": 0},
                "verified": {"type": "boolean"},
                "confidence": _CONFIDENCE,
            },
        },
        "population": {
            "type": "object",
            "properties": {
                "affected": {"type": "number", "minimum": 0},
                "displaced": {"type": "number", "minimum": 0},
                "affectedAreas": {"type": "array", "items": {"type": "string"}},
                "confidence": _CONFIDENCE,
            },
        },
        "weapons": {
            "type": "object",
            "properties": {
                "types": {"type": "array", "items": {"type": "string"}},
                "deployments": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string"},
                            "country": {"type": "string"},
                            "location": {"type": "string"},
                            "threatLevel": {"type": "number", "minimum": 1, "maximum": 10},
                        },
                    },
                },
                "confidence": _CONFIDENCE,
            },
        },
        "diplomatic": {
            "type": "object",
            "properties": {
                "tension": {"type": "number", "minimum": 1, "maximum": 10},
                "borderStatus": {"type": "string", "enum": ["OPEN", "CLOSED", "RESTRICTED"]},
                "recentStatements": {"type": "array", "items": {"type": "string"}},
                "meetings": {"type": "number", "minimum": 0},
                "confidence": _CONFIDENCE,
            },
        },
        "risk": {
            "type": "object",
            "properties": {
                "level": {"type": "number", "minimum": 1, "maximum": 10},
                "factors": {"type": "array", "items": {"type": "string"}},
                "escalationProbability": _CONFIDENCE,
                "confidence": _CONFIDENCE,
            },
        },
        "summary": {"type": "string"},
        "keyDevelopments": {"type": "array", "items": {"type": "string"}},
        "lastUpdated": {"type": "string"},
        "sources": {"type": "string"},
        "overallConfidence": _CONFIDENCE,
    },
    "additionalProperties": True,
}


_ANALYSIS_VALIDATOR = Draft202012Validator(ANALYSIS_SCHEMA)
_CONFLICT_VALIDATOR = Draft202012Validator(CONFLICT_SCHEMA)
_SITUATION_VALIDATOR = Draft202012Validator(SITUATION_SCHEMA)


def _errors(validator: Draft202012Validator, payload: Any) -> List[str]:
    errors = []
    for e in sorted(validator.iter_errors(payload), key=lambda x: list(x.path)):
        path = ".".join(str(p) for p in e.path) if e.path else "<root>"
        errors.append(f"{path}: {e.message}")
    return errors


def validate_analysis(payload: Dict[str, Any]) -> List[str]:
    """Return a list of human-readable validation errors (empty means valid)."""
    return _errors(_ANALYSIS_VALIDATOR, payload)


def validate_conflict_analysis(payload: Dict[str, Any]) -> List[str]:
    return _errors(_CONFLICT_VALIDATOR, payload)


def validate_situation_analysis(payload: Dict[str, Any]) -> List[str]:
    return _errors(_SITUATION_VALIDATOR, payload)
