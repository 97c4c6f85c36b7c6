"""Conflict statistics extraction and the analytics roll-ups built on it."""

from __future__ import annotations

import json
import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from borderwatch.analysis.llm import AnalysisError, ContentAnalyzer, parse_json_reply
from borderwatch.contracts.analysis import validate_conflict_analysis, validate_situation_analysis
from borderwatch.storage.repo import DatabaseError

logger = logging.getLogger(__name__)

VERIFIED_CONFIDENCE = 0.7

CONFLICT_SYSTEM_PROMPT = (
    "You are an expert conflict analyst specializing in Thailand-Cambodia relations. Extract precise "
    "statistics and provide accurate analysis in valid JSON format only. Be conservative with estimates "
    "and mark uncertain data with low confidence scores."
)

CONFLICT_PROMPT = """
Analyze the following Thailand-Cambodia conflict content and extract detailed statistics:

Title: {title}
Content: {content}

Extract and analyze the following information in JSON format:

{{
  "statistics": {{
    "casualties": {{"thailand": 0, "cambodia": 0, "total": 0, "verified": false}},
    "population": {{"affected": 0, "displaced": 0, "areas": []}},
    "weapons": {{"types": [], "activity": ""}},
    "economy": {{"loss": null, "tradeDisruption": false, "borderStatus": ""}},
    "diplomacy": {{"tension": 1, "statements": 0, "meetings": 0}},
    "confidence": 0.0
  }},
  "casualties": [
    {{"location": "", "date": "YYYY-MM-DD", "country": "THAILAND|CAMBODIA|UNKNOWN",
      "casualties": 0, "injured": 0, "cause": "", "confidence": 0.0}}
  ],
  "weapons": [
    {{"type": "", "name": "", "country": "THAILAND|CAMBODIA|UNKNOWN", "location": "",
      "purpose": "", "threatLevel": 1, "confidence": 0.0}}
  ],
  "impacts": [
    {{"location": "", "country": "THAILAND|CAMBODIA|UNKNOWN",
      "type": "DISPLACEMENT|ECONOMIC_LOSS|INFRASTRUCTURE_DAMAGE|CIVILIAN_CASUALTIES|BORDER_CLOSURE|TRADE_DISRUPTION",
      "affected": 0, "severity": 1, "description": "", "confidence": 0.0}}
  ],
  "summary": "",
  "keyDevelopments": [],
  "riskAssessment": 1,
  "overallConfidence": 0.0
}}

EXTRACTION RULES:
1. Casualties: Extract specific numbers for deaths/injuries per country
2. Population: Count affected civilians and displaced persons
3. Weapons: List specific weapon types, military equipment mentioned
4. Economy: Assess economic impact and border status
5. Diplomacy: Rate tension (1-10), count official statements and meetings
6. Confidence: Rate 0-1 based on source credibility and detail level
7. Risk Assessment: Rate 1-10 based on escalation potential
8. Only include data explicitly mentioned in the content
9. Use "UNKNOWN" for country if not clearly specified
10. Provide confidence scores for each extracted item
"""

DAILY_SYSTEM_PROMPT = (
    "You are a senior conflict analyst preparing daily briefings for government officials. Create "
    "professional, fact-based summaries that highlight key developments and assess risks accurately."
)

DAILY_PROMPT = """
Generate a comprehensive daily summary for Thailand-Cambodia conflict monitoring based on the following articles analyzed today:

{articles}

Create a professional daily briefing that includes:

1. EXECUTIVE SUMMARY (2-3 sentences)
2. KEY DEVELOPMENTS (bullet points)
3. CASUALTY UPDATE (if any)
4. MILITARY ACTIVITY (if any)
5. DIPLOMATIC STATUS (current state)
6. POPULATION IMPACT (if any)
7. RISK ASSESSMENT (current threat level 1-10)
8. OUTLOOK (what to watch for)

Focus on facts and avoid speculation. If no significant developments occurred, state this clearly.
Keep the summary under 500 words but comprehensive.
"""


class ConflictStatisticsAnalyzer:
    def __init__(self, analyzer: ContentAnalyzer):
        self.analyzer = analyzer

    def analyze(self, content: str, title: Optional[str] = None) -> Dict[str, Any]:
        reply = self.analyzer.complete(
            CONFLICT_SYSTEM_PROMPT,
            CONFLICT_PROMPT.format(title=title or "N/A", content=content),
            temperature=0.1,
            max_tokens=2000,
        )
        data = parse_json_reply(reply)
        errors = validate_conflict_analysis(data)
        if errors:
            raise AnalysisError(f"Conflict analysis failed validation: {'; '.join(errors)}")
        return data

    def daily_summary(self, articles: List[Dict[str, Any]]) -> str:
        payload = [
            {
                "title": a.get("title"),
                "summary": a.get("summary"),
                "conflictData": a.get("conflict_data"),
                "publishedAt": a["published_at"].isoformat() if isinstance(a.get("published_at"), datetime) else a.get("published_at"),
            }
            for a in articles
        ]
        try:
            reply = self.analyzer.complete(
                DAILY_SYSTEM_PROMPT,
                DAILY_PROMPT.format(articles=json.dumps(payload, indent=2, ensure_ascii=False, default=str)),
                temperature=0.2,
                max_tokens=800,
                json_mode=False,
            )
        except AnalysisError as e:
            logger.error(f"Daily summary generation error: {e}")
            return "Error generating daily summary. Please check system logs."
        return reply or "No significant developments reported today."


def _number(value: Any, default: float = 0.0) -> float:
    """Numeric reading of a model-supplied figure; non-numeric text reads as `default`."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _count(value: Any) -> int:
    return max(0, int(_number(value)))


def _verification(confidence: Any) -> str:
    try:
        return "VERIFIED" if float(confidence or 0) > VERIFIED_CONFIDENCE else "UNVERIFIED"
    except (TypeError, ValueError):
        return "UNVERIFIED"


def _incident_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def store_conflict_analysis(repo, article_id: int, analysis: Dict[str, Any]) -> None:
    """Persist the raw extraction on the article plus one row per reported fact."""
    repo.save_conflict_data(article_id, analysis)

    for c in analysis.get("casualties") or []:
        if (c.get("casualties") or 0) > 0 or (c.get("injured") or 0) > 0:
            repo.add_casualty_report(
                article_id,
                location=c.get("location") or "",
                incident_date=_incident_date(c.get("date")),
                country=c.get("country") or "UNKNOWN",
                casualties=int(c.get("casualties") or 0),
                injured=int(c.get("injured") or 0),
                cause=c.get("cause") or None,
                confidence=float(c.get("confidence") or 0),
                verification_level=_verification(c.get("confidence")),
            )

    for w in analysis.get("weapons") or []:
        if w.get("type"):
            repo.add_weapon_usage(
                article_id,
                weapon_type=w["type"],
                weapon_name=w.get("name") or None,
                country=w.get("country") or "UNKNOWN",
                location=w.get("location") or None,
                purpose=w.get("purpose") or None,
                threat_level=int(w.get("threatLevel") or 1),
                confidence=float(w.get("confidence") or 0),
                verification_level=_verification(w.get("confidence")),
            )

    for i in analysis.get("impacts") or []:
        if (i.get("affected") or 0) > 0:
            repo.add_population_impact(
                article_id,
                location=i.get("location") or "",
                country=i.get("country") or "UNKNOWN",
                impact_type=i.get("type") or "DISPLACEMENT",
                affected_count=int(i.get("affected") or 0),
                severity=int(i.get("severity") or 1),
                description=i.get("description") or None,
                confidence=float(i.get("confidence") or 0),
                verification_level=_verification(i.get("confidence")),
            )
    logger.info(f"Stored conflict analysis for article {article_id}")


def aggregate_conflict_data(articles: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Sum counts, union areas and weapon types, and keep the max tension and risk."""
    thailand = cambodia = affected = displaced = statements = meetings = 0
    areas: List[str] = []
    weapons: List[str] = []
    developments: List[str] = []
    economic_loss = 0.0
    trade_disruption = False
    tension = 1
    risk = 1
    count = 0
    for article in articles:
        data = article.get("conflict_data") or {}
        count += 1
        stats = data.get("statistics") or {}
        casualties = stats.get("casualties") or {}
        population = stats.get("population") or {}
        economy = stats.get("economy") or {}
        diplomacy = stats.get("diplomacy") or {}
        thailand += _count(casualties.get("thailand"))
        cambodia += _count(casualties.get("cambodia"))
        affected += _count(population.get("affected"))
        displaced += _count(population.get("displaced"))
        for area in population.get("areas") or []:
            if area not in areas:
                areas.append(area)
        for weapon in (stats.get("weapons") or {}).get("types") or []:
            if weapon not in weapons:
                weapons.append(weapon)
        economic_loss += max(0.0, _number(economy.get("loss")))
        if economy.get("tradeDisruption"):
            trade_disruption = True
        statements += _count(diplomacy.get("statements"))
        meetings += _count(diplomacy.get("meetings"))
        tension = max(tension, int(_number(diplomacy.get("tension"), 1)))
        risk = max(risk, int(_number(data.get("riskAssessment"), 1)))
        for dev in data.get("keyDevelopments") or []:
            if dev not in developments:
                developments.append(dev)

    return {
        "thailand_casualties": thailand,
        "cambodia_casualties": cambodia,
        "total_casualties": thailand + cambodia,
        "affected_population": affected,
        "displaced_civilians": displaced,
        "affected_areas": areas,
        "weapon_types_reported": weapons,
        "economic_loss": economic_loss if economic_loss > 0 else None,
        "trade_disruption": trade_disruption,
        "official_statements": statements,
        "meetings_scheduled": meetings,
        "diplomatic_tension": tension,
        "risk_assessment": risk,
        "key_developments": developments[:10],
        "sources_analyzed": count,
    }


def generate_daily_analytics(store, stats_analyzer: ConflictStatisticsAnalyzer, day: date) -> Optional[Dict[str, Any]]:
    """Roll up one day's analyzed articles into the `conflict_analytics` row.

    Returns the stored row, or None when no article of that day carries
    conflict data.
    """
    articles = store.articles_with_conflict_data(day)
    if not articles:
        logger.info(f"No articles with conflict data found for {day.isoformat()}")
        return None
    fields = aggregate_conflict_data(articles)
    fields["daily_summary"] = stats_analyzer.daily_summary(articles)
    fields["verification_level"] = "PARTIAL"
    row = store.upsert(day, fields)
    logger.info(f"Daily analytics for {day.isoformat()} built from {len(articles)} articles")
    return row


SITUATION_SYSTEM_PROMPT = (
    "You are an expert geopolitical analyst specializing in Thailand-Cambodia relations. You provide accurate, "
    "structured analysis of current conflicts, diplomatic tensions, military activities, and population impacts "
    "between Thailand and Cambodia. Always provide specific numbers when available, indicate confidence levels, "
    "and distinguish between verified facts and estimates. Focus on developments within the last 24-48 hours. "
    "Return your analysis in valid JSON format matching the exact structure requested."
)

SITUATION_PROMPT = """
Provide a comprehensive analysis of the current Thailand-Cambodia conflict situation as of {now}.

Cover the most recent information (last 24-48 hours) about:
1. Casualties and injuries on the Thai and Cambodian sides
2. Affected civilian populations and displaced persons
3. Military equipment and weapons being deployed
4. Current diplomatic tensions and border status
5. Risk assessment and escalation probability

Return your analysis in this exact JSON structure:

{{
  "casualties": {{"total": 0, "thailand": 0, "cambodia": 0, "verified": false, "confidence": 0.0}},
  "population": {{"affected": 0, "displaced": 0, "affectedAreas": [], "confidence": 0.0}},
  "weapons": {{
    "types": [],
    "deployments": [{{"type": "", "country": "THAILAND|CAMBODIA", "location": "", "threatLevel": 1}}],
    "confidence": 0.0
  }},
  "diplomatic": {{"tension": 1, "borderStatus": "OPEN|CLOSED|RESTRICTED", "recentStatements": [], "meetings": 0, "confidence": 0.0}},
  "risk": {{"level": 1, "factors": [], "escalationProbability": 0.0, "confidence": 0.0}},
  "summary": "",
  "keyDevelopments": [],
  "lastUpdated": "{now}",
  "sources": "",
  "overallConfidence": 0.0
}}

If specific data is not available, give reasonable estimates and reflect that in the confidence scores.
"""


def fallback_situation(now: str) -> Dict[str, Any]:
    """Low-confidence placeholder used when the model reply is unusable."""
    return {
        "casualties": {"total": 0, "thailand": 0, "cambodia": 0, "verified": False, "confidence": 0.1},
        "population": {"affected": 0, "displaced": 0, "affectedAreas": [], "confidence": 0.1},
        "weapons": {"types": [], "deployments": [], "confidence": 0.1},
        "diplomatic": {"tension": 1, "borderStatus": "OPEN", "recentStatements": [], "meetings": 0, "confidence": 0.1},
        "risk": {"level": 1, "factors": ["No current data available"], "escalationProbability": 0.1, "confidence": 0.1},
        "summary": "Unable to retrieve current conflict analysis. Please try again later.",
        "keyDevelopments": ["Analysis service temporarily unavailable"],
        "lastUpdated": now,
        "sources": "Model-based situation analysis",
        "overallConfidence": 0.1,
        "fallback": True,
    }


class SituationAnalyzer:
    """Asks the model for a snapshot of the current border situation.

    Unlike the per-article analyzers this never raises on a bad reply: it
    answers with `fallback_situation` instead, so the periodic refresh always
    has something to store.
    """

    def __init__(self, analyzer: ContentAnalyzer):
        self.analyzer = analyzer

    def current(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        stamp = (now or datetime.now(timezone.utc)).isoformat()
        try:
            reply = self.analyzer.complete(
                SITUATION_SYSTEM_PROMPT,
                SITUATION_PROMPT.format(now=stamp),
                temperature=0.3,
                max_tokens=2000,
            )
            data = parse_json_reply(reply)
            errors = validate_situation_analysis(data)
            if errors:
                raise AnalysisError(f"Situation analysis failed validation: {'; '.join(errors)}")
        except AnalysisError as e:
            logger.error(f"Current situation analysis unavailable, using fallback: {e}")
            return fallback_situation(stamp)
        data.setdefault("lastUpdated", stamp)
        return data


def situation_to_fields(situation: Dict[str, Any]) -> Dict[str, Any]:
    """Map a situation snapshot onto `conflict_analytics` columns."""
    casualties = situation.get("casualties") or {}
    population = situation.get("population") or {}
    weapons = situation.get("weapons") or {}
    diplomatic = situation.get("diplomatic") or {}
    risk = situation.get("risk") or {}
    verified = bool(casualties.get("verified"))
    border_status = diplomatic.get("borderStatus") or "OPEN"
    activity = "; ".join(
        f"{d.get('country', 'UNKNOWN')}: {d.get('type', '')} in {d.get('location', '')} (Threat: {d.get('threatLevel', 1)}/10)"
        for d in weapons.get("deployments") or []
    )
    return {
        "thailand_casualties": _count(casualties.get("thailand")),
        "cambodia_casualties": _count(casualties.get("cambodia")),
        "total_casualties": _count(casualties.get("total")),
        "casualties_verified": verified,
        "affected_population": _count(population.get("affected")),
        "displaced_civilians": _count(population.get("displaced")),
        "affected_areas": list(population.get("affectedAreas") or []),
        "weapon_types_reported": list(weapons.get("types") or []),
        "military_activity": activity or None,
        "economic_loss": None,
        "trade_disruption": border_status != "OPEN",
        "border_status": border_status,
        "diplomatic_tension": int(_number(diplomatic.get("tension"), 1)),
        "official_statements": len(diplomatic.get("recentStatements") or []),
        "meetings_scheduled": _count(diplomatic.get("meetings")),
        "daily_summary": situation.get("summary") or None,
        "key_developments": list(situation.get("keyDevelopments") or []),
        "risk_assessment": int(_number(risk.get("level"), 1)),
        "confidence_score": _number(situation.get("overallConfidence")),
        "sources_analyzed": 1,
        "verification_level": "VERIFIED" if verified else "UNVERIFIED",
    }


def update_conflict_analytics(store, situation_analyzer: SituationAnalyzer, day: date) -> Dict[str, Any]:
    """Overwrite `day`'s analytics row with the model's current-situation snapshot."""
    situation = situation_analyzer.current()
    fields = situation_to_fields(situation)
    row = store.upsert(day, fields)
    logger.info(
        f"Situation analytics for {day.isoformat()}: casualties {fields['total_casualties']}, "
        f"risk {fields['risk_assessment']}/10, tension {fields['diplomatic_tension']}/10, "
        f"border {fields['border_status']}, confidence {fields['confidence_score']:.2f}"
    )
    return row


def refresh_situation_analytics(repo, store, situation_analyzer: SituationAnalyzer, day: date, *, action: str) -> Dict[str, Any]:
    """`update_conflict_analytics` bracketed by `monitoring_logs` entries under `action`."""
    repo.log("NEWS_ARTICLE", action, "INFO", "Situation analytics update started", {"date": day.isoformat()})
    try:
        row = update_conflict_analytics(store, situation_analyzer, day)
    except Exception as e:
        try:
            repo.log("NEWS_ARTICLE", action, "ERROR", f"Situation analytics update failed: {e}", {"date": day.isoformat(), "error": repr(e)})
        except DatabaseError as log_error:
            logger.error(f"Could not record situation analytics failure: {log_error}")
        raise
    repo.log(
        "NEWS_ARTICLE",
        action,
        "SUCCESS",
        "Situation analytics update completed",
        {"date": day.isoformat(), "confidence": row.get("confidence_score") if row else None},
    )
    return row


def _row_day(row: Dict[str, Any]) -> date:
    value = row["date"]
    return value if isinstance(value, date) else date.fromisoformat(str(value)[:10])


def _direction(change: float) -> str:
    if change > 0:
        return "increasing"
    if change < 0:
        return "decreasing"
    return "stable"


def summarize_period(
    rows: List[Dict[str, Any]],
    today_row: Optional[Dict[str, Any]],
    reports: Dict[str, List[Dict[str, Any]]],
    *,
    days: int,
    start: date,
    end: date,
) -> Dict[str, Any]:
    """Totals and unions over the analytics rows of a period window."""
    areas: List[str] = []
    weapons: List[str] = []
    for row in rows:
        for area in row.get("affected_areas") or []:
            if area not in areas:
                areas.append(area)
        for weapon in row.get("weapon_types_reported") or []:
            if weapon not in weapons:
                weapons.append(weapon)
    today = today_row or {}
    return {
        "success": True,
        "period": {"days": days, "start": start.isoformat(), "end": end.isoformat()},
        "overview": {
            "casualties": {
                "total": sum(r.get("total_casualties") or 0 for r in rows),
                "thailand": sum(r.get("thailand_casualties") or 0 for r in rows),
                "cambodia": sum(r.get("cambodia_casualties") or 0 for r in rows),
                "today": today.get("total_casualties") or 0,
            },
            "population": {
                "affected": sum(r.get("affected_population") or 0 for r in rows),
                "displaced": sum(r.get("displaced_civilians") or 0 for r in rows),
                "affectedAreas": len(areas),
                "locations": areas,
            },
            "weapons": {"typesReported": len(weapons), "types": weapons},
            "status": {
                "riskLevel": today.get("risk_assessment") or 1,
                "diplomaticTension": today.get("diplomatic_tension") or 1,
                "borderStatus": today.get("border_status") or "Unknown",
                "lastUpdate": today.get("updated_at"),
            },
        },
        "dailyTrend": [
            {
                "date": _row_day(r).isoformat(),
                "casualties": r.get("total_casualties") or 0,
                "affected": r.get("affected_population") or 0,
                "risk": r.get("risk_assessment") or 1,
                "tension": r.get("diplomatic_tension") or 1,
            }
            for r in rows
        ],
        "recentReports": reports,
        "todaySummary": today.get("daily_summary") or "No summary available for today.",
    }


def weekly_trends(rows: List[Dict[str, Any]], start: date, end: date) -> Optional[Dict[str, Any]]:
    """Trend summary over one week of analytics rows (oldest first); None when empty."""
    if not rows:
        return None
    n = len(rows)
    casualties = [r.get("total_casualties") or 0 for r in rows]
    risks = [r.get("risk_assessment") or 1 for r in rows]
    tensions = [r.get("diplomatic_tension") or 1 for r in rows]
    risk_change = risks[-1] - risks[0] if n > 1 else 0
    casualty_change = sum(casualties[-3:]) - sum(casualties[:3]) if n > 3 else 0

    def _peak(key: str) -> Dict[str, Any]:
        best = max(rows, key=lambda r: r.get(key) or 0)
        return {"date": _row_day(best).isoformat(), "value": best.get(key) or 0}

    return {
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "totals": {
            "casualties": sum(casualties),
            "affected": sum(r.get("affected_population") or 0 for r in rows),
            "daysAnalyzed": n,
        },
        "averages": {
            "riskLevel": round(sum(risks) / n, 1),
            "diplomaticTension": round(sum(tensions) / n, 1),
        },
        "trends": {
            "riskDirection": _direction(risk_change),
            "riskChange": risk_change,
            "casualtyTrend": _direction(casualty_change),
            "casualtyChange": casualty_change,
        },
        "keyMetrics": {
            "peakRiskDay": _peak("risk_assessment"),
            "mostActiveDay": _peak("sources_analyzed"),
            "highestCasualtyDay": _peak("total_casualties"),
        },
    }


def weekly_breakdown(rows: List[Dict[str, Any]], start: date, weeks: int) -> List[Dict[str, Any]]:
    """Group analytics rows into consecutive 7-day windows starting at `start`; empty weeks are omitted."""
    out = []
    for i in range(weeks):
        week_start = start + timedelta(days=7 * i)
        week_end = week_start + timedelta(days=7)
        week = [r for r in rows if week_start <= _row_day(r) < week_end]
        if not week:
            continue
        out.append(
            {
                "week": i + 1,
                "period": {"start": week_start.isoformat(), "end": week_end.isoformat()},
                "casualties": sum(r.get("total_casualties") or 0 for r in week),
                "affected": sum(r.get("affected_population") or 0 for r in week),
                "avgRisk": round(sum(r.get("risk_assessment") or 1 for r in week) / len(week), 1),
                "avgTension": round(sum(r.get("diplomatic_tension") or 1 for r in week) / len(week), 1),
                "daysActive": len(week),
            }
        )
    return out
