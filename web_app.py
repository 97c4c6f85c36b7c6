#!/usr/bin/env python3
"""
Flask web application for BorderWatch.
Serves the monitoring JSON API, the dashboard and the admin page.
"""

from flask import Flask, render_template, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_caching import Cache
from flask_compress import Compress
import atexit
import logging
import os
import secrets
from datetime import date, datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional
from dotenv import load_dotenv

from cors_config import configure_cors
from borderwatch.config import Settings
from borderwatch.analysis.llm import ContentAnalyzer
from borderwatch.analysis.conflict_stats import (
    ConflictStatisticsAnalyzer,
    SituationAnalyzer,
    generate_daily_analytics,
    refresh_situation_analytics,
    summarize_period,
    weekly_breakdown,
    weekly_trends,
)
from borderwatch.extraction.cloudflare import close_scraper
from borderwatch.ingestion.facebook import MONITORED_PAGES, FacebookClient
from borderwatch.ingestion.feeds import RSSFetcher, parse_datetime
from borderwatch.ingestion.news_apis import NewsAPIFetcher
from borderwatch.pipeline.cleanup import cleanup_duplicates, cleanup_facebook_logs
from borderwatch.pipeline.monitor import FacebookMonitor, NewsMonitor, OfficialPagesMonitor
from borderwatch.scoring.relevance import extract_keywords
from borderwatch.storage.analytics import ConflictAnalyticsStore
from borderwatch.storage.queries import DashboardStore, row_to_source
from borderwatch.storage.repo import DatabaseError, MonitorRepo

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

settings = Settings.from_env()

SOURCE_TYPES = ('NEWS_ARTICLE', 'FACEBOOK_POST')

app = Flask(__name__)
# nginx forwards X-Forwarded-Proto etc.
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
app = configure_cors(app)
app.config['SECRET_KEY'] = os.environ.get('FLASK_SECRET_KEY', secrets.token_hex(32))
app.json.sort_keys = False

cache = Cache(app, config={
    'CACHE_TYPE': os.environ.get('CACHE_TYPE', 'SimpleCache'),
    'CACHE_DEFAULT_TIMEOUT': 60,
})
compress = Compress(app)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "300 per hour"],
    storage_uri="memory://"
)
limiter.init_app(app)

repo = MonitorRepo(settings.pg_dsn)
store = DashboardStore(settings.pg_dsn)
analytics_store = ConflictAnalyticsStore(settings.pg_dsn)
atexit.register(close_scraper)


def _init_postgres_schema():
    """Create BorderWatch tables if they are missing."""
    try:
        from borderwatch.storage.schema import ensure_schema
        ensure_schema(settings.pg_dsn)
        logger.info("Postgres schema ready")
    except Exception as e:
        logger.error(f"Postgres schema init failed: {e}")


_init_postgres_schema()


# =====================
# Collaborator factories
# =====================
def _analyzer() -> ContentAnalyzer:
    return ContentAnalyzer(api_key=settings.openai_api_key, model=settings.ai_model)


def _facebook_client() -> FacebookClient:
    return FacebookClient(settings.rapidapi_key, settings.rapidapi_host, timeout=settings.request_timeout)


def _monitor_kwargs(analyzer: ContentAnalyzer) -> Dict[str, Any]:
    return {
        'stats_analyzer': ConflictStatisticsAnalyzer(analyzer),
        'min_relevance': settings.min_conflict_relevance,
        'detailed_threshold': settings.detailed_analysis_threshold,
    }


def build_news_monitor() -> NewsMonitor:
    analyzer = _analyzer()
    newsapi = NewsAPIFetcher(settings.news_api_key, timeout=settings.request_timeout) if settings.news_api_key else None
    return NewsMonitor(
        repo,
        analyzer,
        rss=RSSFetcher(timeout=settings.request_timeout),
        newsapi=newsapi,
        browser_fallback=settings.enable_browser_fallback,
        **_monitor_kwargs(analyzer),
    )


def build_facebook_monitor() -> FacebookMonitor:
    analyzer = _analyzer()
    return FacebookMonitor(
        repo,
        analyzer,
        _facebook_client(),
        query_delay=settings.facebook_query_delay,
        **_monitor_kwargs(analyzer),
    )


def build_official_monitor() -> OfficialPagesMonitor:
    analyzer = _analyzer()
    return OfficialPagesMonitor(repo, analyzer, _facebook_client(), **_monitor_kwargs(analyzer))


# =====================
# Helpers
# =====================
def add_security_headers(response):
    """Add security headers"""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    response.headers['Permissions-Policy'] = 'geolocation=(), microphone=(), camera=()'
    return response


app.after_request(add_security_headers)


def handle_database_error(f):
    """Decorator for handling database errors gracefully"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except DatabaseError as e:
            logger.error(f"Database error in {f.__name__}: {e}")
            return jsonify({'error': 'Database temporarily unavailable', 'retry': True}), 503
        except Exception as e:
            logger.error(f"Unexpected error in {f.__name__}: {e}", exc_info=True)
            return jsonify({'error': 'Internal server error', 'details': str(e)}), 500
    return decorated_function


def _parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_float(value: Any, default: Optional[float]) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_day(value: Optional[str]) -> date:
    """ISO date (or datetime) string to a date; today (UTC) when empty."""
    if not value:
        return datetime.now(timezone.utc).date()
    return date.fromisoformat(str(value).strip()[:10])


def _run_monitor(builder, label: str):
    try:
        result = builder().run()
        return jsonify(result.summary)
    except Exception as e:
        logger.error(f"{label} monitoring failed: {e}", exc_info=True)
        return jsonify({'error': f'{label} monitoring failed', 'details': str(e)}), 500


# =====================
# Pages
# =====================
@app.route('/')
def dashboard():
    stats, analytics, timeline, db_error = {}, None, [], False
    try:
        stats = store.stats()
        analytics = analytics_store.latest()
        timeline = store.list_timeline(limit=30)
    except DatabaseError as e:
        logger.error(f"Dashboard data unavailable: {e}")
        db_error = True
    return render_template('index.html', stats=stats, analytics=analytics, timeline=timeline, db_error=db_error)


@app.route('/admin')
def admin_page():
    sources, logs, db_error = [], [], False
    try:
        sources = store.list_sources(with_counts=True)
        logs = store.list_logs(limit=50)
    except DatabaseError as e:
        logger.error(f"Admin data unavailable: {e}")
        db_error = True
    return render_template('admin.html', sources=sources, logs=logs, db_error=db_error)


# =====================
# Health
# =====================
@app.route('/api/health')
@limiter.exempt
def health_check():
    """API health check endpoint"""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'version': '1.0.0'
    })


# =====================
# Monitoring runs
# =====================
@app.route('/api/monitor/news', methods=['POST'])
@limiter.limit("20 per hour")
def run_news_monitoring():
    return _run_monitor(build_news_monitor, 'News')


@app.route('/api/monitor/news', methods=['GET'])
@handle_database_error
def news_monitoring_status():
    return jsonify({
        'stats': store.recent_status_counts('NEWS_ARTICLE'),
        'sources': store.list_sources(source_type='NEWS_ARTICLE', active=True),
        'lastUpdate': datetime.now(timezone.utc).isoformat(),
    })


@app.route('/api/monitor/facebook', methods=['POST'])
@limiter.limit("20 per hour")
def run_facebook_monitoring():
    return _run_monitor(build_facebook_monitor, 'Facebook')


@app.route('/api/monitor/facebook', methods=['GET'])
@handle_database_error
def facebook_monitoring_status():
    connected = _facebook_client().test_connection() if settings.facebook_enabled else False
    return jsonify({
        'connectionStatus': 'connected' if connected else 'failed',
        'stats': store.recent_status_counts('FACEBOOK_POST'),
        'sources': store.list_sources(source_type='FACEBOOK_POST', active=True),
        'lastUpdate': datetime.now(timezone.utc).isoformat(),
    })


@app.route('/api/monitor/official-pages', methods=['POST'])
@limiter.limit("20 per hour")
def run_official_pages_monitoring():
    return _run_monitor(build_official_monitor, 'Official pages')


@app.route('/api/monitor/official-pages', methods=['GET'])
@handle_database_error
def official_pages_status():
    sources = [s for s in store.list_sources(source_type='FACEBOOK_POST', active=True) if s['name'].startswith('Facebook: ')]
    last = store.last_log('FACEBOOK_POST', 'official_pages_monitoring_completed')
    return jsonify({
        'stats': store.recent_status_counts('FACEBOOK_POST'),
        'sources': sources,
        'totalSources': len(sources),
        'monitoredPages': [{'id': p.id, 'name': p.name, 'url': p.url} for p in MONITORED_PAGES],
        'lastMonitoring': last['createdAt'] if last else None,
    })


# =====================
# Timeline
# =====================
@app.route('/api/timeline', methods=['GET'])
@handle_database_error
def get_timeline():
    events = store.list_timeline(
        limit=_parse_int(request.args.get('limit'), 50),
        event_type=request.args.get('type') or None,
        source_id=_parse_int(request.args.get('sourceId'), 0) or None,
        source_name=request.args.get('sourceName') or None,
    )
    return jsonify(events)


@app.route('/api/timeline', methods=['POST'])
@handle_database_error
def create_timeline_event():
    data = request.get_json(silent=True) or {}
    required = ('articleId', 'eventType', 'eventDate', 'title')
    if any(not data.get(k) for k in required):
        return jsonify({'error': 'Missing required fields', 'required': list(required)}), 400
    event_date = parse_datetime(data['eventDate'])
    if event_date is None:
        return jsonify({'error': 'Invalid eventDate'}), 400
    article_id = _parse_int(data['articleId'], 0)
    if not article_id or store.get_article(article_id) is None:
        return jsonify({'error': 'Article not found'}), 404
    event_id = repo.create_timeline_event(
        article_id=article_id,
        event_type=data['eventType'],
        event_date=event_date,
        title=data['title'],
        description=data.get('description'),
        importance=_parse_int(data.get('importance'), 1) or 1,
    )
    return jsonify(store.get_timeline_event(event_id)), 201


@app.route('/api/timeline/detailed', methods=['GET'])
@handle_database_error
def get_detailed_timeline():
    return jsonify(store.detailed_timeline(
        days=max(1, _parse_int(request.args.get('days'), 30)),
        limit=_parse_int(request.args.get('limit'), 50),
        event_type=request.args.get('type') or None,
        source_id=_parse_int(request.args.get('sourceId'), 0) or None,
        source_name=request.args.get('sourceName') or None,
    ))


# =====================
# Articles, sources, stats
# =====================
@app.route('/api/articles', methods=['GET'])
@handle_database_error
def get_articles():
    articles, pagination = store.list_articles(
        page=_parse_int(request.args.get('page'), 1),
        limit=_parse_int(request.args.get('limit'), 20),
        source_type=request.args.get('type') or None,
        status=request.args.get('status') or None,
        search=request.args.get('search') or None,
        source_id=_parse_int(request.args.get('sourceId'), 0) or None,
        source_name=request.args.get('sourceName') or None,
    )
    return jsonify({'articles': articles, 'pagination': pagination})


@app.route('/api/articles', methods=['POST'])
@handle_database_error
def create_article():
    data = request.get_json(silent=True) or {}
    if not data.get('sourceId') or not data.get('title') or not data.get('content'):
        return jsonify({'error': 'Missing required fields: sourceId, title, content'}), 400
    source_id = _parse_int(data['sourceId'], 0)
    if source_id <= 0:
        return jsonify({'error': 'Invalid sourceId'}), 400
    if store.get_source(source_id) is None:
        return jsonify({'error': 'Source not found'}), 404
    article_id = repo.create_article(
        source_id=source_id,
        title=data['title'],
        content=data['content'],
        original_url=data.get('originalUrl'),
        status='PENDING',
        published_at=parse_datetime(data.get('publishedAt')),
        summary=data.get('summary'),
        ai_analysis=data.get('aiAnalysis'),
        tags=data.get('tags') or extract_keywords(f"{data['title']} {data['content']}"),
        metadata=data.get('metadata') or {},
    )
    return jsonify(store.get_article(article_id)), 201


@app.route('/api/sources', methods=['GET'])
@handle_database_error
def get_sources():
    active = request.args.get('active')
    return jsonify(store.list_sources(
        source_type=request.args.get('type') or None,
        active=None if active is None else active == 'true',
        with_counts=request.args.get('withCounts') == 'true',
    ))


@app.route('/api/stats', methods=['GET'])
@cache.cached(timeout=30)
@handle_database_error
def get_stats():
    return jsonify(store.stats())


# =====================
# Admin
# =====================
@app.route('/api/admin/sources', methods=['GET'])
@handle_database_error
def admin_list_sources():
    return jsonify(store.list_sources(with_counts=True))


@app.route('/api/admin/sources', methods=['POST'])
@handle_database_error
def admin_create_source():
    data = request.get_json(silent=True) or {}
    if not data.get('name') or not data.get('type') or not data.get('url'):
        return jsonify({'error': 'Missing required fields: name, type, url'}), 400
    if data['type'] not in SOURCE_TYPES:
        return jsonify({'error': f"type must be one of {', '.join(SOURCE_TYPES)}"}), 400
    source = repo.create_source(
        data['name'],
        data['type'],
        data['url'],
        description=data.get('description'),
        is_active=_parse_bool(data.get('isActive'), True),
    )
    return jsonify(row_to_source(source)), 201


@app.route('/api/admin/sources/<int:source_id>', methods=['PATCH'])
@handle_database_error
def admin_update_source(source_id: int):
    data = request.get_json(silent=True) or {}
    fields: Dict[str, Any] = {}
    for key in ('name', 'url', 'description'):
        if key in data:
            fields[key] = data[key]
    if 'type' in data:
        if data['type'] not in SOURCE_TYPES:
            return jsonify({'error': f"type must be one of {', '.join(SOURCE_TYPES)}"}), 400
        fields['type'] = data['type']
    if 'isActive' in data:
        fields['is_active'] = _parse_bool(data['isActive'])
    source = repo.update_source(source_id, fields)
    if source is None:
        return jsonify({'error': 'Source not found'}), 404
    return jsonify(row_to_source(source))


@app.route('/api/admin/sources/<int:source_id>', methods=['DELETE'])
@handle_database_error
def admin_delete_source(source_id: int):
    if not repo.delete_source(source_id):
        return jsonify({'error': 'Source not found'}), 404
    return jsonify({'success': True})


@app.route('/api/admin/logs', methods=['GET'])
@handle_database_error
def admin_logs():
    return jsonify(store.list_logs(
        limit=_parse_int(request.args.get('limit'), 50),
        source_type=request.args.get('sourceType') or None,
    ))


@app.route('/api/admin/conflict-analytics', methods=['GET'])
@handle_database_error
def get_conflict_analytics():
    raw = request.args.get('date')
    if raw:
        try:
            day = _parse_day(raw)
        except ValueError:
            return jsonify({'error': 'Invalid date'}), 400
        return jsonify(analytics_store.get(day))
    return jsonify(analytics_store.latest())


@app.route('/api/admin/conflict-analytics', methods=['POST'])
@handle_database_error
def upsert_conflict_analytics():
    data = request.get_json(silent=True) or {}
    try:
        day = _parse_day(data.get('date'))
    except ValueError:
        return jsonify({'error': 'Invalid date'}), 400

    def _list(key):
        return data[key] if isinstance(data.get(key), list) else []

    fields = {
        'thailand_casualties': _parse_int(data.get('thailandCasualties'), 0),
        'cambodia_casualties': _parse_int(data.get('cambodiaCasualties'), 0),
        'total_casualties': _parse_int(data.get('totalCasualties'), 0),
        'casualties_verified': _parse_bool(data.get('casualtiesVerified')),
        'affected_population': _parse_int(data.get('affectedPopulation'), 0),
        'displaced_civilians': _parse_int(data.get('displacedCivilians'), 0),
        'affected_areas': _list('affectedAreas'),
        'weapon_types_reported': _list('weaponTypesReported'),
        'military_activity': data.get('militaryActivity') or None,
        'economic_loss': _parse_float(data.get('economicLoss'), None) if data.get('economicLoss') else None,
        'trade_disruption': _parse_bool(data.get('tradeDisruption')),
        'border_status': data.get('borderStatus') or None,
        'diplomatic_tension': _parse_int(data.get('diplomaticTension'), 1) or 1,
        'official_statements': _parse_int(data.get('officialStatements'), 0),
        'meetings_scheduled': _parse_int(data.get('meetingsScheduled'), 0),
        'daily_summary': data.get('dailySummary') or None,
        'key_developments': _list('keyDevelopments'),
        'risk_assessment': _parse_int(data.get('riskAssessment'), 1) or 1,
        'confidence_score': _parse_float(data.get('confidenceScore'), 0.0) or 0.0,
        'sources_analyzed': _parse_int(data.get('sourcesAnalyzed'), 0),
        'verification_level': data.get('verificationLevel') or 'UNVERIFIED',
    }
    if fields['verification_level'] not in ('UNVERIFIED', 'PARTIAL', 'VERIFIED'):
        return jsonify({'error': 'Invalid verificationLevel'}), 400
    return jsonify(analytics_store.upsert(day, fields))


@app.route('/api/admin/cleanup-duplicates', methods=['POST'])
def admin_cleanup_duplicates():
    try:
        return jsonify(cleanup_duplicates(repo))
    except Exception as e:
        logger.error(f"Duplicate cleanup failed: {e}", exc_info=True)
        try:
            repo.log('NEWS_ARTICLE', 'cleanup_duplicates', 'ERROR', f"Duplicate cleanup failed: {e}", {'error': str(e)})
        except DatabaseError as log_error:
            logger.error(f"Could not record cleanup failure: {log_error}")
        return jsonify({'error': 'Duplicate cleanup failed', 'details': str(e)}), 500


@app.route('/api/admin/cleanup-facebook-logs', methods=['POST'])
def admin_cleanup_facebook_logs():
    try:
        return jsonify(cleanup_facebook_logs(repo))
    except Exception as e:
        logger.error(f"Facebook logs cleanup failed: {e}", exc_info=True)
        try:
            repo.log('NEWS_ARTICLE', 'CLEANUP_FACEBOOK_LOGS', 'ERROR', f"Failed to cleanup Facebook logs: {e}", {'error': str(e)})
        except DatabaseError as log_error:
            logger.error(f"Could not record cleanup failure: {log_error}")
        return jsonify({'success': False, 'error': 'Failed to cleanup Facebook logs', 'details': str(e)}), 500


# =====================
# Analytics
# =====================
@app.route('/api/analytics/daily', methods=['POST'])
@handle_database_error
def build_daily_analytics():
    data = request.get_json(silent=True) or {}
    try:
        day = _parse_day(data.get('date') or request.args.get('date'))
    except ValueError:
        return jsonify({'error': 'Invalid date'}), 400
    row = generate_daily_analytics(analytics_store, ConflictStatisticsAnalyzer(_analyzer()), day)
    if row is None:
        return jsonify({'success': False, 'date': day.isoformat(), 'message': 'No articles with conflict data for this date'})
    return jsonify({'success': True, 'date': day.isoformat(), 'analytics': row})


@app.route('/api/analytics/stats', methods=['GET'])
@handle_database_error
def get_analytics_stats():
    days = max(1, _parse_int(request.args.get('period'), 30))
    now = datetime.now(timezone.utc)
    end = now.date()
    start = end - timedelta(days=days)
    rows = analytics_store.between(start, end)
    reports = analytics_store.recent_reports(now - timedelta(days=days))
    return jsonify(summarize_period(rows, analytics_store.get(end), reports, days=days, start=start, end=end))


@app.route('/api/analytics/weekly-trends', methods=['POST'])
def build_weekly_trends():
    end = datetime.now(timezone.utc).date()
    start = end - timedelta(days=7)
    period = {'start': start.isoformat(), 'end': end.isoformat()}
    try:
        trends = weekly_trends(analytics_store.between(start, end, newest_first=False), start, end)
        if trends is None:
            repo.log('NEWS_ARTICLE', 'weekly_trends', 'INFO', 'No weekly analytics data found for trend analysis',
                     {'weekStart': period['start'], 'weekEnd': period['end']})
            return jsonify({'success': True, 'message': 'No weekly data available for trend analysis', 'period': period})
        repo.log('NEWS_ARTICLE', 'weekly_trends', 'SUCCESS', 'Weekly trend analysis completed', {
            'weekStart': period['start'],
            'weekEnd': period['end'],
            'totalCasualties': trends['totals']['casualties'],
            'totalAffected': trends['totals']['affected'],
            'avgRiskLevel': trends['averages']['riskLevel'],
            'riskTrend': trends['trends']['riskDirection'],
        })
        return jsonify({'success': True, 'trends': trends})
    except Exception as e:
        logger.error(f"Weekly trend analysis failed: {e}", exc_info=True)
        try:
            repo.log('NEWS_ARTICLE', 'weekly_trends', 'ERROR', f"Weekly trend analysis failed: {e}", {'error': str(e)})
        except DatabaseError as log_error:
            logger.error(f"Could not record weekly trends failure: {log_error}")
        return jsonify({'success': False, 'error': 'Failed to generate weekly trends analysis', 'details': str(e)}), 500


@app.route('/api/analytics/weekly-trends', methods=['GET'])
@handle_database_error
def get_weekly_trends():
    weeks = max(1, _parse_int(request.args.get('weeks'), 4))
    end = datetime.now(timezone.utc).date()
    start = end - timedelta(days=7 * weeks)
    rows = analytics_store.between(start, end, newest_first=False)
    return jsonify({
        'success': True,
        'period': {'start': start.isoformat(), 'end': end.isoformat(), 'weeks': weeks},
        'weeklyData': weekly_breakdown(rows, start, weeks),
    })


@app.route('/api/analytics/openai-update', methods=['POST'])
@limiter.limit("10 per hour")
def update_situation_analytics():
    day = datetime.now(timezone.utc).date()
    try:
        row = refresh_situation_analytics(
            repo, analytics_store, SituationAnalyzer(_analyzer()), day, action='openai_analytics_update'
        )
    except Exception as e:
        logger.error(f"Situation analytics update failed: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to update OpenAI analytics', 'details': str(e)}), 500
    return jsonify({
        'success': True,
        'message': 'OpenAI analytics updated successfully',
        'date': day.isoformat(),
        'analytics': row,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


@app.route('/api/analytics/openai-update', methods=['GET'])
@limiter.limit("30 per hour")
def get_current_situation():
    return jsonify({
        'success': True,
        'data': SituationAnalyzer(_analyzer()).current(),
        'message': 'Current conflict analysis retrieved',
    })


# Main execution block
if __name__ == '__main__':
    debug = os.environ.get('FLASK_ENV') == 'development'

    logger.info(f"Starting BorderWatch web interface on port {settings.port}")
    logger.info(f"Debug mode: {debug}")

    app.run(
        host='0.0.0.0',
        port=settings.port,
        debug=debug,
        threaded=True
    )
