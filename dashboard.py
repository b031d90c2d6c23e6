"""
Read-only dashboard projections for one owner.

Stored times are naive UTC; "today" and the chart days are calendar days
in the reporting timezone passed in by the caller.
"""
import math
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from errors import ValidationError
from models import utcnow
from repository import RECENT_LIMIT, SEARCH_LIMIT

CHART_DAYS = 7


def to_local(value, tz):
    """Convert a stored naive UTC datetime to an aware datetime in tz."""
    return value.replace(tzinfo=timezone.utc).astimezone(tz)


def local_day_start(now, tz, days_back=0):
    """Start of the local day `days_back` days before `now`, as naive UTC."""
    local_date = to_local(now, tz).date() - timedelta(days=days_back)
    start = datetime.combine(local_date, time.min, tzinfo=tz)
    return start.astimezone(timezone.utc).replace(tzinfo=None)


def earnings_by_day(sessions, tz):
    """
    Sum amounts per local exit date.

    Only days that have at least one session appear; the result is sorted
    by date ascending.
    """
    totals = {}
    for s in sessions:
        if s.exit_time is None:
            continue
        key = to_local(s.exit_time, tz).date().isoformat()
        totals[key] = totals.get(key, 0.0) + (s.amount or 0.0)
    return [
        {'date': day, 'amount': round(amount, 2)}
        for day, amount in sorted(totals.items())
    ]


def get_dashboard_stats(sessions, owner_id, now=None, tz=None):
    """
    Build the dashboard summary for an owner.

    Args:
        sessions: SessionRepository
        owner_id: tenant whose sessions are read
        now: naive UTC reference time (defaults to the current time)
        tz: tzinfo for day boundaries (defaults to UTC)
    """
    now = now or utcnow()
    tz = tz or ZoneInfo('UTC')

    today_start = local_day_start(now, tz)
    week_start = local_day_start(now, tz, days_back=CHART_DAYS - 1)

    week_sessions = sessions.completed_exited_since(owner_id, week_start)
    today_sessions = [s for s in week_sessions if s.exit_time >= today_start]

    active_vehicles = sessions.count_active(owner_id)
    # Vehicles still parked from earlier days are not part of today's sessions
    active_today = sessions.count_active(owner_id, entered_since=today_start)
    today_earnings = sum(s.amount or 0.0 for s in today_sessions)

    durations = [s.duration_minutes for s in today_sessions if s.duration_minutes is not None]
    # Halves round up
    average_duration = math.floor(sum(durations) / len(durations) + 0.5) if durations else 0

    return {
        'today_earnings': round(today_earnings, 2),
        'active_vehicles': active_vehicles,
        'total_sessions': len(today_sessions) + active_today,
        'average_duration': average_duration,
        'recent_sessions': [s.to_dict() for s in sessions.recent(owner_id, RECENT_LIMIT)],
        'earnings_chart': earnings_by_day(week_sessions, tz),
    }


def search_vehicles(sessions, owner_id, query):
    """Sessions whose vehicle number contains `query`, newest first, at most 50."""
    query = (query or '').strip()
    if not query:
        raise ValidationError('Search query is required', field='q')
    return sessions.search(owner_id, query, SEARCH_LIMIT)
