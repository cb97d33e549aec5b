"""Period keys and reset countdowns, always computed in one reference zone.

Every code path that derives a period key must go through this module.
Two instants in the same ISO week / calendar month / calendar year of the
reference zone always map to the same key, and keys sort chronologically.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from src.core.config import DEFAULT_TIMEZONE
from src.core.schemas import Period

_DEFAULT_TZ = ZoneInfo(DEFAULT_TIMEZONE)


def now_in_zone(tz: ZoneInfo = _DEFAULT_TZ) -> datetime:
    """Return the current instant expressed in the reference zone."""
    return datetime.now(tz)


def to_zone(when: datetime, tz: ZoneInfo = _DEFAULT_TZ) -> datetime:
    """Convert an instant into the reference zone. Naive values are UTC."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(tz)


def period_key(
    period: Period,
    when: datetime | None = None,
    tz: ZoneInfo = _DEFAULT_TZ,
) -> str:
    """Return the canonical key for the period containing ``when``.

    weekly  -> ``YYYY-Www`` (ISO week-year and week number)
    monthly -> ``YYYY-MM``
    yearly  -> ``YYYY``
    """
    period = Period(period)
    local = to_zone(when, tz) if when is not None else now_in_zone(tz)
    if period is Period.WEEKLY:
        iso_year, iso_week, _ = local.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    if period is Period.MONTHLY:
        return f"{local.year:04d}-{local.month:02d}"
    return f"{local.year:04d}"


def period_start(
    period: Period,
    when: datetime | None = None,
    tz: ZoneInfo = _DEFAULT_TZ,
) -> datetime:
    """Return local midnight at the start of the period containing ``when``."""
    period = Period(period)
    local = to_zone(when, tz) if when is not None else now_in_zone(tz)
    if period is Period.WEEKLY:
        monday = local.date() - timedelta(days=local.weekday())
        return datetime(monday.year, monday.month, monday.day, tzinfo=tz)
    if period is Period.MONTHLY:
        return datetime(local.year, local.month, 1, tzinfo=tz)
    return datetime(local.year, 1, 1, tzinfo=tz)


def next_period_start(
    period: Period,
    when: datetime | None = None,
    tz: ZoneInfo = _DEFAULT_TZ,
) -> datetime:
    """Return local midnight at the start of the following period."""
    period = Period(period)
    start = period_start(period, when, tz)
    if period is Period.WEEKLY:
        nxt = start.date() + timedelta(days=7)
        return datetime(nxt.year, nxt.month, nxt.day, tzinfo=tz)
    if period is Period.MONTHLY:
        if start.month == 12:
            return datetime(start.year + 1, 1, 1, tzinfo=tz)
        return datetime(start.year, start.month + 1, 1, tzinfo=tz)
    return datetime(start.year + 1, 1, 1, tzinfo=tz)


def previous_period_key(
    period: Period,
    when: datetime | None = None,
    tz: ZoneInfo = _DEFAULT_TZ,
) -> str:
    """Return the key of the period immediately before the one containing ``when``."""
    start = period_start(period, when, tz)
    # Noon the day before the boundary is always inside the previous period.
    prev_day = start.date() - timedelta(days=1)
    inside_previous = datetime(prev_day.year, prev_day.month, prev_day.day, 12, tzinfo=tz)
    return period_key(period, inside_previous, tz)


def time_until_next_reset(
    period: Period,
    now: datetime | None = None,
    tz: ZoneInfo = _DEFAULT_TZ,
) -> int:
    """Milliseconds from ``now`` until the next period boundary.

    Both ends are compared as UTC instants so DST transitions are counted.
    """
    current = to_zone(now, tz) if now is not None else now_in_zone(tz)
    boundary = next_period_start(period, current, tz)
    delta = boundary.astimezone(timezone.utc) - current.astimezone(timezone.utc)
    return max(0, int(delta.total_seconds() * 1000))


def format_countdown(ms: int) -> str:
    """Render a millisecond countdown as ``'3d 4h 12m'``."""
    minutes_total = max(0, ms) // 60_000
    days, rem = divmod(minutes_total, 24 * 60)
    hours, minutes = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
