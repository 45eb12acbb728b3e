"""Weekly aggregation window: Monday 00:00 UTC through Sunday."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from mentionboard.models import as_utc


def _now(now: datetime | None) -> datetime:
    return as_utc(now) if now is not None else datetime.now(UTC)


def current_window_start(now: datetime | None = None) -> datetime:
    """Return the most recent Monday 00:00 UTC at or before *now*."""
    current = _now(now)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=midnight.weekday())


def needs_rollover(last_rollover: datetime | None, now: datetime | None = None) -> bool:
    """True iff *last_rollover* precedes the current window start.

    A store that has never recorded a rollover always needs one.
    """
    if last_rollover is None:
        return True
    return as_utc(last_rollover) < current_window_start(now)
