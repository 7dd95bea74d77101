"""Cron expression evaluation.

Tasks carry a 5-field cron expression, one of croniter's macros
(``@hourly``, ``@daily`` ...), or the reserved :data:`REBOOT_MACRO`,
which marks a task that only runs when the scheduler reboots and is never
due through cron evaluation.

Due-ness is evaluated at minute granularity in the task's own timezone:
an instant is due when the first fire time after the start of its minute
(minus one second) is that very minute.
"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from datetime import timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from taskspine.core.errors import InvalidTaskError

REBOOT_MACRO = "@reboot"


def is_valid_expression(expression: str) -> bool:
    """True for cron expressions, croniter macros and the reboot macro."""
    if expression == REBOOT_MACRO:
        return True
    return bool(expression) and croniter.is_valid(expression)


def resolve_timezone(timezone: str | tzinfo | None, default: tzinfo) -> tzinfo:
    """Turn a timezone name into a tzinfo, falling back to *default*."""
    if timezone is None:
        return default
    if isinstance(timezone, tzinfo):
        return timezone
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTaskError(f"Unknown timezone: {timezone!r}", cause=exc) from exc


def zone_key(timezone: str | tzinfo) -> str:
    """IANA name of *timezone*, the only form a task persists.

    Fixed offsets and other tzinfo objects without a zone name cannot be
    resolved again after a round trip through a storage, so they are
    rejected.

    Raises:
        InvalidTaskError: If the zone is unknown or has no IANA name.
    """
    if timezone is dt_timezone.utc:
        return "UTC"
    if isinstance(timezone, str):
        resolve_timezone(timezone, dt_timezone.utc)
        return timezone
    key = timezone.key if isinstance(timezone, ZoneInfo) else None
    if not key:
        raise InvalidTaskError(f"Timezone {timezone!r} has no IANA name")
    return key


def is_due(expression: str, at: datetime, timezone: tzinfo) -> bool:
    """Whether *expression* fires during the minute containing *at*.

    Raises:
        InvalidTaskError: If the expression cannot be parsed.
    """
    if expression == REBOOT_MACRO:
        return False
    if not is_valid_expression(expression):
        raise InvalidTaskError(f"Invalid cron expression: {expression!r}")

    minute = at.astimezone(timezone).replace(second=0, microsecond=0)
    fire = croniter(expression, minute - timedelta(seconds=1)).get_next(datetime)
    return fire == minute


__all__ = ["REBOOT_MACRO", "is_valid_expression", "resolve_timezone", "zone_key", "is_due"]
