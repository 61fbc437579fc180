"""Shared helpers for per-thread log files.

Every ThreadLogger registry insert/lookup/remove must hold this shared lock
so concurrent threads never race on the underlying dict.
"""

import os
import threading
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Single shared lock for ALL registry access across all loggers
registry_lock = threading.Lock()

NULL_MESSAGE = "<null message>"

_ZONEINFO_MARKER = "zoneinfo" + os.sep


def _matches_clock(key: str, at: datetime) -> bool:
    """True if zone ``key`` exists and has the same UTC offset as ``at``."""
    try:
        zone = ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return at.astimezone(zone).utcoffset() == at.utcoffset()


def local_zone_id(at: datetime = None) -> str:
    """Return the identifier of the process default time zone at ``at``.

    Prefers an IANA name (``America/New_York``): first from ``TZ``, then from
    the /etc/localtime link. A name is only used if its offset agrees with
    the local clock, so a stale ``TZ`` (changed without tzset) or a POSIX
    rule string falls back to the abbreviation the clock itself reports.
    """
    if at is None:
        at = datetime.now().astimezone()

    tz = os.getenv("TZ")
    if tz:
        key = tz.lstrip(":")
        if _matches_clock(key, at):
            return key

    localtime = os.path.realpath("/etc/localtime")
    if _ZONEINFO_MARKER in localtime:
        key = localtime.split(_ZONEINFO_MARKER, 1)[1]
        if _matches_clock(key, at):
            return key

    return at.tzname() or "UTC"


def format_timestamp(now: datetime = None) -> str:
    """Format ``now`` as ``yyyy-MM-dd HH:mm:ss,SSS <zone>`` in local time.

    Defaults to the current time. A naive ``now`` is taken as local time;
    an aware one is converted to local time first.
    """
    now = datetime.now().astimezone() if now is None else now.astimezone()
    millis = now.microsecond // 1000
    return f"{now:%Y-%m-%d %H:%M:%S},{millis:03d} {local_zone_id(now)}"


def format_line(timestamp: str, thread_name: str, message) -> str:
    """Build one log line, newline included."""
    text = NULL_MESSAGE if message is None else str(message)
    return f"{timestamp} [{thread_name}] {text}\n"
