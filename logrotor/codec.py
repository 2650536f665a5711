"""Rotated file naming: ``<base>.<RFC3339 timestamp>[.gz]``."""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

GZIP_SUFFIX = ".gz"

_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?(Z|[+-]\d{2}:\d{2})$"
)


@dataclass(frozen=True)
class DecodedName:
    timestamp: datetime
    compressed: bool


def format_rfc3339(ts: datetime) -> str:
    """Second-precision RFC3339, ``Z`` for a zero offset. Naive means local time."""
    if ts.tzinfo is None:
        ts = ts.astimezone()
    offset = ts.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        zone = "Z"
    else:
        sign = "+" if offset > timedelta(0) else "-"
        minutes = abs(int(offset.total_seconds())) // 60
        zone = f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"
    return ts.strftime("%Y-%m-%dT%H:%M:%S") + zone


def parse_rfc3339(value: str) -> datetime | None:
    """Parse an RFC3339 timestamp. Returns None if *value* is not one."""
    m = _RFC3339.match(value)
    if m is None:
        return None
    base, fraction, zone = m.groups()
    try:
        ts = datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return None
    if fraction:
        # datetime only carries microseconds
        ts = ts.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    if zone == "Z":
        tz = timezone.utc
    else:
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours > 23 or minutes > 59:
            return None
        delta = timedelta(hours=hours, minutes=minutes)
        tz = timezone(-delta if zone[0] == "-" else delta)
    return ts.replace(tzinfo=tz)


def encode(base_path: str, timestamp: datetime) -> str:
    return f"{base_path}.{format_rfc3339(timestamp)}"


def encode_compressed(rotated_name: str) -> str:
    return rotated_name + GZIP_SUFFIX


def decode(candidate: str, base_path: str) -> DecodedName | None:
    """Recover the rotation timestamp from a rotated name.

    Works on bare file names as well as full paths, as long as *candidate*
    and *base_path* are given in the same form. Returns None for anything
    that merely shares the prefix.
    """
    prefix = base_path + "."
    if not candidate.startswith(prefix):
        return None
    suffix = candidate[len(prefix):]
    compressed = suffix.endswith(GZIP_SUFFIX)
    if compressed:
        suffix = suffix[: -len(GZIP_SUFFIX)]
    ts = parse_rfc3339(suffix)
    if ts is None:
        return None
    return DecodedName(timestamp=ts, compressed=compressed)
