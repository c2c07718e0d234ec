"""UTC time helpers and duration parsing for expiry and share links."""

import re
from datetime import datetime, timedelta, timezone

from filevault.core.exceptions import InvalidDuration

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h|d)")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form the metadata store persists."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration such as ``"24h"``, ``"1h30m"``, ``"-15m"``, ``"0s"`` or ``"7d"``.

    Components are a decimal number followed by a unit (ns, us, ms, s, m, h, d);
    a single leading sign applies to the whole value. A bare ``"0"`` is accepted.

    Raises:
        InvalidDuration: when the value is empty or not a valid duration.
    """
    if value is None:
        raise InvalidDuration("Invalid duration: empty value")
    text = value.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise InvalidDuration(f"Invalid duration: {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if not match:
            raise InvalidDuration(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    try:
        return timedelta(seconds=sign * total)
    except (OverflowError, ValueError) as e:
        raise InvalidDuration(f"Duration out of range: {value!r}") from e


def expiry_from(expires_in: str | None, now: datetime | None = None) -> datetime | None:
    """Absolute expiry for a relative duration; an empty value means no expiry."""
    if expires_in is None or not expires_in.strip():
        return None
    delta = parse_duration(expires_in)
    try:
        return (now or utcnow()) + delta
    except OverflowError as e:
        raise InvalidDuration(f"Expiry out of range: {expires_in!r}") from e
