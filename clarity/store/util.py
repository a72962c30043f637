"""
Small utilities shared by the store modules.

Timestamps are always timezone-aware UTC and serialize as RFC 3339 with a
trailing "Z".
"""

from __future__ import annotations

import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path

_FRACTION_RE = re.compile(r"\.(\d+)")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(ts: datetime) -> str:
    """Serialize a datetime as RFC 3339 UTC (microsecond precision, "Z" suffix)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    if ts.microsecond:
        return ts.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_ts(raw: str | None) -> datetime | None:
    """
    Parse an RFC 3339 timestamp.

    Accepts a "Z" suffix and nanosecond fractions (truncated to
    microseconds). Returns None for empty input; raises ValueError for
    garbage.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def atomic_write_text(path: Path, text: str) -> None:
    """Replace `path` with `text` via a temp file in the same directory plus rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
