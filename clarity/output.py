"""
Output envelope for every successful command.

One value per command: an object with `data` (required), `meta` (an
object) and `_hints` (non-empty strings). Rendered as JSON or EDN.
"""

from __future__ import annotations

import json
import math
import re
import sys
from dataclasses import asdict, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Sequence

from .store.util import format_ts

FORMAT_JSON = "json"
FORMAT_EDN = "edn"
FORMATS = (FORMAT_JSON, FORMAT_EDN)

ENVELOPE_KEYS = frozenset({"data", "meta", "_hints"})

_KEYWORD_RE = re.compile(r"^[A-Za-z_*+!?<>=-][A-Za-z0-9_*+!?<>=.\-]*$")
_EDN_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\t": "\\t", "\r": "\\r"}


class EnvelopeError(ValueError):
    """A command produced output outside the envelope contract."""


def to_jsonable(value: Any) -> Any:
    """Convert entities (anything with to_dict), dataclasses, datetimes and paths to plain JSON values."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if hasattr(value, "to_dict") and callable(value.to_dict):
        return to_jsonable(value.to_dict())
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return format_ts(value)
    if isinstance(value, Path):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    raise TypeError(f"cannot serialize {type(value).__name__}")


def envelope(data: Any, *, meta: dict[str, Any] | None = None, hints: Sequence[str] | None = None) -> dict[str, Any]:
    env: dict[str, Any] = {"data": to_jsonable(data)}
    if meta:
        env["meta"] = to_jsonable(meta)
    cleaned = [h for h in (hints or []) if h and h.strip()]
    if cleaned:
        env["_hints"] = cleaned
    return env


def validate_envelope(env: Any) -> None:
    if not isinstance(env, dict):
        raise EnvelopeError("envelope must be an object")
    extra = set(env) - ENVELOPE_KEYS
    if extra:
        raise EnvelopeError(f"unexpected envelope keys: {sorted(extra)}")
    if "data" not in env:
        raise EnvelopeError("envelope is missing data")
    if "meta" in env and not isinstance(env["meta"], dict):
        raise EnvelopeError("envelope meta must be an object")
    if "_hints" in env:
        hints = env["_hints"]
        if not isinstance(hints, list) or not all(isinstance(h, str) and h.strip() for h in hints):
            raise EnvelopeError("envelope _hints must be a list of non-empty strings")


# -----------------------------------------------------------------------------
# Encoders
# -----------------------------------------------------------------------------


def encode_json(value: Any, *, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(value, indent=2, ensure_ascii=False)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _edn_string(text: str) -> str:
    return '"' + "".join(_EDN_ESCAPES.get(ch, ch) for ch in text) + '"'


def _edn_key(key: str) -> str:
    return ":" + key if _KEYWORD_RE.match(key) else _edn_string(key)


def encode_edn(value: Any, *, pretty: bool = False, indent: int = 0) -> str:
    """
    Render a JSON-shaped value as EDN.

    Object keys become keywords when they are valid keyword names and
    strings otherwise; arrays become vectors.
    """
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise EnvelopeError("EDN output does not support NaN or infinity")
        return repr(value)
    if isinstance(value, str):
        return _edn_string(value)
    if isinstance(value, dict):
        if not value:
            return "{}"
        parts = [f"{_edn_key(str(k))} {encode_edn(v, pretty=pretty, indent=indent + 1)}" for k, v in value.items()]
        if pretty:
            pad = "\n" + " " * (indent + 1)
            return "{" + pad.join(parts) + "}"
        return "{" + ", ".join(parts) + "}"
    if isinstance(value, list):
        if not value:
            return "[]"
        parts = [encode_edn(v, pretty=pretty, indent=indent + 1) for v in value]
        if pretty:
            pad = "\n" + " " * (indent + 1)
            return "[" + pad.join(parts) + "]"
        return "[" + " ".join(parts) + "]"
    raise TypeError(f"cannot encode {type(value).__name__} as EDN")


def render(env: dict[str, Any], *, fmt: str = FORMAT_JSON, pretty: bool = False) -> str:
    validate_envelope(env)
    fmt = (fmt or FORMAT_JSON).strip().lower()
    if fmt == FORMAT_EDN:
        return encode_edn(env, pretty=pretty)
    if fmt == FORMAT_JSON:
        return encode_json(env, pretty=pretty)
    raise EnvelopeError(f"unknown output format: {fmt}")


def write_envelope(
    env: dict[str, Any], *, fmt: str = FORMAT_JSON, pretty: bool = False, stream: IO[str] | None = None
) -> None:
    out = stream if stream is not None else sys.stdout
    out.write(render(env, fmt=fmt, pretty=pretty) + "\n")
    out.flush()
