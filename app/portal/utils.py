from __future__ import annotations

import base64
import binascii
import secrets
import string
import time
from datetime import date, datetime
from typing import Any


def clean(value: Any) -> str | None:
    """Strip a user-supplied string; blank becomes None."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_float(value: Any, default: float | None = None) -> float | None:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_int(value: Any, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_date(s: Any) -> date | None:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date."""
    if not s:
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    raw = str(s).strip()
    if not raw:
        return None
    if len(raw) > 10:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    return date.fromisoformat(raw)


def parse_list(value: Any) -> list:
    """Accept a JSON list or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, list):
        return [v for v in value if v not in (None, "")]
    return [p.strip() for p in str(value).split(",") if p.strip()]


def new_application_code() -> str:
    """APP-<epoch millis>-<RANDOM6>"""
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"APP-{int(time.time() * 1000)}-{suffix}"


def strip_data_url(data: str) -> str:
    """Drop a ``data:<mime>;base64,`` prefix if present."""
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


def decode_base64(data: str) -> bytes:
    """Strict base64 decode; raises ValueError on malformed input."""
    try:
        return base64.b64decode(strip_data_url(data), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def month_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m")
