from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_TR_MAP = str.maketrans(
    {"ç": "c", "ğ": "g", "ı": "i", "ö": "o", "ş": "s", "ü": "u", "Ç": "c", "Ğ": "g", "İ": "i", "Ö": "o", "Ş": "s", "Ü": "u"}
)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def slugify(text: str) -> str:
    """URL-safe lowercase slug; Turkish letters are folded to ASCII."""
    value = (text or "").translate(_TR_MAP).lower()
    value = re.sub(r"[^a-z0-9]+", "-", value)
    return value.strip("-")


def parse_datetime(raw: Any) -> datetime | None:
    """Parse `YYYY-MM-DD`, `YYYY-MM-DDTHH:MM[:SS]` (HTML datetime-local) or a datetime."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    value = str(raw).strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1]
    parsed = datetime.fromisoformat(value)
    # Stored timestamps are naive UTC.
    if parsed.tzinfo is not None:
        parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
    return parsed


def parse_decimal(raw: Any) -> Decimal | None:
    if raw is None:
        return None
    if isinstance(raw, Decimal):
        return raw
    value = str(raw).strip().replace(",", ".")
    if not value:
        return None
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise ValueError(f"Invalid number: {raw!r}") from e


def parse_int(raw: Any) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int):
        return raw
    value = str(raw).strip()
    if not value:
        return None
    return int(value)


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in ("1", "true", "yes", "on")


def truncate(text: str | None, length: int = 150) -> str:
    value = (text or "").strip()
    if len(value) <= length:
        return value
    return value[:length].rstrip() + "..."


def money(value: Decimal | None) -> float | None:
    """Decimal → float for JSON payloads."""
    return float(value) if value is not None else None
