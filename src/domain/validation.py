"""
Request payload validation helpers.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import ValidationError

_EMAIL = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def require_payload(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_string(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return value.strip()


def optional_string(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip() or None


def normalize_email(value: str, key: str = 'email') -> str:
    email = value.strip().lower()
    if not _EMAIL.match(email):
        raise ValidationError(f"{key} must be a valid email address")
    return email


def optional_number(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")


_NUMBER_TOKEN = re.compile(r'-?\d[\d,]*(?:\.\d+)?')
_SCORE_FRACTION = re.compile(r'^\s*(-?\d[\d,]*(?:\.\d+)?)\s*/\s*\d+(?:\.\d+)?\s*$')


def coerce_number(value: Any) -> Optional[float]:
    """
    Lenient number parsing for model output, e.g. "$12,500.00" -> 12500.0.

    A score written as "85/100" reads as its numerator. Text holding a range
    or several numbers ("40,000 - 45,000", "45000 (incl. 5% tax)") is
    ambiguous and returns None, as does text with no number at all.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        fraction = _SCORE_FRACTION.match(value)
        tokens = [fraction.group(1)] if fraction else _NUMBER_TOKEN.findall(value)
        if len(tokens) != 1:
            return None
        return float(tokens[0].replace(',', ''))
    return None


def parse_datetime(value: Any, key: str = 'deadline') -> Optional[datetime]:
    """Parse an ISO 8601 date or datetime; naive values are taken as UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO 8601 date")
    else:
        raise ValidationError(f"{key} must be an ISO 8601 date")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def optional_bool(data: Dict[str, Any], key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean")
    return value
