"""
Type Coercion

Converts raw, untrusted values into the canonical representation of a
feature type:

- numeric  -> finite float
- logic    -> bool
- date     -> timezone-aware UTC datetime
- nominal  -> str
- text     -> str

The parse_* functions are strict and return None when the value cannot be
read as the requested type. coerce() is total: it never raises and falls
back to the type default instead.
"""

import json
import math
from datetime import date as date_type, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from .features import FeatureSchema, FeatureType

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off", ""}


def parse_numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float, Decimal)):
        try:
            number = float(value)
        except (OverflowError, InvalidOperation, ValueError):
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_logic(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        number = parse_numeric(value)
        return number is not None and number != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _from_epoch_ms(ms: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_date(value: Any) -> Optional[datetime]:
    """Epoch milliseconds, ISO-8601 strings and date objects."""
    if isinstance(value, datetime):
        # Shifting an aware value near year 1 or 9999 to UTC can leave the datetime range
        try:
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        except (OverflowError, ValueError):
            return None
    if isinstance(value, date_type):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return _from_epoch_ms(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        number = parse_numeric(text)
        if number is not None:
            return _from_epoch_ms(number)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parse_date(parsed)
    return None


def parse_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return to_wire(parse_date(value))
    # Integers past the interpreter digit limit raise ValueError, deep nesting RecursionError
    try:
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        return json.dumps(value, default=str)
    except TypeError:
        return str(value)
    except (ValueError, RecursionError):
        return None


_PARSERS = {
    FeatureType.NUMERIC: parse_numeric,
    FeatureType.LOGIC: parse_logic,
    FeatureType.DATE: parse_date,
    FeatureType.NOMINAL: parse_text,
    FeatureType.TEXT: parse_text,
}

_DEFAULTS = {
    FeatureType.NUMERIC: 0.0,
    FeatureType.LOGIC: False,
    FeatureType.DATE: EPOCH,
    FeatureType.NOMINAL: "",
    FeatureType.TEXT: "",
}


def parse_value(value: Any, feature_type: FeatureType) -> Optional[Any]:
    """Strict parse. Returns None when the value is not valid for the type."""
    return _PARSERS[feature_type](value)


def coerce(value: Any, feature_type: FeatureType) -> Any:
    """Total conversion into the canonical representation of feature_type."""
    parsed = _PARSERS[feature_type](value)
    if parsed is None:
        return _DEFAULTS[feature_type]
    return parsed


def coerce_instance(raw: Any, schema: FeatureSchema) -> list:
    """Build an ordered instance from a raw name -> value mapping."""
    if not isinstance(raw, Mapping):
        raw = {}
    return [coerce(raw.get(feature.name), feature.type) for feature in schema]


def coerce_instances(raw_instances: Any, schema: FeatureSchema) -> list[list]:
    if not isinstance(raw_instances, list):
        return []
    return [coerce_instance(raw, schema) for raw in raw_instances]


def to_wire(value: Any) -> Any:
    """JSON-safe form of a canonical value."""
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return value


def instance_to_wire(instance: list) -> list:
    return [to_wire(v) for v in instance]
