"""
Filter Sanitizer

Validates untrusted filter trees (usually decoded JSON) against the feature
schema and produces a typed tree the SQL compiler can trust.

Grammar:
    group: {"op": "and" | "or", "children": [node, ...]}
    leaf:  {"feature": <index>, "op": <operator>, "value": <raw>}

Anything invalid is dropped instead of raising. A group left without valid
children disappears, so a fully invalid filter becomes None (match all).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from errors import ValidationError

from .coercion import parse_text, parse_value, to_wire
from .features import FeatureSchema, FeatureType

logger = logging.getLogger(__name__)

MAX_FILTER_DEPTH = 10
MAX_IN_VALUES = 1000

GROUP_OPERATORS = {"AND", "OR"}

_ORDERED_OPERATORS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "between"})
_TEXT_OPERATORS = frozenset({"eq", "neq", "in", "contains", "startsWith"})

OPERATORS_BY_TYPE = {
    FeatureType.NUMERIC: _ORDERED_OPERATORS,
    FeatureType.DATE: _ORDERED_OPERATORS,
    FeatureType.LOGIC: frozenset({"eq"}),
    FeatureType.NOMINAL: _TEXT_OPERATORS,
    FeatureType.TEXT: _TEXT_OPERATORS,
}


@dataclass(frozen=True)
class FilterLeaf:
    """Comparison of one feature against an already-parsed value."""
    feature: int
    op: str
    value: Any  # scalar, or tuple for between / in

    def to_dict(self) -> dict:
        if isinstance(self.value, tuple):
            value = [to_wire(v) for v in self.value]
        else:
            value = to_wire(self.value)
        return {"feature": self.feature, "op": self.op, "value": value}


@dataclass(frozen=True)
class FilterGroup:
    """AND / OR over one or more child nodes."""
    op: str
    children: tuple

    def to_dict(self) -> dict:
        return {"op": self.op.lower(), "children": [c.to_dict() for c in self.children]}


FilterNode = Union[FilterGroup, FilterLeaf]


def _parse_scalar(value: Any, feature_type: FeatureType) -> Any:
    if feature_type in (FeatureType.NOMINAL, FeatureType.TEXT) and isinstance(value, (Mapping, list, tuple)):
        raise ValidationError("Text comparisons need a scalar value")
    parsed = parse_value(value, feature_type)
    if parsed is None:
        raise ValidationError(f"Value {value!r} is not a valid {feature_type.value}")
    return parsed


def _sanitize_leaf(raw: Mapping, schema: FeatureSchema) -> FilterLeaf:
    feature = schema.get(raw.get("feature"))
    if feature is None:
        raise ValidationError(f"Unknown feature {raw.get('feature')!r}")

    op = raw.get("op")
    if not isinstance(op, str) or op not in OPERATORS_BY_TYPE[feature.type]:
        raise ValidationError(f"Operator {op!r} is not valid for {feature.type.value} feature '{feature.name}'")

    value = raw.get("value")

    if op == "between":
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValidationError("between needs exactly two values")
        parsed = (_parse_scalar(value[0], feature.type), _parse_scalar(value[1], feature.type))

    elif op == "in":
        if not isinstance(value, (list, tuple)) or not value:
            raise ValidationError("in needs a non-empty list")
        if len(value) > MAX_IN_VALUES:
            raise ValidationError(f"in accepts at most {MAX_IN_VALUES} values")
        parsed = tuple(_parse_scalar(v, feature.type) for v in value)

    elif op in ("contains", "startsWith"):
        if isinstance(value, (Mapping, list, tuple)):
            raise ValidationError(f"{op} needs a text value")
        parsed = parse_text(value)
        if not parsed:
            raise ValidationError(f"{op} needs a non-empty text value")

    else:
        parsed = _parse_scalar(value, feature.type)

    return FilterLeaf(feature=feature.index, op=op, value=parsed)


def sanitize_node(raw: Any, schema: FeatureSchema, depth: int = 0) -> Optional[FilterNode]:
    """
    Validate one node of a raw filter tree.

    Returns the typed node, or None when the node (or every child of a
    group) is invalid.
    """
    if isinstance(raw, (FilterGroup, FilterLeaf)):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        return None

    op = raw.get("op")
    if isinstance(op, str) and op.upper() in GROUP_OPERATORS:
        if depth > MAX_FILTER_DEPTH:
            logger.debug(f"Dropping filter group nested deeper than {MAX_FILTER_DEPTH}")
            return None
        raw_children = raw.get("children")
        if not isinstance(raw_children, (list, tuple)):
            return None
        children = []
        for child in raw_children:
            clean = sanitize_node(child, schema, depth + 1)
            if clean is not None:
                children.append(clean)
        if not children:
            return None
        return FilterGroup(op=op.upper(), children=tuple(children))

    try:
        return _sanitize_leaf(raw, schema)
    except ValidationError as e:
        logger.debug(f"Dropping filter leaf: {e}")
        return None


def parse_filter(raw: Any, schema: FeatureSchema) -> Optional[FilterNode]:
    """
    Sanitize a filter given as a JSON string, a decoded mapping or None.
    Malformed input means no filter.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError):
            logger.debug("Ignoring filter that is not valid JSON")
            return None
    return sanitize_node(raw, schema, 0)
