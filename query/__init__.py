"""
Typed filter queries over the source table.

Feature schema, value coercion, filter sanitizing and the SQL builders that
turn sanitized filters into parameterized statements.
"""

from .features import Feature, FeatureSchema, FeatureType, quote_identifier
from .coercion import coerce, coerce_instance, coerce_instances, instance_to_wire, to_wire
from .filters import FilterGroup, FilterLeaf, MAX_FILTER_DEPTH, parse_filter, sanitize_node
from .builder import (
    MAX_DISTINCT_VALUES,
    build_count,
    build_distinct,
    build_insert,
    build_select,
    escape_like,
    to_condition,
)

__all__ = [
    'Feature',
    'FeatureSchema',
    'FeatureType',
    'quote_identifier',
    'coerce',
    'coerce_instance',
    'coerce_instances',
    'instance_to_wire',
    'to_wire',
    'FilterGroup',
    'FilterLeaf',
    'MAX_FILTER_DEPTH',
    'parse_filter',
    'sanitize_node',
    'MAX_DISTINCT_VALUES',
    'build_count',
    'build_distinct',
    'build_insert',
    'build_select',
    'escape_like',
    'to_condition',
]
