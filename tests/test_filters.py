"""
Tests for filter sanitizing

Untrusted filter trees must come out either as a valid typed tree or as
None, never as an exception.
"""

import json
from datetime import datetime, timezone

import pytest

from query.filters import (
    MAX_FILTER_DEPTH,
    MAX_IN_VALUES,
    FilterGroup,
    FilterLeaf,
    parse_filter,
    sanitize_node,
)


def leaf(feature, op, value):
    return {"feature": feature, "op": op, "value": value}


def nest(node, levels):
    for _ in range(levels):
        node = {"op": "and", "children": [node]}
    return node


class TestLeaves:

    def test_numeric_comparison(self, schema):
        assert sanitize_node(leaf(0, "gt", "4.5"), schema) == FilterLeaf(0, "gt", 4.5)

    def test_unknown_feature_is_dropped(self, schema):
        assert sanitize_node(leaf(99, "eq", 1), schema) is None
        assert sanitize_node(leaf("0", "eq", 1), schema) is None
        assert sanitize_node(leaf(None, "eq", 1), schema) is None

    def test_operator_must_fit_the_type(self, schema):
        assert sanitize_node(leaf(0, "contains", "1"), schema) is None
        assert sanitize_node(leaf(2, "gt", True), schema) is None
        assert sanitize_node(leaf(3, "lt", "a"), schema) is None
        assert sanitize_node(leaf(3, ["eq"], "a"), schema) is None
        assert sanitize_node(leaf(3, "drop table", "a"), schema) is None

    def test_invalid_values_are_dropped(self, schema):
        assert sanitize_node(leaf(0, "eq", "abc"), schema) is None
        assert sanitize_node(leaf(1, "gte", "not a date"), schema) is None
        assert sanitize_node(leaf(3, "eq", {"a": 1}), schema) is None
        assert sanitize_node(leaf(1, "gt", "0001-01-01T00:00:00+01:00"), schema) is None
        assert sanitize_node(leaf(1, "between", ["2020-01-01", "9999-12-31T23:59:59-01:00"]), schema) is None

    def test_date_values_are_parsed(self, schema):
        node = sanitize_node(leaf(1, "gte", "2020-01-01T00:00:00Z"), schema)
        assert node == FilterLeaf(1, "gte", datetime(2020, 1, 1, tzinfo=timezone.utc))

    def test_between(self, schema):
        assert sanitize_node(leaf(0, "between", [1, "2"]), schema) == FilterLeaf(0, "between", (1.0, 2.0))
        assert sanitize_node(leaf(0, "between", [1]), schema) is None
        assert sanitize_node(leaf(0, "between", [1, "x"]), schema) is None
        assert sanitize_node(leaf(0, "between", 1), schema) is None

    def test_in(self, schema):
        node = sanitize_node(leaf(3, "in", ["setosa", "virginica"]), schema)
        assert node == FilterLeaf(3, "in", ("setosa", "virginica"))
        assert sanitize_node(leaf(3, "in", []), schema) is None
        assert sanitize_node(leaf(3, "in", "setosa"), schema) is None
        assert sanitize_node(leaf(3, "in", ["x"] * (MAX_IN_VALUES + 1)), schema) is None

    def test_text_matching_needs_text(self, schema):
        assert sanitize_node(leaf(4, "contains", "abc"), schema) == FilterLeaf(4, "contains", "abc")
        assert sanitize_node(leaf(4, "startsWith", ""), schema) is None
        assert sanitize_node(leaf(4, "contains", None), schema) is None
        assert sanitize_node(leaf(4, "contains", ["a"]), schema) is None


class TestGroups:

    def test_group_operator_is_case_insensitive(self, schema):
        node = sanitize_node({"op": "Or", "children": [leaf(0, "eq", 1)]}, schema)
        assert node == FilterGroup("OR", (FilterLeaf(0, "eq", 1.0),))

    def test_invalid_children_are_dropped(self, schema):
        raw = {"op": "and", "children": [leaf(0, "eq", 1), leaf(99, "eq", 1), "junk", None]}
        assert sanitize_node(raw, schema) == FilterGroup("AND", (FilterLeaf(0, "eq", 1.0),))

    def test_group_without_valid_children_disappears(self, schema):
        assert sanitize_node({"op": "and", "children": []}, schema) is None
        assert sanitize_node({"op": "and", "children": [leaf(99, "eq", 1)]}, schema) is None
        assert sanitize_node({"op": "and", "children": "nope"}, schema) is None
        outer = {"op": "or", "children": [{"op": "and", "children": []}, leaf(2, "eq", "true")]}
        assert sanitize_node(outer, schema) == FilterGroup("OR", (FilterLeaf(2, "eq", True),))

    def test_depth_bound(self, schema):
        # The outermost group sits at depth 0, its leaf one level below the innermost group
        assert sanitize_node(nest(leaf(0, "eq", 1), MAX_FILTER_DEPTH + 1), schema) is not None
        assert sanitize_node(nest(leaf(0, "eq", 1), MAX_FILTER_DEPTH + 2), schema) is None

    def test_non_mapping_nodes(self, schema):
        assert sanitize_node(None, schema) is None
        assert sanitize_node([leaf(0, "eq", 1)], schema) is None
        assert sanitize_node(42, schema) is None


class TestParseFilter:

    def test_out_of_range_date_means_no_filter(self, schema):
        raw = json.dumps({"feature": 1, "op": "gt", "value": "0001-01-01T00:00:00+01:00"})
        assert parse_filter(raw, schema) is None

    def test_json_string(self, schema):
        raw = json.dumps({"op": "and", "children": [leaf(3, "eq", "setosa"), leaf(0, "lt", 5)]})
        assert parse_filter(raw, schema) == FilterGroup(
            "AND", (FilterLeaf(3, "eq", "setosa"), FilterLeaf(0, "lt", 5.0))
        )

    @pytest.mark.parametrize("raw", [None, "", "{not json", "[]", "null", "5", '"text"'])
    def test_malformed_filters_mean_no_filter(self, schema, raw):
        assert parse_filter(raw, schema) is None

    def test_deeply_nested_json_does_not_raise(self, schema):
        raw = '{"op":"and","children":[' * 5000 + "]}" * 5000
        assert parse_filter(raw, schema) is None

    def test_sanitizing_is_idempotent(self, schema):
        raw = {
            "op": "or",
            "children": [
                leaf(1, "between", ["2020-01-01T00:00:00.250Z", 1600000000000]),
                {"op": "and", "children": [leaf(3, "in", ["a", "b"]), leaf(4, "startsWith", "x")]},
                leaf(2, "eq", 1),
                leaf(99, "eq", 1),
            ],
        }
        once = parse_filter(raw, schema)
        assert once is not None
        assert sanitize_node(once.to_dict(), schema) == once
        assert sanitize_node(once, schema) == once
