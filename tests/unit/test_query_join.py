"""
Unit tests for the query and join models.

Tests cover:
- Filter constructors and wire format
- QueryOptions immutability and optional keys
- JoinDefinition and JoinQueryOptions wire format
"""

import pytest

from syncopate_sdk import (
    FilterOperator,
    JoinDefinition,
    JoinQueryOptions,
    JoinType,
    QueryFilter,
    QueryOptions,
    SelectStrategy,
)


class TestQueryFilter:
    """Tests for QueryFilter."""

    @pytest.mark.parametrize(
        "factory,operator",
        [
            (QueryFilter.eq, "eq"),
            (QueryFilter.neq, "neq"),
            (QueryFilter.gt, "gt"),
            (QueryFilter.gte, "gte"),
            (QueryFilter.lt, "lt"),
            (QueryFilter.lte, "lte"),
            (QueryFilter.contains, "contains"),
            (QueryFilter.starts_with, "startswith"),
            (QueryFilter.ends_with, "endswith"),
            (QueryFilter.fuzzy, "fuzzy"),
            (QueryFilter.array_contains, "array_contains"),
        ],
    )
    def test_scalar_constructors(self, factory, operator):
        assert factory("name", "x").to_wire() == {"field": "name", "operator": operator, "value": "x"}

    def test_sequence_values_become_lists(self):
        """Tuples and sets are sent as JSON arrays."""
        wire = QueryFilter.in_("status", ("a", "b")).to_wire()

        assert wire == {"field": "status", "operator": "in", "value": ["a", "b"]}
        assert QueryFilter.array_contains_all("tags", {"x"}).to_wire()["value"] == ["x"]

    def test_string_operator(self):
        """Operators may be given as wire strings."""
        assert QueryFilter("price", "gte", 1).operator_value == "gte"

    def test_takes_sequence(self):
        assert FilterOperator.IN.takes_sequence
        assert FilterOperator.ARRAY_CONTAINS_ANY.takes_sequence
        assert not FilterOperator.ARRAY_CONTAINS.takes_sequence


class TestQueryOptions:
    """Tests for QueryOptions."""

    def test_minimal_wire(self):
        """Unset optional keys are omitted."""
        assert QueryOptions("product").to_wire() == {
            "entityType": "product",
            "filters": [],
            "offset": 0,
        }

    def test_full_wire(self):
        options = (
            QueryOptions("product")
            .with_filter(QueryFilter.gte("price", 10))
            .with_order("price", desc=True)
            .with_limit(20)
            .with_offset(40)
            .with_fuzzy(0.8, 2)
        )

        assert options.to_wire() == {
            "entityType": "product",
            "filters": [{"field": "price", "operator": "gte", "value": 10}],
            "limit": 20,
            "offset": 40,
            "orderBy": "price",
            "orderDesc": True,
            "fuzzyOpts": {"threshold": 0.8, "maxDistance": 2},
        }

    def test_with_methods_return_copies(self):
        """Options are immutable values."""
        base = QueryOptions("product")
        limited = base.with_limit(5)

        assert base.limit is None
        assert limited.limit == 5
        with pytest.raises(AttributeError):
            base.limit = 3

    def test_with_filter_appends(self):
        options = QueryOptions("product").with_filter(QueryFilter.eq("a", 1))
        options = options.with_filter(QueryFilter.eq("b", 2))

        assert [f.field for f in options.filters] == ["a", "b"]
        assert options.with_filters([]).filters == ()


class TestJoin:
    """Tests for JoinDefinition and JoinQueryOptions."""

    def test_join_defaults(self):
        """Inner join with first-match strategy; empty arrays omitted."""
        join = JoinDefinition("comment", "id", "postId", "comments")

        assert join.to_wire() == {
            "entityType": "comment",
            "localField": "id",
            "foreignField": "postId",
            "as": "comments",
            "type": "inner",
            "selectStrategy": "first",
        }

    def test_join_optional_arrays(self):
        join = (
            JoinDefinition(
                "comment",
                "id",
                "postId",
                "comments",
                type=JoinType.LEFT,
                select_strategy=SelectStrategy.ALL,
            )
            .with_filter(QueryFilter.eq("approved", True))
            .with_include_fields(["text", "author"])
            .with_exclude_fields(["secret"])
        )

        wire = join.to_wire()

        assert wire["type"] == "left"
        assert wire["selectStrategy"] == "all"
        assert wire["filters"] == [{"field": "approved", "operator": "eq", "value": True}]
        assert wire["includeFields"] == ["author", "text"]
        assert wire["excludeFields"] == ["secret"]

    def test_join_query_wire(self):
        options = (
            JoinQueryOptions("post")
            .with_join(JoinDefinition("comment", "id", "postId", "comments"))
            .with_limit(10)
        )

        wire = options.to_wire()

        assert wire["entityType"] == "post"
        assert wire["limit"] == 10
        assert wire["joins"][0]["as"] == "comments"

    def test_join_query_without_joins(self):
        assert "joins" not in JoinQueryOptions("post").to_wire()

    def test_with_methods_keep_join_type(self):
        """with_* on JoinQueryOptions keeps the joins."""
        options = JoinQueryOptions("post").with_join(
            JoinDefinition("comment", "id", "postId", "comments")
        )

        paged = options.with_limit(5).with_offset(10)

        assert isinstance(paged, JoinQueryOptions)
        assert len(paged.joins) == 1

    def test_to_query_options(self):
        options = JoinQueryOptions("post", limit=3).with_join(
            JoinDefinition("comment", "id", "postId", "comments")
        )

        plain = options.to_query_options()

        assert type(plain) is QueryOptions
        assert plain.limit == 3
