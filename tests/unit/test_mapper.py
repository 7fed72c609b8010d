"""
Unit tests for EntityMapper.

Tests cover:
- Wire record to entity (coercion, absent fields)
- Entity to wire record
- Local validation
- Joined rows
"""

import datetime as dt

import pytest

from syncopate_sdk import (
    UNSET,
    DefinitionError,
    EntityMapper,
    FieldType,
    MappingError,
    RelationshipRegistry,
    ValidationError,
)
from syncopate_sdk.mapper import parse_datetime, to_wire_value
from tests.models import BlogArticle, Comment, Order, OrderItem, Post, Product, Status


@pytest.fixture
def mapper():
    return EntityMapper()


class TestMapToObject:
    """Tests for map_to_object."""

    def test_basic_record(self, mapper):
        product = mapper.map_to_object(
            {"id": "p1", "fields": {"name": "Widget", "price": 19.99, "stock": 100}}, Product
        )

        assert isinstance(product, Product)
        assert product.id == "p1"
        assert (product.name, product.price, product.stock) == ("Widget", 19.99, 100)

    def test_absent_fields_stay_unset(self, mapper):
        """Fields missing from the record are not initialized."""
        product = mapper.map_to_object({"id": "p1", "fields": {"name": "Widget"}}, Product)

        assert getattr(product, "price", UNSET) is UNSET
        assert getattr(product, "tags", UNSET) is UNSET

    def test_numeric_strings(self, mapper):
        """Numeric strings are coerced to the declared type."""
        product = mapper.map_to_object(
            {"id": 1, "fields": {"price": "19.99", "stock": "7"}}, Product
        )

        assert product.price == 19.99
        assert product.stock == 7

    def test_integer_from_float_string(self, mapper):
        product = mapper.map_to_object({"id": 1, "fields": {"stock": "3.0"}}, Product)
        assert product.stock == 3

    def test_datetime_with_z(self, mapper):
        product = mapper.map_to_object(
            {"id": 1, "fields": {"createdAt": "2024-05-01T10:30:00Z"}}, Product
        )

        assert product.created_at == dt.datetime(2024, 5, 1, 10, 30, tzinfo=dt.timezone.utc)

    def test_date_and_enum(self, mapper):
        article = mapper.map_to_object(
            {
                "id": 3,
                "fields": {
                    "title": "Hello",
                    "publishedOn": "2024-05-01T00:00:00Z",
                    "status": "published",
                },
            },
            BlogArticle,
        )

        assert article.published_on == dt.date(2024, 5, 1)
        assert article.status is Status.PUBLISHED

    def test_null_value(self, mapper):
        product = mapper.map_to_object({"id": 1, "fields": {"price": None}}, Product)
        assert product.price is None

    def test_unknown_fields_are_ignored(self, mapper):
        product = mapper.map_to_object({"id": 1, "fields": {"_created": "x", "name": "W"}}, Product)
        assert product.name == "W"

    def test_missing_id(self, mapper):
        with pytest.raises(MappingError, match="missing 'id'"):
            mapper.map_to_object({"fields": {"name": "Widget"}}, Product)

    def test_null_id(self, mapper):
        with pytest.raises(MappingError):
            mapper.map_to_object({"id": None, "fields": {}}, Product)

    def test_uncoercible_value(self, mapper):
        with pytest.raises(MappingError, match="price"):
            mapper.map_to_object({"id": 1, "fields": {"price": "cheap"}}, Product)

    def test_unknown_enum_value(self, mapper):
        with pytest.raises(MappingError, match="Status"):
            mapper.map_to_object({"id": 1, "fields": {"status": "archived"}}, BlogArticle)


class TestMapFromObject:
    """Tests for map_from_object."""

    def test_new_entity_has_no_id(self, mapper):
        record = mapper.map_from_object(Product(name="Widget", price=9.5))

        assert record == {"fields": {"name": "Widget", "price": 9.5, "tags": []}}

    def test_wire_names_and_values(self, mapper):
        """Attribute names become wire names; dates and enums are converted."""
        article = BlogArticle(
            title="Hello",
            status=Status.PUBLISHED,
            published_on=dt.date(2024, 5, 1),
        )
        article.id = 7

        record = mapper.map_from_object(article)

        assert record["id"] == 7
        assert record["fields"]["publishedOn"] == "2024-05-01"
        assert record["fields"]["status"] == "published"
        assert "published_on" not in record["fields"]

    def test_null_optional_fields_are_skipped(self, mapper):
        record = mapper.map_from_object(Product(name="Widget", sku=None))
        assert "sku" not in record["fields"]

    def test_round_trip(self, mapper):
        product = Product(name="Widget", price=1.5, stock=2, tags=["a"])
        product.id = "p9"

        restored = mapper.map_to_object(mapper.map_from_object(product), Product)

        assert (restored.id, restored.name, restored.price, restored.stock, restored.tags) == (
            "p9",
            "Widget",
            1.5,
            2,
            ["a"],
        )

    def test_to_wire_value(self):
        assert to_wire_value(dt.datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05"
        assert to_wire_value({"when": dt.date(2024, 1, 2), "tags": ("a",)}) == {
            "when": "2024-01-02",
            "tags": ["a"],
        }

    def test_parse_datetime(self):
        assert parse_datetime("2024-01-02T03:04:05Z").tzinfo == dt.timezone.utc


class TestToDict:
    """Tests for to_dict and the extract helpers."""

    @pytest.fixture
    def article(self):
        article = BlogArticle(title="Hello", published_on=dt.date(2024, 5, 1))
        article.id = "a1"
        return article

    def test_all_fields(self, mapper, article):
        """Keys are wire names; the id is always present."""
        assert mapper.to_dict(article) == {
            "id": "a1",
            "title": "Hello",
            "status": "draft",
            "publishedOn": "2024-05-01",
            "views": 0,
            "meta": {},
        }

    def test_datetime_is_iso(self, mapper):
        created = dt.datetime(2024, 1, 2, 3, 4, 5, tzinfo=dt.timezone.utc)
        product = Product(name="Widget", created_at=created)

        assert mapper.to_dict(product)["createdAt"] == "2024-01-02T03:04:05+00:00"
        assert mapper.to_dict(product)["id"] is None

    def test_extract(self, mapper, article):
        assert mapper.extract(article, ["title", "published_on"]) == {
            "id": "a1",
            "title": "Hello",
            "publishedOn": "2024-05-01",
        }

    def test_extract_except(self, mapper, article):
        assert mapper.extract_except(article, ["meta", "views", "status"]) == {
            "id": "a1",
            "title": "Hello",
            "publishedOn": "2024-05-01",
        }

    def test_extract_as(self, mapper, article):
        """Mapped keys replace wire names, including the id key."""
        assert mapper.extract_as(article, {"key": "id", "headline": "title"}) == {
            "key": "a1",
            "headline": "Hello",
        }


class TestValidateObject:
    """Tests for validate_object."""

    def test_valid(self, mapper):
        mapper.validate_object(Product(name="Widget"))

    def test_all_violations_reported(self, mapper):
        """Every offending field is listed."""
        article = BlogArticle(title=None, rating=None)

        with pytest.raises(ValidationError) as exc_info:
            mapper.validate_object(article)

        assert exc_info.value.violations == {
            "title": "Field is required and cannot be null",
            "rating": "Field cannot be null",
        }

    def test_required_not_initialized(self, mapper):
        with pytest.raises(ValidationError) as exc_info:
            mapper.validate_object(Product(price=1.0))

        assert exc_info.value.violations == {"name": "Field is required but not initialized"}
        assert "name: Field is required" in str(exc_info.value)


class TestExtractDefinition:
    """Tests for extract_entity_definition."""

    def test_extract(self, mapper):
        definition = mapper.extract_entity_definition(Product)

        assert definition.get_field("createdAt").type is FieldType.DATETIME
        assert definition.get_field("name").required

    def test_not_a_class(self, mapper):
        with pytest.raises(DefinitionError):
            mapper.extract_entity_definition(Product(name="x"))


class TestMapJoined:
    """Tests for map_joined."""

    @pytest.fixture
    def relationships(self):
        return RelationshipRegistry()

    def test_collection_from_top_level(self, mapper, relationships):
        record = {
            "id": "p1",
            "type": "post",
            "fields": {"title": "Hello"},
            "comments": [
                {"id": "c1", "fields": {"text": "first", "postId": "p1"}},
                {"id": "c2", "fields": {"text": "second", "postId": "p1"}},
            ],
        }

        post = mapper.map_joined(record, Post, relationships.get_relationship_metadata(Post))

        assert post.title == "Hello"
        assert [c.text for c in post.comments] == ["first", "second"]
        assert post.comments[0].post_id == "p1"

    def test_collection_inside_fields(self, mapper, relationships):
        """Joined data may also arrive inside fields, as flat objects."""
        record = {
            "id": "p1",
            "fields": {"title": "Hello", "comments": [{"id": "c1", "text": "flat"}]},
        }

        post = mapper.map_joined(record, Post, relationships.get_relationship_metadata(Post))

        assert post.comments[0].id == "c1"
        assert post.comments[0].text == "flat"

    def test_single_reference(self, mapper, relationships):
        record = {
            "id": "c1",
            "fields": {"text": "hi", "postId": "p1"},
            "post": {"id": "p1", "fields": {"title": "Hello"}},
        }

        comment = mapper.map_joined(
            record, Comment, relationships.get_relationship_metadata(Comment)
        )

        assert isinstance(comment.post, Post)
        assert comment.post.title == "Hello"

    def test_empty_and_unknown_aliases(self, mapper, relationships):
        record = {"id": "p1", "fields": {"title": "Hello"}, "comments": None, "extra": {"x": 1}}

        post = mapper.map_joined(record, Post, relationships.get_relationship_metadata(Post))

        assert post.comments == []
        assert not hasattr(post, "extra")

    def test_unmappable_joined_item_is_dropped(self, mapper, relationships):
        """One bad joined item does not fail the row."""
        record = {
            "id": "o1",
            "fields": {"reference": "A-1"},
            "items": [
                {"id": "i1", "fields": {"qty": 3}},
                {"id": "i2", "fields": {"qty": "lots"}},
            ],
        }

        order = mapper.map_joined(record, Order, relationships.get_relationship_metadata(Order))

        assert order.reference == "A-1"
        assert [item.id for item in order.items] == ["i1"]

    def test_flat_snake_case_keys(self, mapper, relationships):
        """Flat joined keys may use the snake_case form of a wire name."""
        record = {
            "id": "o1",
            "fields": {"reference": "A-1"},
            "items": [
                {"id": "i1", "qty": "2", "order_id": "o1", "placed_on": "2024-01-02T03:04:05Z"}
            ],
        }

        order = mapper.map_joined(record, Order, relationships.get_relationship_metadata(Order))

        (item,) = order.items
        assert isinstance(item, OrderItem)
        assert item.qty == 2
        assert item.order_id == "o1"
        assert item.placed_at == dt.datetime(2024, 1, 2, 3, 4, 5, tzinfo=dt.timezone.utc)
