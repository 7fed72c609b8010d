"""
Integration tests for SyncopateClient against an in-memory store.

Tests cover:
- Create then fetch
- Uniqueness violations
- Cascade delete (one_to_many, cycles, one_to_one, failures)
- Batched pagination
- Join queries
- Repositories and query builders
- Entity types and truncation
"""

import io

import pytest

from syncopate_sdk import (
    ArgumentError,
    HttpTransport,
    IntegrityConstraintError,
    JoinDefinition,
    JoinQueryOptions,
    JoinType,
    NotFoundError,
    QueryOptions,
    SelectStrategy,
    SyncopateClient,
    ValidationError,
)
from syncopate_sdk.tools import SyncopateCLI
from tests.models import (
    Author,
    Book,
    Comment,
    Post,
    Product,
    Thread,
    ThreadNote,
    UserAccount,
    UserProfile,
)


def delete_count(store, entity_type: str) -> int:
    return store.count_requests("DELETE", f"/api/v1/entities/{entity_type}/")


class TestCreateAndFetch:
    """Tests for create, get_by_id and update."""

    def test_create_then_fetch(self, db):
        """Created entity is fetched back with its values."""
        created = db.create(Product(name="Widget", price=19.99, stock=100))
        assert created.id == "p1"

        fetched = db.get_by_id(Product, "p1")
        assert fetched.name == "Widget"
        assert fetched.price == 19.99
        assert fetched.stock == 100

    def test_create_registers_entity_type(self, db, store):
        """First use creates the entity type on the store."""
        db.create(Product(name="Widget"))

        definition = store.entity_types["product"]
        sku = next(f for f in definition["fields"] if f["name"] == "sku")
        assert sku["unique"] is True
        assert definition["idGenerator"] == "auto_increment"

    def test_entity_type_is_checked_once(self, db, store):
        """The entity type lookup is not repeated for every call."""
        db.create(Product(name="A"))
        db.create(Product(name="B"))

        assert store.count_requests("GET", "/api/v1/entity-types/product") == 1

    def test_create_invalid_entity_sends_nothing(self, db, store):
        """Validation failures never reach the store."""
        with pytest.raises(ValidationError) as exc_info:
            db.create(Product(price=1.0))

        assert "name" in exc_info.value.violations
        assert store.requests == []

    def test_get_missing_entity(self, db):
        """Unknown id raises NotFoundError with context."""
        with pytest.raises(NotFoundError) as exc_info:
            db.get_by_id(Product, "nope")

        assert exc_info.value.entity_type == "product"
        assert exc_info.value.entity_id == "nope"
        assert exc_info.value.db_code == "SY200"

    def test_update(self, db, store):
        """Update sends fields and returns a refreshed instance."""
        product = db.create(Product(name="Widget", price=10.0, stock=1))
        product.price = 25.0

        updated = db.update(product)

        assert updated is not product
        assert updated.price == 25.0
        assert store.records["product"][product.id]["price"] == 25.0

    def test_update_without_id(self, db):
        """Update requires an id."""
        with pytest.raises(ValidationError) as exc_info:
            db.update(Product(name="Widget"))

        assert "id" in exc_info.value.violations


class TestUniqueness:
    """Tests for uniqueness violations."""

    def test_duplicate_sku(self, db):
        """Second create with the same sku raises IntegrityConstraintError."""
        db.create(Product(name="First", sku="SKU-1"))

        with pytest.raises(IntegrityConstraintError) as exc_info:
            db.create(Product(name="Second", sku="SKU-1"))

        error = exc_info.value
        assert error.field == "sku"
        assert error.value == "SKU-1"
        assert error.status_code == 409
        assert error.is_field_violation("sku")


class TestCascadeDelete:
    """Tests for delete with cascade."""

    def test_post_with_comments(self, db, store):
        """Deleting a post removes its comments."""
        post = db.create(Post(title="Hello"))
        db.create(Comment(text="first", post_id=post.id))
        db.create(Comment(text="second", post_id=post.id))

        assert db.delete(post) is True

        assert db.count(Comment, {"post_id": post.id}) == 0
        assert post.id not in store.records["post"]
        report = db.last_cascade_report
        assert report.ok
        assert [s.entity_type for s in report.deleted] == ["comment", "comment", "post"]

    def test_delete_without_cascade_keeps_dependents(self, db, store):
        """cascade=False deletes only the entity."""
        post = db.create(Post(title="Hello"))
        db.create(Comment(text="first", post_id=post.id))

        assert db.delete(post, cascade=False) is True
        assert len(store.records["comment"]) == 1

    def test_many_dependents_across_batches(self, db, store):
        """Dependents spanning several batches are all removed."""
        post = db.create(Post(title="Busy"))
        for i in range(60):
            store.seed("comment", {"text": f"c{i}", "postId": post.id})
        other = store.seed("comment", {"text": "other", "postId": "elsewhere"})

        db.delete(post)

        assert list(store.records["comment"]) == [other]
        assert delete_count(store, "comment") == 60

    def test_nested_walk_within_a_page(self, http_client, store):
        """Replies matched by the parent filter leave no thread note behind."""
        transport = HttpTransport("http://testserver", client=http_client)
        with SyncopateClient(transport, batch_size=2) as small:
            thread = small.create(Thread(subject="Hello"))
            first = store.seed("thread_note", {"text": "c1", "threadId": thread.id})
            store.seed("thread_note", {"text": "r1", "threadId": thread.id, "parentId": first})
            store.seed("thread_note", {"text": "c2", "threadId": thread.id})
            store.seed("thread_note", {"text": "c3", "threadId": thread.id})

            assert small.delete(thread) is True

            assert small.count(ThreadNote, {"thread_id": thread.id}) == 0
            assert store.records["thread_note"] == {}
            assert small.last_cascade_report.ok

    def test_cycle_terminates(self, db, store):
        """A cascade cycle deletes each entity once."""
        author = db.create(Author(name="Ann"))
        db.create(Book(title="One", author_id=author.id))
        db.create(Book(title="Two", author_id=author.id))

        assert db.delete(author) is True

        assert store.records["book"] == {}
        assert store.records["author"] == {}
        assert delete_count(store, "book") == 2
        assert delete_count(store, "author") == 1

    def test_cycle_from_the_many_side(self, db, store):
        """Deleting a book cascades up to its author and the sibling book."""
        author = db.create(Author(name="Ann"))
        book = db.create(Book(title="One", author_id=author.id))
        db.create(Book(title="Two", author_id=author.id))

        assert db.delete(book) is True

        assert store.records["book"] == {}
        assert store.records["author"] == {}
        assert delete_count(store, "book") == 2
        assert delete_count(store, "author") == 1

    def test_missing_parent_is_ignored(self, db, store):
        """A dangling parent reference is not an error."""
        book = db.create(Book(title="Orphan", author_id="gone"))

        assert db.delete(book) is True
        assert db.last_cascade_report.ok

    def test_one_to_one_dependent(self, db, store):
        """The mapped side of a one_to_one is removed."""
        account = db.create(UserAccount(email="a@example.com"))
        db.create(UserProfile(bio="hi", account_id=account.id))
        kept = db.create(UserProfile(bio="other", account_id="u99"))

        db.delete(account)

        assert list(store.records["user_profile"]) == [kept.id]

    def test_failed_dependent_does_not_stop_siblings(self, db, store):
        """One failing dependent is reported, the rest are deleted."""
        post = db.create(Post(title="Hello"))
        bad = db.create(Comment(text="bad", post_id=post.id))
        db.create(Comment(text="good", post_id=post.id))
        store.fail_deletes.add(("comment", bad.id))

        assert db.delete(post) is True

        report = db.last_cascade_report
        assert [s.entity_id for s in report.failed] == [bad.id]
        assert list(store.records["comment"]) == [bad.id]
        assert post.id not in store.records["post"]


class TestBatchedPagination:
    """Tests for batched reads."""

    @pytest.fixture
    def products(self, db, store):
        db.registry.get_entity_type(Product)
        return [store.seed("product", {"name": f"item-{i:02d}", "price": float(i)}) for i in range(60)]

    def test_matches_manual_pages(self, db, products):
        """Unbounded find_by equals concatenated pages."""
        manual = []
        offset = 0
        while True:
            page = db.api.query(QueryOptions("product").with_limit(25).with_offset(offset))["data"]
            manual.extend(r["id"] for r in page)
            if len(page) < 25:
                break
            offset += 25

        found = [p.id for p in db.find_by(Product)]

        assert found == manual == products

    def test_unbounded_read_is_batched(self, db, store, products):
        """60 records are fetched in 3 requests."""
        before = store.requests.count(("POST", "/api/v1/query"))

        assert len(db.find_all(Product)) == 60
        assert store.requests.count(("POST", "/api/v1/query")) - before == 3

    def test_large_limit_is_batched(self, db, store, products):
        """A limit above the batch size is split into batches."""
        before = store.requests.count(("POST", "/api/v1/query"))

        found = db.find_by(Product, limit=30, offset=5)

        assert [p.id for p in found] == products[5:35]
        assert store.requests.count(("POST", "/api/v1/query")) - before == 2

    def test_small_limit_is_single_request(self, db, store, products):
        """A limit within the batch size is one request."""
        before = store.requests.count(("POST", "/api/v1/query"))

        assert len(db.find_by(Product, limit=10)) == 10
        assert store.requests.count(("POST", "/api/v1/query")) - before == 1

    def test_order_by_desc(self, db, products):
        """Single-field ordering."""
        found = db.find_by(Product, order_by={"price": "DESC"}, limit=3)
        assert [p.price for p in found] == [59.0, 58.0, 57.0]

    def test_count(self, db, products):
        """count uses the count endpoint."""
        assert db.count(Product) == 60
        assert db.count(Product, {"name": "item-07"}) == 1


class TestJoinQuery:
    """Tests for join queries."""

    @pytest.fixture
    def posts(self, db):
        first = db.create(Post(title="First"))
        second = db.create(Post(title="Second"))
        db.create(Comment(text="a", post_id=first.id))
        db.create(Comment(text="b", post_id=first.id))
        return first, second

    def test_left_join_all_populates_collection(self, db, posts):
        """Joined comments become Comment instances."""
        options = JoinQueryOptions("post").with_join(
            JoinDefinition(
                "comment",
                "id",
                "postId",
                "comments",
                type=JoinType.LEFT,
                select_strategy=SelectStrategy.ALL,
            )
        )

        found = {p.title: p for p in db.join_query(Post, options)}

        assert sorted(c.text for c in found["First"].comments) == ["a", "b"]
        assert all(isinstance(c, Comment) for c in found["First"].comments)
        assert found["Second"].comments == []

    def test_inner_join_drops_unmatched(self, db, posts):
        """Inner joins only return roots with matches."""
        options = JoinQueryOptions("post").with_join(
            JoinDefinition("comment", "id", "postId", "comments", select_strategy=SelectStrategy.ALL)
        )

        assert [p.title for p in db.join_query(Post, options)] == ["First"]
        assert db.count_join(Post, options) == 1

    def test_single_reference(self, db, posts):
        """A first-match join fills a single relationship."""
        options = JoinQueryOptions("comment").with_join(
            JoinDefinition("post", "postId", "id", "post")
        )

        comments = db.join_query(Comment, options)

        assert {c.post.title for c in comments} == {"First"}
        assert all(isinstance(c.post, Post) for c in comments)

    def test_alias_colliding_with_field(self, db, store, posts):
        """An alias equal to a root field is rejected before sending."""
        before = len(store.requests)
        options = JoinQueryOptions("post").with_join(
            JoinDefinition("comment", "id", "postId", "title")
        )

        with pytest.raises(ArgumentError):
            db.join_query(Post, options)
        assert len(store.requests) == before


class TestRepository:
    """Tests for EntityRepository and query builders."""

    def test_query_builder(self, db):
        """Builder filters, orders and counts."""
        products = db.repository(Product)
        for name, price in (("a", 5.0), ("b", 15.0), ("c", 25.0)):
            products.create(Product(name=name, price=price))

        builder = products.create_query_builder().gte("price", 10).order_by("price", "DESC")

        assert [p.name for p in builder.get_result()] == ["c", "b"]
        assert builder.count() == 2
        assert builder.get_one_or_none().name == "c"

    def test_find_missing_returns_none(self, db):
        assert db.repository(Product).find("nope") is None

    def test_delete_by_id_with_cascade(self, db, store):
        """Cascading delete by id loads the entity first."""
        posts = db.repository(Post)
        post = posts.create(Post(title="Hello"))
        db.create(Comment(text="a", post_id=post.id))

        assert posts.delete_by_id(post.id, cascade=True) is True
        assert store.records["comment"] == {}
        assert posts.delete_by_id("gone", cascade=True) is False

    def test_join_builder(self, db):
        """Join builder attaches all comments."""
        post = db.create(Post(title="Hello"))
        db.create(Comment(text="a", post_id=post.id))

        found = (
            db.repository(Post)
            .create_join_query_builder()
            .left_join_all("comment", "id", "postId", "comments")
            .get_result()
        )

        assert [c.text for c in found[0].comments] == ["a"]

    def test_wrong_instance_type(self, db):
        with pytest.raises(ArgumentError):
            db.repository(Product).create(Post(title="x"))


class TestEntityTypesAndTruncate:
    """Tests for entity type and administrative operations."""

    def test_entity_type_definition(self, db):
        db.create(Product(name="Widget"))

        definition = db.get_entity_type_definition("product")

        assert definition.get_field("createdAt").type.value == "datetime"
        assert "product" in db.list_entity_types()

    def test_unknown_entity_type_definition(self, db):
        with pytest.raises(NotFoundError):
            db.get_entity_type_definition("missing")

    def test_truncate_entity_type(self, db, store):
        db.create(Product(name="A"))
        db.create(Product(name="B"))

        result = db.truncate_entity_type(Product)

        assert result["entities_removed"] == 2
        assert result["type"] == "product"
        assert store.records["product"] == {}

    def test_truncate_database(self, db, store):
        db.create(Product(name="A"))
        db.create(Post(title="B"))

        result = db.truncate_database()

        assert result["entities_removed"] == 2
        assert result["entity_types_truncated"] == 2

    def test_server_endpoints(self, db):
        assert db.health() == {"status": "ok"}
        assert db.server_info()["name"] == "SyncopateDB"
        assert "debug" in db.server_settings()


class TestCli:
    """Tests for the command-line tool against the store."""

    def test_register_module(self, db, store):
        out = io.StringIO()

        assert SyncopateCLI(db, out=out).register("tests.models") == 0

        assert {"product", "post", "comment", "author", "book"} <= set(store.entity_types)
        assert "product: created" in out.getvalue()

    def test_register_again_reports_existing(self, db, store):
        cli = SyncopateCLI(db, out=io.StringIO())
        cli.register("tests.models")
        out = io.StringIO()

        assert SyncopateCLI(db, out=out).register("tests.models") == 0
        assert "product: exists" in out.getvalue()

    def test_truncate_entity(self, db, store):
        db.create(Product(name="A"))
        cli = SyncopateCLI(db, confirm=lambda question: True, out=io.StringIO())

        assert cli.truncate_entity("tests.models", "product") == 0
        assert store.records["product"] == {}
