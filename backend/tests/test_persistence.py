"""Tests for the SQLAlchemy persistence adapter and database config."""

from datetime import datetime

import pytest

from collectra.config import DatabaseConfig
from collectra.errors import PersistenceError
from collectra.metadata.loader import Collection, CollectionRegistry, FieldDefinition
from collectra.persistence import (
    CollectionHandle,
    PersistenceAdapter,
    SQLAlchemyAdapter,
    create_adapter,
)
from collectra.persistence.ids import generate_id, new_cuid


# =============================================================================
# Fixtures
# =============================================================================


def build_registry() -> CollectionRegistry:
    authors = Collection(
        name="authors",
        fields={
            "name": FieldDefinition(name="name", type="String", required=True),
            "email": FieldDefinition(name="email", type="String", unique=True),
            "posts": FieldDefinition(name="posts", type="relation", ref="posts", many=True),
        },
        id_strategy="uuid",
    )
    posts = Collection(
        name="posts",
        fields={
            "title": FieldDefinition(name="title", type="String", required=True),
            "views": FieldDefinition(name="views", type="number", subtype="Int", default=0),
            "status": FieldDefinition(name="status", type="String", map="post_status"),
            "meta": FieldDefinition(name="meta", type="Json"),
            "publishedAt": FieldDefinition(name="publishedAt", type="DateTime"),
            "createdAt": FieldDefinition(name="createdAt", type="DateTime", default="now"),
            "updatedAt": FieldDefinition(name="updatedAt", type="DateTime", default="updatedAt"),
            "author": FieldDefinition(name="author", type="relation", ref="authors"),
        },
    )
    tags = Collection(
        name="tags",
        fields={"label": FieldDefinition(name="label", type="String", unique=True)},
        id_strategy="cuid",
    )
    return CollectionRegistry([authors, posts, tags])


@pytest.fixture
def adapter():
    adapter = SQLAlchemyAdapter("sqlite://")
    adapter.connect()
    adapter.initialize(build_registry())
    yield adapter
    adapter.close()


@pytest.fixture
def posts(adapter):
    handle = adapter.collection("posts")
    handle.create({"title": "Alpha", "views": 5, "status": "draft"})
    handle.create({"title": "Beta", "views": 20, "status": "live"})
    handle.create({"title": "Gamma", "views": 12, "status": "live"})
    return handle


# =============================================================================
# Protocol conformance
# =============================================================================


class TestProtocol:
    def test_adapter_satisfies_protocol(self, adapter):
        assert isinstance(adapter, PersistenceAdapter)

    def test_handle_satisfies_protocol(self, adapter):
        assert isinstance(adapter.collection("posts"), CollectionHandle)

    def test_create_adapter_for_sqlite(self):
        assert isinstance(create_adapter(DatabaseConfig(url="sqlite://")), SQLAlchemyAdapter)

    def test_create_adapter_rejects_unknown_scheme(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_adapter(DatabaseConfig(url="mysql://localhost/db"))


# =============================================================================
# DatabaseConfig
# =============================================================================


class TestDatabaseConfig:
    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@host/db")
        monkeypatch.setenv("COLLECTRA_DB_PATH", "/tmp/ignored.db")
        config = DatabaseConfig.from_env()
        assert config.is_postgresql
        assert config.sqlalchemy_url == "postgresql+psycopg://u:p@host/db"

    def test_db_path(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("COLLECTRA_DB_PATH", "/tmp/c.db")
        assert DatabaseConfig.from_env().url == "sqlite:////tmp/c.db"

    def test_default_under_base_path(self, monkeypatch, tmp_path):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("COLLECTRA_DB_PATH", raising=False)
        config = DatabaseConfig.from_env(tmp_path)
        assert config.url == f"sqlite:///{tmp_path / 'data' / 'collectra.db'}"
        assert config.is_sqlite

    def test_ensure_directory(self, tmp_path):
        DatabaseConfig(url=f"sqlite:///{tmp_path / 'nested' / 'x.db'}").ensure_directory()
        assert (tmp_path / "nested").is_dir()


# =============================================================================
# Ids
# =============================================================================


class TestIds:
    def test_autoincrement(self, posts):
        ids = [r["id"] for r in posts.find_many(orderBy={"id": "asc"})]
        assert ids == [1, 2, 3]

    def test_uuid(self, adapter):
        author = adapter.collection("authors").create({"name": "Ann"})
        assert len(author["id"]) == 36

    def test_cuid(self, adapter):
        tag = adapter.collection("tags").create({"label": "news"})
        assert tag["id"].startswith("c")
        assert len(tag["id"]) == 25

    def test_cuids_unique(self):
        assert len({new_cuid() for _ in range(500)}) == 500

    def test_generate_id_autoincrement_is_none(self):
        assert generate_id("autoincrement") is None


# =============================================================================
# Reads
# =============================================================================


class TestFindMany:
    def test_all(self, posts):
        assert len(posts.find_many()) == 3

    def test_equality_where(self, posts):
        rows = posts.find_many(where={"status": "live"})
        assert {r["title"] for r in rows} == {"Beta", "Gamma"}

    def test_operators(self, posts):
        assert [r["title"] for r in posts.find_many(where={"views": {"gte": 12}}, orderBy={"views": "asc"})] == [
            "Gamma",
            "Beta",
        ]
        assert len(posts.find_many(where={"title": {"startsWith": "A"}})) == 1
        assert len(posts.find_many(where={"title": {"in": ["Alpha", "Beta"]}})) == 2
        assert len(posts.find_many(where={"status": {"not": "live"}})) == 1

    def test_logical_or(self, posts):
        rows = posts.find_many(where={"OR": [{"title": "Alpha"}, {"views": {"gt": 15}}]})
        assert {r["title"] for r in rows} == {"Alpha", "Beta"}

    def test_order_take_skip(self, posts):
        rows = posts.find_many(orderBy={"views": "desc"}, take=1, skip=1)
        assert [r["title"] for r in rows] == ["Gamma"]

    def test_distinct(self, posts):
        rows = posts.find_many(distinct=["status"], orderBy={"id": "asc"})
        assert [r["status"] for r in rows] == ["draft", "live"]

    def test_select(self, posts):
        rows = posts.find_many(select={"title": True}, take=1, orderBy={"id": "asc"})
        assert rows == [{"title": "Alpha"}]

    def test_mapped_column_addressed_by_field_name(self, adapter, posts):
        assert adapter.collection("posts").table.c["status"].name == "post_status"
        assert posts.find_many(where={"status": "draft"})[0]["status"] == "draft"

    def test_unknown_argument_rejected(self, posts):
        with pytest.raises(PersistenceError, match="Unknown argument"):
            posts.find_many(cursor=5)

    def test_unknown_field_rejected(self, posts):
        with pytest.raises(PersistenceError, match="Unknown field"):
            posts.find_many(where={"nope": 1})

    def test_negative_take_rejected(self, posts):
        with pytest.raises(PersistenceError, match="take"):
            posts.find_many(take=-1)


# =============================================================================
# Writes
# =============================================================================


class TestWrites:
    def test_create_sets_timestamps(self, adapter):
        record = adapter.collection("posts").create({"title": "T"})
        assert isinstance(record["createdAt"], datetime)
        assert isinstance(record["updatedAt"], datetime)

    def test_create_parses_iso_datetime(self, adapter):
        record = adapter.collection("posts").create(
            {"title": "T", "publishedAt": "2024-05-01T10:00:00"}
        )
        assert record["publishedAt"].year == 2024

    def test_create_json_field(self, adapter):
        record = adapter.collection("posts").create({"title": "T", "meta": {"tags": ["a"]}})
        assert record["meta"] == {"tags": ["a"]}

    def test_create_with_select(self, adapter):
        record = adapter.collection("posts").create({"title": "T"}, select={"id": True})
        assert record == {"id": 1}

    def test_create_unknown_field(self, adapter):
        with pytest.raises(PersistenceError, match="Unknown field"):
            adapter.collection("posts").create({"title": "T", "bogus": 1})

    def test_list_relation_has_no_column(self, adapter):
        with pytest.raises(PersistenceError):
            adapter.collection("authors").create({"name": "A", "posts": [1]})

    def test_required_field_violation(self, adapter):
        with pytest.raises(PersistenceError):
            adapter.collection("posts").create({"views": 1})

    def test_create_many_skip_duplicates(self, adapter):
        tags = adapter.collection("tags")
        tags.create({"label": "a"})
        result = tags.create_many([{"label": "a"}, {"label": "b"}], skip_duplicates=True)
        assert result == {"count": 1}
        assert len(tags.find_many()) == 2

    def test_create_many_duplicate_fails_without_skip(self, adapter):
        tags = adapter.collection("tags")
        tags.create({"label": "a"})
        with pytest.raises(PersistenceError):
            tags.create_many([{"label": "a"}])

    def test_update(self, posts):
        before = posts.find_many(where={"title": "Alpha"})[0]
        updated = posts.update(where={"title": "Alpha"}, data={"views": 99})
        assert updated["views"] == 99
        assert updated["updatedAt"] >= before["updatedAt"]

    def test_update_missing_raises(self, posts):
        with pytest.raises(PersistenceError, match="not found"):
            posts.update(where={"title": "Nope"}, data={"views": 1})

    def test_update_requires_where(self, posts):
        with pytest.raises(PersistenceError, match="where"):
            posts.update(where={}, data={"views": 1})

    def test_update_many_applies_patches_in_order(self, posts):
        result = posts.update_many(
            where={"status": "live"}, data=[{"views": 1}, {"views": 2, "status": "archived"}]
        )
        assert result == {"count": 2}
        rows = posts.find_many(where={"status": "archived"})
        assert {r["views"] for r in rows} == {2}

    def test_delete(self, posts):
        deleted = posts.delete(where={"title": "Beta"})
        assert deleted["title"] == "Beta"
        assert len(posts.find_many()) == 2

    def test_delete_missing_raises(self, posts):
        with pytest.raises(PersistenceError, match="does not exist"):
            posts.delete(where={"title": "Nope"})

    def test_delete_many(self, posts):
        assert posts.delete_many(where={"status": "live"}) == {"count": 2}
        assert posts.delete_many() == {"count": 1}
