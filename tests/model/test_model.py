"""Tests for relmap.model, relmap.record and relmap.cache."""

from typing import Optional

import pytest

from relmap import ConfigBuilder
from relmap.cache import RuntimeRecordCache
from relmap.errors import ConfigurationError, ModelAlreadyInstantiated, ModelNotDefined, RecordNotFound
from relmap.model import Model
from relmap.query import Query
from relmap.record import Record

from helpers import SQLITE_URL


class User(Record):
    name: str
    status: Optional[str] = None


class Admin(User):
    pass


@pytest.fixture
def users(blog):
    users = blog["users"]
    for name in ("ann", "bob", "cid"):
        users.save({"name": name})
    return users


class TestFind:

    def test_single(self, users):
        record = users.find(2)
        assert record.name == "bob"
        assert users[2] is record

    def test_many(self, users):
        found = users.find(1, 3)
        assert list(found) == [1, 3]
        assert found[3].name == "cid"
        assert users.find([2]) == {2: users.find(2)}

    def test_string_keys_match(self, users):
        assert users.find("2").name == "bob"

    def test_missing(self, users):
        with pytest.raises(RecordNotFound) as error:
            users.find(1, 42)
        assert error.value.records[1].name == "ann"
        assert error.value.records[42] is None

    def test_composite_primary_key(self):
        models = (
            ConfigBuilder()
            .add_connection(SQLITE_URL)
            .add_model("lines", lambda s: s.add_integer("order_id", primary=True).add_integer("line", primary=True))
            .build()
            .create_models()
        )
        with pytest.raises(ConfigurationError):
            models["lines"].find((1, 2))

    def test_find_reads_through_the_chain(self, zoo):
        key = zoo["dogs"].save({"name": "Rex", "bark_volume": 4})
        dog = zoo["dogs"].find(key)
        assert (dog.name, dog.bark_volume) == ("Rex", 4)


class TestCache:

    def test_writes_evict_the_cached_record(self, users):
        users.save({"id": 5, "name": "eve"})
        first = users.find(5)
        assert users.find(5) is first
        users.save({"name": "eva"}, 5)
        assert users.cache.retrieve(5) is None
        assert users.find(5).name == "eva"

    def test_writes_with_a_string_key_evict_the_cached_record(self, users):
        record = users.find(1)
        users.update({"name": "anna"}, "1")
        assert users.find(1) is not record
        assert users.find(1).name == "anna"

    def test_delete_evicts_along_the_chain(self, zoo):
        key = zoo["dogs"].save({"name": "Rex", "bark_volume": 4})
        zoo["animals"].find(key)
        zoo["dogs"].delete(key)
        assert zoo["animals"].cache.retrieve(key) is None

    def test_runtime_cache(self, users):
        cache = RuntimeRecordCache(users)
        record = users.new(id=9, name="x")
        cache.store(record)
        assert cache.retrieve(9) is record
        assert cache.retrieve("9") is record
        assert dict(cache) == {"9": record}
        cache.eliminate(9)
        assert cache.retrieve(9) is None
        cache.store(users.new(name="no key"))
        assert len(cache) == 0
        cache.store(record)
        cache.clear()
        assert len(cache) == 0


class TestRecord:

    def test_new_is_not_persisted(self, blog):
        record = blog["users"].new(name="ann")
        assert not record.is_persisted
        assert record.key is None
        assert record.model is blog["users"]

    def test_save_inserts_then_updates(self, blog):
        users = blog["users"]
        record = users.new(name="ann", unknown="ignored")
        assert record.save() == 1
        assert record.id == 1
        assert record.is_persisted
        record.name = "anna"
        assert record.save() == 1
        assert users.count() == 1
        assert users.select("name").rc == "anna"

    def test_to_values_keeps_known_columns(self, blog):
        record = blog["users"].new(name="ann", unknown=1)
        assert record.to_values() == {"name": "ann"}

    def test_delete(self, users):
        record = users.find(1)
        record.delete()
        assert not record.is_persisted
        assert users.count() == 2

    def test_delete_without_key(self, blog):
        with pytest.raises(ValueError):
            blog["users"].new(name="ann").delete()

    def test_unbound_record(self):
        with pytest.raises(ConfigurationError):
            Record().model

    def test_unknown_attribute(self, blog):
        with pytest.raises(AttributeError):
            blog["users"].new(name="ann").nickname

    def test_record_class(self):
        models = (
            ConfigBuilder()
            .add_connection(SQLITE_URL)
            .add_model("users", lambda s: s.add_serial("id").add_varchar("name"), record_class=User)
            .build()
            .create_models()
        )
        models.install()
        users = models["users"]
        users.new(name="ann").save()
        record = users.find(1)
        assert isinstance(record, User)
        assert record.name == "ann"
        assert models.model_for_record(Admin) is users
        models.connections.close()


class TestModel:

    def test_query_methods_are_forwarded(self, users):
        assert users.where({"name": "ann"}).count() == 1
        assert users.count() == 3

    def test_unknown_attribute(self, users):
        with pytest.raises(AttributeError):
            users.nothing

    def test_query_class_scopes_are_forwarded(self):
        class UserQuery(Query):
            def active(self):
                return self.where({"status": "active"})

        models = (
            ConfigBuilder()
            .add_connection(SQLITE_URL)
            .add_model(
                "users", lambda s: s.add_serial("id").add_varchar("name").add_varchar("status"),
                query_class=UserQuery,
            )
            .build()
            .create_models()
        )
        models.install()
        users = models["users"]
        users.save({"name": "ann", "status": "active"})
        users.save({"name": "bob", "status": "gone"})
        assert isinstance(users.active(), UserQuery)
        assert users.active().count() == 1
        assert users.active().one().name == "ann"
        with pytest.raises(AttributeError):
            users._private_scope
        models.connections.close()

    def test_parent_model(self, zoo):
        assert zoo["puppies"].parent_model is zoo["dogs"]
        assert zoo["animals"].parent_model is None


class TestModelCollection:

    def test_lazy_instantiation(self, blog):
        assert isinstance(blog["users"], Model)
        assert blog["users"] is blog["users"]
        assert "posts" in blog
        assert list(blog) == ["users", "posts", "comments"]
        assert len(blog) == 3

    def test_undefined_model(self, blog):
        with pytest.raises(ModelNotDefined):
            blog["tags"]
        with pytest.raises(KeyError):
            blog["tags"]

    def test_define(self, blog):
        definition = blog.definitions["users"]
        with pytest.raises(ModelAlreadyInstantiated):
            blog["users"]
            blog.define(definition)
        blog.define(definition.model_copy(update={"id": "members"}))
        assert blog["members"].name == "users"

    def test_model_for_record_without_a_model(self, blog):
        with pytest.raises(ModelNotDefined):
            blog.model_for_record(User)

    def test_install_and_uninstall(self, zoo):
        assert zoo.is_installed() == {"animals": True, "dogs": True, "puppies": True}
        assert zoo.install() == []
        zoo.uninstall()
        assert zoo.is_installed() == {"animals": False, "dogs": False, "puppies": False}
        assert zoo.install() == ["animals", "dogs", "puppies"]
