import itertools
import threading

import pytest

from dbsync.core.errors import ConfigurationError
from dbsync.database.schema_registry import SchemaRegistry
from dbsync.models.schema import ColumnDef, ColumnType, SelectionPolicy, TableSchema


def names(schemas):
    return [s.name for s in schemas]


def test_get_all_schemas_keeps_registration_order(registry):
    assert names(registry.get_all_schemas()) == ["players", "items", "npcs"]


def test_get_is_case_insensitive(registry):
    assert registry.get("ITEMS").name == "items"
    assert "Players" in registry
    assert registry.get("ghosts") is None


def test_update_only_drops_dynamic_and_excluded_tables(registry):
    policy = SelectionPolicy(exclude={"players"}, update_only=True)
    assert names(registry.resolve_selection(policy)) == ["items", "npcs"]


def test_scenario_dynamic_excluded_twice():
    players = TableSchema("players", is_static=False)
    items = TableSchema("items", is_static=True)
    registry = SchemaRegistry(schemas=[players, items])

    policy = SelectionPolicy(exclude={"players"}, include=set(), update_only=True)

    assert names(registry.resolve_selection(policy)) == ["items"]


def test_exclude_all_keeps_only_included(registry):
    policy = SelectionPolicy(exclude={"all"}, include={"players"})
    assert names(registry.resolve_selection(policy)) == ["players"]


def test_exclude_all_without_include_selects_nothing(registry):
    assert registry.resolve_selection(SelectionPolicy(exclude={"ALL"})) == []


def test_include_all_wins_over_any_exclude(registry):
    policy = SelectionPolicy(include={"all"}, exclude={"all", "items"}, update_only=True)
    assert names(registry.resolve_selection(policy, importing=True)) == ["players", "items", "npcs"]


def test_import_skips_dynamic_tables(registry):
    assert names(registry.resolve_selection(SelectionPolicy(), importing=True)) == ["items", "npcs"]


def test_export_keeps_dynamic_tables(registry):
    assert names(registry.resolve_selection(SelectionPolicy())) == ["players", "items", "npcs"]


def test_explicit_include_overrides_exclude_and_static_filter(registry):
    policy = SelectionPolicy(include={"Players", "npcs"}, exclude={"players", "npcs"}, update_only=True)
    assert names(registry.resolve_selection(policy, importing=True)) == ["players", "items", "npcs"]


def test_exclude_is_case_insensitive(registry):
    policy = SelectionPolicy(exclude={"ITEMS"})
    assert names(registry.resolve_selection(policy)) == ["players", "npcs"]


@pytest.mark.parametrize("importing", [False, True])
def test_selection_and_exclusion_partition_the_catalog(registry, importing):
    name_options = [set(), {"all"}, {"items"}, {"players"}, {"players", "npcs"}]
    for include, exclude, update_only in itertools.product(name_options, name_options, [False, True]):
        policy = SelectionPolicy(include=include, exclude=exclude, update_only=update_only)
        selected = names(registry.resolve_selection(policy, importing))
        excluded = names(registry.excluded_schemas(policy, importing))

        assert not set(selected) & set(excluded), policy
        assert sorted(selected + excluded) == sorted(names(registry.get_all_schemas())), policy


def test_replace_schemas_persists_catalog(store, items_schema):
    registry = SchemaRegistry(store)
    registry.replace_schemas([items_schema])

    reloaded = SchemaRegistry(store).load()

    assert reloaded.get_all_schemas() == (items_schema,)


def test_load_without_catalog_is_empty(store):
    assert len(SchemaRegistry(store).load()) == 0


@pytest.mark.parametrize("catalog", [
    "{not json",
    "[{\"columns\": []}]",
    "[{\"name\": \"items\", \"columns\": [{\"name\": \"id\", \"sql_type\": \"enum\"}]}]",
    "{\"name\": \"items\"}",
])
def test_corrupt_catalog_is_a_configuration_error(store, catalog):
    store.schemas_path.write_text(catalog, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        SchemaRegistry(store).load()


def test_replace_schemas_rejects_duplicate_names(registry):
    with pytest.raises(ValueError):
        registry.replace_schemas([TableSchema("Items"), TableSchema("items")])
    assert len(registry) == 3


def test_replace_schemas_orphans_documents(store, registry):
    store.replace_table("players", [{"id": 1, "name": "alice", "last_login": None}])

    registry.replace_schemas([registry.get("items")])

    assert "players" not in registry
    assert store.read_table("players") == [{"id": 1, "name": "alice", "last_login": None}]


def test_replace_schemas_is_atomic_for_readers():
    old = [TableSchema(f"old_{i}") for i in range(50)]
    new = [TableSchema(f"new_{i}") for i in range(80)]
    old_names, new_names = set(names(old)), set(names(new))
    registry = SchemaRegistry(schemas=old)

    stop = threading.Event()
    torn_reads = []

    def reader():
        while not stop.is_set():
            seen = set(names(registry.get_all_schemas()))
            if seen != old_names and seen != new_names:
                torn_reads.append(seen)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    for i in range(200):
        registry.replace_schemas(new if i % 2 == 0 else old)
    stop.set()
    for thread in threads:
        thread.join()

    assert torn_reads == []


def test_table_schema_round_trips_through_dict():
    schema = TableSchema(
        "Prices",
        columns=[
            ColumnDef("id", ColumnType.INTEGER, nullable=False, is_primary_key=True, auto_increment=True),
            ColumnDef("amount", ColumnType.DECIMAL, precision=10, scale=2),
        ],
        is_static=False,
    )

    assert TableSchema.from_dict(schema.to_dict()) == schema
    assert schema.key == "prices"
    assert schema.primary_key == ("id",)
