import sqlite3

import pytest

from conftest import FakeResolver, make_node
from wnr.db import SqliteStore, latest_events
from wnr.errors import AlreadyExists, NotFound
from wnr.events import DbEventSink
from wnr.models import Discovery, NodeKey
from wnr.translator import exposure_from_node, workload_from_node

KEY = NodeKey("default", "n1")


@pytest.fixture
def db_store(tmp_path):
    return SqliteStore(str(tmp_path / "store.db"))


def test_node_round_trip_and_upsert(db_store):
    node = make_node(
        metrics=True,
        discovery=Discovery(enabled=True, udp_port=9000),
        protocols=("store", "relay"),
        static_node="n0",
    )
    db_store.put_node(node)
    assert db_store.get_node(KEY) == node

    db_store.put_node(make_node(image="img:v2"))
    assert db_store.get_node(KEY).image == "img:v2"
    assert [n.name for n in db_store.list_nodes()] == ["n1"]


def test_missing_objects_raise_not_found(db_store):
    with pytest.raises(NotFound):
        db_store.get_node(KEY)
    with pytest.raises(NotFound):
        db_store.get_workload(KEY)
    with pytest.raises(NotFound):
        db_store.get_exposure(KEY)


def test_create_is_create_if_absent(db_store):
    unit = workload_from_node(make_node(), FakeResolver())
    db_store.create_workload(unit)
    with pytest.raises(AlreadyExists):
        db_store.create_workload(unit)
    assert db_store.get_workload(KEY) == unit
    assert len(db_store.list_workloads()) == 1


def test_exposure_gets_cluster_address(db_store):
    created = db_store.create_exposure(exposure_from_node(make_node()))
    assert created.cluster_address == "n1.default"
    assert db_store.get_exposure(KEY) == created
    with pytest.raises(AlreadyExists):
        db_store.create_exposure(exposure_from_node(make_node()))


def test_same_name_in_other_namespace_is_separate(db_store):
    db_store.create_exposure(exposure_from_node(make_node()))
    db_store.create_exposure(exposure_from_node(make_node(namespace="other")))
    assert len(db_store.list_exposures()) == 2


def test_delete_node_only_removes_the_record(db_store):
    db_store.put_node(make_node())
    db_store.create_workload(workload_from_node(make_node(), FakeResolver()))
    assert db_store.delete_node(KEY) is True
    assert db_store.delete_node(KEY) is False
    assert db_store.get_workload(KEY).name == "n1"


def test_db_event_sink_writes_rows(db_store):
    sink = DbEventSink(db_store.db_path)
    sink.info("Created workload", namespace="default", node="n1")
    sink.warn("Something odd")

    events = latest_events(db_store.db_path, limit=10)
    assert [(e["level"], e["message"]) for e in events] == [("WARN", "Something odd"), ("INFO", "Created workload")]
    assert events[1]["node"] == "n1"


def test_directory_path_gets_a_db_file(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    SqliteStore(str(d)).put_node(make_node())
    conn = sqlite3.connect(str(d / "wnr.db"))
    assert conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0] == 1
    conn.close()
