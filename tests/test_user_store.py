import json
from datetime import datetime, timezone

import pytest

from postgen.common import Plan
from postgen.user_store import JsonUserStore, PeeweeUserStore, UnreadableRecord, UserRecord, open_user_store


@pytest.fixture(params=["json", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "json":
        store = open_user_store(f"json:///{tmp_path}/users.json")
    else:
        store = open_user_store(f"sqlite:///{tmp_path}/users.db")
    yield store
    store.close()


@pytest.mark.parametrize("identifier", ["a@x.com", "guest", "someone+tag@example.org"])
def test_unknown_user_gets_free_default(any_store, identifier):
    user = any_store.get(identifier)
    assert user.identifier == identifier
    assert user.plan is Plan.FREE
    assert user.credits == 3
    assert user.last_payment is None


def test_get_does_not_persist_default(any_store):
    any_store.get("a@x.com")
    assert any_store.all() == {}


def test_update_round_trip(any_store):
    paid_at = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    written = any_store.update("a@x.com", {"plan": "starter", "credits": 50, "last_payment": paid_at})
    read = any_store.get("a@x.com")
    assert read == written
    assert read.plan is Plan.STARTER
    assert read.credits == 50
    assert read.last_payment == paid_at


def test_update_merges_onto_existing_fields(any_store):
    any_store.update("a@x.com", {"credits": 2})
    user = any_store.update("a@x.com", {"credits": 1})
    assert user.plan is Plan.FREE
    assert user.credits == 1
    assert set(any_store.all()) == {"a@x.com"}


def test_unlimited_plan_has_no_numeric_credits(any_store):
    user = any_store.update("a@x.com", {"plan": Plan.UNLIMITED, "credits": None})
    assert user.credits is None
    assert any_store.get("a@x.com").credits is None
    assert any_store.get("a@x.com").to_public()["credits"] == 999_999


def test_update_rejects_unknown_fields(any_store):
    with pytest.raises(ValueError):
        any_store.update("a@x.com", {"credit": 5})
    with pytest.raises(ValueError):
        any_store.update("a@x.com", {"credits": -1})
    assert any_store.all() == {}


def test_json_store_file_is_readable_mapping(tmp_path):
    path = tmp_path / "users.json"
    store = JsonUserStore(str(path))
    store.update("a@x.com", {"credits": 2})
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {"a@x.com": {"email": "a@x.com", "plan": "free", "credits": 2}}


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]", ""])
def test_corrupt_json_store_reads_as_empty(tmp_path, content):
    path = tmp_path / "users.json"
    path.write_text(content, encoding="utf-8")
    store = JsonUserStore(str(path))
    assert store.get("a@x.com") == UserRecord.default("a@x.com")
    assert store.all() == {}
    store.update("a@x.com", {"credits": 1})
    assert store.get("a@x.com").credits == 1


def test_json_store_reads_legacy_unlimited_sentinel(tmp_path):
    path = tmp_path / "users.json"
    path.write_text(json.dumps({
        "a@x.com": {"email": "a@x.com", "plan": "unlimited", "credits": 999999, "lastPayment": 1700000000000},
    }), encoding="utf-8")
    user = JsonUserStore(str(path)).get("a@x.com")
    assert user.plan is Plan.UNLIMITED
    assert user.credits is None
    assert user.last_payment == datetime.fromtimestamp(1700000000, tz=timezone.utc)


@pytest.mark.parametrize("plan", ["pro", "premium", "enterprise"])
def test_unknown_plan_with_unlimited_grant_loads_as_unlimited(tmp_path, plan):
    path = tmp_path / "users.json"
    path.write_text(json.dumps({"a@x.com": {"email": "a@x.com", "plan": plan, "credits": 999999}}), encoding="utf-8")
    store = JsonUserStore(str(path))
    user = store.get("a@x.com")
    assert user.plan is Plan.UNLIMITED
    assert user.credits is None
    assert store.update("a@x.com", {"credits": None}).plan is Plan.UNLIMITED


@pytest.mark.parametrize("entry", [
    {"email": "a@x.com", "plan": "pro", "credits": 5},
    {"email": "a@x.com", "plan": "free", "credits": "lots"},
    "not a record",
])
def test_unreadable_record_is_not_overwritten(tmp_path, entry):
    path = tmp_path / "users.json"
    raw = json.dumps({"a@x.com": entry})
    path.write_text(raw, encoding="utf-8")
    store = JsonUserStore(str(path))

    assert store.get("a@x.com") == UserRecord.default("a@x.com")
    with pytest.raises(UnreadableRecord):
        store.get("a@x.com", strict=True)
    with pytest.raises(UnreadableRecord):
        store.update("a@x.com", {"plan": "starter", "credits": 50})
    assert path.read_text(encoding="utf-8") == raw


def test_sqlite_unknown_plan_rows(tmp_path):
    store = open_user_store(f"sqlite:///{tmp_path}/users.db")
    store.model.create(email="legacy@x.com", plan="pro", credits=999999)
    store.model.create(email="odd@x.com", plan="pro", credits=5)

    assert store.get("legacy@x.com").plan is Plan.UNLIMITED
    assert store.get("odd@x.com") == UserRecord.default("odd@x.com")
    with pytest.raises(UnreadableRecord):
        store.update("odd@x.com", {"credits": 1})
    row = store.model.get(store.model.email == "odd@x.com")
    assert (row.plan, row.credits) == ("pro", 5)
    store.close()


def test_sqlite_stores_do_not_share_a_database(tmp_path):
    first = open_user_store(f"sqlite:///{tmp_path}/first.db")
    second = open_user_store(f"sqlite:///{tmp_path}/second.db")
    first.update("a@x.com", {"credits": 1})
    second.update("b@x.com", {"credits": 2})

    assert set(first.all()) == {"a@x.com"}
    assert set(second.all()) == {"b@x.com"}
    first.close()
    second.close()


def test_open_user_store_selects_backend(tmp_path):
    assert isinstance(open_user_store(f"json:///{tmp_path}/u.json"), JsonUserStore)
    store = open_user_store(f"sqlite:///{tmp_path}/u.db")
    assert isinstance(store, PeeweeUserStore)
    store.close()
