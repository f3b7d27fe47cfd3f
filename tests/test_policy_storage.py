"""
Tests for PolicyStore: case-insensitive keys, durable tier, ownership checks, strict mode.
"""

from __future__ import annotations

import json

import pytest

from backend_allowance.core.exceptions import PolicyPersistenceError
from backend_allowance.policy.builder import build_policy
from backend_allowance.policy.storage import PolicyStore, redact_record

from conftest import CHILD, PARENT, PARENT_2


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


def test_put_and_get_are_case_insensitive(store):
    """Stored under the lowercased address; any casing reads it back."""
    mixed = "0x" + "AbCd" * 10
    record = store.put(mixed, PARENT.upper().replace("0X", "0x"), build_policy(True, 15))
    assert record.wallet_address == mixed.lower()
    assert record.parent_address == PARENT
    assert store.get(mixed.upper().replace("0X", "0x")) == record
    assert store.get(mixed.lower()) == record


def test_get_missing_returns_none(store):
    assert store.get(CHILD) is None


def test_put_persists_full_map(store, store_path):
    """File holds one JSON object keyed by lowercased wallet address."""
    store.put(CHILD, PARENT, build_policy(True, 15))
    data = json.loads(store_path.read_text(encoding="utf-8"))
    assert list(data) == [CHILD]
    assert data[CHILD]["parentAddress"] == PARENT
    assert data[CHILD]["policy"]["globalConditions"][1] == {
        "type": "value",
        "operator": "lessThanOrEqual",
        "value": 15,
    }


def test_new_instance_loads_lazily_from_disk(store, store_path):
    """A second store on the same file sees the records (cold start)."""
    store.put(CHILD, PARENT, build_policy(False, 5))
    fresh = PolicyStore(store_path)
    record = fresh.get(CHILD)
    assert record is not None
    assert record.policy.max_usd == 5
    assert len(fresh) == 1


def test_overwrite_preserves_created_at(store_path):
    clock = FakeClock()
    store = PolicyStore(store_path, clock=clock)
    first = store.put(CHILD, PARENT, build_policy(True, 5))
    second = store.put(CHILD, PARENT, build_policy(True, 10))
    assert second.created_at == first.created_at
    assert second.updated_at > first.updated_at
    assert store.get(CHILD).policy.max_usd == 10


def test_list_by_parent(store):
    store.put("0x" + "1" * 40, PARENT, build_policy(True))
    store.put("0x" + "2" * 40, PARENT, build_policy(True))
    store.put("0x" + "3" * 40, PARENT_2, build_policy(True))
    assert {r.wallet_address for r in store.list_by_parent(PARENT)} == {"0x" + "1" * 40, "0x" + "2" * 40}
    assert store.list_by_parent("0x" + "9" * 40) == []
    assert len(store.list_all()) == 3


def test_delete_is_owner_checked(store, store_path):
    """Non-owner delete and missing wallet both return False and change nothing."""
    store.put(CHILD, PARENT, build_policy(True))
    assert store.delete(CHILD, PARENT_2) is False
    assert store.get(CHILD) is not None
    assert store.delete("0x" + "9" * 40, PARENT) is False
    assert store.delete(CHILD.upper().replace("0X", "0x"), PARENT) is True
    assert store.get(CHILD) is None
    assert json.loads(store_path.read_text(encoding="utf-8")) == {}


def test_update_is_owner_checked(store_path):
    clock = FakeClock()
    store = PolicyStore(store_path, clock=clock)
    original = store.put(CHILD, PARENT, build_policy(True, 5))
    assert store.update(CHILD, PARENT_2, build_policy(False)) is None
    assert store.update("0x" + "9" * 40, PARENT, build_policy(False)) is None
    updated = store.update(CHILD, PARENT, build_policy(False, 20))
    assert updated is not None
    assert updated.created_at == original.created_at
    assert updated.updated_at > original.updated_at
    assert PolicyStore(store_path).get(CHILD).policy.max_usd == 20


def test_corrupt_file_yields_empty_store(store_path):
    store_path.write_text("{not json", encoding="utf-8")
    store = PolicyStore(store_path)
    assert store.get(CHILD) is None
    assert store.list_all() == []


def test_bad_records_are_skipped(store, store_path):
    """One malformed record does not hide the others."""
    store.put(CHILD, PARENT, build_policy(True))
    data = json.loads(store_path.read_text(encoding="utf-8"))
    data["0x" + "d" * 40] = {"walletAddress": "0x" + "d" * 40, "policy": {"version": "9"}}
    store_path.write_text(json.dumps(data), encoding="utf-8")
    fresh = PolicyStore(store_path)
    assert [r.wallet_address for r in fresh.list_all()] == [CHILD]


def test_write_failure_is_swallowed_when_not_strict(tmp_path):
    """Non-strict: memory tier keeps the record even though the file write failed."""
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = PolicyStore(blocker / "policies.json")
    record = store.put(CHILD, PARENT, build_policy(True))
    assert store.get(CHILD) == record


def test_write_failure_raises_and_rolls_back_in_strict_mode(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = PolicyStore(blocker / "policies.json", strict=True)
    with pytest.raises(PolicyPersistenceError, match="Failed to persist"):
        store.put(CHILD, PARENT, build_policy(True))
    assert store.get(CHILD) is None


def test_redact_record_truncates_addresses(store):
    record = store.put(CHILD, PARENT, build_policy(True, 15))
    out = redact_record(record)
    assert out["walletAddress"] == CHILD[:10] + "..."
    assert out["parentAddress"] == PARENT[:10] + "..."
    assert out["allowedChains"] == ["8453"]
    assert out["createdAt"].endswith("+00:00")
