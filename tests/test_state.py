"""Tests for restep.state.store (StateStore, deferred updates)."""

from __future__ import annotations

from restep.state.store import ABSENT, StateStore


# ---------------------------------------------------------------------------
# declare
# ---------------------------------------------------------------------------


class TestDeclare:
    def test_first_declaration_stores_initial(self) -> None:
        store = StateStore()
        value, _ = store.declare("count", 0)
        assert value == 0
        assert store.get("count") == 0

    def test_later_declaration_keeps_current_value(self) -> None:
        store = StateStore()
        _, set_count = store.declare("count", 0)
        set_count(5)
        store.flush()
        value, _ = store.declare("count", 0)
        assert value == 5

    def test_undeclared_is_absent(self) -> None:
        store = StateStore()
        assert store.get("missing") is ABSENT
        assert not ABSENT
        assert "missing" not in store


# ---------------------------------------------------------------------------
# Deferred updates
# ---------------------------------------------------------------------------


class TestDeferredUpdates:
    def test_setter_does_not_write_through(self) -> None:
        store = StateStore()
        _, set_count = store.declare("count", 0)
        set_count(1)
        assert store.get("count") == 0
        assert store.has_pending

    def test_flush_applies_in_order(self) -> None:
        store = StateStore()
        _, set_count = store.declare("count", 0)
        set_count(1)
        set_count(2)
        assert store.flush() == ["count"]
        assert store.get("count") == 2
        assert not store.has_pending

    def test_callable_updates_compose(self) -> None:
        store = StateStore()
        _, set_count = store.declare("count", 0)
        set_count(lambda prev: prev + 1)
        set_count(lambda prev: prev + 1)
        store.flush()
        assert store.get("count") == 2

    def test_value_then_callable(self) -> None:
        store = StateStore()
        _, set_items = store.declare("items", [])
        set_items(["a"])
        set_items(lambda prev: prev + ["b"])
        store.flush()
        assert store.get("items") == ["a", "b"]

    def test_callable_on_undeclared_key_sees_none(self) -> None:
        store = StateStore()
        store.enqueue("late", lambda prev: "none" if prev is None else "other")
        store.flush()
        assert store.get("late") == "none"

    def test_touched_keys_in_first_touch_order(self) -> None:
        store = StateStore()
        store.enqueue("b", 1)
        store.enqueue("a", 1)
        store.enqueue("b", 2)
        assert store.flush() == ["b", "a"]

    def test_empty_flush(self) -> None:
        assert StateStore().flush() == []


# ---------------------------------------------------------------------------
# Introspection
# ---------------------------------------------------------------------------


class TestIntrospection:
    def test_keys_snapshot_len(self) -> None:
        store = StateStore()
        store.declare("a", 1)
        store.declare("b", {"x": 1})
        assert store.keys() == ["a", "b"]
        assert len(store) == 2
        snap = store.snapshot()
        snap["a"] = 99
        assert store.get("a") == 1
