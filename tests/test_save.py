"""
Tests for the save pipeline.
"""
from uuid import uuid4

import pytest

from docmatic import ConfigRegistry, GlobalConfig, LifecycleEngine, StoreError

from conftest import FailingStore, Gadget, Order, OrderLine, Tenanted, Tracked, Widget


class TestFirstSave:
    """Tests for saving a transient entity."""

    def test_assigns_id_and_timestamps(self, engine, clock):
        widget = Widget(name="A")
        assert widget.is_transient

        result = engine.save(widget)

        assert result is widget
        assert widget.id is not None
        assert not widget.is_transient
        assert widget.date_created == clock.current
        assert widget.date_updated == clock.current

    def test_document_is_persisted(self, engine, store):
        widget = engine.save(Widget(name="A", size=3))
        assert store.get_store_status()["collections"] == {"Widget": 1}

        fetched = engine.get_by_id(Widget, widget.id)
        assert fetched is not None
        assert fetched is not widget
        assert fetched.model_dump() == widget.model_dump()

    def test_logs_saved_event(self, engine, log_messages, caplog):
        with caplog.at_level("INFO", logger="LifecycleEngine"):
            widget = engine.save(Widget(name="A"))
        assert log_messages[-1] == f"SAVED -- Type: Widget, Id: {widget.id}"
        assert f"SAVED -- Type: Widget, Id: {widget.id}" in caplog.text


class TestResave:
    """Tests for saving an already persisted entity."""

    def test_date_created_is_kept_and_date_updated_refreshed(self, engine, saved_widget):
        created = saved_widget.date_created
        first_update = saved_widget.date_updated

        saved_widget.name = "B"
        engine.save(saved_widget)

        assert saved_widget.date_created == created
        assert saved_widget.date_updated > first_update

    def test_replaces_document_in_place(self, engine, store, saved_widget):
        original_id = saved_widget.id
        saved_widget.size = 99
        engine.save(saved_widget)

        assert saved_widget.id == original_id
        assert store.get_store_status()["collections"] == {"Widget": 1}
        assert engine.get_by_id(Widget, original_id).size == 99


class TestGuards:
    """Tests for the early-exit guards."""

    def test_soft_deleted_entity_is_not_saved(self, registry, engine, clock):
        registry.enable_soft_delete(Widget)
        widget = engine.save(Widget(name="A"))
        engine.delete(widget)
        snapshot = widget.model_dump()
        calls = clock.calls

        widget.name = "changed"
        engine.save(widget)

        assert clock.calls == calls
        expected = dict(snapshot, name="changed")
        assert widget.model_dump() == expected
        stored = engine.get_by_id(Widget, widget.id, include_deleted=True)
        assert stored.name == "A"

    def test_deleted_flag_is_ignored_without_soft_delete(self, engine):
        widget = engine.save(Widget(name="A", is_deleted=True))
        assert widget.id is not None

    def test_version_document_is_not_saved(self, registry, engine, store):
        registry.enable_versioning(Widget)
        widget = engine.save(Widget(name="A"))
        version = engine.get_versions(widget)[0]
        snapshot = version.model_dump()

        version.name = "tampered"
        engine.save(version)

        assert version.date_updated == snapshot["date_updated"]
        assert version.id == snapshot["id"]
        assert engine.get_versions(widget)[0].name == "A"


class TestBeforeSaveHooks:
    """Tests for gating hooks."""

    def test_rejection_leaves_entity_and_store_untouched(self, registry, engine, store):
        registry.add_before_save_behavior(Widget, lambda w: w.size < 10)

        widget = engine.save(Widget(name="big", size=50))

        assert widget.id is None
        assert widget.date_created is None
        assert widget.date_updated is None
        assert store.get_store_status()["collections"] == {}

    def test_rejection_of_persisted_entity_keeps_timestamps(self, registry, engine, saved_widget):
        registry.add_before_save_behavior(Widget, lambda w: w.size < 10)
        before = (saved_widget.date_created, saved_widget.date_updated)

        saved_widget.size = 50
        engine.save(saved_widget)

        assert (saved_widget.date_created, saved_widget.date_updated) == before
        assert engine.get_by_id(Widget, saved_widget.id).size == 1

    def test_all_predicates_run_even_after_a_rejection(self, registry, engine):
        calls = []
        registry.add_capability_before_save_behavior(Tenanted, lambda g: calls.append("tenanted") or False)
        registry.add_before_save_behavior(Gadget, lambda g: calls.append("type") or True)

        gadget = engine.save(Gadget(name="g"))

        assert calls == ["tenanted", "type"]
        assert gadget.id is None

    def test_capability_hooks_only_apply_to_carriers(self, registry, engine):
        registry.add_capability_before_save_behavior(Tracked, lambda e: False)

        assert engine.save(Gadget(name="g")).id is None
        assert engine.save(Widget(name="w")).id is not None


class TestValidationGate:
    """Tests for validation blocking saves."""

    def test_invalid_entity_is_not_saved(self, engine, store):
        order = engine.save(Order())
        assert order.errors
        assert order.id is None
        assert order.date_created is None
        assert engine.all(Order) == []

    def test_nested_errors_block_save(self, engine):
        order = engine.save(Order(customer_name="X", lines=[OrderLine(sku="")]))
        assert order.id is None
        assert order.errors[0].members == ["lines.0.sku"]

    def test_hooks_run_before_validation(self, registry, engine):
        seen = []
        registry.add_before_save_behavior(Order, lambda o: seen.append(o.customer_name) or True)

        engine.save(Order())
        assert seen == [""]


class TestAuditing:
    """Tests for user auditing."""

    def test_updated_by_is_stamped(self, registry, engine):
        registry.enable_user_auditing(Widget)
        registry.set_current_user_provider(lambda: "alice")

        widget = engine.save(Widget(name="A"))
        assert widget.updated_by == "alice"
        assert engine.get_by_id(Widget, widget.id).updated_by == "alice"

    def test_provider_is_consulted_on_every_save(self, registry, engine):
        users = iter(["alice", "bob"])
        registry.enable_user_auditing(Widget)
        registry.set_current_user_provider(lambda: next(users))

        widget = engine.save(Widget(name="A"))
        engine.save(widget)
        assert widget.updated_by == "bob"

    @pytest.mark.parametrize("identity", [uuid4(), 42, "7c1b-not-a-uuid"])
    def test_audit_identity_survives_round_trip(self, registry, engine, identity):
        registry.enable_user_auditing(Widget)
        registry.set_current_user_provider(lambda: identity)

        widget = engine.save(Widget(name="A"))
        fetched = engine.get_by_id(Widget, widget.id)

        assert type(fetched.updated_by) is type(identity)
        assert fetched.model_dump() == widget.model_dump()

    def test_numeric_string_identity_stays_a_string(self, registry, engine):
        registry.enable_user_auditing(Widget)
        registry.set_current_user_provider(lambda: "42")

        widget = engine.save(Widget(name="A"))
        assert engine.get_by_id(Widget, widget.id).updated_by == "42"

    def test_auditing_disabled(self, registry, engine):
        registry.set_current_user_provider(lambda: "alice")
        assert engine.save(Widget(name="A")).updated_by is None

    def test_auditing_without_provider(self, registry, engine):
        registry.enable_user_auditing(Widget)
        assert engine.save(Widget(name="A")).updated_by is None


class TestAfterSaveHooks:
    """Tests for observing hooks."""

    def test_after_hooks_see_persisted_entity(self, registry, engine):
        seen = []
        registry.add_capability_after_save_behavior(Tracked, lambda g: seen.append(("capability", g.id)))
        registry.add_after_save_behavior(Gadget, lambda g: seen.append(("type", g.id)))

        gadget = engine.save(Gadget(name="g"))

        assert seen == [("capability", gadget.id), ("type", gadget.id)]

    def test_after_hooks_do_not_run_on_rejection(self, registry, engine):
        seen = []
        registry.add_after_save_behavior(Order, seen.append)
        engine.save(Order())
        assert seen == []


class TestStoreFailure:
    """Tests for store write failures."""

    def test_failure_is_raised_and_mutations_remain(self, clock):
        registry = ConfigRegistry(GlobalConfig(connection_string="broken", clock=clock))
        failing = FailingStore()
        registry.register_store("broken", failing)
        engine = LifecycleEngine(registry)

        widget = Widget(name="A")
        with pytest.raises(StoreError) as excinfo:
            engine.save(widget)

        assert isinstance(excinfo.value.__cause__, ConnectionError)
        assert failing.attempts == 1
        assert widget.id is None
        assert widget.date_created == clock.current
        assert widget.date_updated == clock.current

    def test_no_after_hooks_or_log_after_failure(self):
        messages = []
        seen = []
        registry = ConfigRegistry(GlobalConfig(connection_string="broken", log_listener=messages.append))
        registry.register_store("broken", FailingStore())
        registry.add_after_save_behavior(Widget, seen.append)

        with pytest.raises(StoreError):
            LifecycleEngine(registry).save(Widget(name="A"))

        assert seen == []
        assert not any(m.startswith("SAVED") for m in messages)
