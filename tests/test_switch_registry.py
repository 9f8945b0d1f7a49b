"""
Tests for the switch registry.

These tests verify:
- Adding, updating and removing switches
- Generated ids
- Persistence and reload of rules and states
- Listener notification and isolation
"""

from unittest.mock import MagicMock

import pytest

from calswitch.models import Provider, SwitchState, SwitchStatus
from calswitch.services.storage import KeyValueStore
from calswitch.services.switch_registry import (
    DuplicateSwitchError,
    SwitchNotFoundError,
    SwitchRegistry,
)

from conftest import make_rule


@pytest.fixture
def registry(store) -> SwitchRegistry:
    return SwitchRegistry(store)


class TestRules:
    """Tests for rule management."""

    def test_add_generates_id(self, registry):
        """Should assign sw-<n> ids when none is given."""
        first = registry.add(make_rule(""))
        second = registry.add(make_rule(""))

        assert first.switch_id == "sw-1"
        assert second.switch_id == "sw-2"

    def test_generated_ids_skip_taken_ones(self, registry):
        registry.add(make_rule("sw-1"))

        assert registry.add(make_rule("")).switch_id == "sw-2"

    def test_add_creates_initial_state(self, registry):
        registry.add(make_rule("office"), status=SwitchStatus.UNCONFIGURED)

        state = registry.get_state("office")
        assert state.status == SwitchStatus.UNCONFIGURED
        assert state.is_active is False

    def test_duplicate_id_rejected(self, registry):
        registry.add(make_rule("office"))

        with pytest.raises(DuplicateSwitchError):
            registry.add(make_rule("office"))

    def test_update_replaces_rule_and_keeps_state(self, registry):
        registry.add(make_rule("office"))
        registry.apply_state(SwitchState(switch_id="office", status=SwitchStatus.ACTIVE, is_active=True))

        registry.update(make_rule("office", minutes_after_end=15))

        assert registry.get_rule("office").minutes_after_end == 15
        assert registry.get_state("office").is_active is True

    def test_provider_change_resets_state(self, registry, store):
        """Should drop state derived from the previous provider's events."""
        registry.add(make_rule("office"))
        registry.apply_state(SwitchState(switch_id="office", status=SwitchStatus.ACTIVE, is_active=True))
        seen = []
        registry.subscribe(seen.append)

        registry.update(make_rule("office", provider=Provider.MICROSOFT))

        state = registry.get_state("office")
        assert state == SwitchState(switch_id="office")
        assert seen == [state]
        assert store.get("state:office")["is_active"] is False

    def test_update_unknown_raises(self, registry):
        with pytest.raises(SwitchNotFoundError):
            registry.update(make_rule("ghost"))

    def test_remove(self, registry, store):
        registry.add(make_rule("office"))

        assert registry.remove("office") is True
        assert registry.remove("office") is False
        assert "office" not in registry
        assert store.keys() == []

    def test_rules_for_provider(self, registry):
        registry.add(make_rule("a"))
        registry.add(make_rule("b", provider=Provider.MICROSOFT))
        registry.add(make_rule("c"))

        assert [r.switch_id for r in registry.rules_for(Provider.GOOGLE)] == ["a", "c"]
        assert registry.providers() == [Provider.GOOGLE, Provider.MICROSOFT]

    def test_reload_from_store(self, tmp_path):
        """Should restore rules, states and the id counter from disk."""
        path = tmp_path / "state.json"
        first = SwitchRegistry(KeyValueStore(path))
        first.add(make_rule("", include_words="standup"))
        first.apply_state(SwitchState(switch_id="sw-1", status=SwitchStatus.IDLE))

        reloaded = SwitchRegistry(KeyValueStore(path))

        assert reloaded.get_rule("sw-1").include_words == frozenset({"standup"})
        assert reloaded.get_state("sw-1").status == SwitchStatus.IDLE
        assert reloaded.add(make_rule("")).switch_id == "sw-2"


class TestListeners:
    """Tests for state listeners."""

    def test_listener_receives_state(self, registry):
        listener = MagicMock()
        registry.subscribe(listener)
        registry.add(make_rule("office"))
        state = SwitchState(switch_id="office", status=SwitchStatus.ACTIVE, is_active=True)

        registry.apply_state(state)

        listener.assert_called_once_with(state)

    def test_failing_listener_does_not_stop_others(self, registry, caplog):
        """Should log a listener error and keep notifying the rest."""
        broken = MagicMock(side_effect=RuntimeError("device offline"))
        healthy = MagicMock()
        registry.subscribe(broken)
        registry.subscribe(healthy)
        registry.add(make_rule("office"))

        registry.apply_state(SwitchState(switch_id="office"))

        healthy.assert_called_once()
        assert "device offline" in caplog.text

    def test_unsubscribe(self, registry):
        listener = MagicMock()
        unsubscribe = registry.subscribe(listener)
        registry.add(make_rule("office"))

        unsubscribe()
        registry.apply_state(SwitchState(switch_id="office"))

        listener.assert_not_called()

    def test_state_for_removed_switch_is_ignored(self, registry):
        listener = MagicMock()
        registry.subscribe(listener)

        assert registry.apply_state(SwitchState(switch_id="ghost")) is None
        listener.assert_not_called()
