"""
Switch registry - the set of configured switches and their current state.

The registry is an explicit object owned by the application (stored on
app.state and handed to the scheduler), not a module-level map keyed by
device id. Rules and states are persisted through the KeyValueStore:

    switch:<id>   SwitchRule
    state:<id>    SwitchState (ephemeral, recomputed on the next tick)

Listeners are how the external device layer learns about state changes.
"""

import logging
import re
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from calswitch.environments.base import CalendarBridgeError
from calswitch.models import Provider, SwitchRule, SwitchState, SwitchStatus
from calswitch.services.storage import KeyValueStore


logger = logging.getLogger("calswitch.registry")


Listener = Callable[[SwitchState], None]

RULE_PREFIX = "switch:"
STATE_PREFIX = "state:"

_GENERATED_ID = re.compile(r"^sw-(\d+)$")


class SwitchNotFoundError(CalendarBridgeError):
    """No switch is registered under the given id."""
    pass


class DuplicateSwitchError(CalendarBridgeError):
    """A switch with the given id already exists."""
    pass


class SwitchRegistry:
    """
    Owns every SwitchRule and its latest SwitchState.

    Example:
        registry = SwitchRegistry(store)
        rule = registry.add(SwitchRule(switch_id="", provider=Provider.GOOGLE))
        registry.subscribe(lambda state: print(state.status))
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._rules: Dict[str, SwitchRule] = {}
        self._states: Dict[str, SwitchState] = {}
        self._listeners: List[Listener] = []
        self._next_id = 1
        self._load()

    def _load(self) -> None:
        for key in self._store.keys(RULE_PREFIX):
            try:
                rule = SwitchRule.model_validate(self._store.get(key))
            except ValidationError as e:
                logger.error(f"Skipping unreadable switch record {key}: {e}")
                continue
            self._rules[rule.switch_id] = rule
            self._bump_counter(rule.switch_id)

            raw_state = self._store.get(f"{STATE_PREFIX}{rule.switch_id}")
            state = SwitchState(switch_id=rule.switch_id)
            if raw_state:
                try:
                    state = SwitchState.model_validate(raw_state)
                except ValidationError:
                    logger.warning(f"Discarding unreadable state for {rule.switch_id}")
            self._states[rule.switch_id] = state

        if self._rules:
            logger.info(f"Loaded {len(self._rules)} switch(es)")

    def _bump_counter(self, switch_id: str) -> None:
        match = _GENERATED_ID.match(switch_id)
        if match:
            self._next_id = max(self._next_id, int(match.group(1)) + 1)

    def _generate_id(self) -> str:
        while f"sw-{self._next_id}" in self._rules:
            self._next_id += 1
        switch_id = f"sw-{self._next_id}"
        self._next_id += 1
        return switch_id

    # -------------------------------------------------------------------------
    # RULES
    # -------------------------------------------------------------------------

    def add(self, rule: SwitchRule, status: SwitchStatus = SwitchStatus.CONNECTED) -> SwitchRule:
        """
        Register a new switch.

        An empty switch_id gets a generated "sw-<n>" id.

        Raises:
            DuplicateSwitchError: If the id is already registered
        """
        if not rule.switch_id:
            rule = rule.model_copy(update={"switch_id": self._generate_id()})
        elif rule.switch_id in self._rules:
            raise DuplicateSwitchError(f"Switch {rule.switch_id} already exists")
        else:
            self._bump_counter(rule.switch_id)

        state = SwitchState(switch_id=rule.switch_id, status=status)
        self._rules[rule.switch_id] = rule
        self._states[rule.switch_id] = state
        self._store.put_many({
            f"{RULE_PREFIX}{rule.switch_id}": rule.model_dump(mode="json"),
            f"{STATE_PREFIX}{rule.switch_id}": state.model_dump(mode="json"),
        })

        logger.info(f"Added switch {rule.switch_id} ({rule.provider.value})")
        return rule

    def update(self, rule: SwitchRule) -> SwitchRule:
        """
        Replace the rules of an existing switch.

        The state is kept while the provider stays the same. Moving the switch
        to another provider resets it to a fresh state, so nothing derived
        from the old provider's events survives the edit.
        """
        if rule.switch_id not in self._rules:
            raise SwitchNotFoundError(f"Switch {rule.switch_id} not found")
        previous = self._rules[rule.switch_id]
        self._rules[rule.switch_id] = rule
        self._store.put(f"{RULE_PREFIX}{rule.switch_id}", rule.model_dump(mode="json"))
        logger.info(f"Updated rules for switch {rule.switch_id}")

        if previous.provider != rule.provider:
            self.apply_state(SwitchState(switch_id=rule.switch_id))
        return rule

    def remove(self, switch_id: str) -> bool:
        """Delete a switch and its state. Returns False if it did not exist."""
        if self._rules.pop(switch_id, None) is None:
            return False
        self._states.pop(switch_id, None)
        self._store.delete(f"{RULE_PREFIX}{switch_id}", f"{STATE_PREFIX}{switch_id}")
        logger.info(f"Removed switch {switch_id}")
        return True

    def get_rule(self, switch_id: str) -> SwitchRule:
        try:
            return self._rules[switch_id]
        except KeyError:
            raise SwitchNotFoundError(f"Switch {switch_id} not found")

    def get_state(self, switch_id: str) -> SwitchState:
        try:
            return self._states[switch_id]
        except KeyError:
            raise SwitchNotFoundError(f"Switch {switch_id} not found")

    def __contains__(self, switch_id: str) -> bool:
        return switch_id in self._rules

    def rules(self) -> List[SwitchRule]:
        return list(self._rules.values())

    def rules_for(self, provider: Provider) -> List[SwitchRule]:
        return [r for r in self._rules.values() if r.provider == provider]

    def providers(self) -> List[Provider]:
        """Distinct providers in use, in Provider enum order."""
        in_use = {r.provider for r in self._rules.values()}
        return [p for p in Provider if p in in_use]

    # -------------------------------------------------------------------------
    # STATE
    # -------------------------------------------------------------------------

    def apply_state(self, state: SwitchState) -> Optional[SwitchState]:
        """
        Replace a switch's state and notify listeners.

        States for switches removed in the meantime are ignored.

        Returns:
            The stored state, or None if the switch no longer exists
        """
        if state.switch_id not in self._rules:
            logger.debug(f"Ignoring state for removed switch {state.switch_id}")
            return None

        self._states[state.switch_id] = state
        self._store.put(f"{STATE_PREFIX}{state.switch_id}", state.model_dump(mode="json"))

        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(
                    f"Switch listener failed for {state.switch_id}: {e}",
                    exc_info=True,
                )
        return state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a state listener.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
