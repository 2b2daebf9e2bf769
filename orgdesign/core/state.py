"""
A small, synchronous state container with change subscriptions.

The whole model (organization, policies, attachments, selection) lives in a
single ModelState value. Stores never mutate that value in place: they build
a new one and commit it through ``set_state``, so a rejected operation can
simply return before committing and leave the previous state untouched.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from orgdesign.organization.models import Organization
from orgdesign.policy.models import Policy, PolicyAttachment

logger = logging.getLogger(__name__)


class ModelState(BaseModel):
    """Complete in-memory model."""
    organization: Optional[Organization] = None
    policies: Dict[str, Policy] = Field(default_factory=dict)
    attachments: List[PolicyAttachment] = Field(default_factory=list)
    selected_node_id: Optional[str] = None


# Listener receives (new_state, previous_state)
StateListener = Callable[[ModelState, ModelState], None]


class StateStore:
    """
    Narrow facade over the live model state.

    Collaborators receive this object explicitly instead of reaching for a
    global store.
    """

    def __init__(self, initial: Optional[ModelState] = None):
        self._state = initial or ModelState()
        self._listeners: List[StateListener] = []
        self._field_names = set(ModelState.model_fields)

    def get_state(self) -> ModelState:
        return self._state

    def set_state(self, **changes: Any) -> ModelState:
        """
        Replace one or more top-level fields and notify subscribers.

        Args:
            **changes: ModelState field names mapped to their new values.

        Returns:
            The committed state.

        Raises:
            KeyError: If a change names an unknown field.
        """
        unknown = set(changes) - self._field_names
        if unknown:
            raise KeyError(f"Unknown state fields: {sorted(unknown)}")

        previous = self._state
        self._state = previous.model_copy(update=changes)
        logger.debug(f"State updated: {sorted(changes)}")

        for listener in list(self._listeners):
            try:
                listener(self._state, previous)
            except Exception:
                logger.exception(f"State listener {listener!r} failed")
        return self._state

    def replace_state(self, state: ModelState) -> ModelState:
        """Swap in a complete state value (used by import and restore)."""
        return self.set_state(**{name: getattr(state, name) for name in self._field_names})

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Subscribe to state changes.

        Returns:
            A callable that removes the subscription.
        """
        self._listeners.append(listener)
        logger.debug(f"New state subscription: {listener!r}")

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
