"""
Debounced auto-save.

Observes the StateStore and coalesces bursts of model changes into a single
write after a quiet period.
"""

import asyncio
import logging
from typing import Callable, Optional

from orgdesign.core.state import ModelState, StateStore

logger = logging.getLogger(__name__)

SaveCallback = Callable[[ModelState], object]


def _model_changed(new: ModelState, previous: ModelState) -> bool:
    return (
        new.organization is not previous.organization
        or new.policies is not previous.policies
        or new.attachments is not previous.attachments
    )


class DebouncedAutoSaver:
    """
    Write the model after ``delay`` seconds without further changes.

    Selection changes alone never trigger a save. Inside a running asyncio
    loop the write is scheduled with ``call_later`` and rescheduled on each
    change; without a loop the write happens immediately.

    Args:
        state_store: Store to observe
        save: Callback receiving the state to persist
        delay: Quiet period in seconds
    """

    def __init__(self, state_store: StateStore, save: SaveCallback, delay: float = 0.3):
        self.state_store = state_store
        self.save = save
        self.delay = delay
        self.enabled = True
        self._handle: Optional[asyncio.TimerHandle] = None
        self._unsubscribe = state_store.subscribe(self._on_state_change)

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def _on_state_change(self, new: ModelState, previous: ModelState) -> None:
        if not self.enabled or not _model_changed(new, previous):
            return
        self.schedule()

    def schedule(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write()
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._write()

    def _write(self) -> None:
        state = self.state_store.get_state()
        try:
            self.save(state)
        except Exception:
            logger.exception("Auto-save failed")
            return
        name = state.organization.name if state.organization else "None"
        node_count = len(state.organization.nodes) if state.organization else 0
        logger.debug(f"Auto-saved '{name}': {node_count} node(s), {len(state.policies)} policies")

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> None:
        """Write a pending save now."""
        if self._handle is not None:
            self.cancel()
            self._write()

    def close(self) -> None:
        self.flush()
        self._unsubscribe()
