"""Result surface visibility state machine.

Responsibilities:
- Track whether the result surface is shown and whether it is pinned.
- Notify an optional listener with the previous and new state on every change.

Transitions:
- `show()`: visible, pin unchanged.
- `blur()`: hidden unless pinned.
- `toggle_pin()`: flips pin, visibility unchanged.
- `hide()`: hidden regardless of pin.
"""

from __future__ import annotations

import threading
from typing import Callable

from .models.datatypes import VisibilityState


StateListener = Callable[[VisibilityState, VisibilityState], None]


class VisibilityController:
    """Total, terminal-free visibility state machine living for the process lifetime."""

    def __init__(self, on_change: StateListener | None = None) -> None:
        """Start hidden and unpinned with an optional change listener."""

        self._lock = threading.RLock()
        self._state = VisibilityState()
        self._on_change = on_change

    @property
    def state(self) -> VisibilityState:
        """Return the current visibility state."""

        return self._state

    @property
    def visible(self) -> bool:
        """Return whether the surface is shown."""

        return self._state.visible

    @property
    def pinned(self) -> bool:
        """Return whether the surface ignores focus loss."""

        return self._state.pinned

    def show(self) -> VisibilityState:
        """Show the surface, keeping the current pin."""

        with self._lock:
            return self._transition(VisibilityState(visible=True, pinned=self._state.pinned))

    def blur(self) -> VisibilityState:
        """Hide the surface on focus loss unless it is pinned."""

        with self._lock:
            if self._state.pinned:
                return self._state
            return self._transition(VisibilityState(visible=False, pinned=False))

    def toggle_pin(self) -> VisibilityState:
        """Flip the pin without changing visibility."""

        with self._lock:
            return self._transition(
                VisibilityState(visible=self._state.visible, pinned=not self._state.pinned)
            )

    def hide(self) -> VisibilityState:
        """Hide the surface on explicit request; the pin is kept."""

        with self._lock:
            return self._transition(VisibilityState(visible=False, pinned=self._state.pinned))

    def _transition(self, new_state: VisibilityState) -> VisibilityState:
        """Store `new_state` and notify the listener when it differs from the old state."""

        old_state = self._state
        self._state = new_state
        if self._on_change is not None and new_state != old_state:
            self._on_change(old_state, new_state)
        return new_state
