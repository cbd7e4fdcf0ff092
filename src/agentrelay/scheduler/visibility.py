"""Foreground/background state of the hosting application.

Hides where visibility comes from (terminal focus, a window manager, a
test) behind a small observable flag.
"""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

VisibilityListener = Callable[[bool], None]


class VisibilityMonitor:
    """Observable visible/hidden flag.

    Listeners are called with the new value, only when the value changes.
    """

    def __init__(self, visible: bool = True) -> None:
        self._visible = visible
        self._listeners: list[VisibilityListener] = []

    @property
    def is_visible(self) -> bool:
        """Whether the host is currently in the foreground."""
        return self._visible

    def set_visible(self, visible: bool) -> None:
        """Update the flag and notify listeners on change."""
        if visible == self._visible:
            return
        self._visible = visible
        logger.debug("Visibility changed: %s", "visible" if visible else "hidden")
        for listener in list(self._listeners):
            try:
                listener(visible)
            except Exception:
                logger.exception("Visibility listener failed")

    def hide(self) -> None:
        """Mark the host as hidden."""
        self.set_visible(False)

    def show(self) -> None:
        """Mark the host as visible."""
        self.set_visible(True)

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
