from __future__ import annotations

from collections.abc import Callable
from typing import Any


class Disposable:
    """Handle returned by `Emitter.on`; disposing it removes the subscription.

    Can be used as a context manager to scope a subscription to a block.
    """

    def __init__(self, dispose: Callable[[], None]) -> None:
        self._dispose: Callable[[], None] | None = dispose

    def dispose(self) -> None:
        """Remove the subscription. Safe to call more than once."""
        if self._dispose is None:
            return
        dispose, self._dispose = self._dispose, None
        dispose()

    def __enter__(self) -> Disposable:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()


class Emitter:
    """Synchronous event registry keyed by event name.

    Handlers run in registration order on the emitting task. Exceptions
    raised by a handler propagate to the caller of `emit`.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[Any], None]]] = {}

    def on(self, event: str, fn: Callable[[Any], None]) -> Disposable:
        """Register `fn` for `event`.

        Args:
            event: Event name, e.g. "did-update".
            fn: Callback invoked with the emitted value.

        Returns:
            A `Disposable` that deregisters this callback.
        """
        handlers = self._handlers.setdefault(event, [])
        # Wrapped so the same function registered twice gets independent handles
        def _call(value: Any) -> None:
            fn(value)

        handlers.append(_call)

        def _remove() -> None:
            if _call in handlers:
                handlers.remove(_call)

        return Disposable(_remove)

    def emit(self, event: str, value: Any = None) -> None:
        """Invoke every handler registered for `event` with `value`."""
        # Copy so handlers may dispose themselves while being called
        for handler in list(self._handlers.get(event, [])):
            handler(value)
