# src/queueflow/events.py
import logging

EVENT_NAMES = ("push", "pull", "empty", "close", "kill")


class EventEmitter:
    """
    Ordered, cancelable listener lists for the queue lifecycle events.

    Handlers run in registration order. A handler cancels the dispatch by returning
    ``False``; any other return value (including ``None``) lets the next handler run.
    """

    def __init__(self, names=EVENT_NAMES):
        self.listeners = {name: [] for name in names}

    def on(self, name: str, handler) -> None:
        """
        Register a handler for the named event.

        Raises:
            ValueError: If the event name is unknown.
            TypeError: If the handler is not callable.
        """
        if name not in self.listeners:
            raise ValueError(f"Unknown event '{name}'. Expected one of {', '.join(self.listeners)}.")
        if not callable(handler):
            raise TypeError(f"Handler for '{name}' must be callable, got {type(handler).__name__}.")
        self.listeners[name].append(handler)

    def off(self, name: str, handler) -> None:
        """Remove a previously registered handler, if present."""
        try:
            self.listeners[name].remove(handler)
        except (KeyError, ValueError):
            logging.debug(f"Handler not registered for event '{name}'.")

    def emit(self, name: str, *args) -> bool:
        """
        Dispatch an event.

        Returns:
            bool: False if a handler canceled the dispatch, True otherwise.
        """
        for handler in list(self.listeners[name]):
            if handler(*args) is False:
                logging.debug(f"Event '{name}' canceled by {getattr(handler, '__name__', handler)!r}.")
                return False
        return True
