import threading


class EventSource(object):
    """
    Dispatches fired events to registered handlers.

    Events are fired from receiver threads, so the handler list is
    copied under a lock and handlers are invoked outside of it.
    """

    def __init__(self, *handlers):
        self._handlers = list(handlers)
        self._lock = threading.Lock()

    def add(self, handler):
        with self._lock:
            self._handlers.append(handler)
        return self

    def handlers(self):
        with self._lock:
            return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        for handler in self.handlers():
            handler(*args, **kwargs)
