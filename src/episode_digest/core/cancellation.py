import threading


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a running pipeline.
    Safe to trip from another thread or a signal handler.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
