"""In-flight agent turns, keyed by the client's request id.

Each running chat turn owns a ``threading.Event``; the agent loop polls it as
its ``should_abort`` callback.  A client cancels a turn either by calling the
cancel endpoint with the request id or by dropping the connection.
"""
import logging
import threading

logger = logging.getLogger(__name__)


class AgentRunRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._runs: dict[str, threading.Event] = {}

    def register(self, request_id: str) -> threading.Event:
        """Track a new turn; raises ``KeyError`` if the id is already running."""
        with self._lock:
            if request_id in self._runs:
                raise KeyError(request_id)
            event = threading.Event()
            self._runs[request_id] = event
            return event

    def cancel(self, request_id: str) -> bool:
        with self._lock:
            event = self._runs.get(request_id)
        if event is None:
            return False
        event.set()
        logger.info("Cancellation requested for agent turn %s", request_id)
        return True

    def discard(self, request_id: str) -> None:
        with self._lock:
            self._runs.pop(request_id, None)

    def __contains__(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._runs
