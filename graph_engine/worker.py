# worker.py - single background thread serving named math requests
"""
MathWorker runs every request on one daemon thread, strictly in submission
order. Callers get a RequestHandle right away; the handle's future resolves
with ``AnalysisResult.to_dict()`` or is marked cancelled.

Usage:
  worker = get_math_worker()
  handle = worker.submit("find_zeros", expr="x^2 - 4", x_min=-5, x_max=5)
  roots = handle.result(timeout=5)["value"]
"""
import logging
import queue
import threading
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .api import HANDLERS
from .errors import EngineError, RequestCancelled, UnknownRequestError, message_for
from .results import AnalysisResult

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass
class RequestHandle:
    """
    A submitted request.

    Attributes:
        name: request name from the handler table
        future: resolves with the result record
        cancel_event: set by ``cancel()``; handlers poll it at step boundaries
    """
    name: str
    future: Future = field(default_factory=Future)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_event.set()
        # a request still waiting in the queue is cancelled outright
        self.future.cancel()

    def cancelled(self) -> bool:
        return self.future.cancelled()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self.future.result(timeout)


class MathWorker:
    def __init__(self, name: str = "math-worker"):
        self._queue: "queue.Queue" = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._running = True
        self._thread.start()
        logger.debug("Started %s", name)

    @property
    def running(self) -> bool:
        return self._running and self._thread.is_alive()

    def submit(self, name: str, **kwargs: Any) -> RequestHandle:
        """Queue request ``name`` with keyword arguments ``kwargs``."""
        if name not in HANDLERS:
            raise UnknownRequestError(message_for("7001", name), code="7001")
        if not self._running:
            raise EngineError(message_for("7002"), code="7002")
        handle = RequestHandle(name)
        self._queue.put((handle, kwargs))
        return handle

    def call(self, name: str, timeout: Optional[float] = None, **kwargs: Any) -> Dict[str, Any]:
        """Submit and wait."""
        return self.submit(name, **kwargs).result(timeout)

    def terminate(self, timeout: Optional[float] = None) -> None:
        """Stop after the requests already queued; later submits fail."""
        if not self._running:
            return
        self._running = False
        self._queue.put(_STOP)
        self._thread.join(timeout)

    # -------------------- Worker loop --------------------
    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            handle, kwargs = item
            self._execute(handle, kwargs)

    def _execute(self, handle: RequestHandle, kwargs: Dict[str, Any]) -> None:
        if not handle.future.set_running_or_notify_cancel():
            logger.debug("Skipping cancelled request %s", handle.name)
            return
        try:
            result = HANDLERS[handle.name](cancel=handle.cancel_event, **kwargs)
        except RequestCancelled:
            logger.debug("Request %s cancelled while running", handle.name)
            handle.future.set_exception(CancelledError(message_for("7000", handle.name)))
            return
        except Exception as exc:
            logger.exception("Request %s failed", handle.name)
            result = AnalysisResult.failure(message_for("9999", str(exc)))

        if handle.cancel_event.is_set():
            # finished after cancel(): discard rather than deliver a stale result
            handle.future.set_exception(CancelledError(message_for("7000", handle.name)))
            return
        handle.future.set_result(result.to_dict())


# -------------------- Module worker --------------------
_worker: Optional[MathWorker] = None
_worker_lock = threading.Lock()


def get_math_worker() -> MathWorker:
    """Shared worker, started on first use."""
    global _worker
    with _worker_lock:
        if _worker is None or not _worker.running:
            _worker = MathWorker()
        return _worker


def terminate_math_worker(timeout: Optional[float] = None) -> None:
    global _worker
    with _worker_lock:
        if _worker is not None:
            _worker.terminate(timeout)
            _worker = None

# End of worker.py
