"""
Background-task to render-thread handoff.

Background threads never touch view or render state. They ``post()``
callables onto the UiDispatcher, and the render loop calls ``drain()`` to run
them in arrival order on its own thread.
"""

import logging
import queue
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class UiDispatcher:
    """FIFO channel of callables executed on the render thread."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()

    def post(self, func: Callable, *args) -> None:
        if args:
            self._queue.put(lambda: func(*args))
        else:
            self._queue.put(func)

    def pending(self) -> int:
        return self._queue.qsize()

    def drain(self, limit: Optional[int] = None) -> int:
        """Run queued callables; returns how many ran."""
        count = 0
        while limit is None or count < limit:
            try:
                func = self._queue.get_nowait()
            except queue.Empty:
                break
            count += 1
            try:
                func()
            except Exception as e:
                logger.error(f"Dispatched callback failed: {e}", exc_info=True)
        return count


class ThreadRunner:
    """Runs each job on a short-lived daemon thread."""

    def __call__(self, job: Callable[[], None], name: str = "dockscope-job") -> threading.Thread:
        thread = threading.Thread(target=job, name=name, daemon=True)
        thread.start()
        return thread
