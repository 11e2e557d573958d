"""
Refresh scheduling for the frontmost resource view.

Architecture:
  - RefreshScheduler owns a daemon timer thread that, every
    ``refresh_interval`` seconds, posts ``refresh()`` onto the dispatcher.
  - ``refresh()`` always runs on the render thread. It decides whether a
    fetch may start and hands the adapter call to a background runner.
  - The background fetch posts its result (snapshot or FetchError) back to
    the dispatcher; ``_apply`` runs on the render thread again.

Staleness:
  - A result is discarded at apply time when the frontmost page changed,
    when the page slot is suspended by an inspector, or when the scheduler
    is paused. Fetches are never cancelled.
  - The paused flag is checked before dispatch, before the adapter call,
    and before apply.
"""

import logging
import threading
from typing import Optional, Set

from .errors import FetchError
from .state import ERROR, AppState
from .view import ResourceView

logger = logging.getLogger(__name__)


class RefreshScheduler:
    def __init__(self, state: AppState, interval: Optional[float] = None) -> None:
        self.state = state
        self.interval = interval if interval is not None else state.config.ui.refresh_interval
        self._paused = threading.Event()
        self._stop = threading.Event()
        self._suspended: Set[str] = set()
        self._thread: Optional[threading.Thread] = None

    # --- timer lifecycle ---

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="dockscope-refresh", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            if not self._paused.is_set():
                self.state.dispatcher.post(self.refresh)

    # --- pause / suspension ---

    @property
    def paused(self) -> bool:
        return self._paused.is_set()

    def pause(self) -> None:
        logger.debug("Refresh paused")
        self._paused.set()

    def resume(self) -> None:
        logger.debug("Refresh resumed")
        self._paused.clear()
        self.trigger()

    def suspend(self, page: str) -> None:
        self._suspended.add(page)

    def unsuspend(self, page: str) -> None:
        self._suspended.discard(page)

    def is_suspended(self, page: str) -> bool:
        return page in self._suspended

    # --- refresh ---

    def trigger(self) -> None:
        """Out-of-band refresh of the frontmost view."""
        self.state.dispatcher.post(self.refresh)

    def refresh(self) -> bool:
        """Start a fetch for the frontmost view. Returns False when skipped."""
        page = self.state.page
        if self.paused or self.is_suspended(page):
            return False
        view = self.state.views[page]
        if not view.begin_fetch():
            logger.debug(f"Fetch for {page} already in flight, skipping")
            return False
        self.state.runner(lambda: self._fetch(page, view), name=f"fetch-{page}")
        return True

    def _fetch(self, page: str, view: ResourceView) -> None:
        # Background thread: no view mutation here.
        if self.paused:
            self.state.dispatcher.post(view.discard_fetch)
            return
        try:
            snapshot = self.state.adapter.list_resources(view.kind)
        except FetchError as e:
            self.state.dispatcher.post(self._apply_error, page, view, e)
            return
        except Exception as e:
            logger.error(f"Unexpected error listing {view.kind}: {e}", exc_info=True)
            self.state.dispatcher.post(self._apply_error, page, view, FetchError(str(e)))
            return
        self.state.dispatcher.post(self._apply, page, view, snapshot)

    def _is_stale(self, page: str) -> bool:
        return self.paused or self.is_suspended(page) or self.state.page != page

    def _apply(self, page: str, view: ResourceView, snapshot) -> None:
        if self._is_stale(page):
            logger.debug(f"Discarding stale {page} snapshot")
            view.discard_fetch()
            return
        view.apply_fetch(snapshot, self.state.scopes.top)
        self.state.touch()

    def _apply_error(self, page: str, view: ResourceView, error: FetchError) -> None:
        if self._is_stale(page):
            view.discard_fetch()
            return
        view.fail_fetch(str(error))
        self.state.set_flash(f"Failed to load {page}: {error}", ERROR)
