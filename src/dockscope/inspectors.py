"""
Modal detail views opened on top of a resource view.

Opening an inspector suspends the refresh slot of the view it was opened
from; closing it cancels the inspector's own background work and lets the
scheduler refresh the view again (see ``Controller.open_inspector``).

Inspectors:
  - TextInspector: one-shot ``describe`` with search and copy
  - LogInspector: live log tail from a cancellable stream
  - MetricsInspector: 1s stats poller feeding a MetricsEngine

Threading:
  - Background loops only read the adapter and post results to the
    dispatcher. Inspector fields used for drawing change on the render
    thread, except the MetricsEngine which has its own lock.
"""

import itertools
import json
import logging
import textwrap
import threading
from collections import deque
from typing import List, Optional

from .errors import FetchError, StreamError
from .metrics import MetricsEngine, render_panels
from .state import ERROR, SUCCESS, AppState

logger = logging.getLogger(__name__)

SCROLL_KEYS = {"up": -1, "down": 1, "pageup": -10, "pagedown": 10}


class Inspector:
    action = ""

    def __init__(self, state: AppState, kind: str, resource_id: str, subject: str) -> None:
        self.state = state
        self.kind = kind
        self.resource_id = resource_id
        self.subject = subject
        self.closed = False
        self.offset = 0

    @property
    def page(self) -> str:
        return self.kind

    @property
    def mode(self) -> str:
        return ""

    @property
    def title(self) -> str:
        title = f"{self.action}({self.subject})"
        if self.mode:
            title += f" [{self.mode}]"
        return title

    def _touch(self) -> None:
        self.state.touch()

    def open(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    def hints(self) -> str:
        return "[Esc] Close"

    def handle_key(self, key: str, character: Optional[str] = None) -> bool:
        return False

    def render(self, width: int, height: int) -> List[str]:
        return []


class TextInspector(Inspector):
    """Describe output with incremental search."""

    action = "Describe"

    def __init__(self, state: AppState, kind: str, resource_id: str, subject: str) -> None:
        super().__init__(state, kind, resource_id, subject)
        self.content = ""
        self.lines: List[str] = ["Loading..."]
        self.error: Optional[str] = None
        self.search = ""
        self.editing_search = False
        self.matches: List[int] = []
        self.match_index = 0

    @property
    def mode(self) -> str:
        return f"search: {self.search}" if self.search else "text"

    def open(self) -> None:
        self.state.runner(self._load, name="describe")

    def _load(self) -> None:
        try:
            content = self.state.adapter.describe(self.kind, self.resource_id)
        except Exception as e:
            if not isinstance(e, FetchError):
                logger.error(f"Describe {self.kind} {self.resource_id} failed: {e}", exc_info=True)
            self.state.dispatcher.post(self._loaded, None, str(e))
            return
        self.state.dispatcher.post(self._loaded, content, None)

    def _loaded(self, content: Optional[str], error: Optional[str]) -> None:
        if self.closed:
            return
        if error is not None:
            self.error = error
            self.lines = [f"Error: {error}"]
        else:
            self.content = content or ""
            self.lines = self.content.splitlines() or [""]
        self.set_search(self.search)

    def set_search(self, term: str) -> None:
        self.search = term
        needle = term.lower()
        self.matches = [i for i, line in enumerate(self.lines) if needle and needle in line.lower()]
        self.match_index = 0
        if self.matches:
            self.offset = self.matches[0]
        self._touch()

    def next_match(self, delta: int = 1) -> None:
        if not self.matches:
            return
        self.match_index = (self.match_index + delta) % len(self.matches)
        self.offset = self.matches[self.match_index]
        self._touch()

    def copy_text(self) -> str:
        return self.content

    def hints(self) -> str:
        return "[/] Search  [n/N] Next/Prev  [y] Copy  [Esc] Close"

    def handle_key(self, key: str, character: Optional[str] = None) -> bool:
        if self.editing_search:
            if key in ("enter", "escape"):
                self.editing_search = False
                if key == "escape":
                    self.set_search("")
            elif key == "backspace":
                self.set_search(self.search[:-1])
            elif character and character.isprintable():
                self.set_search(self.search + character)
            return True

        if character == "/":
            self.editing_search = True
            self.set_search("")
            return True
        if character == "n":
            self.next_match(1)
            return True
        if character == "N":
            self.next_match(-1)
            return True
        if character == "y":
            if self.state.clipboard(self.copy_text()):
                self.state.set_flash("Copied to clipboard", SUCCESS)
            else:
                self.state.set_flash("Nothing copied (no clipboard tool)", ERROR)
            return True
        if key in SCROLL_KEYS:
            self.offset = max(0, min(self.offset + SCROLL_KEYS[key], len(self.lines) - 1))
            self._touch()
            return True
        if key == "home":
            self.offset = 0
            self._touch()
            return True
        if key == "end":
            self.offset = max(0, len(self.lines) - 1)
            self._touch()
            return True
        return False

    def render(self, width: int, height: int) -> List[str]:
        current = self.matches[self.match_index] if self.matches else None
        out = []
        for idx in range(self.offset, min(len(self.lines), self.offset + height)):
            marker = "> " if idx == current else "  "
            out.append((marker + self.lines[idx])[:width])
        return out


class _StreamWorker:
    """Cancellation handle for one log stream generation."""

    def __init__(self, generation: int) -> None:
        self.generation = generation
        self.cancelled = threading.Event()
        self._stream = None
        self._lock = threading.Lock()

    def attach(self, stream) -> bool:
        with self._lock:
            if self.cancelled.is_set():
                return False
            self._stream = stream
            return True

    def cancel(self) -> None:
        with self._lock:
            self.cancelled.set()
            stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()


class LogInspector(Inspector):
    """Live log tail; timestamps are a server-side option so toggling restarts the stream."""

    action = "Logs"

    def __init__(self, state: AppState, kind: str, resource_id: str, subject: str,
                 timestamps: bool = False) -> None:
        super().__init__(state, kind, resource_id, subject)
        self.lines: deque = deque(maxlen=state.config.ui.log_buffer_size)
        self.timestamps = timestamps
        self.autoscroll = True
        self.wrap = False
        self.status = "connecting"
        self._generation = 0
        self._worker: Optional[_StreamWorker] = None

    @property
    def mode(self) -> str:
        flags = [self.status]
        if self.timestamps:
            flags.append("timestamps")
        if self.autoscroll:
            flags.append("follow")
        if self.wrap:
            flags.append("wrap")
        return " ".join(flags)

    def open(self) -> None:
        self._start()

    def close(self) -> None:
        super().close()
        self._stop_stream()

    def _start(self) -> None:
        self._generation += 1
        worker = _StreamWorker(self._generation)
        self._worker = worker
        self.lines.clear()
        self.offset = 0
        self.status = "connecting"
        timestamps = self.timestamps
        self.state.runner(lambda: self._pump(worker, timestamps), name="logs")
        self._touch()

    def _stop_stream(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            self._worker = None

    def _pump(self, worker: _StreamWorker, timestamps: bool) -> None:
        # Background thread.
        post = self.state.dispatcher.post
        try:
            stream = self.state.adapter.stream_logs(self.kind, self.resource_id, timestamps)
        except Exception as e:
            if not isinstance(e, StreamError):
                logger.error(f"Opening logs for {self.resource_id} failed: {e}", exc_info=True)
            post(self._failed, worker.generation, str(e))
            return
        if not worker.attach(stream):
            stream.close()
            return
        post(self._set_status, worker.generation, "streaming")
        try:
            for line in stream:
                if worker.cancelled.is_set():
                    return
                post(self._append, worker.generation, line)
        except Exception as e:
            if not worker.cancelled.is_set():
                logger.warning(f"Log stream for {self.resource_id} failed: {e}")
                post(self._failed, worker.generation, str(e))
            return
        if not worker.cancelled.is_set():
            post(self._set_status, worker.generation, "ended")

    def _current(self, generation: int) -> bool:
        return not self.closed and generation == self._generation

    def _append(self, generation: int, line: str) -> None:
        if not self._current(generation):
            return
        if not self.autoscroll and len(self.lines) == self.lines.maxlen:
            # The oldest line is about to be evicted; keep the paused view anchored.
            self.offset = max(0, self.offset - 1)
        self.lines.append(line)
        self._touch()

    def _set_status(self, generation: int, status: str) -> None:
        if self._current(generation):
            self.status = status
            self._touch()

    def _failed(self, generation: int, message: str) -> None:
        if self._current(generation):
            self.status = "error"
            self.lines.append(f"Error: {message}")
            self._touch()

    def toggle_timestamps(self) -> None:
        self.timestamps = not self.timestamps
        self._stop_stream()
        self._start()

    def toggle_autoscroll(self) -> None:
        self.autoscroll = not self.autoscroll
        self._touch()

    def toggle_wrap(self) -> None:
        self.wrap = not self.wrap
        self._touch()

    def hints(self) -> str:
        return "[t] Timestamps  [a] Auto-scroll  [w] Wrap  [Esc] Close"

    def handle_key(self, key: str, character: Optional[str] = None) -> bool:
        if character == "t":
            self.toggle_timestamps()
        elif character == "a":
            self.toggle_autoscroll()
        elif character == "w":
            self.toggle_wrap()
        elif key in SCROLL_KEYS:
            self.autoscroll = False
            self.offset = max(0, min(self.offset + SCROLL_KEYS[key], max(len(self.lines) - 1, 0)))
            self._touch()
        elif key == "home":
            self.autoscroll = False
            self.offset = 0
            self._touch()
        elif key == "end":
            self.autoscroll = True
            self._touch()
        else:
            return False
        return True

    def _visual(self, lines, width: int) -> List[str]:
        if not (self.wrap and width > 0):
            return [line[:width] for line in lines]
        visual: List[str] = []
        for line in lines:
            visual.extend(textwrap.wrap(line, width) or [""])
        return visual

    def render(self, width: int, height: int) -> List[str]:
        """
        Visible lines for the given size.

        ``offset`` indexes logical lines; with wrap on, the view starts at
        the first visual line of the logical line at ``offset``.
        """
        if height <= 0:
            return []
        if self.autoscroll:
            visual = self._visual(self.lines, width)
            return visual[max(0, len(visual) - height):]
        start = min(self.offset, max(0, len(self.lines) - 1))
        return self._visual(itertools.islice(self.lines, start, None), width)[:height]


class MetricsInspector(Inspector):
    """Live CPU / memory / network / disk graphs for one container."""

    action = "Stats"

    def __init__(self, state: AppState, kind: str, resource_id: str, subject: str,
                 interval: Optional[float] = None) -> None:
        super().__init__(state, kind, resource_id, subject)
        self.interval = interval if interval is not None else state.config.ui.stats_interval
        self.engine = MetricsEngine(state.config.ui.history_size)
        self.view_mode = "graph"
        self.skipped_ticks = 0
        self._stop = threading.Event()

    @property
    def mode(self) -> str:
        return self.view_mode

    def open(self) -> None:
        self.state.runner(self._poll, name="metrics")

    def close(self) -> None:
        super().close()
        self._stop.set()

    def _poll(self) -> None:
        while not self._stop.is_set():
            self.tick()
            if self._stop.wait(self.interval):
                break

    def tick(self) -> bool:
        """Fetch and ingest one sample; a failed fetch skips the tick."""
        try:
            raw = self.state.adapter.stats_snapshot(self.resource_id)
        except Exception as e:
            self.skipped_ticks += 1
            logger.debug(f"Stats tick skipped for {self.resource_id}: {e}")
            return False
        if self._stop.is_set():
            return False
        self.engine.ingest(raw)
        self.state.dispatcher.post(self._touch)
        return True

    def toggle_mode(self) -> None:
        self.view_mode = "text" if self.view_mode == "graph" else "graph"
        self.offset = 0
        self._touch()

    def hints(self) -> str:
        if self.view_mode == "text":
            return "[m] Graph/Text  [Up/Down] Scroll  [Esc] Close"
        return "[m] Graph/Text  [Esc] Close"

    def handle_key(self, key: str, character: Optional[str] = None) -> bool:
        if character == "m":
            self.toggle_mode()
            return True
        if self.view_mode != "text":
            return False
        if key in SCROLL_KEYS:
            self.offset = max(0, self.offset + SCROLL_KEYS[key])
        elif key == "home":
            self.offset = 0
        else:
            return False
        self._touch()
        return True

    def render(self, width: int, height: int) -> List[str]:
        snapshot = self.engine.snapshot()
        if snapshot.ticks == 0:
            return ["Waiting for stats..."]
        if self.view_mode == "text":
            lines = json.dumps(snapshot.raw, indent=2, default=str).splitlines()
            self.offset = min(self.offset, max(0, len(lines) - height))
            return lines[self.offset:self.offset + height]
        return render_panels(snapshot, width, height, interval=self.interval)
