import pytest
from unittest.mock import MagicMock

from dockscope.config import AppConfig
from dockscope.errors import StreamError
from dockscope.inspectors import LogInspector, MetricsInspector, TextInspector
from dockscope.state import ERROR, SUCCESS, AppState

DESCRIBE = '{\n  "Name": "web",\n  "Image": "nginx:latest",\n  "State": "running"\n}'

STATS = {
    "cpu_stats": {"cpu_usage": {"total_usage": 100}, "system_cpu_usage": 1000, "online_cpus": 1},
    "memory_stats": {"usage": 10, "limit": 100},
}


@pytest.fixture
def state(adapter, runner, clipboard):
    return AppState(AppConfig(), adapter, runner=runner, clipboard=clipboard)


def run(state):
    state.runner.run_all()
    state.dispatcher.drain()


# --- logs ---

def test_logs_stream_into_buffer(state, adapter):
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    assert inspector.status == "connecting"
    run(state)

    assert list(inspector.lines) == ["line 1", "line 2"]
    assert inspector.status == "ended"
    assert adapter.stream_calls == [False]


def test_timestamp_toggle_restarts_stream(state, adapter):
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    state.runner.run_all()

    # Lines from the first stream are still queued when the toggle happens.
    adapter.log_lines = ["2024-01-01T00:00:00Z line 1"]
    inspector.handle_key("t", "t")
    state.dispatcher.drain()
    assert list(inspector.lines) == []

    run(state)
    assert adapter.stream_calls == [False, True]
    assert list(inspector.lines) == ["2024-01-01T00:00:00Z line 1"]
    assert "timestamps" in inspector.title


def test_cancelled_worker_closes_late_stream(state, adapter):
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    inspector.toggle_timestamps()
    run(state)

    assert adapter.streams[0].closed
    assert not adapter.streams[1].closed
    assert list(inspector.lines) == ["line 1", "line 2"]


def test_close_stops_stream(state, adapter):
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    state.runner.run_all()
    inspector.close()
    state.dispatcher.drain()

    assert adapter.streams[0].closed
    assert list(inspector.lines) == []


def test_stream_error_shown_inline(state, adapter):
    adapter.stream_logs = MagicMock(side_effect=StreamError("container gone"))
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)

    assert inspector.status == "error"
    assert list(inspector.lines) == ["Error: container gone"]


def test_unexpected_open_error_shown_inline(state, adapter):
    adapter.stream_logs = MagicMock(side_effect=OSError("connection aborted"))
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)

    assert inspector.status == "error"
    assert list(inspector.lines) == ["Error: connection aborted"]


def test_paused_view_stays_on_line_when_buffer_evicts(state, adapter):
    state.config.ui.log_buffer_size = 4
    adapter.log_lines = ["a", "b", "c", "d"]
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)

    inspector.handle_key("home")
    inspector.handle_key("down")
    assert inspector.render(width=40, height=1) == ["b"]

    gen = inspector._generation
    inspector._append(gen, "e")
    inspector._append(gen, "f")
    assert list(inspector.lines) == ["c", "d", "e", "f"]
    assert inspector.offset == 0
    assert inspector.render(width=40, height=2) == ["c", "d"]


def test_wrapped_scroll_starts_at_logical_line(state, adapter):
    adapter.log_lines = ["a long line that wraps", "b", "c"]
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)

    inspector.handle_key("w", "w")
    inspector.handle_key("home")
    inspector.handle_key("down")
    assert inspector.render(width=10, height=2) == ["b", "c"]


def test_log_buffer_is_bounded(state, adapter):
    state.config.ui.log_buffer_size = 3
    adapter.log_lines = [f"line {i}" for i in range(10)]
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)
    assert list(inspector.lines) == ["line 7", "line 8", "line 9"]


def test_log_render_autoscroll_and_wrap(state, adapter):
    adapter.log_lines = ["a", "b", "c", "a long line that wraps"]
    inspector = LogInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)

    assert inspector.render(width=40, height=2) == ["c", "a long line that wraps"]

    inspector.handle_key("w", "w")
    assert inspector.render(width=10, height=3) == ["a long", "line that", "wraps"]

    inspector.handle_key("home")
    assert not inspector.autoscroll
    assert inspector.render(width=40, height=2) == ["a", "b"]

    inspector.handle_key("end")
    assert inspector.autoscroll


# --- describe ---

def test_describe_loads_content(state, adapter):
    adapter.descriptions["c1"] = DESCRIBE
    inspector = TextInspector(state, "containers", "c1", "web")
    inspector.open()
    assert inspector.lines == ["Loading..."]
    run(state)
    assert inspector.lines == DESCRIBE.splitlines()
    assert inspector.title == "Describe(web) [text]"


def test_describe_error(state):
    inspector = TextInspector(state, "containers", "missing", "missing")
    inspector.open()
    run(state)
    assert inspector.error == "No such object: missing"
    assert inspector.lines == ["Error: No such object: missing"]


def test_describe_unexpected_error(state, adapter, mocker):
    mocker.patch.object(adapter, "describe", side_effect=RuntimeError("bad response"))
    inspector = TextInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)
    assert inspector.lines == ["Error: bad response"]


def test_search_highlights_and_cycles(state, adapter):
    adapter.descriptions["c1"] = DESCRIBE
    inspector = TextInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)

    inspector.handle_key("/", "/")
    for ch in "run":
        inspector.handle_key(ch, ch)
    inspector.handle_key("enter")

    assert not inspector.editing_search
    assert inspector.matches == [3]
    assert inspector.offset == 3
    assert inspector.render(width=80, height=1) == ['>   "State": "running"']
    assert inspector.title == "Describe(web) [search: run]"

    inspector.set_search('"')
    assert inspector.matches == [1, 2, 3]
    inspector.handle_key("n", "n")
    assert inspector.offset == 2
    inspector.handle_key("N", "N")
    inspector.handle_key("N", "N")
    assert inspector.offset == 3


def test_copy_uses_clipboard(state, adapter, clipboard):
    adapter.descriptions["c1"] = DESCRIBE
    inspector = TextInspector(state, "containers", "c1", "web")
    inspector.open()
    run(state)

    inspector.handle_key("y", "y")
    assert clipboard.copied == [DESCRIBE]
    assert state.flash.level == SUCCESS


def test_copy_without_clipboard_tool(adapter, runner):
    state = AppState(AppConfig(), adapter, runner=runner, clipboard=lambda text: False)
    inspector = TextInspector(state, "containers", "c1", "web")
    inspector.handle_key("y", "y")
    assert state.flash.level == ERROR


# --- metrics ---

def test_metrics_tick_error_is_skipped(state, adapter):
    adapter.stats = [StreamError("timeout"), STATS]
    inspector = MetricsInspector(state, "containers", "c1", "web")

    assert not inspector.tick()
    assert inspector.skipped_ticks == 1
    assert inspector.render(80, 24) == ["Waiting for stats..."]

    assert inspector.tick()
    assert inspector.engine.snapshot().ticks == 1
    assert state.dispatcher.pending() == 1


def test_metrics_text_mode(state, adapter):
    adapter.stats = [STATS]
    inspector = MetricsInspector(state, "containers", "c1", "web")
    inspector.tick()

    assert inspector.title == "Stats(web) [graph]"
    assert inspector.handle_key("m", "m")
    assert inspector.title == "Stats(web) [text]"
    lines = inspector.render(80, 50)
    assert lines[0] == "{"
    assert any('"memory_stats"' in line for line in lines)


def test_metrics_open_schedules_poller_and_close_stops_it(state):
    inspector = MetricsInspector(state, "containers", "c1", "web")
    inspector.open()
    assert [name for name, _ in state.runner.jobs] == ["metrics"]
    inspector.close()
    # The poller returns at once after close.
    state.runner.run_all()
    assert inspector.closed


def test_metrics_unexpected_error_skips_tick(state, adapter):
    adapter.stats = [ValueError("malformed stats")]
    inspector = MetricsInspector(state, "containers", "c1", "web")
    assert not inspector.tick()
    assert inspector.skipped_ticks == 1


def test_metrics_text_mode_scrolls(state, adapter):
    adapter.stats = [STATS]
    inspector = MetricsInspector(state, "containers", "c1", "web")
    inspector.tick()
    inspector.toggle_mode()

    full = inspector.render(80, 100)
    assert inspector.handle_key("down")
    assert inspector.render(80, 3) == full[1:4]

    inspector.handle_key("pagedown")
    inspector.handle_key("pagedown")
    assert inspector.render(80, 3) == full[-3:]

    inspector.handle_key("home")
    assert inspector.render(80, 3) == full[:3]


def test_metrics_graph_mode_ignores_scroll(state, adapter):
    inspector = MetricsInspector(state, "containers", "c1", "web")
    assert not inspector.handle_key("down")
