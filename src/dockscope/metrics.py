"""
Live container metrics: parsing, rate computation, history and charts.

This module turns the raw Docker stats document into time series for the
metrics inspector.

Features:
- MetricsSample: cumulative counters parsed from one stats document
- RateSample: per-tick deltas, clamped to zero on counter resets
- RingBuffer: fixed-capacity history per series
- MetricsEngine: lock-guarded tick ingestion and copy-out snapshots
- ChartRenderer: sparklines and scaled block graphs

Architecture:
- The poller thread calls ``MetricsEngine.ingest()`` once per tick.
- The render thread calls ``MetricsEngine.snapshot()``, which copies all
  series under the lock; drawing happens on the copy, outside the lock.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .formatting import BYTE_UNITS

logger = logging.getLogger(__name__)

CPU = "cpu"
MEM = "mem"
NET_RX = "net_rx"
NET_TX = "net_tx"
DISK_READ = "disk_read"
DISK_WRITE = "disk_write"

SERIES = (CPU, MEM, NET_RX, NET_TX, DISK_READ, DISK_WRITE)


class RingBuffer:
    """Fixed-capacity float history; pushing onto a full buffer evicts the oldest."""

    def __init__(self, capacity: int = 120) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._data: deque = deque(maxlen=capacity)

    def push(self, value: float) -> None:
        self._data.append(float(value))

    def values(self) -> List[float]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)


@dataclass(frozen=True)
class MetricsSample:
    cpu_total: int = 0
    cpu_system: int = 0
    online_cpus: int = 1
    mem_usage: int = 0
    mem_limit: int = 0
    net_rx: int = 0
    net_tx: int = 0
    disk_read: int = 0
    disk_write: int = 0

    @classmethod
    def from_stats(cls, stats: Dict[str, Any]) -> "MetricsSample":
        cpu_stats = stats.get('cpu_stats') or {}
        cpu_usage = cpu_stats.get('cpu_usage') or {}
        online_cpus = cpu_stats.get('online_cpus') or len(cpu_usage.get('percpu_usage') or []) or 1

        memory = stats.get('memory_stats') or {}

        net_rx = net_tx = 0
        for iface in (stats.get('networks') or {}).values():
            net_rx += iface.get('rx_bytes', 0)
            net_tx += iface.get('tx_bytes', 0)

        disk_read = disk_write = 0
        blkio = (stats.get('blkio_stats') or {}).get('io_service_bytes_recursive') or []
        for entry in blkio:
            op = str(entry.get('op', '')).lower()
            if op == 'read':
                disk_read += entry.get('value', 0)
            elif op == 'write':
                disk_write += entry.get('value', 0)

        return cls(
            cpu_total=cpu_usage.get('total_usage', 0),
            cpu_system=cpu_stats.get('system_cpu_usage', 0),
            online_cpus=online_cpus,
            mem_usage=memory.get('usage', 0),
            mem_limit=memory.get('limit', 0),
            net_rx=net_rx,
            net_tx=net_tx,
            disk_read=disk_read,
            disk_write=disk_write,
        )

    @property
    def mem_percent(self) -> float:
        if self.mem_limit <= 0:
            return 0.0
        return self.mem_usage / self.mem_limit * 100.0


@dataclass(frozen=True)
class RateSample:
    net_rx_rate: float = 0.0
    net_tx_rate: float = 0.0
    disk_read_rate: float = 0.0
    disk_write_rate: float = 0.0

    @classmethod
    def between(cls, previous: MetricsSample, current: MetricsSample) -> "RateSample":
        # Counters reset when a container restarts; a negative delta reads as 0.
        return cls(
            net_rx_rate=max(0, current.net_rx - previous.net_rx),
            net_tx_rate=max(0, current.net_tx - previous.net_tx),
            disk_read_rate=max(0, current.disk_read - previous.disk_read),
            disk_write_rate=max(0, current.disk_write - previous.disk_write),
        )


def cpu_percent(previous: MetricsSample, current: MetricsSample) -> float:
    cpu_delta = current.cpu_total - previous.cpu_total
    system_delta = current.cpu_system - previous.cpu_system
    if system_delta <= 0 or cpu_delta <= 0:
        return 0.0
    return (cpu_delta / system_delta) * current.online_cpus * 100.0


@dataclass
class MetricsSnapshot:
    """Render-side copy of the engine state."""
    history: Dict[str, List[float]]
    cpu: float = 0.0
    mem_usage: int = 0
    mem_limit: int = 0
    mem_percent: float = 0.0
    rates: RateSample = field(default_factory=RateSample)
    raw: Optional[Dict[str, Any]] = None
    ticks: int = 0


class MetricsEngine:
    """
    Per-inspector metrics state.

    One lock guards the ring buffers, the previous sample and the last raw
    document; ``ingest`` is called by the poller and ``snapshot`` by the
    renderer.
    """

    def __init__(self, capacity: int = 120) -> None:
        self._lock = threading.Lock()
        self.history: Dict[str, RingBuffer] = {name: RingBuffer(capacity) for name in SERIES}
        self._previous: Optional[MetricsSample] = None
        self._first_sample = True
        self._cpu = 0.0
        self._rates = RateSample()
        self._current = MetricsSample()
        self._raw: Optional[Dict[str, Any]] = None
        self._ticks = 0

    def ingest(self, raw: Dict[str, Any]) -> None:
        sample = MetricsSample.from_stats(raw)
        with self._lock:
            self._raw = raw
            self._current = sample
            self._ticks += 1
            self.history[MEM].push(sample.mem_percent)

            if self._first_sample:
                self._first_sample = False
                self._previous = sample
                self._cpu = 0.0
                return

            previous = self._previous
            self._cpu = cpu_percent(previous, sample)
            self._rates = RateSample.between(previous, sample)
            self._previous = sample

            self.history[CPU].push(self._cpu)
            self.history[NET_RX].push(self._rates.net_rx_rate)
            self.history[NET_TX].push(self._rates.net_tx_rate)
            self.history[DISK_READ].push(self._rates.disk_read_rate)
            self.history[DISK_WRITE].push(self._rates.disk_write_rate)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                history={name: buf.values() for name, buf in self.history.items()},
                cpu=self._cpu,
                mem_usage=self._current.mem_usage,
                mem_limit=self._current.mem_limit,
                mem_percent=self._current.mem_percent,
                rates=self._rates,
                raw=self._raw,
                ticks=self._ticks,
            )


def select_unit(max_value: float) -> Tuple[float, str]:
    """Pick the largest base-1024 unit that keeps ``max_value`` >= 1."""
    divisor = 1.0
    for unit in BYTE_UNITS:
        if max_value < divisor * 1024 or unit == BYTE_UNITS[-1]:
            return divisor, unit
        divisor *= 1024
    return divisor, BYTE_UNITS[-1]


def shared_unit(*series: Sequence[float]) -> Tuple[float, str]:
    """One unit for several series, chosen from the larger series' maximum."""
    peak = max((max(s) for s in series if s), default=0.0)
    return select_unit(peak)


class ChartRenderer:
    """Generates text charts for the metrics panels."""

    BLOCKS = "▁▂▃▄▅▆▇█"

    @staticmethod
    def sparkline(values: List[float], width: int = 40, max_value: Optional[float] = None) -> str:
        """Generate a sparkline from the most recent ``width`` values."""
        if width <= 0:
            return ""
        values = values[-width:]
        if not values:
            return " " * width
        top = max_value if max_value is not None else max(values)
        chars = ChartRenderer.BLOCKS
        result = []
        for value in values:
            if top <= 0:
                result.append(" ")
                continue
            normalized = max(0.0, min(1.0, value / top))
            result.append(chars[int(normalized * (len(chars) - 1))])
        return ''.join(result).rjust(width)

    @staticmethod
    def graph(values: List[float], width: int, height: int, max_value: Optional[float] = None) -> List[str]:
        """
        Generate a block graph ``height`` rows tall, newest sample on the right.

        Each column is filled bottom-up with full blocks and one partial block.
        """
        if width <= 0 or height <= 0:
            return []
        values = values[-width:]
        top = max_value if max_value is not None else (max(values) if values else 0.0)
        chars = ChartRenderer.BLOCKS
        steps = len(chars)
        columns = []
        for value in values:
            level = 0 if top <= 0 else int(round(max(0.0, min(1.0, value / top)) * height * steps))
            columns.append(level)

        rows = []
        for row in range(height - 1, -1, -1):
            line = []
            for level in columns:
                filled = level - row * steps
                if filled >= steps:
                    line.append(chars[-1])
                elif filled > 0:
                    line.append(chars[filled - 1])
                else:
                    line.append(" ")
            rows.append(''.join(line).rjust(width))
        return rows


def _panel(title: str, body: List[str], width: int) -> List[str]:
    return [title[:width]] + [line[:width] for line in body]


# Below this many rows each panel collapses to a title and a sparkline.
COMPACT_HEIGHT = 12


def render_panels(snapshot: MetricsSnapshot, width: int, height: int, interval: float = 1.0) -> List[str]:
    """
    Lay out CPU, Memory, Network and Disk panels for the given size.

    Net and Disk each plot two series on a shared byte unit. Their history
    holds per-tick deltas, shown here as per-second rates using ``interval``.
    """
    width = max(width, 10)
    per_second = 1.0 / interval if interval > 0 else 1.0
    history = snapshot.history
    compact = height < COMPACT_HEIGHT
    panel_height = max(height // 4, 3)
    graph_height = max(panel_height - 1, 1)
    half = max(graph_height // 2, 1)

    cpu_top = max(history[CPU] + [100.0])
    cpu_title = f"CPU {snapshot.cpu:.1f}%"
    if compact:
        lines = _panel(cpu_title, [ChartRenderer.sparkline(history[CPU], width, cpu_top)], width)
    else:
        lines = _panel(cpu_title, ChartRenderer.graph(history[CPU], width, graph_height, cpu_top), width)

    mem_title = f"Memory {snapshot.mem_percent:.1f}%"
    if snapshot.mem_limit:
        divisor, unit = select_unit(snapshot.mem_limit)
        mem_title += f" ({snapshot.mem_usage / divisor:.1f} / {snapshot.mem_limit / divisor:.1f} {unit})"
    if compact:
        lines += _panel(mem_title, [ChartRenderer.sparkline(history[MEM], width, 100.0)], width)
    else:
        lines += _panel(mem_title, ChartRenderer.graph(history[MEM], width, graph_height, 100.0), width)

    for title, (a_name, a_label), (b_name, b_label) in (
        ("Network", (NET_RX, "rx"), (NET_TX, "tx")),
        ("Disk", (DISK_READ, "read"), (DISK_WRITE, "write")),
    ):
        a = [v * per_second for v in history[a_name]]
        b = [v * per_second for v in history[b_name]]
        divisor, unit = shared_unit(a, b)
        peak = max(a + b + [0.0])
        head = (f"{title} {a_label} {(a[-1] if a else 0) / divisor:.1f} {unit}/s"
                f"  {b_label} {(b[-1] if b else 0) / divisor:.1f} {unit}/s")
        if compact:
            left = (width - 1) // 2
            body = [ChartRenderer.sparkline(a, left, peak or None) + " "
                    + ChartRenderer.sparkline(b, width - left - 1, peak or None)]
        else:
            body = (ChartRenderer.graph(a, width, half, peak or None)
                    + ChartRenderer.graph(b, width, half, peak or None))
        lines += _panel(head, body, width)
    return lines
