"""
Per-kind resource table state.

A ResourceView owns everything the table for one resource kind needs between
refreshes: the last snapshot, the visible rows after scope/filter/sort, the
sort column and direction, the multi-selection, pending action labels and the
cursor.

Fetch lifecycle:
  IDLE -> FETCHING -> (APPLYING | ERROR) -> IDLE

Only one fetch may be in flight per view; ``begin_fetch()`` returns False
while one is outstanding so the caller drops the request instead of queueing
it.

Thread Safety:
  - Views are touched only from the render thread (the dispatcher drains
    background results there), so they carry no lock.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from .model import HEADERS, STATUS_COLUMN, Resource
from .scope import Scope, relation_matches
from .sorting import row_sort_key

logger = logging.getLogger(__name__)


class FetchState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    ERROR = "error"


@dataclass
class RenderRow:
    id: str
    cells: List[str]
    selected: bool = False
    pending: Optional[str] = None
    cursor: bool = False


@dataclass
class RenderTable:
    kind: str
    headers: List[str]
    rows: List[RenderRow]
    selected_count: int = 0
    error: Optional[str] = None


class ResourceView:
    def __init__(self, kind: str, headers: Optional[Sequence[str]] = None) -> None:
        self.kind = kind
        self.headers: List[str] = list(headers if headers is not None else HEADERS[kind])
        self.rows: List[Resource] = []
        self.user_filter = ""
        self.sort_column = 0
        self.sort_ascending = True
        self.selected_ids: Set[str] = set()
        self.pending_by_id: Dict[str, str] = {}
        self.cursor = 0
        self.state = FetchState.IDLE
        self.last_error: Optional[str] = None
        self.version = 0
        self._snapshot: List[Resource] = []
        self._scope: Optional[Scope] = None

    def _touch(self) -> None:
        self.version += 1

    # --- fetch lifecycle ---

    @property
    def in_flight(self) -> bool:
        return self.state == FetchState.FETCHING

    def begin_fetch(self) -> bool:
        if self.state == FetchState.FETCHING:
            return False
        self.state = FetchState.FETCHING
        return True

    def discard_fetch(self) -> None:
        """Forget an outstanding fetch whose result will not be applied."""
        self.state = FetchState.IDLE

    def fail_fetch(self, message: str) -> None:
        self.state = FetchState.ERROR
        self.last_error = message
        self._touch()
        self.state = FetchState.IDLE

    def apply_fetch(self, snapshot: Sequence[Resource], scope: Optional[Scope]) -> None:
        self.state = FetchState.APPLYING
        self.last_error = None
        self.update(snapshot, scope)
        self.state = FetchState.IDLE

    # --- pipeline ---

    def update(self, snapshot: Sequence[Resource], scope: Optional[Scope] = None) -> None:
        """Apply scope relation, user filter and sort to ``snapshot``."""
        self._snapshot = list(snapshot)
        self._scope = scope
        self._rebuild()

    def _rebuild(self) -> None:
        current_id = self.current_id()
        items = [r for r in self._snapshot if relation_matches(self._scope, r)]

        if self.user_filter:
            needle = self.user_filter.lower()
            items = [r for r in items if needle in " ".join(r.cells()).lower()]

        column = self.sort_column
        items = sorted(items, key=lambda r: row_sort_key(r.cells(), column),
                       reverse=not self.sort_ascending)

        self.rows = items
        self._restore_cursor(current_id)
        self._touch()

    def _restore_cursor(self, current_id: Optional[str]) -> None:
        if current_id is not None:
            for idx, item in enumerate(self.rows):
                if item.id == current_id:
                    self.cursor = idx
                    return
        self.cursor = max(0, min(self.cursor, len(self.rows) - 1))

    @property
    def scope(self) -> Optional[Scope]:
        return self._scope

    def set_scope(self, scope: Optional[Scope]) -> None:
        self._scope = scope
        self.cursor = 0
        self._rebuild()

    def set_filter(self, text: str) -> None:
        self.user_filter = text
        self._rebuild()

    def cycle_sort(self, delta: int = 1) -> None:
        self.sort_column = (self.sort_column + delta) % len(self.headers)
        self._rebuild()

    def toggle_sort_order(self) -> None:
        self.sort_ascending = not self.sort_ascending
        self._rebuild()

    # --- cursor ---

    def current(self) -> Optional[Resource]:
        if 0 <= self.cursor < len(self.rows):
            return self.rows[self.cursor]
        return None

    def current_id(self) -> Optional[str]:
        item = self.current()
        return item.id if item is not None else None

    def move_cursor(self, delta: int) -> None:
        if not self.rows:
            self.cursor = 0
            return
        new_cursor = max(0, min(self.cursor + delta, len(self.rows) - 1))
        if new_cursor != self.cursor:
            self.cursor = new_cursor
            self._touch()

    def focus(self, resource_id: str) -> bool:
        for idx, item in enumerate(self.rows):
            if item.id == resource_id:
                self.cursor = idx
                self._touch()
                return True
        return False

    def cursor_home(self) -> None:
        self.move_cursor(-len(self.rows))

    def cursor_end(self) -> None:
        self.move_cursor(len(self.rows))

    # --- selection ---

    def toggle_selection(self, resource_id: Optional[str] = None) -> None:
        if resource_id is None:
            resource_id = self.current_id()
        if resource_id is None:
            return
        if resource_id in self.selected_ids:
            self.selected_ids.discard(resource_id)
        else:
            self.selected_ids.add(resource_id)
        self._touch()

    def select_all(self) -> None:
        self.selected_ids.update(r.id for r in self.rows)
        self._touch()

    def clear_selection(self) -> None:
        if self.selected_ids:
            self.selected_ids.clear()
            self._touch()

    def target_ids(self) -> List[str]:
        """IDs an action applies to: the selection if any, else the cursor row."""
        if self.selected_ids:
            visible = [r.id for r in self.rows if r.id in self.selected_ids]
            hidden = sorted(self.selected_ids.difference(visible))
            return visible + hidden
        current = self.current_id()
        return [current] if current is not None else []

    def find(self, resource_id: str) -> Optional[Resource]:
        for item in self._snapshot:
            if item.id == resource_id:
                return item
        return None

    # --- pending ---

    def set_pending(self, resource_id: str, label: str) -> None:
        self.pending_by_id[resource_id] = label
        self._touch()

    def clear_pending(self, resource_id: str) -> None:
        if self.pending_by_id.pop(resource_id, None) is not None:
            self._touch()

    # --- rendering ---

    def render(self) -> RenderTable:
        headers = []
        for idx, title in enumerate(self.headers):
            if idx == self.sort_column:
                title += " ↑" if self.sort_ascending else " ↓"
            headers.append(title)

        status_col = STATUS_COLUMN.get(self.kind)
        rows = []
        for idx, item in enumerate(self.rows):
            cells = item.cells()
            pending = self.pending_by_id.get(item.id)
            if pending and status_col is not None and status_col < len(cells):
                cells[status_col] = f"{pending}..."
            rows.append(RenderRow(
                id=item.id,
                cells=cells,
                selected=item.id in self.selected_ids,
                pending=pending,
                cursor=idx == self.cursor,
            ))
        return RenderTable(
            kind=self.kind,
            headers=headers,
            rows=rows,
            selected_count=len(self.selected_ids),
            error=self.last_error,
        )
