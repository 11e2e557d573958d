"""Textual-based UI for dockscope."""

from __future__ import annotations

import subprocess
from typing import Any, Optional

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Header, Input, Static
from rich.markup import escape as rich_escape

from .controller import Controller, Frame
from .state import ERROR, PENDING, SUCCESS
from .view import RenderTable

FLASH_STYLES = {
    ERROR: "bold red",
    PENDING: "yellow",
    SUCCESS: "green",
}


class ConfirmScreen(ModalScreen[Any]):
    def __init__(self, question: str, allow_force: bool = False) -> None:
        super().__init__()
        self.question = question
        self.allow_force = allow_force

    def compose(self) -> ComposeResult:
        hint = "[Enter/Y] Yes    [Esc/N] No"
        if self.allow_force:
            hint += "    [F] Force"
        yield Vertical(
            Static("Confirm", classes="modal_title"),
            Static(self.question, classes="modal_body", markup=False),
            Static(hint, classes="modal_hint", markup=False),
            id="modal",
        )

    async def on_key(self, event: events.Key) -> None:
        if event.key in ("enter", "y", "Y"):
            self.dismiss(True)
        elif self.allow_force and event.key in ("f", "F"):
            self.dismiss("force")
        elif event.key in ("escape", "n", "N"):
            self.dismiss(False)
        event.stop()


class InputScreen(ModalScreen[Optional[str]]):
    def __init__(self, prompt: str) -> None:
        super().__init__()
        self.prompt = prompt

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static("Input", classes="modal_title"),
            Static(self.prompt, classes="modal_body", markup=False),
            Input(placeholder="Type value and press Enter", id="input_value"),
            Static("[Esc] Cancel", classes="modal_hint", markup=False),
            id="modal",
        )

    def on_mount(self) -> None:
        self.query_one("#input_value", Input).focus()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        value = event.value.strip()
        self.dismiss(value or None)

    async def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)


class ResultScreen(ModalScreen[None]):
    """Lists every failed ID of an action run."""

    def __init__(self, title: str, lines: list[str]) -> None:
        super().__init__()
        self.result_title = title
        self.lines = lines

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static(self.result_title, classes="modal_title", markup=False),
            Static("\n".join(self.lines), classes="modal_body", markup=False),
            Static("[Enter/Esc] Close", classes="modal_hint", markup=False),
            id="modal",
        )

    async def on_key(self, event: events.Key) -> None:
        if event.key in ("enter", "escape"):
            self.dismiss(None)
        event.stop()


class HelpScreen(ModalScreen[None]):
    """Lists the configured key bindings."""

    def __init__(self, title: str, lines: list[str]) -> None:
        super().__init__()
        self.help_title = title
        self.lines = lines

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static(self.help_title, classes="modal_title", markup=False),
            Static("\n".join(self.lines), classes="modal_body", markup=False),
            Static("[Esc/?] Close", classes="modal_hint", markup=False),
            id="modal",
        )

    async def on_key(self, event: events.Key) -> None:
        if event.key in ("escape", "enter", "q") or event.character == "?":
            self.dismiss(None)
        event.stop()


def format_table(table: RenderTable, width: int, height: int) -> str:
    """Lay out a render table as rich markup, keeping the cursor row visible."""
    widths = [len(h) for h in table.headers]
    for row in table.rows:
        for idx, cell in enumerate(row.cells[:len(widths)]):
            widths[idx] = max(widths[idx], len(cell))
    widths = [min(w, 40) for w in widths]

    def line(cells: list[str]) -> str:
        parts = [cell[:w].ljust(w) for cell, w in zip(cells, widths)]
        return "  ".join(parts)[:max(width - 2, 0)]

    out = ["[bold]  " + rich_escape(line(table.headers)) + "[/bold]"]
    visible = max(height - 1, 1)
    cursor = next((i for i, r in enumerate(table.rows) if r.cursor), 0)
    start = max(0, cursor - visible + 1)
    for row in table.rows[start:start + visible]:
        marker = "*" if row.selected else " "
        text = rich_escape(marker + " " + line(row.cells))
        if row.pending:
            text = f"[yellow]{text}[/yellow]"
        elif row.selected:
            text = f"[cyan]{text}[/cyan]"
        if row.cursor:
            text = f"[reverse]{text}[/reverse]"
        out.append(text)
    if not table.rows:
        out.append("  (no items)")
    return "\n".join(out)


class DockscopeApp(App[None]):
    TITLE = "dockscope"
    SUB_TITLE = "Container dashboard"
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
      layout: vertical;
    }

    #host {
      height: 1;
      padding: 0 1;
      background: $panel;
      color: $text-muted;
    }

    #crumbs {
      height: 1;
      padding: 0 1;
      background: $surface;
      color: $text;
    }

    #body {
      height: 1fr;
      border: round $accent;
      padding: 0 1;
      overflow: auto;
    }

    #input {
      height: 1;
      padding: 0 1;
    }

    #status {
      height: 1;
      padding: 0 1;
      background: $panel;
      color: $text;
    }

    #modal {
      width: 70;
      height: auto;
      border: round $accent;
      background: $surface;
      padding: 1 2;
      align: center middle;
    }

    .modal_title {
      text-style: bold;
      margin-bottom: 1;
    }

    .modal_body {
      margin-bottom: 1;
    }

    .modal_hint {
      color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    def __init__(self, controller: Controller) -> None:
        super().__init__()
        self.controller = controller
        self._rendered_version = -1
        self._modal_open = False

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("", id="host", markup=False)
        yield Static("", id="crumbs", markup=False)
        yield Static("", id="body")
        yield Static("", id="input", markup=False)
        yield Static("", id="status")

    def on_mount(self) -> None:
        self.controller.start()
        self.set_interval(0.1, self._tick)
        self.set_interval(self.controller.config.ui.host_interval, self.controller.refresh_host)
        self._render()

    def on_unmount(self) -> None:
        self.controller.shutdown()

    def on_resize(self, event: events.Resize) -> None:
        self._render()

    def _tick(self) -> None:
        self.controller.pump()
        if not self.controller.state.running:
            self.exit()
            return
        self._handle_prompt()
        # Expiring a flash bumps the version.
        self.controller.state.current_flash()
        if self.controller.state.version != self._rendered_version:
            self._render()

    def _handle_prompt(self) -> None:
        state = self.controller.state
        if self._modal_open:
            return
        if state.prompt is not None:
            prompt = state.prompt
            if prompt.kind == "external":
                returncode = self.controller.run_external(lambda: self._run_external(prompt.argv))
                self.controller.answer_prompt(returncode)
                return
            self._modal_open = True
            if prompt.kind == "confirm":
                screen = ConfirmScreen(prompt.message, allow_force=prompt.allow_force)
            elif prompt.kind == "help":
                screen = HelpScreen(prompt.message, prompt.lines or [])
            else:
                screen = InputScreen(prompt.message)
            self.push_screen(screen, self._on_prompt_answer)
        elif state.action_result is not None:
            frame = self.controller.frame()
            self._modal_open = True
            self.push_screen(ResultScreen(frame.result_title, frame.result_lines), self._on_result_closed)

    def _on_prompt_answer(self, answer: Any) -> None:
        self._modal_open = False
        self.controller.answer_prompt(answer)
        self._render()

    def _on_result_closed(self, _: Any = None) -> None:
        self._modal_open = False
        self.controller.acknowledge_result()
        self._render()

    def _run_external(self, cmd: list[str]) -> int:
        try:
            with self.suspend():
                return subprocess.call(cmd)
        except Exception as exc:
            self.controller.state.set_flash(f"Error: {exc}", ERROR)
            return 1

    def _render(self) -> None:
        body = self.query_one("#body", Static)
        width = max(body.size.width, 20)
        height = max(body.size.height, 5)
        frame: Frame = self.controller.frame(width, height)
        self._rendered_version = self.controller.state.version

        if frame.inspector_title:
            self.sub_title = frame.inspector_title
            body.update(rich_escape("\n".join(frame.inspector_lines)))
            hints = frame.inspector_hints
        else:
            self.sub_title = frame.title
            body.update(format_table(frame.table, width, height))
            hints = "[/] Filter  [:] Command  [Space] Select  [Enter] Open  [Esc] Back  [?] Help"

        self.query_one("#host", Static).update(frame.header)
        self.query_one("#crumbs", Static).update(frame.breadcrumb)
        self.query_one("#input", Static).update(frame.input_line)

        status = self.query_one("#status", Static)
        if frame.flash is not None:
            style = FLASH_STYLES.get(frame.flash.level, "")
            text = rich_escape(frame.flash.text)
            status.update(f"[{style}]{text}[/{style}]" if style else text)
        else:
            status.update(rich_escape(hints))

    async def on_key(self, event: events.Key) -> None:
        if len(self.screen_stack) > 1:
            return
        if self.controller.submit_key(event.key, event.character):
            event.stop()
            if not self.controller.state.running:
                self.exit()
                return
            self._render()


def run(controller: Controller) -> None:
    app = DockscopeApp(controller)
    app.run()
