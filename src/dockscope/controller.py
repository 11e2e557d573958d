"""
Controller: the engine's upward contract.

The surface (textual_app.py) talks to the engine only through this class:

  - frame(width, height): everything needed to paint one screen
  - submit_key(key, character): one key event
  - switch_view / drill_down / go_back: navigation
  - trigger_action(command, label, targets): run an action
  - answer_prompt / acknowledge_result: replies to modal questions
  - refresh_host: daemon summary for the header line

Everything here runs on the render thread.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .actions import LABELS, ActionExecutor, Command, choose_container_toggle, choose_pause_toggle
from .config import AppConfig, KeyBindings
from .errors import ActionError
from .formatting import format_bytes, short_id
from .inspectors import Inspector, LogInspector, MetricsInspector, TextInspector
from .model import (
    COMPOSE, CONTAINERS, IMAGES, NETWORKS, NODES, SECRETS, SERVICES, VOLUMES,
    ContainerInfo, ImageInfo, NodeInfo, Resource,
)
from .scheduler import RefreshScheduler
from .scope import CONTAINER_SCOPE, DRILL_DOWNS
from .state import ERROR, INFO, AppState, Flash, Prompt
from .view import RenderTable

logger = logging.getLogger(__name__)

COMMAND_ALIASES = {
    "c": CONTAINERS, "containers": CONTAINERS,
    "i": IMAGES, "images": IMAGES,
    "v": VOLUMES, "volumes": VOLUMES,
    "n": NETWORKS, "networks": NETWORKS,
    "s": SERVICES, "services": SERVICES,
    "no": NODES, "nodes": NODES,
    "cp": COMPOSE, "compose": COMPOSE,
    "secrets": SECRETS,
}

REMOVABLE = {CONTAINERS, IMAGES, VOLUMES, NETWORKS, SERVICES, NODES, COMPOSE, SECRETS}
FORCE_REMOVABLE = {CONTAINERS, IMAGES, VOLUMES, NODES}
PRUNABLE = {CONTAINERS, IMAGES, VOLUMES, NETWORKS}
LOGGABLE = {CONTAINERS, SERVICES, COMPOSE}
CREATABLE = {VOLUMES, NETWORKS, SECRETS}


def subject_name(resource: Resource) -> str:
    if isinstance(resource, ImageInfo):
        return resource.tags[0] if resource.tags else short_id(resource.id)
    if isinstance(resource, NodeInfo):
        return resource.hostname or short_id(resource.id)
    name = getattr(resource, "name", "")
    return name or short_id(resource.id)


def format_host(info: Optional[Dict[str, Any]]) -> str:
    if not info:
        return "host: connecting..."
    parts = [
        f"host: {info.get('name') or '-'}",
        f"docker {info.get('version') or '-'}",
        f"cpu {info.get('cpus', 0)}",
        f"mem {format_bytes(info.get('memory', 0))}",
        f"containers {info.get('running', 0)}/{info.get('containers', 0)}",
        f"images {info.get('images', 0)}",
    ]
    if info.get('swarm') not in (None, "", "inactive"):
        parts.append(f"swarm {info['swarm']}")
    if info.get('user'):
        parts.append(f"user {info['user']}")
    return " | ".join(parts)


def help_lines(config: AppConfig) -> List[str]:
    """One line per key binding, in declaration order."""
    return [
        f"{config.key(f.name):<12} {f.name.replace('_', ' ')}"
        for f in fields(KeyBindings)
    ]


@dataclass
class Frame:
    title: str
    breadcrumb: str
    table: RenderTable
    header: str = ""
    input_line: str = ""
    flash: Optional[Flash] = None
    inspector_title: str = ""
    inspector_lines: List[str] = field(default_factory=list)
    inspector_hints: str = ""
    result_title: str = ""
    result_lines: List[str] = field(default_factory=list)


class Controller:
    def __init__(self, state: AppState, scheduler: RefreshScheduler, executor: ActionExecutor) -> None:
        self.state = state
        self.scheduler = scheduler
        self.executor = executor
        self.input_mode: Optional[str] = None
        self.input_text = ""
        self._host_in_flight = False

    @classmethod
    def build(cls, config: AppConfig, adapter, **state_kwargs) -> "Controller":
        state = AppState(config, adapter, **state_kwargs)
        scheduler = RefreshScheduler(state)
        executor = ActionExecutor(state, scheduler)
        return cls(state, scheduler, executor)

    @property
    def config(self) -> AppConfig:
        return self.state.config

    @property
    def view(self):
        return self.state.current_view

    # --- lifecycle ---

    def start(self) -> None:
        self.scheduler.start()
        self.scheduler.trigger()
        self.refresh_host()

    def shutdown(self) -> None:
        if self.state.inspector is not None:
            self.close_inspector()
        self.scheduler.stop()

    def refresh_host(self) -> bool:
        """Fetch the daemon summary for the header; skipped while one is in flight."""
        if self._host_in_flight:
            return False
        self._host_in_flight = True
        adapter = self.state.adapter
        post = self.state.dispatcher.post

        def fetch() -> None:
            try:
                info = adapter.host_info()
            except Exception as e:
                logger.debug(f"Host info unavailable: {e}")
                post(self._host_loaded, None)
                return
            post(self._host_loaded, info)

        self.state.runner(fetch, name="host-info")
        return True

    def _host_loaded(self, info: Optional[Dict[str, Any]]) -> None:
        self._host_in_flight = False
        if info is not None:
            self.state.host_info = info
            self.state.touch()

    def pump(self) -> int:
        """Apply queued background results; called by the render loop."""
        return self.state.dispatcher.drain()

    # --- navigation ---

    def switch_view(self, kind: str, clear_scope: bool = True) -> None:
        if kind not in self.state.views:
            self.state.set_flash(f"Unknown view: {kind}", ERROR)
            return
        if self.state.inspector is not None:
            self.close_inspector()
        if clear_scope:
            self.state.scopes.clear()
        self.state.page = kind
        view = self.state.views[kind]
        view.user_filter = ""
        view.set_scope(self.state.scopes.top)
        self.state.touch()
        self.scheduler.trigger()

    def drill_down(self) -> bool:
        target = DRILL_DOWNS.get(self.state.page)
        item = self.view.current()
        if target is None or item is None:
            return False
        scope_kind, target_view = target
        self.state.scopes.push(scope_kind, item.id, subject_name(item), self.state.page)
        self.switch_view(target_view, clear_scope=False)
        return True

    def drill_container(self, target_view: str) -> bool:
        """Show the volumes or networks of the highlighted container."""
        item = self.view.current()
        if self.state.page != CONTAINERS or item is None:
            return False
        self.state.scopes.push(CONTAINER_SCOPE, item.id, subject_name(item), CONTAINERS)
        self.switch_view(target_view, clear_scope=False)
        return True

    def go_back(self) -> bool:
        popped = self.state.scopes.pop()
        if popped is None:
            return False
        self.switch_view(popped.origin_view, clear_scope=False)
        self.state.views[popped.origin_view].focus(popped.value)
        return True

    def escape(self) -> bool:
        view = self.view
        if view.user_filter:
            view.set_filter("")
            return True
        if view.selected_ids:
            view.clear_selection()
            return True
        return self.go_back()

    def run_command(self, text: str) -> None:
        name = text.strip().lower()
        if not name:
            return
        if name in ("q", "quit"):
            self.state.running = False
            return
        kind = COMMAND_ALIASES.get(name)
        if kind is None:
            self.state.set_flash(f"Unknown command: {name}", ERROR)
            return
        self.switch_view(kind)

    # --- actions ---

    def trigger_action(self, command: Union[Command, Callable[[str], None]], label: str,
                       targets: Optional[Sequence[str]] = None):
        view = self.view
        if targets is None:
            targets = view.target_ids()
        if isinstance(command, Command):
            command = command.bind(self.state.adapter)
        return self.executor.execute(command, label, targets, view)

    def _per_container(self, choose: Callable[[ContainerInfo], str], fallback: str):
        view = self.view
        targets = view.target_ids()
        verbs = {}
        for resource_id in targets:
            item = view.find(resource_id)
            verbs[resource_id] = choose(item) if isinstance(item, ContainerInfo) else fallback
        distinct = set(verbs.values())
        label = LABELS[distinct.pop()] if len(distinct) == 1 else "Updating"
        adapter = self.state.adapter

        def command(resource_id: str) -> None:
            adapter.mutate(CONTAINERS, resource_id, verbs[resource_id])

        return self.trigger_action(command, label, targets)

    def start_or_restart(self):
        page = self.state.page
        if page == CONTAINERS:
            return self._per_container(choose_container_toggle, "restart")
        if page == COMPOSE:
            return self.trigger_action(Command(COMPOSE, "restart"), LABELS["restart"])
        self.state.set_flash(f"Restart is not available for {page}", ERROR)
        return None

    def stop(self):
        page = self.state.page
        if page in (CONTAINERS, COMPOSE):
            return self.trigger_action(Command(page, "stop"), LABELS["stop"])
        self.state.set_flash(f"Stop is not available for {page}", ERROR)
        return None

    def pause(self):
        page = self.state.page
        if page == CONTAINERS:
            return self._per_container(choose_pause_toggle, "pause")
        if page == COMPOSE:
            return self.trigger_action(Command(COMPOSE, "pause"), LABELS["pause"])
        self.state.set_flash(f"Pause is not available for {page}", ERROR)
        return None

    def request_remove(self) -> None:
        page = self.state.page
        targets = self.view.target_ids()
        if page not in REMOVABLE or not targets:
            self.state.set_flash("Nothing to remove", ERROR)
            return
        noun = targets[0][:12] if len(targets) == 1 else f"{len(targets)} {page}"
        message = f"Remove {noun}?"

        def on_answer(answer) -> None:
            if not answer:
                self.state.set_flash("Cancelled", INFO)
                return
            options = {"force": True} if answer == "force" and page in FORCE_REMOVABLE else {}
            self.trigger_action(Command(page, "remove", options), LABELS["remove"], targets)

        self._ask(Prompt(kind="confirm", message=message, on_answer=on_answer,
                         allow_force=page in FORCE_REMOVABLE))

    def request_prune(self) -> None:
        page = self.state.page
        if page not in PRUNABLE:
            self.state.set_flash(f"Prune is not available for {page}", ERROR)
            return
        adapter = self.state.adapter

        def on_answer(answer) -> None:
            if answer:
                self.executor.run_job(lambda: adapter.prune(page), f"Pruning {page}")

        self._ask(Prompt(kind="confirm", message=f"Prune unused {page}?", on_answer=on_answer))

    def request_scale(self) -> None:
        item = self.view.current()
        if self.state.page != SERVICES or item is None:
            self.state.set_flash("Scale is only available for services", ERROR)
            return
        targets = self.view.target_ids()

        def on_answer(answer) -> None:
            if answer is None:
                return
            try:
                replicas = int(str(answer).strip())
            except ValueError:
                replicas = -1
            if replicas < 0:
                self.state.set_flash(f"Invalid replica count: {answer}", ERROR)
                return
            self.trigger_action(Command(SERVICES, "scale", {"replicas": replicas}), LABELS["scale"], targets)

        self._ask(Prompt(kind="input", message=f"Replicas for {subject_name(item)}:", on_answer=on_answer))

    def request_shell(self) -> None:
        item = self.view.current()
        if self.state.page != CONTAINERS or item is None:
            self.state.set_flash("Shell is only available for containers", ERROR)
            return
        docker_cfg = self.config.docker
        argv = self.state.adapter.shell_command(item.id, docker_cfg.default_shell, docker_cfg.fallback_shell)

        def on_answer(returncode) -> None:
            if returncode:
                self.state.set_flash(f"Shell exited with status {returncode}", ERROR)

        self._ask(Prompt(kind="external", message=f"Shell in {subject_name(item)}",
                         on_answer=on_answer, argv=argv))

    def request_create(self) -> None:
        """Ask for a name (and for secrets, the data) and create a volume, network or secret."""
        page = self.state.page
        if page not in CREATABLE:
            self.state.set_flash(f"Create is not available for {page}", ERROR)
            return
        noun = page[:-1]
        adapter = self.state.adapter

        def create(name: str, **options) -> None:
            self.executor.run_job(lambda: adapter.create(page, name, **options), f"Creating {noun} {name}")

        def on_data(name: str, data) -> None:
            if data is None:
                self.state.set_flash("Cancelled", INFO)
                return
            create(name, data=str(data))

        def on_name(answer) -> None:
            name = str(answer or "").strip()
            if not name:
                self.state.set_flash("Cancelled", INFO)
                return
            if page == SECRETS:
                self._ask(Prompt(kind="input", message=f"Data for secret {name}:",
                                 on_answer=lambda data: on_data(name, data)))
                return
            create(name)

        self._ask(Prompt(kind="input", message=f"Name for new {noun}:", on_answer=on_name))

    def request_edit(self) -> None:
        item = self.view.current()
        if self.state.page != COMPOSE or item is None:
            self.state.set_flash("Edit is only available for compose projects", ERROR)
            return
        editor = self.config.docker.editor or os.environ.get("EDITOR") or "vi"
        try:
            argv = self.state.adapter.edit_command(item.id, editor)
        except ActionError as e:
            self.state.set_flash(str(e), ERROR)
            return

        def on_answer(returncode) -> None:
            if returncode:
                self.state.set_flash(f"Editor exited with status {returncode}", ERROR)
            else:
                self.scheduler.trigger()

        self._ask(Prompt(kind="external", message=f"Edit {item.id}", on_answer=on_answer, argv=argv))

    def show_help(self) -> None:
        self._ask(Prompt(kind="help", message="Key bindings", on_answer=lambda _: None,
                         lines=help_lines(self.config)))

    def _ask(self, prompt: Prompt) -> None:
        self.state.prompt = prompt
        self.state.touch()

    def answer_prompt(self, answer) -> None:
        prompt = self.state.prompt
        if prompt is None:
            return
        self.state.prompt = None
        self.state.touch()
        prompt.on_answer(answer)

    def run_external(self, run: Callable[[], int]) -> int:
        """Run an interactive program that owns the terminal, refresh paused."""
        self.scheduler.pause()
        try:
            return run()
        finally:
            self.scheduler.resume()

    def acknowledge_result(self) -> None:
        self.executor.acknowledge_result()

    # --- inspectors ---

    def open_inspector(self, inspector: Inspector) -> None:
        if self.state.inspector is not None:
            self.close_inspector()
        self.scheduler.suspend(inspector.page)
        self.state.inspector = inspector
        inspector.open()
        self.state.touch()

    def close_inspector(self) -> None:
        inspector = self.state.inspector
        if inspector is None:
            return
        inspector.close()
        self.scheduler.unsuspend(inspector.page)
        self.state.inspector = None
        self.state.touch()
        self.scheduler.trigger()

    def describe(self) -> None:
        item = self.view.current()
        if item is not None:
            self.open_inspector(TextInspector(self.state, self.state.page, item.id, subject_name(item)))

    def logs(self) -> None:
        item = self.view.current()
        if item is None:
            return
        if self.state.page not in LOGGABLE:
            self.state.set_flash(f"Logs are not available for {self.state.page}", ERROR)
            return
        self.open_inspector(LogInspector(self.state, self.state.page, item.id, subject_name(item)))

    def metrics(self) -> None:
        item = self.view.current()
        if self.state.page != CONTAINERS or item is None:
            self.state.set_flash("Stats are only available for containers", ERROR)
            return
        self.open_inspector(MetricsInspector(self.state, CONTAINERS, item.id, subject_name(item)))

    # --- input ---

    def _is(self, key: str, character: Optional[str], action: str) -> bool:
        binding = self.config.key(action)
        return self.config.is_key(key, action) or (character is not None and character == binding)

    def submit_key(self, key: str, character: Optional[str] = None) -> bool:
        """Handle one key event; returns True when it was consumed."""
        if self.state.prompt is not None:
            return False
        if self.state.action_result is not None:
            if key in ("enter", "escape"):
                self.acknowledge_result()
                return True
            return False
        if self.state.inspector is not None:
            return self._inspector_key(key, character)
        if self.input_mode is not None:
            return self._input_key(key, character)
        return self._view_key(key, character)

    def _inspector_key(self, key: str, character: Optional[str]) -> bool:
        inspector = self.state.inspector
        if self.config.is_key(key, "back") and not getattr(inspector, "editing_search", False):
            self.close_inspector()
            return True
        return inspector.handle_key(key, character)

    def _input_key(self, key: str, character: Optional[str]) -> bool:
        mode = self.input_mode
        if key == "escape":
            self.input_mode = None
            self.input_text = ""
            if mode == "filter":
                self.view.set_filter("")
        elif key == "enter":
            self.input_mode = None
            if mode == "command":
                self.run_command(self.input_text)
            self.input_text = ""
        elif key == "backspace":
            self.input_text = self.input_text[:-1]
            if mode == "filter":
                self.view.set_filter(self.input_text)
        elif character and character.isprintable():
            self.input_text += character
            if mode == "filter":
                self.view.set_filter(self.input_text)
        else:
            return False
        self.state.touch()
        return True

    def _view_key(self, key: str, character: Optional[str]) -> bool:
        view = self.view
        page_size = 10
        simple = {
            "up": lambda: view.move_cursor(-1),
            "down": lambda: view.move_cursor(1),
            "page_up": lambda: view.move_cursor(-page_size),
            "page_down": lambda: view.move_cursor(page_size),
            "home": view.cursor_home,
            "end": view.cursor_end,
            "select_toggle": view.toggle_selection,
            "select_all": view.select_all,
            "sort_next": lambda: view.cycle_sort(1),
            "sort_prev": lambda: view.cycle_sort(-1),
            "sort_order": view.toggle_sort_order,
            "back": self.escape,
            "enter": lambda: self.drill_down() or self.describe(),
            "describe": self.describe,
            "logs": self.logs,
            "metrics": self.metrics,
            "start_restart": self.start_or_restart,
            "stop": self.stop,
            "pause": self.pause,
            "remove": self.request_remove,
            "prune": self.request_prune,
            "scale": self.request_scale,
            "shell": self.request_shell,
            "volumes": lambda: self.drill_container(VOLUMES),
            "networks": lambda: self.drill_container(NETWORKS),
            "create": self.request_create,
            "edit": self.request_edit,
            "help": self.show_help,
        }

        if self._is(key, character, "filter"):
            self.input_mode = "filter"
            self.input_text = view.user_filter
            self.state.touch()
            return True
        if self._is(key, character, "command"):
            self.input_mode = "command"
            self.input_text = ""
            self.state.touch()
            return True

        for action, handler in simple.items():
            if self._is(key, character, action):
                # Page-specific keys fall through when they do not apply here.
                if action == "scale" and self.state.page != SERVICES:
                    continue
                if action == "shell" and self.state.page != CONTAINERS:
                    continue
                if action in ("volumes", "networks") and self.state.page != CONTAINERS:
                    continue
                if action == "create" and self.state.page not in CREATABLE:
                    continue
                if action == "edit" and self.state.page != COMPOSE:
                    continue
                handler()
                self.state.touch()
                return True
        return False

    # --- rendering ---

    def frame(self, width: int = 80, height: int = 24) -> Frame:
        state = self.state
        view = self.view
        title = f"{view.kind.upper()} ({len(view.rows)})"
        if view.selected_ids:
            title += f" [{len(view.selected_ids)} selected]"
        if self.input_mode == "filter":
            input_line = f"/{self.input_text}"
        elif self.input_mode == "command":
            input_line = f":{self.input_text}"
        else:
            input_line = ""

        frame = Frame(
            title=title,
            breadcrumb=state.scopes.breadcrumb_text(view.kind, view.user_filter),
            table=view.render(),
            header=format_host(state.host_info),
            input_line=input_line,
            flash=state.current_flash(),
        )
        inspector = state.inspector
        if inspector is not None:
            frame.inspector_title = inspector.title
            frame.inspector_lines = inspector.render(width, max(height, 1))
            frame.inspector_hints = inspector.hints()
        run = state.action_result
        if run is not None:
            frame.result_title = f"{run.label}: {len(run.failures)} of {len(run.target_ids)} failed"
            frame.result_lines = run.summary()
        return frame
