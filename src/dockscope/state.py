"""
Application state shared by the engine components.

AppState is constructed once at startup and passed by reference to the
scheduler, the action executor, the inspectors and the controller. It holds:

  - one ResourceView per kind
  - the scope stack and the frontmost page
  - the flash message, the open inspector, the pending action result and the
    pending prompt
  - the last daemon summary shown in the header
  - a version counter bumped on every change (for differential rendering)

Thread Safety:
  - Only the render thread mutates AppState. Background work reaches it
    through ``dispatcher.post()``.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .clipboard import copy_to_clipboard
from .config import AppConfig
from .dispatch import ThreadRunner, UiDispatcher
from .model import KINDS
from .scope import ScopeStack
from .view import ResourceView

INFO = "info"
PENDING = "pending"
SUCCESS = "success"
ERROR = "error"


@dataclass
class Flash:
    text: str
    level: str = INFO
    expires_at: float = 0.0


@dataclass
class Prompt:
    """A question the surface must answer before the engine continues."""
    kind: str  # "confirm", "input", "external" or "help"
    message: str
    on_answer: Callable[[Any], None]
    argv: Optional[list] = None
    allow_force: bool = False
    lines: Optional[list] = None


class AppState:
    def __init__(self, config: AppConfig, adapter, dispatcher: Optional[UiDispatcher] = None,
                 runner: Optional[Callable] = None, clock: Callable[[], float] = time.monotonic,
                 clipboard: Callable[[str], bool] = copy_to_clipboard) -> None:
        self.config = config
        self.adapter = adapter
        self.dispatcher = dispatcher or UiDispatcher()
        self.runner = runner or ThreadRunner()
        self.clock = clock
        self.clipboard = clipboard

        self.views: Dict[str, ResourceView] = {kind: ResourceView(kind) for kind in KINDS}
        self.scopes = ScopeStack()
        self.page = config.ui.default_view if config.ui.default_view in self.views else KINDS[0]

        self.flash: Optional[Flash] = None
        self.inspector = None
        self.action_result = None
        self.prompt: Optional[Prompt] = None
        self.host_info: Optional[Dict[str, Any]] = None
        self.running = True
        self._version = 0

    @property
    def version(self) -> int:
        return self._version + sum(v.version for v in self.views.values())

    def touch(self) -> None:
        self._version += 1

    @property
    def current_view(self) -> ResourceView:
        return self.views[self.page]

    def set_flash(self, text: str, level: str = INFO, seconds: Optional[float] = None) -> None:
        if seconds is None:
            seconds = self.config.ui.flash_seconds
            if level == ERROR:
                seconds += 2.0
        self.flash = Flash(text=text, level=level, expires_at=self.clock() + seconds)
        self.touch()

    def current_flash(self) -> Optional[Flash]:
        if self.flash is not None and self.flash.level != PENDING and self.clock() >= self.flash.expires_at:
            self.flash = None
            self.touch()
        return self.flash
