"""
Optimistic bulk action execution.

Protocol for one ActionRun:
  1. On the render thread, every target gets a pending label ("Stopping")
     and the table re-renders before any backend call is made.
  2. On a background thread, the command runs for each target strictly in
     order. A failure is recorded against its ID and the run continues.
  3. Back on the render thread, pending labels are cleared. A clean run
     clears the selection and flashes success; a run with failures is
     published as ``state.action_result`` for the result modal. Both refresh.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .model import ContainerInfo
from .state import ERROR, PENDING, SUCCESS, AppState
from .view import ResourceView

logger = logging.getLogger(__name__)


@dataclass
class Outcome:
    ok: bool
    message: str = ""


@dataclass
class ActionRun:
    label: str
    target_ids: List[str]
    outcomes: Dict[str, Outcome] = field(default_factory=dict)
    done: bool = False

    @property
    def failures(self) -> List[str]:
        return [i for i in self.target_ids if i in self.outcomes and not self.outcomes[i].ok]

    @property
    def succeeded(self) -> bool:
        return self.done and not self.failures

    def summary(self) -> List[str]:
        return [f"{i}: {self.outcomes[i].message}" for i in self.failures]


@dataclass(frozen=True)
class Command:
    """A single-ID mutation: ``adapter.mutate(kind, id, verb, **options)``."""
    kind: str
    verb: str
    options: Dict[str, Any] = field(default_factory=dict)

    def bind(self, adapter) -> Callable[[str], None]:
        def run(resource_id: str) -> None:
            adapter.mutate(self.kind, resource_id, self.verb, **self.options)
        return run


# verb -> progress label shown on pending rows
LABELS = {
    "start": "Starting",
    "stop": "Stopping",
    "restart": "Restarting",
    "pause": "Pausing",
    "unpause": "Unpausing",
    "remove": "Removing",
    "scale": "Scaling",
}


def choose_container_toggle(container: ContainerInfo) -> str:
    """Start stopped containers, restart everything else."""
    status = f"{container.state} {container.status}".lower()
    if "exited" in status or "created" in status:
        return "start"
    return "restart"


def choose_pause_toggle(container: ContainerInfo) -> str:
    status = f"{container.state} {container.status}".lower()
    return "unpause" if "paused" in status else "pause"


class ActionExecutor:
    def __init__(self, state: AppState, scheduler) -> None:
        self.state = state
        self.scheduler = scheduler

    def execute(self, command: Callable[[str], None], label: str, targets: Sequence[str],
                view: Optional[ResourceView] = None) -> Optional[ActionRun]:
        view = view or self.state.current_view
        target_ids = list(dict.fromkeys(targets))
        if not target_ids:
            self.state.set_flash("No items selected", ERROR)
            return None

        for resource_id in target_ids:
            view.set_pending(resource_id, label)
        noun = target_ids[0] if len(target_ids) == 1 else f"{len(target_ids)} items"
        self.state.set_flash(f"{label} {noun}...", PENDING)

        run = ActionRun(label=label, target_ids=target_ids)
        self.state.runner(lambda: self._run(run, command, view), name=f"action-{label.lower()}")
        return run

    def _run(self, run: ActionRun, command: Callable[[str], None], view: ResourceView) -> None:
        # Background thread: only ``run`` is written here, then handed over.
        for resource_id in run.target_ids:
            try:
                command(resource_id)
                run.outcomes[resource_id] = Outcome(ok=True)
            except Exception as e:
                logger.warning(f"{run.label} failed for {resource_id}: {e}")
                run.outcomes[resource_id] = Outcome(ok=False, message=str(e))
        self.state.dispatcher.post(self._complete, run, view)

    def _complete(self, run: ActionRun, view: ResourceView) -> None:
        run.done = True
        for resource_id in run.target_ids:
            view.clear_pending(resource_id)

        failures = run.failures
        if not failures:
            view.clear_selection()
            noun = run.target_ids[0] if len(run.target_ids) == 1 else f"{len(run.target_ids)} items"
            self.state.set_flash(f"{run.label} {noun}: done", SUCCESS)
            self.scheduler.trigger()
            return

        logger.info(f"{run.label}: {len(failures)} of {len(run.target_ids)} failed")
        self.state.action_result = run
        self.state.set_flash(f"{run.label}: {len(failures)} of {len(run.target_ids)} failed", ERROR)
        self.scheduler.trigger()

    def acknowledge_result(self) -> None:
        if self.state.action_result is not None:
            self.state.action_result = None
            self.state.touch()

    def run_job(self, job: Callable[[], Optional[str]], label: str) -> None:
        """Run a kind-level job such as prune with flash feedback and a refresh."""
        self.state.set_flash(f"{label}...", PENDING)

        def work() -> None:
            try:
                message = job()
            except Exception as e:
                logger.warning(f"{label} failed: {e}")
                self.state.dispatcher.post(self.state.set_flash, f"{label} failed: {e}", ERROR)
                return
            self.state.dispatcher.post(self._job_done, label, message)

        self.state.runner(work, name=f"job-{label.lower()}")

    def _job_done(self, label: str, message: Optional[str]) -> None:
        self.state.set_flash(message or f"{label}: done", SUCCESS)
        self.scheduler.trigger()
