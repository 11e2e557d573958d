import pytest

from dockscope.config import AppConfig
from dockscope.controller import Controller
from dockscope.errors import ActionError, FetchError
from dockscope.model import ComposeInfo, ContainerInfo


class RecordingRunner:
    """Collects background jobs so tests decide when they run."""

    def __init__(self):
        self.jobs = []

    def __call__(self, job, name=None):
        self.jobs.append((name, job))

    def run_all(self):
        while self.jobs:
            _, job = self.jobs.pop(0)
            job()


class FakeStream:
    def __init__(self, lines):
        self.lines = list(lines)
        self.closed = False

    def __iter__(self):
        for line in self.lines:
            if self.closed:
                return
            yield line

    def close(self):
        self.closed = True


class FakeAdapter:
    def __init__(self):
        self.resources = {}
        self.list_calls = []
        self.fail_list = {}
        self.mutations = []
        self.failing_ids = {}
        self.stats = []
        self.stream_calls = []
        self.log_lines = ["line 1", "line 2"]
        self.streams = []
        self.descriptions = {}
        self.pruned = []
        self.created = []
        self.host = {"name": "dev", "version": "24.0.7", "cpus": 8, "memory": 16 * 1024 ** 3,
                     "containers": 3, "running": 2, "images": 5, "swarm": "inactive", "user": "alice"}

    def list_resources(self, kind):
        self.list_calls.append(kind)
        if kind in self.fail_list:
            raise FetchError(self.fail_list[kind])
        return list(self.resources.get(kind, []))

    def mutate(self, kind, resource_id, command, **options):
        self.mutations.append((kind, resource_id, command, options))
        if resource_id in self.failing_ids:
            raise ActionError(self.failing_ids[resource_id])

    def prune(self, kind):
        self.pruned.append(kind)
        return f"Pruned 0 {kind}"

    def create(self, kind, name, **options):
        self.created.append((kind, name, options))
        return f"Created {kind[:-1]} {name}"

    def host_info(self):
        if isinstance(self.host, Exception):
            raise self.host
        return dict(self.host)

    def edit_command(self, project_name, editor):
        if project_name == "blog":
            raise ActionError(f"No compose file recorded for {project_name}")
        return [editor, f"/srv/{project_name}/compose.yaml"]

    def stats_snapshot(self, resource_id):
        item = self.stats.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def stream_logs(self, kind, resource_id, timestamps=False):
        self.stream_calls.append(timestamps)
        stream = FakeStream(self.log_lines)
        self.streams.append(stream)
        return stream

    def describe(self, kind, resource_id):
        if resource_id not in self.descriptions:
            raise FetchError(f"No such object: {resource_id}")
        return self.descriptions[resource_id]

    def shell_command(self, container_id, shell, fallback="/bin/sh"):
        return ["docker", "exec", "-it", container_id, shell]


def container(cid, name=None, status="Up", state="running", project="", image_id="sha256:img1", **kwargs):
    return ContainerInfo(id=cid, name=name or cid, image="nginx:latest", status=status,
                         state=state, project=project, image_id=image_id, **kwargs)


@pytest.fixture
def adapter():
    fake = FakeAdapter()
    fake.resources = {
        "containers": [
            container("c1", "web", project="shop"),
            container("c2", "db", status="Exited (0)", state="exited", project="shop"),
            container("c3", "cache", project="blog"),
        ],
        "compose": [
            ComposeInfo(name="shop", ready="1/2", status="mixed"),
            ComposeInfo(name="blog", ready="1/1", status="running"),
        ],
    }
    return fake


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def clipboard():
    copied = []

    def copy(text):
        copied.append(text)
        return True

    copy.copied = copied
    return copy


@pytest.fixture
def controller(adapter, runner, clipboard):
    return Controller.build(AppConfig(), adapter, runner=runner, clipboard=clipboard)


def settle(controller):
    """Run background jobs and apply their results until nothing is left."""
    runner = controller.state.runner
    for _ in range(10):
        runner.run_all()
        if not controller.pump() and not runner.jobs:
            break
