"""
Docker API adapter.

This module implements the resource adapter contract on top of the
docker-py library:

  - list_resources(kind): typed snapshots for every resource kind
  - mutate(kind, id, command, **options): single-ID commands
  - prune(kind): kind-level cleanup
  - stats_snapshot(id): one raw stats document
  - stream_logs(kind, id, timestamps): cancellable log stream
  - describe(kind, id): formatted inspect output
  - create(kind, name, **options): volumes, networks and secrets
  - host_info(): daemon summary for the header line

Compose projects have no engine-side object; they are aggregated from
container labels and driven through the ``docker compose`` CLI.

Error Handling:
  - Every SDK call is wrapped by ``docker_call`` which logs the failure and
    re-raises it as the typed error for that operation (FetchError,
    ActionError, StreamError).
  - A client that cannot be created or reached raises FatalError from the
    constructor.

Dependencies:
  - docker>=7.0.0 (docker-py client)
  - subprocess (docker compose CLI)
"""

import functools
import json
import logging
import os
import subprocess
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Type

import docker

from .errors import ActionError, DockscopeError, FatalError, FetchError, StreamError
from .formatting import format_bytes, format_timestamp, humanize_age, parse_status
from .model import (
    COMPOSE, CONTAINERS, IMAGES, NETWORKS, NODES, SECRETS, SERVICES, VOLUMES,
    ComposeInfo, ContainerInfo, ImageInfo, NetworkInfo, NodeInfo, Resource,
    SecretInfo, ServiceInfo, VolumeInfo,
)

logger = logging.getLogger(__name__)

PROJECT_LABEL = "com.docker.compose.project"
CONFIG_FILES_LABEL = "com.docker.compose.project.config_files"


def docker_call(error_cls: Type[DockscopeError]) -> Callable:
    """
    Decorator for Docker API methods that maps failures onto the error taxonomy.

    Catches exceptions, logs them, and raises ``error_cls`` so callers can
    recover per operation (inline flash, per-ID outcome, skipped tick).

    Usage:
        @docker_call(FetchError)
        def _list_containers(self) -> List[ContainerInfo]:
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except DockscopeError:
                raise
            except Exception as e:
                logger.error(f"Docker operation failed in {func.__name__}: {e}", exc_info=True)
                raise error_cls(str(e)) from e
        return wrapper
    return decorator


class LogStream:
    """
    Iterates decoded log lines from an SDK stream or a subprocess.

    ``close()`` may be called from another thread to stop a blocked reader.
    """

    def __init__(self, source: Iterable, process: Optional[subprocess.Popen] = None) -> None:
        self._source = source
        self._process = process

    def __iter__(self) -> Iterator[str]:
        pending = ""
        for chunk in self._source:
            if isinstance(chunk, bytes):
                chunk = chunk.decode('utf-8', errors='replace')
            pending += chunk
            *lines, pending = pending.split("\n")
            for line in lines:
                yield line.rstrip("\r")
        if pending:
            yield pending.rstrip("\r")

    def close(self) -> None:
        if self._process is not None:
            self._process.terminate()
            try:
                self._process.wait(timeout=0.5)
            except subprocess.TimeoutExpired:
                self._process.kill()
            return
        close = getattr(self._source, "close", None)
        if close is None:
            return
        try:
            close()
        except ValueError:
            # A generator cannot be closed while another thread is inside it.
            logger.debug("Log source busy, reader will stop on its next line")


def _format_container_ports(ports: List[Dict[str, Any]]) -> str:
    seen = []
    for p in ports or []:
        proto = p.get('Type', 'tcp')
        if p.get('PublicPort'):
            text = f"{p['PublicPort']}->{p.get('PrivatePort')}/{proto}"
        else:
            text = f"{p.get('PrivatePort')}/{proto}"
        if text not in seen:
            seen.append(text)
    return ", ".join(seen)


def _format_service_ports(ports: List[Dict[str, Any]]) -> str:
    return ", ".join(
        f"{p.get('PublishedPort')}->{p.get('TargetPort')}/{p.get('Protocol', 'tcp')}"
        for p in ports or []
    )


class DockerBackend:
    def __init__(self, client=None, stop_timeout: int = 10, log_tail: int = 200):
        if client is None:
            try:
                client = docker.from_env()
                client.ping()
            except Exception as e:
                logger.critical(f"Cannot connect to Docker: {e}")
                raise FatalError(f"Cannot connect to Docker: {e}") from e
        self.client = client
        self.stop_timeout = stop_timeout
        self.log_tail = log_tail

    # --- listing ---

    def list_resources(self, kind: str) -> List[Resource]:
        listers = {
            CONTAINERS: self._list_containers,
            IMAGES: self._list_images,
            VOLUMES: self._list_volumes,
            NETWORKS: self._list_networks,
            SERVICES: self._list_services,
            NODES: self._list_nodes,
            COMPOSE: self._list_composes,
            SECRETS: self._list_secrets,
        }
        lister = listers.get(kind)
        if lister is None:
            raise FetchError(f"Unknown resource kind: {kind}")
        return lister()

    def _raw_containers(self, **filters) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"all": True, "sparse": True}
        if filters:
            kwargs["filters"] = filters
        return [c.attrs for c in self.client.containers.list(**kwargs)]

    @docker_call(FetchError)
    def _list_containers(self) -> List[ContainerInfo]:
        res = []
        for attrs in self._raw_containers():
            labels = attrs.get('Labels') or {}
            names = attrs.get('Names') or []
            status, age = parse_status(attrs.get('Status', ''))
            networks = (attrs.get('NetworkSettings') or {}).get('Networks') or {}
            res.append(ContainerInfo(
                id=attrs['Id'],
                name=names[0].lstrip('/') if names else attrs['Id'][:12],
                image=attrs.get('Image', ''),
                status=status,
                state=attrs.get('State', ''),
                age=age,
                ports=_format_container_ports(attrs.get('Ports')),
                image_id=attrs.get('ImageID', ''),
                project=labels.get(PROJECT_LABEL, ''),
                config_files=labels.get(CONFIG_FILES_LABEL, ''),
                created=humanize_age(attrs.get('Created')),
                volume_names=frozenset(m['Name'] for m in attrs.get('Mounts') or []
                                       if m.get('Type') == 'volume' and m.get('Name')),
                network_ids=frozenset(n['NetworkID'] for n in networks.values() if n.get('NetworkID')),
            ))
        return res

    @docker_call(FetchError)
    def _list_images(self) -> List[ImageInfo]:
        usage: Dict[str, int] = {}
        for attrs in self._raw_containers():
            image_id = attrs.get('ImageID', '')
            usage[image_id] = usage.get(image_id, 0) + 1
        res = []
        for i in self.client.images.list():
            res.append(ImageInfo(
                id=i.id,
                tags=list(i.tags),
                size=i.attrs.get('Size', 0),
                containers=usage.get(i.id, 0),
                created=humanize_age(i.attrs.get('Created')),
            ))
        return res

    @docker_call(FetchError)
    def _list_volumes(self) -> List[VolumeInfo]:
        users: Dict[str, set] = {}
        for attrs in self._raw_containers():
            for m in attrs.get('Mounts') or []:
                if m.get('Type') == 'volume' and m.get('Name'):
                    users.setdefault(m['Name'], set()).add(attrs['Id'])
        res = []
        for v in self.client.volumes.list():
            res.append(VolumeInfo(
                name=v.name,
                driver=v.attrs.get('Driver', 'local'),
                mountpoint=v.attrs.get('Mountpoint', 'n/a'),
                created=humanize_age(v.attrs.get('CreatedAt')),
                container_ids=frozenset(users.get(v.name, ())),
            ))
        return res

    @docker_call(FetchError)
    def _list_networks(self) -> List[NetworkInfo]:
        members: Dict[str, set] = {}
        for attrs in self._raw_containers():
            networks = (attrs.get('NetworkSettings') or {}).get('Networks') or {}
            for n in networks.values():
                if n.get('NetworkID'):
                    members.setdefault(n['NetworkID'], set()).add(attrs['Id'])
        res = []
        for n in self.client.networks.list():
            subnet = "n/a"
            configs = (n.attrs.get('IPAM') or {}).get('Config') or []
            if configs and 'Subnet' in configs[0]:
                subnet = configs[0]['Subnet']
            res.append(NetworkInfo(
                id=n.id,
                name=n.name,
                driver=n.attrs.get('Driver', 'bridge'),
                scope=n.attrs.get('Scope', 'local'),
                subnet=subnet,
                container_ids=frozenset(members.get(n.id, ())),
            ))
        return res

    @docker_call(FetchError)
    def _list_services(self) -> List[ServiceInfo]:
        running: Dict[str, int] = {}
        nodes: Dict[str, set] = {}
        for task in self.client.api.tasks():
            service_id = task.get('ServiceID', '')
            if (task.get('Status') or {}).get('State') == 'running':
                running[service_id] = running.get(service_id, 0) + 1
            if task.get('NodeID') and task.get('DesiredState') == 'running':
                nodes.setdefault(service_id, set()).add(task['NodeID'])

        res = []
        for s in self.client.services.list():
            spec = s.attrs.get('Spec') or {}
            container_spec = (spec.get('TaskTemplate') or {}).get('ContainerSpec') or {}
            mode_spec = spec.get('Mode') or {}
            if 'Global' in mode_spec:
                mode = "global"
                desired = len(nodes.get(s.id, ()))
            else:
                mode = "replicated"
                desired = (mode_spec.get('Replicated') or {}).get('Replicas', 0)
            res.append(ServiceInfo(
                id=s.id,
                name=spec.get('Name', s.id[:12]),
                image=container_spec.get('Image', '').split('@')[0],
                mode=mode,
                replicas=f"{running.get(s.id, 0)}/{desired}",
                ports=_format_service_ports((s.attrs.get('Endpoint') or {}).get('Ports')),
                node_ids=frozenset(nodes.get(s.id, ())),
                secret_ids=frozenset(ref['SecretID'] for ref in container_spec.get('Secrets') or []
                                     if ref.get('SecretID')),
            ))
        return res

    @docker_call(FetchError)
    def _list_nodes(self) -> List[NodeInfo]:
        res = []
        for n in self.client.nodes.list():
            attrs = n.attrs
            spec = attrs.get('Spec') or {}
            role = spec.get('Role', '')
            if (attrs.get('ManagerStatus') or {}).get('Leader'):
                role = "leader"
            res.append(NodeInfo(
                id=n.id,
                hostname=(attrs.get('Description') or {}).get('Hostname', ''),
                status=(attrs.get('Status') or {}).get('State', ''),
                availability=spec.get('Availability', ''),
                role=role,
                version=((attrs.get('Description') or {}).get('Engine') or {}).get('EngineVersion', ''),
                created=humanize_age(attrs.get('CreatedAt')),
            ))
        return res

    @docker_call(FetchError)
    def _list_composes(self) -> List[ComposeInfo]:
        projects: Dict[str, Dict[str, Any]] = {}
        for attrs in self._raw_containers():
            labels = attrs.get('Labels') or {}
            name = labels.get(PROJECT_LABEL)
            if not name:
                continue
            project = projects.setdefault(name, {"files": labels.get(CONFIG_FILES_LABEL, ''), "states": []})
            project["states"].append(attrs.get('State', ''))

        res = []
        for name, data in projects.items():
            states = data["states"]
            running = states.count('running')
            distinct = set(states)
            status = distinct.pop() if len(distinct) == 1 else "mixed"
            res.append(ComposeInfo(
                name=name,
                ready=f"{running}/{len(states)}",
                status=status,
                config_files=data["files"],
            ))
        return res

    @docker_call(FetchError)
    def _list_secrets(self) -> List[SecretInfo]:
        attached: Dict[str, int] = {}
        for s in self.client.services.list():
            container_spec = ((s.attrs.get('Spec') or {}).get('TaskTemplate') or {}).get('ContainerSpec') or {}
            for ref in container_spec.get('Secrets') or []:
                attached[ref.get('SecretID', '')] = attached.get(ref.get('SecretID', ''), 0) + 1
        res = []
        for sec in self.client.secrets.list():
            spec = sec.attrs.get('Spec') or {}
            res.append(SecretInfo(
                id=sec.id,
                name=spec.get('Name', ''),
                services=attached.get(sec.id, 0),
                created=format_timestamp(sec.attrs.get('CreatedAt')),
                updated=format_timestamp(sec.attrs.get('UpdatedAt')),
                labels=dict(spec.get('Labels') or {}),
            ))
        return res

    # --- mutations ---

    @docker_call(ActionError)
    def mutate(self, kind: str, resource_id: str, command: str, **options) -> None:
        logger.info(f"{command} {kind} {resource_id} {options or ''}".rstrip())
        force = options.get('force', False)

        if kind == CONTAINERS:
            container = self.client.containers.get(resource_id)
            if command == "start":
                container.start()
            elif command == "stop":
                container.stop(timeout=self.stop_timeout)
            elif command == "restart":
                container.restart(timeout=self.stop_timeout)
            elif command == "pause":
                container.pause()
            elif command == "unpause":
                container.unpause()
            elif command == "remove":
                container.remove(force=force)
            else:
                raise ActionError(f"Unsupported container command: {command}")
        elif kind == IMAGES and command == "remove":
            self.client.images.remove(resource_id, force=force)
        elif kind == VOLUMES and command == "remove":
            self.client.volumes.get(resource_id).remove(force=force)
        elif kind == NETWORKS and command == "remove":
            self.client.networks.get(resource_id).remove()
        elif kind == SERVICES and command == "remove":
            self.client.services.get(resource_id).remove()
        elif kind == SERVICES and command == "scale":
            self.client.services.get(resource_id).scale(int(options['replicas']))
        elif kind == NODES and command == "remove":
            self.client.api.remove_node(resource_id, force=force)
        elif kind == SECRETS and command == "remove":
            self.client.secrets.get(resource_id).remove()
        elif kind == COMPOSE:
            self._compose(resource_id, command)
        else:
            raise ActionError(f"Unsupported command {command} for {kind}")

    _COMPOSE_ARGS = {
        "start": ["start"],
        "stop": ["stop"],
        "restart": ["restart"],
        "pause": ["pause"],
        "unpause": ["unpause"],
        "remove": ["down"],
    }

    def _compose(self, project_name: str, command: str) -> str:
        args = self._COMPOSE_ARGS.get(command)
        if args is None:
            raise ActionError(f"Unsupported compose command: {command}")
        cmd, cwd = self._build_compose_command(project_name, self._compose_files(project_name), args)
        result = subprocess.run(cmd, check=False, capture_output=True, text=True, cwd=cwd)
        if result.returncode != 0:
            raise ActionError((result.stderr or result.stdout or f"Compose {command} failed").strip())
        logger.info(f"Compose project '{project_name}' {command} succeeded")
        return (result.stdout or "").strip()

    def _compose_files(self, project_name: str) -> str:
        for attrs in self._raw_containers(label=f"{PROJECT_LABEL}={project_name}"):
            files = (attrs.get('Labels') or {}).get(CONFIG_FILES_LABEL)
            if files:
                return files
        return ""

    def _parse_compose_files(self, config_files: str) -> List[str]:
        if not config_files or config_files == "n/a":
            return []
        return [p.strip() for p in config_files.split(",") if p.strip()]

    def _build_compose_command(
        self, project_name: str, config_files: str, args: List[str]
    ) -> Tuple[List[str], Optional[str]]:
        cmd = ["docker", "compose", "-p", project_name]
        files = self._parse_compose_files(config_files)
        for path in files:
            cmd.extend(["-f", path])
        cmd.extend(args)
        cwd = None
        if files:
            first_dir = os.path.dirname(files[0])
            if first_dir and os.path.isdir(first_dir):
                cwd = first_dir
        return cmd, cwd

    @docker_call(ActionError)
    def prune(self, kind: str) -> str:
        pruners = {
            CONTAINERS: (self.client.containers.prune, 'ContainersDeleted'),
            IMAGES: (self.client.images.prune, 'ImagesDeleted'),
            VOLUMES: (self.client.volumes.prune, 'VolumesDeleted'),
            NETWORKS: (self.client.networks.prune, 'NetworksDeleted'),
        }
        if kind not in pruners:
            raise ActionError(f"Prune is not supported for {kind}")
        func, key = pruners[kind]
        result = func() or {}
        deleted = len(result.get(key) or [])
        message = f"Pruned {deleted} {kind}"
        if result.get('SpaceReclaimed'):
            message += f", reclaimed {format_bytes(result['SpaceReclaimed'])}"
        logger.info(message)
        return message

    @docker_call(ActionError)
    def create(self, kind: str, name: str, **options) -> str:
        """Create a volume, network or secret; returns a flash message."""
        logger.info(f"create {kind} {name}")
        if kind == VOLUMES:
            self.client.volumes.create(name=name, driver=options.get('driver') or 'local')
        elif kind == NETWORKS:
            self.client.networks.create(name, driver=options.get('driver') or 'bridge')
        elif kind == SECRETS:
            data = options.get('data', '')
            self.client.secrets.create(name=name, data=data.encode('utf-8') if isinstance(data, str) else data)
        else:
            raise ActionError(f"Create is not supported for {kind}")
        return f"Created {kind[:-1]} {name}"

    # --- inspection ---

    @docker_call(StreamError)
    def stats_snapshot(self, container_id: str) -> Dict[str, Any]:
        return self.client.api.stats(container_id, stream=False)

    @docker_call(StreamError)
    def stream_logs(self, kind: str, resource_id: str, timestamps: bool = False) -> LogStream:
        if kind == CONTAINERS:
            raw = self.client.api.logs(resource_id, stream=True, follow=True,
                                       timestamps=timestamps, tail=self.log_tail)
            return LogStream(raw)
        if kind == SERVICES:
            return self.get_service_log_stream(resource_id, timestamps)
        if kind == COMPOSE:
            return self.get_log_stream_process(resource_id, timestamps)
        raise StreamError(f"Logs are not available for {kind}")

    def _log_args(self, timestamps: bool) -> List[str]:
        args = ["logs", "-f", "--tail", str(self.log_tail)]
        if timestamps:
            args.append("--timestamps")
        return args

    def get_service_log_stream(self, service_id: str, timestamps: bool = False) -> LogStream:
        """
        Stream ``docker service logs -f`` through a subprocess.

        Terminating the CLI process unblocks a reader on another thread.
        """
        return self._popen_log_stream(["docker", "service"] + self._log_args(timestamps) + [service_id])

    def get_log_stream_process(self, project_name: str, timestamps: bool = False) -> LogStream:
        """Stream ``docker compose logs -f`` for a project through a subprocess."""
        cmd, cwd = self._build_compose_command(project_name, self._compose_files(project_name),
                                               self._log_args(timestamps))
        return self._popen_log_stream(cmd, cwd)

    def _popen_log_stream(self, cmd: List[str], cwd: Optional[str] = None) -> LogStream:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,  # Line buffered
            encoding='utf-8',
            errors='replace',
            cwd=cwd,
        )
        return LogStream(process.stdout, process=process)

    @docker_call(FetchError)
    def describe(self, kind: str, resource_id: str) -> str:
        if kind == COMPOSE:
            cmd, cwd = self._build_compose_command(resource_id, self._compose_files(resource_id), ["config"])
            result = subprocess.run(cmd, check=False, capture_output=True, text=True, cwd=cwd)
            if result.returncode != 0:
                raise FetchError((result.stderr or "docker compose config failed").strip())
            return result.stdout

        inspectors = {
            CONTAINERS: self.client.api.inspect_container,
            IMAGES: self.client.api.inspect_image,
            VOLUMES: self.client.api.inspect_volume,
            NETWORKS: self.client.api.inspect_network,
            SERVICES: self.client.api.inspect_service,
            NODES: self.client.api.inspect_node,
            SECRETS: self.client.api.inspect_secret,
        }
        inspect = inspectors.get(kind)
        if inspect is None:
            raise FetchError(f"Cannot describe {kind}")
        return json.dumps(inspect(resource_id), indent=2, default=str)

    def shell_command(self, container_id: str, shell: str, fallback: str = "/bin/sh") -> List[str]:
        script = f"[ -x {shell} ] && exec {shell} || exec {fallback}"
        return ["docker", "exec", "-it", container_id, fallback, "-c", script]

    def edit_command(self, project_name: str, editor: str) -> List[str]:
        """Argv that opens a compose project's first config file in ``editor``."""
        files = self._parse_compose_files(self._compose_files(project_name))
        if not files:
            raise ActionError(f"No compose file recorded for {project_name}")
        return [editor, files[0]]

    @docker_call(FetchError)
    def host_info(self) -> Dict[str, Any]:
        info = self.client.info()
        return {
            "name": info.get('Name', ''),
            "version": info.get('ServerVersion', ''),
            "cpus": info.get('NCPU', 0),
            "memory": info.get('MemTotal', 0),
            "containers": info.get('Containers', 0),
            "running": info.get('ContainersRunning', 0),
            "images": info.get('Images', 0),
            "swarm": (info.get('Swarm') or {}).get('LocalNodeState', 'inactive'),
            "user": os.environ.get('USER') or os.environ.get('USERNAME') or 'unknown',
        }
