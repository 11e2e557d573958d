"""
Data models for dockscope resources.

Every resource kind is a dataclass exposing the same small capability set:

  - id: the full identifier used as the selection / action key
  - cells(): the ordered display strings, one per column in HEADERS[kind]

Kind-specific fields (compose project, task node IDs, mounted volumes, ...)
live on the variant and are used by scope relations and action heuristics.

Data Classes:
  - ContainerInfo, ImageInfo, VolumeInfo, NetworkInfo
  - ServiceInfo, NodeInfo (swarm)
  - ComposeInfo: a compose project aggregated from container labels
  - SecretInfo (swarm)
"""

from dataclasses import dataclass, field
from typing import ClassVar, Dict, FrozenSet, List, Tuple

from .formatting import format_bytes, short_id

CONTAINERS = "containers"
IMAGES = "images"
VOLUMES = "volumes"
NETWORKS = "networks"
SERVICES = "services"
NODES = "nodes"
COMPOSE = "compose"
SECRETS = "secrets"

KINDS: Tuple[str, ...] = (CONTAINERS, IMAGES, VOLUMES, NETWORKS, SERVICES, NODES, COMPOSE, SECRETS)

HEADERS: Dict[str, List[str]] = {
    CONTAINERS: ["ID", "NAME", "IMAGE", "STATUS", "AGE", "PORTS", "COMPOSE", "CREATED"],
    IMAGES: ["ID", "TAGS", "SIZE", "CONTAINERS", "CREATED"],
    VOLUMES: ["NAME", "DRIVER", "MOUNTPOINT", "CREATED"],
    NETWORKS: ["ID", "NAME", "DRIVER", "SCOPE", "SUBNET"],
    SERVICES: ["ID", "NAME", "IMAGE", "MODE", "REPLICAS", "PORTS"],
    NODES: ["ID", "HOSTNAME", "STATUS", "AVAIL", "ROLE", "VERSION", "CREATED"],
    COMPOSE: ["PROJECT", "READY", "STATUS", "CONFIG FILES"],
    SECRETS: ["ID", "NAME", "SERVICES", "CREATED", "UPDATED", "LABELS"],
}

# Column that carries the pending action label ("Stopping...") per kind.
STATUS_COLUMN: Dict[str, int] = {
    CONTAINERS: 3,
    NODES: 2,
    COMPOSE: 2,
    SERVICES: 4,
}


class Resource:
    kind: ClassVar[str] = ""

    def cells(self) -> List[str]:
        raise NotImplementedError


@dataclass
class ContainerInfo(Resource):
    kind: ClassVar[str] = CONTAINERS

    id: str
    name: str
    image: str
    status: str
    state: str = ""
    age: str = "-"
    ports: str = ""
    image_id: str = ""
    project: str = ""
    config_files: str = ""
    created: str = "-"
    volume_names: FrozenSet[str] = field(default_factory=frozenset)
    network_ids: FrozenSet[str] = field(default_factory=frozenset)

    def cells(self) -> List[str]:
        return [short_id(self.id), self.name, self.image, self.status, self.age,
                self.ports, self.project or "-", self.created]


@dataclass
class ImageInfo(Resource):
    kind: ClassVar[str] = IMAGES

    id: str
    tags: List[str]
    size: int
    containers: int = 0
    created: str = "-"

    def cells(self) -> List[str]:
        tags = ", ".join(self.tags) if self.tags else "<none>"
        return [short_id(self.id), tags, format_bytes(self.size), str(self.containers), self.created]


@dataclass
class VolumeInfo(Resource):
    kind: ClassVar[str] = VOLUMES

    name: str
    driver: str
    mountpoint: str
    created: str = "-"
    container_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def id(self) -> str:
        return self.name

    def cells(self) -> List[str]:
        return [self.name, self.driver, self.mountpoint, self.created]


@dataclass
class NetworkInfo(Resource):
    kind: ClassVar[str] = NETWORKS

    id: str
    name: str
    driver: str
    scope: str
    subnet: str = "n/a"
    container_ids: FrozenSet[str] = field(default_factory=frozenset)

    def cells(self) -> List[str]:
        return [short_id(self.id), self.name, self.driver, self.scope, self.subnet]


@dataclass
class ServiceInfo(Resource):
    kind: ClassVar[str] = SERVICES

    id: str
    name: str
    image: str
    mode: str
    replicas: str
    ports: str = ""
    node_ids: FrozenSet[str] = field(default_factory=frozenset)
    secret_ids: FrozenSet[str] = field(default_factory=frozenset)

    def cells(self) -> List[str]:
        return [short_id(self.id), self.name, self.image, self.mode, self.replicas, self.ports]


@dataclass
class NodeInfo(Resource):
    kind: ClassVar[str] = NODES

    id: str
    hostname: str
    status: str
    availability: str
    role: str
    version: str = ""
    created: str = "-"

    def cells(self) -> List[str]:
        return [short_id(self.id), self.hostname, self.status, self.availability,
                self.role, self.version, self.created]


@dataclass
class ComposeInfo(Resource):
    kind: ClassVar[str] = COMPOSE

    name: str
    ready: str
    status: str
    config_files: str = ""

    @property
    def id(self) -> str:
        return self.name

    def cells(self) -> List[str]:
        return [self.name, self.ready, self.status, self.config_files or "n/a"]


@dataclass
class SecretInfo(Resource):
    kind: ClassVar[str] = SECRETS

    id: str
    name: str
    services: int = 0
    created: str = "-"
    updated: str = "-"
    labels: Dict[str, str] = field(default_factory=dict)

    def cells(self) -> List[str]:
        labels = ", ".join(f"{k}={v}" for k, v in sorted(self.labels.items()))
        return [short_id(self.id), self.name, str(self.services), self.created,
                self.updated, labels or "-"]
