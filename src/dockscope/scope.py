"""
Drill-down scope stack.

A Scope records how the user got to the current view: drilling into a
compose project pushes a ``compose`` scope whose value is the project name and
whose origin view is ``compose``. The view being entered then keeps only the
resources related to that scope.

Scopes are immutable and linked through ``parent``; the stack only ever
replaces its top, it never rewrites a parent link.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .model import (
    COMPOSE, CONTAINERS, IMAGES, NETWORKS, NODES, SECRETS, SERVICES, VOLUMES,
    ContainerInfo, NetworkInfo, Resource, ServiceInfo, VolumeInfo,
)

CONTAINER_SCOPE = "container"
COMPOSE_SCOPE = "compose"
IMAGE_SCOPE = "image"
NODE_SCOPE = "node"
SECRET_SCOPE = "secret"
VOLUME_SCOPE = "volume"
NETWORK_SCOPE = "network"


@dataclass(frozen=True)
class Scope:
    kind: str
    value: str
    label: str
    origin_view: str
    parent: Optional["Scope"] = None


def _container_in_project(scope: Scope, resource: Resource) -> bool:
    return isinstance(resource, ContainerInfo) and resource.project == scope.value


def _container_uses_image(scope: Scope, resource: Resource) -> bool:
    return isinstance(resource, ContainerInfo) and resource.image_id == scope.value


def _container_mounts_volume(scope: Scope, resource: Resource) -> bool:
    return isinstance(resource, ContainerInfo) and scope.value in resource.volume_names


def _container_on_network(scope: Scope, resource: Resource) -> bool:
    return isinstance(resource, ContainerInfo) and scope.value in resource.network_ids


def _service_on_node(scope: Scope, resource: Resource) -> bool:
    return isinstance(resource, ServiceInfo) and scope.value in resource.node_ids


def _service_uses_secret(scope: Scope, resource: Resource) -> bool:
    return isinstance(resource, ServiceInfo) and scope.value in resource.secret_ids


def _volume_of_container(scope: Scope, resource: Resource) -> bool:
    return isinstance(resource, VolumeInfo) and scope.value in resource.container_ids


def _network_of_container(scope: Scope, resource: Resource) -> bool:
    return isinstance(resource, NetworkInfo) and scope.value in resource.container_ids


# (scope kind, view kind) -> predicate
RELATIONS: Dict[Tuple[str, str], Callable[[Scope, Resource], bool]] = {
    (COMPOSE_SCOPE, CONTAINERS): _container_in_project,
    (IMAGE_SCOPE, CONTAINERS): _container_uses_image,
    (VOLUME_SCOPE, CONTAINERS): _container_mounts_volume,
    (NETWORK_SCOPE, CONTAINERS): _container_on_network,
    (NODE_SCOPE, SERVICES): _service_on_node,
    (SECRET_SCOPE, SERVICES): _service_uses_secret,
    (CONTAINER_SCOPE, VOLUMES): _volume_of_container,
    (CONTAINER_SCOPE, NETWORKS): _network_of_container,
}

# view kind -> (scope kind pushed on drill-down, target view)
DRILL_DOWNS: Dict[str, Tuple[str, str]] = {
    COMPOSE: (COMPOSE_SCOPE, CONTAINERS),
    IMAGES: (IMAGE_SCOPE, CONTAINERS),
    VOLUMES: (VOLUME_SCOPE, CONTAINERS),
    NETWORKS: (NETWORK_SCOPE, CONTAINERS),
    NODES: (NODE_SCOPE, SERVICES),
    SECRETS: (SECRET_SCOPE, SERVICES),
}


def relation_matches(scope: Optional[Scope], resource: Resource) -> bool:
    """True when ``resource`` belongs to ``scope``; always True without a scope."""
    if scope is None:
        return True
    predicate = RELATIONS.get((scope.kind, resource.kind))
    if predicate is None:
        return False
    return predicate(scope, resource)


class ScopeStack:
    """Stack of drill-down scopes, top first."""

    def __init__(self) -> None:
        self._top: Optional[Scope] = None

    @property
    def top(self) -> Optional[Scope]:
        return self._top

    def __bool__(self) -> bool:
        return self._top is not None

    def __len__(self) -> int:
        return len(self.breadcrumbs())

    def push(self, kind: str, value: str, label: str, origin_view: str) -> Scope:
        self._top = Scope(kind=kind, value=value, label=label,
                          origin_view=origin_view, parent=self._top)
        return self._top

    def pop(self) -> Optional[Scope]:
        """Discard the top scope and return it, exposing its parent."""
        popped = self._top
        if popped is not None:
            self._top = popped.parent
        return popped

    def clear(self) -> None:
        self._top = None

    def breadcrumbs(self) -> List[Scope]:
        """Scopes ordered root to leaf."""
        crumbs = []
        node = self._top
        while node is not None:
            crumbs.append(node)
            node = node.parent
        crumbs.reverse()
        return crumbs

    def breadcrumb_text(self, current_view: str, user_filter: str = "") -> str:
        parts = [f"<{crumb.origin_view}: {crumb.label}>" for crumb in self.breadcrumbs()]
        parts.append(current_view)
        text = " > ".join(parts)
        if user_filter:
            text += f" <filter: {user_filter}>"
        return text
