"""
dockscope - A keyboard-driven terminal dashboard for container infrastructure.

This package provides the interactive engine behind a live dashboard for
containers, images, volumes, networks, swarm services, nodes, compose
projects and secrets.

Features:
  - One live, filterable, sortable table per resource kind
  - Hierarchical drill-down (compose project -> containers, node -> services)
  - Bulk actions with optimistic pending feedback
  - Log tailing and live CPU/memory/network/disk graphs

Main Components:
  - scope.py: Drill-down scope stack and breadcrumbs
  - view.py: Per-kind table state (filter, sort, selection)
  - scheduler.py: Periodic and triggered refresh
  - actions.py: Optimistic bulk action executor
  - inspectors.py / metrics.py: Detail views and the metrics engine
  - backend.py: Docker API adapter
  - textual_app.py: Textual surface

Usage:
  python -m dockscope

Dependencies:
  - docker>=7.0.0
  - textual, rich, pyyaml
  - Python 3.10+
"""

import os
from pathlib import Path

__version__ = "0.1.0"


def get_log_path() -> str:
    """
    Get the log file path following XDG Base Directory spec.

    Returns XDG_DATA_HOME/dockscope/logs/dockscope.log with fallback to /tmp.
    Creates directory if it doesn't exist.
    """
    xdg_data_home = os.environ.get('XDG_DATA_HOME')
    if not xdg_data_home:
        xdg_data_home = Path.home() / '.local' / 'share'
    else:
        xdg_data_home = Path(xdg_data_home)

    log_dir = xdg_data_home / 'dockscope' / 'logs'

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return str(log_dir / 'dockscope.log')
    except (PermissionError, OSError):
        return '/tmp/dockscope.log'
