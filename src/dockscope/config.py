"""
Configuration management for dockscope.

This module provides configuration file support with YAML format,
user preferences, and default settings.

Features:
- YAML configuration file at ~/.config/dockscope/config.yaml
- Default values with user overrides
- Keybinding customization
- Refresh / metrics intervals and history capacity
- Log level and location override

Architecture:
- ConfigManager: loads and saves the file, hands out an AppConfig
- Merges user config with defaults
- Handles missing/invalid config gracefully
- The AppConfig is passed explicitly to the components that need it
"""

import logging
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class KeyBindings:
    """Customizable key bindings."""
    filter: str = "/"
    command: str = ":"
    back: str = "escape"
    enter: str = "enter"
    up: str = "up"
    down: str = "down"
    page_up: str = "pageup"
    page_down: str = "pagedown"
    home: str = "home"
    end: str = "end"
    select_toggle: str = "space"
    select_all: str = "ctrl+a"
    sort_next: str = "shift+right"
    sort_prev: str = "shift+left"
    sort_order: str = "shift+up"
    describe: str = "d"
    logs: str = "l"
    metrics: str = "t"
    start_restart: str = "r"
    stop: str = "x"
    pause: str = "p"
    remove: str = "ctrl+d"
    prune: str = "ctrl+p"
    scale: str = "s"
    shell: str = "e"
    volumes: str = "v"
    networks: str = "n"
    create: str = "c"
    edit: str = "e"
    help: str = "?"


@dataclass
class UIConfig:
    """UI-related configuration."""
    refresh_interval: float = 2.0  # seconds
    stats_interval: float = 1.0  # seconds
    history_size: int = 120
    log_tail: int = 200
    log_buffer_size: int = 1000
    flash_seconds: float = 3.0
    host_interval: float = 10.0  # seconds
    default_view: str = "containers"


@dataclass
class DockerConfig:
    """Docker-related configuration."""
    stop_timeout: int = 10
    default_shell: str = "/bin/bash"
    fallback_shell: str = "/bin/sh"
    editor: str = ""  # empty uses $EDITOR, then vi


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file_path: Optional[str] = None  # None for default


@dataclass
class AppConfig:
    """Main application configuration."""
    keybindings: KeyBindings = field(default_factory=KeyBindings)
    ui: UIConfig = field(default_factory=UIConfig)
    docker: DockerConfig = field(default_factory=DockerConfig)
    logging: LogConfig = field(default_factory=LogConfig)

    def key(self, action: str) -> str:
        return getattr(self.keybindings, action, "")

    def is_key(self, key: str, action: str) -> bool:
        binding = self.key(action)
        return bool(binding) and key.lower() == binding.lower()


class ConfigManager:
    """Configuration manager with YAML file support."""

    def __init__(self, config_file: Optional[Path] = None):
        if config_file is None:
            config_file = Path.home() / ".config" / "dockscope" / "config.yaml"
        self.config_file = Path(config_file)
        self.config_dir = self.config_file.parent
        self._config: AppConfig = AppConfig()

    def load_config(self) -> AppConfig:
        """Load configuration from YAML file, falling back to defaults."""
        try:
            if self.config_file.exists():
                with open(self.config_file, 'r') as f:
                    user_config = yaml.safe_load(f) or {}
                if not isinstance(user_config, dict):
                    raise ValueError("top-level YAML value must be a mapping")
                self._config = self._merge_configs(AppConfig(), user_config)
                logger.debug(f"Loaded configuration from {self.config_file}")
            else:
                self._config = AppConfig()
                logger.debug(f"No configuration at {self.config_file}, using defaults")
        except Exception as e:
            logger.error(f"Failed to load config: {e}, using defaults")
            self._config = AppConfig()
        return self._config

    def save_config(self) -> None:
        """Save current configuration to YAML file."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w') as f:
                yaml.safe_dump(asdict(self._config), f, default_flow_style=False, indent=2)
            logger.debug(f"Saved configuration to {self.config_file}")
        except OSError as e:
            logger.error(f"Failed to save config: {e}")

    def _merge_configs(self, default: AppConfig, user: Dict[str, Any]) -> AppConfig:
        """Merge user config with defaults."""
        for section in fields(default):
            updates = user.get(section.name)
            if isinstance(updates, dict):
                self._merge_dataclass(getattr(default, section.name), updates)
        return default

    def _merge_dataclass(self, obj: Any, updates: Dict[str, Any]) -> None:
        """Merge updates into dataclass object, ignoring unknown keys."""
        known = {f.name: f for f in fields(obj)}
        for key, value in updates.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            current = getattr(obj, key)
            if is_dataclass(current) and isinstance(value, dict):
                self._merge_dataclass(current, value)
            else:
                setattr(obj, key, value)
