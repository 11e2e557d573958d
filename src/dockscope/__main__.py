import logging
import os
import sys
from pathlib import Path

from . import get_log_path
from .backend import DockerBackend
from .config import ConfigManager
from .controller import Controller
from .errors import FatalError
from .textual_app import run


def main() -> int:
    config_path = os.environ.get("DOCKSCOPE_CONFIG")
    manager = ConfigManager(Path(config_path) if config_path else None)
    config = manager.load_config()

    logging.basicConfig(filename=config.logging.file_path or get_log_path(),
                        level=getattr(logging, config.logging.level.upper(), logging.INFO),
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    logging.info("dockscope starting")

    try:
        backend = DockerBackend(stop_timeout=config.docker.stop_timeout, log_tail=config.ui.log_tail)
    except FatalError as e:
        print(f"dockscope: {e}", file=sys.stderr)
        return 1

    controller = Controller.build(config, backend)
    try:
        run(controller)
    except KeyboardInterrupt:
        pass
    logging.info("dockscope stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
