"""Logging setup for the command line entry point."""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(
    level: int | str = logging.INFO,
    log_file: Optional[str] = None,
    also_console: bool = True,
) -> None:
    """Configure root logging once.

    Repeated calls only adjust the level, so handlers are never duplicated.
    """
    root = logging.getLogger()
    root.setLevel(level)

    if getattr(root, "_registry_rootfs_configured", False):
        return

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    handlers: list[logging.Handler] = []

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    if also_console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(fmt)
        root.addHandler(handler)

    setattr(root, "_registry_rootfs_configured", True)
    logging.getLogger(__name__).debug("Logging initialized (file=%s)", log_file)
