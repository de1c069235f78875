from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

FALLBACK_LOG_NAME = "dmg-creator.log"


def configure_logging(log_path: Optional[str] = None, verbose: bool = False) -> Optional[str]:
    """Configure the root logger for one CLI run.

    The console shows INFO (DEBUG with ``verbose``, which includes captured
    tool output). A ``log_path`` file always gets DEBUG, so a failed build
    can be diagnosed from the file alone. If it cannot be opened we fall
    back to ./dmg-creator.log.

    Returns the file path actually in use, if any.
    """

    root = logging.getLogger()
    if getattr(root, "_dmg_creator_configured", False):
        return getattr(root, "_dmg_creator_log_path", None)

    root.setLevel(logging.DEBUG)
    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(fmt)
    root.addHandler(console)

    chosen_path: Optional[str] = None
    if log_path:
        try:
            Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            chosen_path = log_path
        except OSError as e:
            chosen_path = str(Path.cwd() / FALLBACK_LOG_NAME)
            file_handler = logging.FileHandler(chosen_path)
            logging.getLogger(__name__).warning("Cannot write %s (%s); logging to %s", log_path, e, chosen_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    setattr(root, "_dmg_creator_configured", True)
    setattr(root, "_dmg_creator_log_path", chosen_path)
    return chosen_path
