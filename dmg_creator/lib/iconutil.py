from __future__ import annotations

from pathlib import Path

from ..errors import stage
from .command import CommandRunner, run_cmd
from .fs import PathLike

ICON_FILE_NAME = "icon.icns"


class Iconutil:
    def __init__(self, *, runner: CommandRunner = run_cmd) -> None:
        self.runner = runner

    def compile(self, iconset_dir: PathLike, out_dir: PathLike) -> Path:
        """Fold an ``.iconset`` directory into ``out_dir/icon.icns``."""

        dst = Path(out_dir) / ICON_FILE_NAME
        with stage("error when compiling icon set"):
            self.runner(["iconutil", "-c", "icns", "-o", str(dst), str(iconset_dir)])
        return dst
