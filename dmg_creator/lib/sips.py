from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from ..errors import stage
from .command import CommandRunner, run_cmd
from .fs import PathLike

logger = logging.getLogger(__name__)


def rendition_name(size: int) -> str:
    return f"icon_{size}x{size}.png"


class Sips:
    """Scale a source image with ``sips``, one PNG per requested size."""

    def __init__(self, *, runner: CommandRunner = run_cmd) -> None:
        self.runner = runner

    def render(self, source: PathLike, out_dir: PathLike, sizes: Iterable[int]) -> List[Path]:
        out: List[Path] = []
        for size in sizes:
            dst = Path(out_dir) / rendition_name(size)
            with stage(f"error when generating icon with size {size}"):
                self.runner(["sips", "-z", str(size), str(size), str(source), "--out", str(dst)])
            out.append(dst)
        logger.info("Rendered %d icon size(s) into %s", len(out), out_dir)
        return out
