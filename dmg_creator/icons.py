from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .build_config import ICON_SIZES
from .errors import stage
from .lib.fs import PathLike
from .lib.iconutil import Iconutil
from .lib.sips import Sips

logger = logging.getLogger(__name__)


class IconPipeline:
    """Render a source image at fixed sizes and compile them into icon.icns."""

    def __init__(
        self,
        *,
        sips: Optional[Sips] = None,
        iconutil: Optional[Iconutil] = None,
        sizes: Sequence[int] = ICON_SIZES,
    ) -> None:
        self.sips = sips or Sips()
        self.iconutil = iconutil or Iconutil()
        self.sizes = tuple(sizes)

    def render(self, source: PathLike, iconset_dir: PathLike) -> List[Path]:
        return self.sips.render(source, iconset_dir, self.sizes)

    def compile(self, iconset_dir: PathLike, resources_dir: PathLike) -> Path:
        return self.iconutil.compile(iconset_dir, resources_dir)

    def build(self, source: PathLike, iconset_dir: PathLike, resources_dir: PathLike) -> Path:
        with stage("error when generating icons"):
            self.render(source, iconset_dir)
        with stage("error when generating icon set"):
            icns = self.compile(iconset_dir, resources_dir)
        logger.info("Icon resource written to %s", icns)
        return icns
