from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .build_config import BuildConfig
from .bundle import ApplicationBundle
from .errors import AlreadyExistsError, DmgCreatorError, UnmountTimeoutError, stage
from .lib.fs import FsOps, PathLike
from .lib.hdiutil import Hdiutil

logger = logging.getLogger(__name__)

APPLICATIONS_FOLDER = "/Applications"

StageCallback = Callable[[str], None]


class ContainerState(enum.Enum):
    NEW = "new"
    CREATED = "created"
    ATTACHED = "attached"
    POPULATED = "populated"
    DETACHED = "detached"
    CONVERTED = "converted"


@dataclass
class ImageContainer:
    label: str
    path: Path
    mount_point: Optional[Path] = None
    state: ContainerState = ContainerState.NEW

    def advance(self, state: ContainerState) -> None:
        logger.debug("container %s: %s -> %s", self.label, self.state.value, state.value)
        self.state = state

    @property
    def attached(self) -> bool:
        return self.state in {ContainerState.ATTACHED, ContainerState.POPULATED}


def artifact_path(output_dir: PathLike, name: str) -> Path:
    return Path(output_dir) / f"{name}.dmg"


def check_artifact_absent(fs: FsOps, output_dir: PathLike, name: str) -> Path:
    """Fail fast if ``{output_dir}/{name}.dmg`` exists. Advisory only: not a lock."""

    dmg = artifact_path(output_dir, name)
    with stage(f"error when checking if DMG file already exists at [{dmg}]"):
        exists = fs.file_exists(dmg)
    if exists:
        raise AlreadyExistsError(str(dmg))
    return dmg


class DiskImagePipeline:
    """Wrap an application bundle into ``{Name}.dmg``.

    CREATED -> ATTACHED -> POPULATED -> DETACHED -> CONVERTED, strictly in
    order. A failure after attach triggers a best-effort detach so no volume
    is left mounted; the original error is always the one raised.
    """

    def __init__(
        self,
        *,
        hdiutil: Hdiutil,
        fs: Optional[FsOps] = None,
        config: Optional[BuildConfig] = None,
        on_stage: Optional[StageCallback] = None,
    ) -> None:
        self.hdiutil = hdiutil
        self.fs = fs or FsOps()
        self.config = config or BuildConfig()
        self.on_stage = on_stage

    def _notify(self, msg: str) -> None:
        logger.info("%s...", msg)
        if self.on_stage is not None:
            self.on_stage(msg)

    def run(self, bundle: ApplicationBundle, workspace: PathLike, output_dir: PathLike) -> Path:
        dmg = check_artifact_absent(self.fs, output_dir, bundle.name)

        container = ImageContainer(label=bundle.name, path=Path(workspace) / f"{bundle.name}-template.dmg")
        try:
            self._create(container)
            mp = self._attach(container)
            self._populate(container, mp, bundle)
            self._detach(container, mp)
        except DmgCreatorError as e:
            if container.attached and not isinstance(e, UnmountTimeoutError):
                self._release(container)
            raise

        return self._convert(container, dmg)

    def _create(self, container: ImageContainer) -> None:
        self._notify("creating DMG template")
        with stage("error when creating DMG template"):
            self.hdiutil.create(
                size=self.config.image_size,
                filesystem=self.config.image_filesystem,
                label=container.label,
                layout=self.config.image_layout,
                output=container.path,
            )
        container.advance(ContainerState.CREATED)

    def _attach(self, container: ImageContainer) -> Path:
        self._notify("mounting DMG template")
        with stage("error when mounting DMG template"):
            mp = self.hdiutil.attach(container.label, container.path)
        container.mount_point = mp
        container.advance(ContainerState.ATTACHED)
        return mp

    def _populate(self, container: ImageContainer, mp: Path, bundle: ApplicationBundle) -> None:
        self._notify("setting up DMG template")
        with stage("error when setting up DMG template"):
            with stage("error when creating symlink for Applications folder"):
                self.fs.create_symlink(APPLICATIONS_FOLDER, mp)
            with stage(f"error when copying app bundle to mounted DMG template at [{mp}]"):
                self.fs.copy_dir(bundle.path, mp)
        container.advance(ContainerState.POPULATED)

    def _detach(self, container: ImageContainer, mp: Path) -> None:
        self._notify("unmounting DMG template")
        with stage("error when unmounting DMG template"):
            self.hdiutil.detach(mp)
        container.advance(ContainerState.DETACHED)

    def _convert(self, container: ImageContainer, dmg: Path) -> Path:
        self._notify("converting DMG template to final DMG")
        try:
            with stage("error when converting DMG template to final DMG"):
                self.hdiutil.convert(container.path, dmg, fmt=self.config.image_format)
        except DmgCreatorError:
            self._discard_partial(dmg)
            raise
        container.advance(ContainerState.CONVERTED)
        logger.info("Created %s", dmg)
        return dmg

    def _discard_partial(self, dmg: Path) -> None:
        try:
            if self.fs.delete_file(dmg):
                logger.warning("Removed partial artifact %s", dmg)
        except DmgCreatorError as e:
            logger.error("Could not remove partial artifact %s: %s", dmg, e)

    def _release(self, container: ImageContainer) -> None:
        mp = container.mount_point
        if mp is None or not self.hdiutil.is_mounted(mp):
            return
        logger.warning("Detaching %s after failure", mp)
        try:
            self.hdiutil.detach(mp)
        except DmgCreatorError as e:
            logger.error("Could not detach %s: %s", mp, e)
            return
        container.advance(ContainerState.DETACHED)
