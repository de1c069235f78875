from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .build_config import BuildConfig
from .bundle import BundleAssembler
from .errors import DmgCreatorError, stage
from .icons import IconPipeline
from .lib.command import CommandRunner, run_cmd
from .lib.fs import FsOps, PathLike
from .lib.hdiutil import Hdiutil
from .lib.iconutil import Iconutil
from .lib.sips import Sips
from .pipeline import DiskImagePipeline, StageCallback, check_artifact_absent
from .request import BuildRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Toolchain:
    """Every collaborator a build touches. Swap parts out to test or dry-run."""

    fs: FsOps
    hdiutil: Hdiutil
    icons: IconPipeline

    @classmethod
    def from_config(cls, config: BuildConfig, *, runner: CommandRunner = run_cmd) -> "Toolchain":
        return cls(
            fs=FsOps(),
            hdiutil=Hdiutil(runner=runner, volumes_root=config.volumes_root, backoff=config.poll_backoff),
            icons=IconPipeline(
                sips=Sips(runner=runner),
                iconutil=Iconutil(runner=runner),
                sizes=config.icon_sizes,
            ),
        )


@contextmanager
def scratch_workspace(fs: FsOps, output_dir: PathLike, name: str) -> Iterator[Path]:
    """Yield a fresh temp dir under ``output_dir``; remove it on every exit path.

    A cleanup failure after an error is logged and attached to that error
    as ``cleanup_error``; after success it is raised.
    """

    with stage("error when creating temp working directory"):
        fs.mkdir_all(output_dir)
        ws = fs.make_temp_dir(output_dir, prefix=f"tmp-{name}-")
    logger.debug("Scratch workspace %s", ws)

    try:
        yield ws
    except BaseException as e:
        try:
            fs.delete_dir(ws)
        except DmgCreatorError as cleanup_err:
            logger.error("Failed to remove scratch workspace %s: %s", ws, cleanup_err)
            if isinstance(e, DmgCreatorError):
                e.cleanup_error = cleanup_err
        raise
    else:
        with stage("error when removing temp working directory"):
            fs.delete_dir(ws)


class DmgBuilder:
    def __init__(
        self,
        *,
        config: Optional[BuildConfig] = None,
        toolchain: Optional[Toolchain] = None,
        on_stage: Optional[StageCallback] = None,
    ) -> None:
        self.config = config or BuildConfig()
        self.toolchain = toolchain or Toolchain.from_config(self.config)
        self.on_stage = on_stage

    def build(self, request: BuildRequest) -> Path:
        """Validate, assemble ``{Name}.app`` and wrap it into ``{output_dir}/{Name}.dmg``."""

        with stage("error when validating input parameters"):
            request.validate()

        fs = self.toolchain.fs
        with stage("error when creating app DMG"):
            check_artifact_absent(fs, request.output_dir, request.app_name)

        assembler = BundleAssembler(fs=fs, icons=self.toolchain.icons)
        pipeline = DiskImagePipeline(
            hdiutil=self.toolchain.hdiutil,
            fs=fs,
            config=self.config,
            on_stage=self.on_stage,
        )

        logger.info("=== Building %s ===", request.dmg_name)
        with scratch_workspace(fs, request.output_dir, request.app_name) as ws:
            self._notify("creating application bundle")
            with stage("error when creating app bundle"):
                bundle = assembler.assemble(request, ws)

            with stage("error when creating app DMG"):
                dmg = pipeline.run(bundle, ws, request.output_dir)

        return dmg.absolute()

    def _notify(self, msg: str) -> None:
        logger.info("%s...", msg)
        if self.on_stage is not None:
            self.on_stage(msg)


def build(
    request: BuildRequest,
    *,
    config: Optional[BuildConfig] = None,
    toolchain: Optional[Toolchain] = None,
    on_stage: Optional[StageCallback] = None,
) -> Path:
    return DmgBuilder(config=config, toolchain=toolchain, on_stage=on_stage).build(request)
