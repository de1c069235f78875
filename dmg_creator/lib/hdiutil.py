from __future__ import annotations

import logging
import os
import plistlib
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from xml.parsers.expat import ExpatError

from ..errors import DmgCreatorError, MountTimeoutError, RetryExhaustedError, UnmountTimeoutError, stage
from .command import CommandRunner, run_cmd
from .fs import PathLike
from .retry import LinearBackoff, wait_until

logger = logging.getLogger(__name__)

DEFAULT_VOLUMES_ROOT = "/Volumes"


def _load_plist(stdout: str) -> Dict[str, Any]:
    """Parse ``-plist`` output; anything printed before the XML is skipped."""

    start = (stdout or "").find("<?xml")
    if start == -1:
        return {}
    try:
        data = plistlib.loads(stdout[start:].encode("utf-8"))
    except (plistlib.InvalidFileException, ExpatError, ValueError) as e:
        logger.warning("Unreadable hdiutil plist output: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def _whole_disk(entities: List[Dict[str, Any]]) -> Optional[str]:
    devs = [str(e["dev-entry"]) for e in entities if e.get("dev-entry")]
    return min(devs, key=len) if devs else None


def parse_attach_output(stdout: str) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(device, mount_point)`` from ``hdiutil attach -plist``.

    The device is the whole-disk node (``/dev/disk4``), which detaches every
    partition at once. Either value is None when hdiutil did not report it.
    """

    entities = _load_plist(stdout).get("system-entities") or []
    mount = next((str(e["mount-point"]) for e in entities if e.get("mount-point")), None)
    return _whole_disk(entities), mount


class Hdiutil:
    """Drive ``hdiutil`` to create, attach, detach and convert disk images.

    Each operation is one command invocation. attach/detach additionally
    wait for the mount point to appear/disappear, since the OS finishes
    (un)mounting asynchronously.
    """

    def __init__(
        self,
        *,
        runner: CommandRunner = run_cmd,
        volumes_root: PathLike = DEFAULT_VOLUMES_ROOT,
        backoff: Optional[LinearBackoff] = None,
        sleep: Callable[[float], None] = time.sleep,
        path_exists: Callable[[str], bool] = os.path.lexists,
    ) -> None:
        self.runner = runner
        self.volumes_root = Path(volumes_root)
        self.backoff = backoff or LinearBackoff()
        self.sleep = sleep
        self.path_exists = path_exists

    def mount_point(self, label: str) -> Path:
        return self.volumes_root / label

    def is_mounted(self, mount_point: PathLike) -> bool:
        return self.path_exists(str(mount_point))

    def create(self, *, size: str, filesystem: str, label: str, layout: str, output: PathLike) -> Path:
        with stage(f"error when creating dmg with name {label}"):
            self.runner(
                [
                    "hdiutil",
                    "create",
                    "-size",
                    size,
                    "-fs",
                    filesystem,
                    "-volname",
                    label,
                    "-layout",
                    layout,
                    "-o",
                    str(output),
                ]
            )
        return Path(output)

    def attach(self, label: str, image_path: PathLike) -> Path:
        """Attach ``image_path`` and return where its volume is mounted.

        The mount point hdiutil reports wins over ``{volumes_root}/{label}``;
        they differ when another volume already holds the label. If the volume
        never shows up, the image is force-detached before MountTimeoutError
        is raised so nothing stays attached.
        """

        with stage(f"error when attaching dmg with name {image_path}"):
            res = self.runner(["hdiutil", "attach", "-plist", str(image_path)])

        device, reported = parse_attach_output(res.stdout)
        expected = self.mount_point(label)
        mp = Path(reported) if reported else expected
        if mp != expected:
            logger.warning("Volume %s mounted at %s instead of %s", label, mp, expected)

        try:
            attempts = wait_until(
                lambda: self.is_mounted(mp),
                backoff=self.backoff,
                what=f"volume {mp} to be mounted",
                sleep=self.sleep,
            )
        except RetryExhaustedError as e:
            self._abandon(image_path, device)
            raise MountTimeoutError(
                f"error when waiting for volume {image_path} to be mounted at [{mp}]: {e.message}",
                path=str(mp),
                attempts=e.attempts,
            ) from e

        logger.info("Attached %s at %s (%d poll attempt(s))", image_path, mp, attempts)
        return mp

    def device_for(self, image_path: PathLike) -> Optional[str]:
        """Look up the device an image is attached as via ``hdiutil info``."""

        res = self.runner(["hdiutil", "info", "-plist"], check=False)
        wanted = os.path.realpath(str(image_path))
        for image in _load_plist(res.stdout).get("images") or []:
            if os.path.realpath(str(image.get("image-path", ""))) == wanted:
                return _whole_disk(image.get("system-entities") or [])
        return None

    def _abandon(self, image_path: PathLike, device: Optional[str]) -> None:
        try:
            target = device or self.device_for(image_path)
            if target is None:
                logger.warning("No attached device found for %s", image_path)
                return
            logger.warning("Force-detaching %s (%s) after mount timeout", target, image_path)
            res = self.runner(["hdiutil", "detach", target, "-force"], check=False)
        except DmgCreatorError as e:
            logger.error("Could not detach %s: %s", image_path, e)
            return
        if res.returncode != 0:
            logger.error("hdiutil detach %s failed (exit %d): %s", target, res.returncode, res.output)

    def detach(self, mount_point: PathLike) -> None:
        with stage(f"error when detaching dmg with name {mount_point}"):
            self.runner(["hdiutil", "detach", str(mount_point)])

        try:
            attempts = wait_until(
                lambda: not self.is_mounted(mount_point),
                backoff=self.backoff,
                what=f"volume {mount_point} to be unmounted",
                sleep=self.sleep,
            )
        except RetryExhaustedError as e:
            raise UnmountTimeoutError(
                f"error when waiting for volume {mount_point} to be unmounted: {e.message}",
                path=str(mount_point),
                attempts=e.attempts,
            ) from e

        logger.info("Detached %s (%d poll attempt(s))", mount_point, attempts)

    def convert(self, image_path: PathLike, output: PathLike, *, fmt: str = "UDZO") -> Path:
        with stage(f"error when converting dmg file {image_path}"):
            self.runner(["hdiutil", "convert", str(image_path), "-format", fmt, "-o", str(output)])
        return Path(output)
