from __future__ import annotations

import os
import plistlib
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from dmg_creator.build import Toolchain
from dmg_creator.errors import ExternalToolError
from dmg_creator.icons import IconPipeline
from dmg_creator.lib.command import CmdResult
from dmg_creator.lib.fs import FsOps
from dmg_creator.lib.hdiutil import Hdiutil
from dmg_creator.lib.iconutil import Iconutil
from dmg_creator.lib.retry import LinearBackoff
from dmg_creator.lib.sips import Sips
from dmg_creator.request import BuildRequest


def _arg(args: List[str], flag: str) -> str:
    return args[args.index(flag) + 1]


class FakeMacTools:
    """Stand-in for hdiutil/sips/iconutil that acts on a temp directory.

    Attaching a template allocates a ``/dev/diskN`` device and mounts it at
    ``volumes_root/<label>``, or ``<label> 1`` when that name is taken.
    Detaching records what was on the volume and removes the directory.
    """

    def __init__(self, volumes_root: Path) -> None:
        self.volumes_root = volumes_root
        self.calls: List[List[str]] = []
        self.fail_when: Optional[Callable[[List[str]], bool]] = None
        self.mount_on_attach = True
        self.unmount_on_detach = True
        self.partial_convert = False
        self.plist_output = True
        self.images: Dict[str, str] = {}
        self.devices: Dict[str, Dict[str, Any]] = {}
        self.volume_contents: Dict[str, List[str]] = {}

    def __call__(self, argv, *, check: bool = True) -> CmdResult:
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        if self.fail_when is not None and self.fail_when(argv):
            self._partial(argv)
            raise ExternalToolError(
                f"error when executing command [{argv[0]}] with args {argv[1:]}: exit status 1: output: [boom]",
                argv=argv,
                returncode=1,
                output="boom",
            )
        stdout = getattr(self, "_" + argv[0])(argv[1:]) or ""
        return CmdResult(argv=argv, returncode=0, stdout=stdout, stderr="")

    def tool_calls(self, tool: str, sub: Optional[str] = None) -> List[List[str]]:
        return [c for c in self.calls if c[0] == tool and (sub is None or c[1] == sub)]

    def mounted(self) -> List[str]:
        if not self.volumes_root.exists():
            return []
        return sorted(p.name for p in self.volumes_root.iterdir())

    def attached(self) -> List[str]:
        return sorted(self.devices)

    def _partial(self, argv: List[str]) -> None:
        if self.partial_convert and argv[:2] == ["hdiutil", "convert"]:
            Path(_arg(argv, "-o")).write_bytes(b"partial")

    def _free_mount_point(self, label: str) -> Path:
        mp, n = self.volumes_root / label, 0
        while mp.exists():
            n += 1
            mp = self.volumes_root / f"{label} {n}"
        return mp

    def _entities(self, dev: str) -> List[Dict[str, str]]:
        part: Dict[str, str] = {"dev-entry": dev + "s1"}
        if self.devices[dev]["mount"] is not None:
            part["mount-point"] = str(self.devices[dev]["mount"])
        return [{"dev-entry": dev, "content-hint": "GUID_partition_scheme"}, part]

    def _resolve(self, target: str) -> Optional[str]:
        for dev, info in self.devices.items():
            if target in (dev, dev + "s1") or str(info["mount"]) == target:
                return dev
        return None

    def _hdiutil(self, args: List[str]) -> Optional[str]:
        sub = args[0]
        if sub == "create":
            out = Path(_arg(args, "-o"))
            out.write_bytes(b"template")
            self.images[str(out)] = _arg(args, "-volname")
        elif sub == "attach":
            image = args[-1]
            label = self.images[image]
            dev = f"/dev/disk{4 + len(self.calls)}"
            mount = None
            if self.mount_on_attach:
                mount = self._free_mount_point(label)
                mount.mkdir(parents=True)
            self.devices[dev] = {"image": image, "mount": mount}
            if self.plist_output:
                return plistlib.dumps({"system-entities": self._entities(dev)}).decode()
        elif sub == "info":
            images = [
                {"image-path": info["image"], "system-entities": self._entities(dev)}
                for dev, info in self.devices.items()
            ]
            return plistlib.dumps({"images": images}).decode()
        elif sub == "detach":
            target = args[1]
            dev = self._resolve(target)
            mp = self.devices[dev]["mount"] if dev else Path(target)
            release = self.unmount_on_detach or "-force" in args
            if mp is not None and mp.exists():
                entries: List[str] = []
                for root, dirs, files in os.walk(mp):
                    for name in dirs + files:
                        entries.append(str((Path(root) / name).relative_to(mp)))
                self.volume_contents[mp.name] = sorted(entries)
                if release:
                    shutil.rmtree(mp)
            if dev is not None and release:
                del self.devices[dev]
        elif sub == "convert":
            src = Path(args[1])
            assert src.exists(), f"template {src} is gone"
            Path(_arg(args, "-o")).write_bytes(b"UDZO:" + src.read_bytes())
        else:
            raise AssertionError(f"unexpected hdiutil call {args}")
        return None

    def _sips(self, args: List[str]) -> None:
        src = Path(args[3])
        if not src.exists():
            raise ExternalToolError("sips: no such file", argv=["sips", *args], returncode=1, output="")
        Path(_arg(args, "--out")).write_bytes(b"png")

    def _iconutil(self, args: List[str]) -> None:
        iconset = Path(args[-1])
        assert iconset.is_dir()
        Path(_arg(args, "-o")).write_bytes(b"icns")


@pytest.fixture
def tools(tmp_path: Path) -> FakeMacTools:
    return FakeMacTools(tmp_path / "Volumes")


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def toolchain(tools: FakeMacTools, sleeps: List[float]) -> Toolchain:
    return Toolchain(
        fs=FsOps(),
        hdiutil=Hdiutil(
            runner=tools,
            volumes_root=tools.volumes_root,
            backoff=LinearBackoff(initial_delay=0.0, increment=0.0, max_attempts=3),
            sleep=sleeps.append,
        ),
        icons=IconPipeline(sips=Sips(runner=tools), iconutil=Iconutil(runner=tools)),
    )


@pytest.fixture
def app_inputs(tmp_path: Path):
    src = tmp_path / "src"
    src.mkdir()
    binary = src / "Greeter"
    binary.write_bytes(b"\xcf\xfa\xed\xfe fake mach-o")
    binary.chmod(0o755)
    icon = src / "icon.png"
    icon.write_bytes(b"\x89PNG fake")
    return binary, icon


@pytest.fixture
def greeter_request(tmp_path: Path, app_inputs) -> BuildRequest:
    binary, icon = app_inputs
    return BuildRequest(
        app_name="Greeter",
        app_binary_path=str(binary),
        bundle_identifier="com.example.greeter",
        icon_path=str(icon),
        output_dir=str(tmp_path / "out"),
    )
