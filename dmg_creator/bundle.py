from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from xml.sax.saxutils import escape

from .errors import stage
from .icons import IconPipeline
from .lib.fs import FsOps, PathLike
from .lib.iconutil import ICON_FILE_NAME
from .request import BuildRequest

logger = logging.getLogger(__name__)

ICONSET_DIR = "icon.iconset"

INFO_PLIST_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
\t<key>CFBundleExecutable</key>
\t<string>{{EXECUTABLE}}</string>
\t<key>CFBundleIconFile</key>
\t<string>icon.icns</string>
\t<key>CFBundleIdentifier</key>
\t<string>{{BUNDLE_ID}}</string>
\t<key>NSHighResolutionCapable</key>
\t<true/>
\t<key>LSUIElement</key>
\t<true/>
</dict>
</plist>
"""


def render_info_plist(*, executable: str, bundle_identifier: str) -> str:
    plist = INFO_PLIST_TEMPLATE.replace("{{EXECUTABLE}}", escape(executable))
    return plist.replace("{{BUNDLE_ID}}", escape(bundle_identifier))


@dataclass(frozen=True)
class ApplicationBundle:
    name: str
    path: Path
    executable: str

    @property
    def contents_dir(self) -> Path:
        return self.path / "Contents"

    @property
    def macos_dir(self) -> Path:
        return self.contents_dir / "MacOS"

    @property
    def resources_dir(self) -> Path:
        return self.contents_dir / "Resources"

    @property
    def info_plist(self) -> Path:
        return self.contents_dir / "Info.plist"

    @property
    def icon_file(self) -> Path:
        return self.resources_dir / ICON_FILE_NAME


class BundleAssembler:
    """Lay out ``{Name}.app`` inside a scratch workspace.

    Steps run in order and the first failure aborts. Partial output is left
    for the caller, which deletes the whole workspace.
    """

    def __init__(self, *, fs: Optional[FsOps] = None, icons: Optional[IconPipeline] = None) -> None:
        self.fs = fs or FsOps()
        self.icons = icons or IconPipeline()

    def assemble(self, request: BuildRequest, workspace: PathLike) -> ApplicationBundle:
        ws = Path(workspace)
        bundle = ApplicationBundle(
            name=request.app_name,
            path=ws / f"{request.app_name}.app",
            executable=Path(request.app_binary_path).name,
        )
        iconset_dir = ws / ICONSET_DIR

        with stage("error when creating app bundle directories"):
            for d in [bundle.path, iconset_dir, bundle.macos_dir, bundle.resources_dir]:
                with stage(f"error when creating directory [{d}]"):
                    self.fs.mkdir_all(d)

        with stage("error when creating icon set"):
            self.icons.build(request.icon_path, iconset_dir, bundle.resources_dir)

        with stage("error when copying app binary"):
            with stage(f"error when copying file [{request.app_binary_path}] to [{bundle.macos_dir}]"):
                self.fs.copy_file(request.app_binary_path, bundle.macos_dir)

        with stage("error when creating Info.plist file"):
            with stage(f"error when writing Info.plist file to [{bundle.info_plist}]"):
                self.fs.write_file(
                    bundle.info_plist,
                    render_info_plist(executable=bundle.executable, bundle_identifier=request.bundle_identifier),
                )

        logger.info("Assembled application bundle %s", bundle.path)
        return bundle
