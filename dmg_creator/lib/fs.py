from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Union

from ..errors import FilesystemError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _reason(e: OSError) -> str:
    return e.strerror or str(e)


class FsOps:
    """Filesystem primitives used by the bundle assembler and the pipeline.

    Every failure surfaces as FilesystemError naming the offending path.
    """

    def mkdir_all(self, path: PathLike) -> Path:
        p = Path(path)
        try:
            p.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"error when creating directory path [{p}]: {_reason(e)}", path=str(p)) from e
        return p

    def make_temp_dir(self, parent: PathLike, *, prefix: str) -> Path:
        try:
            return Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent)))
        except OSError as e:
            raise FilesystemError(
                f"error when creating temp directory in [{parent}]: {_reason(e)}", path=str(parent)
            ) from e

    def copy_file(self, src: PathLike, dst_dir: PathLike) -> Path:
        """Copy ``src`` into ``dst_dir`` keeping its name and mode bits."""

        s = Path(src)
        out = Path(dst_dir) / s.name
        try:
            shutil.copy2(s, out)
        except OSError as e:
            raise FilesystemError(f"error when copying file from [{s}] to [{dst_dir}]: {_reason(e)}", path=str(s)) from e
        return out

    def copy_dir(self, src: PathLike, dst_dir: PathLike) -> Path:
        """Recursively copy directory ``src`` into ``dst_dir`` (like ``cp -R src dst_dir``)."""

        s = Path(src)
        out = Path(dst_dir) / s.name
        try:
            shutil.copytree(s, out, symlinks=True)
        except (OSError, shutil.Error) as e:
            reason = _reason(e) if isinstance(e, OSError) else str(e)
            raise FilesystemError(
                f"error when copying directory from [{s}] to [{dst_dir}]: {reason}", path=str(s)
            ) from e
        return out

    def write_file(self, path: PathLike, data: str) -> Path:
        p = Path(path)
        try:
            p.write_text(data, encoding="utf-8")
        except OSError as e:
            raise FilesystemError(f"error when writing to file [{p}]: {_reason(e)}", path=str(p)) from e
        return p

    def create_symlink(self, target: PathLike, dst_dir: PathLike) -> Path:
        """Create ``dst_dir/<basename of target>`` pointing at ``target``."""

        link = Path(dst_dir) / Path(target).name
        try:
            os.symlink(str(target), str(link))
        except OSError as e:
            raise FilesystemError(
                f"error when creating symlink from [{target}] to [{dst_dir}]: {_reason(e)}", path=str(link)
            ) from e
        return link

    def file_exists(self, path: PathLike) -> bool:
        p = Path(path)
        try:
            st = p.stat()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FilesystemError(f"error when checking if [{p}] exists: {_reason(e)}", path=str(p)) from e
        if stat.S_ISDIR(st.st_mode):
            raise FilesystemError(f"[{p}] is a directory, not a file", path=str(p))
        return True

    def dir_exists(self, path: PathLike) -> bool:
        return Path(path).is_dir()

    def delete_file(self, path: PathLike) -> bool:
        """Remove a file if present; return whether anything was removed."""

        p = Path(path)
        try:
            p.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FilesystemError(f"error when deleting file [{p}]: {_reason(e)}", path=str(p)) from e
        return True

    def delete_dir(self, path: PathLike) -> None:
        p = Path(path)
        if not p.exists() and not p.is_symlink():
            return
        try:
            shutil.rmtree(p)
        except OSError as e:
            raise FilesystemError(f"error when deleting directory [{p}]: {_reason(e)}", path=str(p)) from e
        logger.debug("Removed %s", p)
