from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence

from ..errors import ExternalToolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(s.strip() for s in (self.stdout, self.stderr) if s and s.strip())


class CommandRunner(Protocol):
    def __call__(self, argv: Sequence[str], *, check: bool = True) -> CmdResult:
        ...


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
) -> CmdResult:
    """Run an external tool with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr; they travel with ExternalToolError on failure.
    - A missing executable is reported the same way as a non-zero exit.
    """

    argv_list = [str(a) for a in argv]
    logger.info("CMD %s", fmt_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except OSError as e:
        raise ExternalToolError(
            f"error when executing command [{argv_list[0]}] with args {argv_list[1:]}: {e}",
            argv=argv_list,
            returncode=-1,
            output="",
        ) from e

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    result = CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)
    if check and p.returncode != 0:
        raise ExternalToolError(
            f"error when executing command [{argv_list[0]}] with args {argv_list[1:]}: "
            f"exit status {p.returncode}: output: [{result.output}]",
            argv=argv_list,
            returncode=p.returncode,
            output=result.output,
        )

    return result
