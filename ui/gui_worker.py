"""Background build runner for an interactive front-end.

A GUI form collects the same five fields as the CLI, then hands a
BuildRequest to BuildWorker so the window stays responsive. The worker
forwards stage names ("mounting DMG template", ...) for a progress label
and reports exactly one outcome: the DMG path or the error, including
failures outside the DmgCreatorError taxonomy.

The build itself stays sequential; only the caller is decoupled from it.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from dmg_creator.build_config import BuildConfig
from dmg_creator.errors import DmgCreatorError, format_error
from dmg_creator.main import run
from dmg_creator.request import BuildRequest

logger = logging.getLogger(__name__)


class BuildWorker(threading.Thread):
    def __init__(
        self,
        request: BuildRequest,
        *,
        config: Optional[BuildConfig] = None,
        on_stage: Optional[Callable[[str], None]] = None,
        on_done: Optional[Callable[[Path], None]] = None,
        on_error: Optional[Callable[[str, Exception], None]] = None,
        runner: Callable[..., Path] = run,
    ) -> None:
        super().__init__(name=f"dmg-build-{request.app_name}", daemon=True)
        self.request = request
        self.config = config
        self.on_stage = on_stage
        self.on_done = on_done
        self.on_error = on_error
        self._runner = runner
        self.result: Optional[Path] = None
        self.error: Optional[Exception] = None

    def run(self) -> None:
        try:
            self.result = self._runner(self.request, config=self.config, on_stage=self.on_stage)
        except DmgCreatorError as e:
            logger.error("Background build failed: %s", e)
            self._fail(format_error(e), e)
            return
        except Exception as e:
            logger.exception("Background build crashed")
            self._fail(f"unexpected error: {e}", e)
            return
        if self.on_done is not None:
            self.on_done(self.result)

    def _fail(self, message: str, err: Exception) -> None:
        self.error = err
        if self.on_error is not None:
            self.on_error(message, err)


def run_from_gui(
    request: BuildRequest,
    *,
    config: Optional[BuildConfig] = None,
    on_stage: Optional[Callable[[str], None]] = None,
    on_done: Optional[Callable[[Path], None]] = None,
    on_error: Optional[Callable[[str, Exception], None]] = None,
) -> BuildWorker:
    worker = BuildWorker(request, config=config, on_stage=on_stage, on_done=on_done, on_error=on_error)
    worker.start()
    return worker
