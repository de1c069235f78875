from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .build import DmgBuilder
from .build_config import BuildConfig, load_build_config
from .errors import DmgCreatorError, format_error
from .logging_utils import configure_logging
from .pipeline import StageCallback
from .request import BuildRequest

logger = logging.getLogger(__name__)


def run(
    request: BuildRequest,
    *,
    config: Optional[BuildConfig] = None,
    on_stage: Optional[StageCallback] = None,
) -> Path:
    """Build one DMG; shared by the CLI and the GUI worker."""

    return DmgBuilder(config=config, on_stage=on_stage).build(request)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="create-dmg", description="Package an app binary into a macOS .dmg")
    p.add_argument("--app-name", "--appName", dest="app_name", required=True, help="Application name")
    p.add_argument(
        "--app-binary-path",
        "--appBinaryPath",
        dest="app_binary_path",
        required=True,
        help="Path to the application binary",
    )
    p.add_argument(
        "--bundle-identifier",
        "--bundleIdentifier",
        dest="bundle_identifier",
        required=True,
        help="Bundle identifier for the application (e.g. com.example.app)",
    )
    p.add_argument(
        "--icon-path",
        "--iconPath",
        dest="icon_path",
        required=True,
        help="Path to the application icon (.png, .jpg, .gif or .tiff)",
    )
    p.add_argument(
        "--output-dir",
        "--outputDir",
        dest="output_dir",
        required=True,
        help="Directory to save the output DMG file",
    )
    p.add_argument("--config", default=None, help="Optional build config (YAML)")
    p.add_argument("--log", default=None, help="Also write the log to this file")
    p.add_argument("-v", "--verbose", action="store_true", help="Log external command output")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    request = BuildRequest(
        app_name=args.app_name,
        app_binary_path=args.app_binary_path,
        bundle_identifier=args.bundle_identifier,
        icon_path=args.icon_path,
        output_dir=args.output_dir,
    )

    configure_logging(log_path=args.log, verbose=args.verbose)

    try:
        cfg = load_build_config(args.config)
    except (OSError, ValueError, RuntimeError) as e:
        print(f"error when loading build config [{args.config}]: {e}", file=sys.stderr)
        return 1

    try:
        dmg = run(request, config=cfg)
    except DmgCreatorError as e:
        logger.debug("Build failed", exc_info=True)
        print(format_error(e), file=sys.stderr)
        return 1

    print(f"\nDMG created successfully at: {dmg}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
