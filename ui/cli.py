from __future__ import annotations

from dmg_creator.main import main as core_main


def main(argv: list[str] | None = None) -> int:
    # CLI and GUI must produce identical DMGs for identical input.
    # Both go through dmg_creator.main; nothing is built here.
    return core_main(argv)


if __name__ == "__main__":
    raise SystemExit(main())
