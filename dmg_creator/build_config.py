from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .lib.retry import LinearBackoff

ICON_SIZES: Tuple[int, ...] = (16, 32, 64, 128, 256, 512, 1024)


@dataclass(frozen=True)
class BuildConfig:
    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.raw.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"'{name}' must be a mapping")
        return section

    @property
    def image_size(self) -> str:
        return str(self._section("image").get("size") or "100m")

    @property
    def image_filesystem(self) -> str:
        return str(self._section("image").get("filesystem") or "APFS")

    @property
    def image_layout(self) -> str:
        return str(self._section("image").get("layout") or "GPTSPUD")

    @property
    def image_format(self) -> str:
        return str(self._section("image").get("format") or "UDZO")

    @property
    def volumes_root(self) -> str:
        return str(self._section("image").get("volumes_root") or "/Volumes")

    @property
    def poll_backoff(self) -> LinearBackoff:
        poll = self._section("poll")
        defaults = LinearBackoff()
        return LinearBackoff(
            initial_delay=float(poll.get("initial_delay", defaults.initial_delay)),
            increment=float(poll.get("increment", defaults.increment)),
            max_attempts=int(poll.get("max_attempts", defaults.max_attempts)),
        )

    @property
    def icon_sizes(self) -> Tuple[int, ...]:
        sizes = self._section("icons").get("sizes")
        if not sizes:
            return ICON_SIZES
        if not isinstance(sizes, (list, tuple)):
            raise ValueError("'icons.sizes' must be a list")
        return tuple(int(s) for s in sizes)

    def validate(self) -> None:
        """Evaluate every setting once so bad values fail at load time."""

        try:
            for name in ("image_size", "image_filesystem", "image_layout", "image_format", "volumes_root"):
                getattr(self, name)
            self.poll_backoff
            sizes = self.icon_sizes
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid build config: {e}") from e
        if any(s <= 0 for s in sizes):
            raise ValueError("invalid build config: icon sizes must be positive")


def load_build_config(path: Optional[str]) -> BuildConfig:
    if path is None:
        return BuildConfig()

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("build config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read build config files") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("build config must contain a mapping/object")

    cfg = BuildConfig(raw=raw)
    cfg.validate()
    return cfg
