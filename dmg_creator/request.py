from __future__ import annotations

from dataclasses import dataclass, fields

from .errors import ValidationError


@dataclass(frozen=True)
class BuildRequest:
    app_name: str
    app_binary_path: str
    bundle_identifier: str
    # .png, .jpg, .gif or .tiff; anything sips can read.
    icon_path: str
    output_dir: str

    def validate(self) -> None:
        missing = {
            f.name: "is a required field"
            for f in fields(self)
            if not isinstance(getattr(self, f.name), str) or not getattr(self, f.name).strip()
        }
        if missing:
            raise ValidationError(missing)

    @property
    def dmg_name(self) -> str:
        return f"{self.app_name}.dmg"
