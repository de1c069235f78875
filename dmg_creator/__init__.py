"""macOS DMG creator.

Turns a compiled binary and an icon image into a drag-to-install disk image:
- {Name}.app bundle (Info.plist, icon.icns, binary)
- writable template image with an Applications shortcut
- compressed, read-only {Name}.dmg
"""

__all__ = []
