"""
Per-platform rules for finding Steam libraries, recognising a game
installation and recognising the BepInEx loader.

One :class:`PlatformRules` instance is chosen at startup with
:func:`current_rules` and passed to the locator, detector and installer.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

# BepInEx layout under the game root
LOADER_DIR = "BepInEx"
PLUGINS_DIR = "plugins"
LOADER_LOG_FILE = "LogOutput.txt"
PLUGIN_SUFFIX = ".dll"


class PlatformRules:
    """Base rules; subclasses describe one supported platform each."""

    name = "unsupported"
    supported = False

    def __init__(self, steam_root: Optional[Path] = None):
        self.steam_root = steam_root

    @property
    def library_manifest(self) -> Optional[Path]:
        """``libraryfolders.vdf`` listing the secondary Steam libraries."""
        if self.steam_root is None:
            return None
        return self.steam_root / "steamapps" / "libraryfolders.vdf"

    def is_game_installation(self, path: Path) -> bool:
        """Whether ``path`` holds a runnable game for this platform."""
        return False

    def has_loader_entrypoint(self, game_root: Path) -> bool:
        """Whether the file that starts BepInEx alongside the game exists."""
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(steam_root={self.steam_root!r})"


class UnsupportedRules(PlatformRules):
    pass


class WindowsRules(PlatformRules):
    """Executable-style: ``*.exe`` in the game root, doorstop proxy DLL."""

    name = "windows"
    supported = True
    default_steam_root = Path("C:\\Program Files (x86)\\Steam")
    loader_markers = ("winhttp.dll", "doorstop_config.ini")

    def __init__(self, steam_root: Optional[Path] = None):
        super().__init__(steam_root or self.default_steam_root)

    def is_game_installation(self, path: Path) -> bool:
        return any(
            child.is_file() and child.suffix.lower() == ".exe"
            for child in path.iterdir()
        )

    def has_loader_entrypoint(self, game_root: Path) -> bool:
        return any((game_root / marker).exists() for marker in self.loader_markers)


class MacRules(PlatformRules):
    """Bundle-style: a ``*.app`` directory, started through a launch script."""

    name = "macos"
    supported = True
    launch_script = "run_bepinex.sh"

    def __init__(self, steam_root: Optional[Path] = None):
        super().__init__(
            steam_root or Path.home() / "Library" / "Application Support" / "Steam"
        )

    def is_game_installation(self, path: Path) -> bool:
        return any(
            child.is_dir() and child.suffix.lower() == ".app"
            for child in path.iterdir()
        )

    def has_loader_entrypoint(self, game_root: Path) -> bool:
        return (game_root / self.launch_script).exists()


def current_rules(steam_root: Optional[Path] = None) -> PlatformRules:
    """Pick the rules for the running interpreter's platform."""
    if sys.platform == "win32":
        return WindowsRules(steam_root)
    if sys.platform == "darwin":
        return MacRules(steam_root)
    return UnsupportedRules(steam_root)
