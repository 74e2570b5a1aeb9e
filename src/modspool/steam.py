"""
Steam library discovery and game-path validation.

Steam keeps its primary library under a fixed root and lists any extra
libraries in ``steamapps/libraryfolders.vdf``, a KeyValues text file::

    "libraryfolders"
    {
        "1"
        {
            "path"      "D:\\SteamLibrary"
            ...

Each library installs games under ``steamapps/common/<installdir>``. The
locator scans exactly one level below ``common`` for a directory whose name
matches :data:`GAME_NAME_PATTERNS` and that passes the platform's
installation check.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Iterable, Optional

from modspool.errors import InvalidDataError, NotFoundError
from modspool.models import GameDetectionResult, SteamApp, SteamLibrary
from modspool.platforms import PlatformRules, current_rules

logger = logging.getLogger(__name__)

# Tried in order against each directory name; the first hit wins.
GAME_NAME_PATTERNS = (
    re.compile(r"silksong", re.IGNORECASE),
    re.compile(r"hollow.?knight.?silksong", re.IGNORECASE),
    re.compile(r"hollow knight silksong", re.IGNORECASE),
)

_PATH_LINE = re.compile(r'^\s*"path"\s+"((?:[^"\\]|\\.)*)"', re.IGNORECASE)
_ACF_VALUE = re.compile(r'^\s*"(appid|installdir)"\s+"((?:[^"\\]|\\.)*)"', re.IGNORECASE)


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def parse_library_folders(text: str) -> list[str]:
    """Return every ``"path"`` value in a ``libraryfolders.vdf`` document."""
    paths = []
    for line in text.splitlines():
        match = _PATH_LINE.match(line)
        if match:
            paths.append(_unescape(match.group(1)))
    return paths


def _read_app_manifests(steamapps: Path) -> dict[str, str]:
    """Map ``installdir`` to ``appid`` from the ``appmanifest_*.acf`` files."""
    appids: dict[str, str] = {}
    for acf in steamapps.glob("appmanifest_*.acf"):
        try:
            text = acf.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Skipping unreadable %s: %s", acf, e)
            continue
        values = {}
        for line in text.splitlines():
            match = _ACF_VALUE.match(line)
            if match:
                values.setdefault(match.group(1).lower(), _unescape(match.group(2)))
        if "appid" in values and "installdir" in values:
            appids[values["installdir"].lower()] = values["appid"]
    return appids


class GameLocator:
    """
    Find the game in the Steam libraries of the current platform.

    Usage::

        locator = GameLocator(current_rules())
        result = locator.locate()
        if result.found:
            print(result.path)
    """

    def __init__(
        self,
        rules: Optional[PlatformRules] = None,
        patterns: Iterable[re.Pattern] = GAME_NAME_PATTERNS,
    ):
        self.rules = rules or current_rules()
        self.patterns = tuple(patterns)

    def library_roots(self) -> list[Path]:
        """
        The default Steam root followed by every library declared in the
        manifest that exists on disk, in discovery order without duplicates.
        """
        root = self.rules.steam_root
        if root is None:
            return []
        roots = [root]
        manifest = self.rules.library_manifest
        try:
            text = manifest.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.info("No readable library manifest at %s (%s); using %s only", manifest, e, root)
            return roots

        for value in parse_library_folders(text):
            path = Path(value)
            if path in roots:
                continue
            if not path.exists():
                logger.debug("Ignoring missing Steam library %s", path)
                continue
            roots.append(path)
        return roots

    def matches_name(self, name: str) -> bool:
        return any(pattern.search(name) for pattern in self.patterns)

    def locate(self) -> GameDetectionResult:
        """
        Scan each library's ``steamapps/common`` and stop at the first
        confirmed installation.

        Raises:
            OSError: a ``common`` directory exists but cannot be listed.
        """
        result = GameDetectionResult()
        for root in self.library_roots():
            steamapps = root / "steamapps"
            common = steamapps / "common"
            if not common.is_dir():
                continue

            library = SteamLibrary(path=root)
            appids = _read_app_manifests(steamapps)
            with os.scandir(common) as entries:
                children = sorted(
                    (entry for entry in entries if entry.is_dir()),
                    key=lambda entry: entry.name.lower(),
                )
            for entry in children:
                library.apps.append(
                    SteamApp(
                        appid=appids.get(entry.name.lower(), ""),
                        name=entry.name,
                        installdir=entry.name,
                    )
                )
                if result.found or not self.matches_name(entry.name):
                    continue
                candidate = Path(entry.path)
                if self.rules.is_game_installation(candidate):
                    logger.info("Found game installation at %s", candidate)
                    result.found = True
                    result.path = candidate

            result.libraries.append(library)
            if result.found:
                break

        if not result.found:
            logger.info("Game not found in %d Steam libraries", len(result.libraries))
        return result

    def validate(self, path: str | Path) -> Path:
        """
        Check a user-selected game directory without looking at Steam.

        Raises:
            NotFoundError: the path does not exist.
            InvalidDataError: it is not a directory or holds no game.
        """
        path = Path(path)
        if not path.exists():
            raise NotFoundError(f"Path does not exist: {path}")
        if not path.is_dir():
            raise InvalidDataError(f"Path is not a directory: {path}", field="path")
        if not self.rules.is_game_installation(path):
            raise InvalidDataError(
                f"Directory does not appear to contain a valid game installation: {path}",
                field="path",
            )
        return path
