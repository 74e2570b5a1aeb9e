"""
BepInEx loader detection.

The loader is reported in one of three states:

  - absent: no ``BepInEx`` folder, or the folder without the file that
    starts the loader (``winhttp.dll``/``doorstop_config.ini`` on Windows,
    ``run_bepinex.sh`` on macOS)
  - present but not initialized: the loader has never run
  - present and initialized: ``BepInEx/LogOutput.txt`` exists
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from modspool.models import GameStatus, LoaderStatus
from modspool.platforms import LOADER_DIR, LOADER_LOG_FILE, PlatformRules, current_rules
from modspool.steam import GameLocator

logger = logging.getLogger(__name__)


def detect_loader(game_root: Path, rules: Optional[PlatformRules] = None) -> LoaderStatus:
    rules = rules or current_rules()
    if not rules.supported:
        return LoaderStatus(message="Unsupported platform")

    loader_dir = Path(game_root) / LOADER_DIR
    if not loader_dir.is_dir():
        return LoaderStatus(message="BepInEx not detected")

    if not rules.has_loader_entrypoint(Path(game_root)):
        return LoaderStatus(message="BepInEx folder found but loader not detected")

    if (loader_dir / LOADER_LOG_FILE).exists():
        return LoaderStatus(
            present=True, initialized=True, message="BepInEx detected and initialized"
        )
    return LoaderStatus(present=True, message="BepInEx detected but not initialized")


def get_game_status(locator: Optional[GameLocator] = None) -> GameStatus:
    """
    Locate the game and inspect its loader.

    Detection failures are reported in the returned status rather than
    raised, so a caller can always render something.
    """
    locator = locator or GameLocator()
    try:
        result = locator.locate()
    except OSError as e:
        logger.warning("Game detection failed: %s", e)
        return GameStatus(loader=LoaderStatus(message=f"Detection error: {e}"))

    if not result.found:
        return GameStatus(loader=LoaderStatus(message="Game not found"))
    return GameStatus(
        path=result.path,
        found=True,
        loader=detect_loader(result.path, locator.rules),
    )


def validate_game_path(path: Path, rules: Optional[PlatformRules] = None) -> GameStatus:
    """Validate a manually selected directory and report its loader state."""
    locator = GameLocator(rules)
    game_root = locator.validate(path)
    return GameStatus(
        path=game_root,
        found=True,
        loader=detect_loader(game_root, locator.rules),
    )
