"""
Application paths and persisted settings.

:class:`Paths` is built once and handed to every component; nothing below
looks up a global directory on its own. Environment overrides
(``MODSPOOL_DATA_DIR``, ``MODSPOOL_CACHE_DIR``) can come from a ``.env``
file loaded by the CLI.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from modspool.errors import InvalidDataError
from modspool.files import atomic_write_text

logger = logging.getLogger(__name__)

APP_NAME = "modspool"


def _default_data_root() -> Path:
    home = Path.home()
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA") or home / "AppData" / "Roaming")
    if sys.platform == "darwin":
        return home / "Library" / "Application Support"
    return Path(os.environ.get("XDG_DATA_HOME") or home / ".local" / "share")


def _default_cache_root() -> Path:
    home = Path.home()
    if sys.platform == "win32":
        return Path(os.environ.get("LOCALAPPDATA") or home / "AppData" / "Local")
    if sys.platform == "darwin":
        return home / "Library" / "Caches"
    return Path(os.environ.get("XDG_CACHE_HOME") or home / ".cache")


@dataclass(frozen=True)
class Paths:
    """Directories owned by modspool."""

    app_data_dir: Path
    cache_dir: Path

    @classmethod
    def default(cls) -> Paths:
        data_dir = os.environ.get("MODSPOOL_DATA_DIR")
        cache_dir = os.environ.get("MODSPOOL_CACHE_DIR")
        return cls(
            app_data_dir=Path(data_dir) if data_dir else _default_data_root() / APP_NAME,
            cache_dir=Path(cache_dir) if cache_dir else _default_cache_root() / APP_NAME,
        )

    @property
    def repo_cache_dir(self) -> Path:
        return self.cache_dir / "repos"

    @property
    def ledger_path(self) -> Path:
        return self.cache_dir / "installed_mods.json"

    @property
    def scratch_dir(self) -> Path:
        return self.cache_dir / "scratch"

    @property
    def settings_path(self) -> Path:
        return self.app_data_dir / "config.json"


# ── Persisted settings ─────────────────────────────────────────────


class UiSettings(BaseModel):
    theme: str = "dark"
    window_width: int = 1200
    window_height: int = 800


class AppSettings(BaseModel):
    game_path: Optional[str] = None
    repos: list[str] = Field(default_factory=list)
    ui: UiSettings = Field(default_factory=UiSettings)


class SettingsStore:
    """Load and save :class:`AppSettings` as ``config.json``."""

    def __init__(self, paths: Paths):
        self.path = paths.settings_path

    def load(self) -> AppSettings:
        if not self.path.exists():
            return AppSettings()
        try:
            return AppSettings.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, ValidationError) as e:
            raise InvalidDataError(f"Failed to parse settings file {self.path}: {e}") from e

    def save(self, settings: AppSettings) -> None:
        atomic_write_text(self.path, settings.model_dump_json(indent=2))
        logger.debug("Settings saved to %s", self.path)

    def add_repo(self, url: str) -> AppSettings:
        if not url.startswith(("http://", "https://")):
            raise InvalidDataError(
                "Invalid URL format. Must start with http:// or https://", field="url"
            )
        settings = self.load()
        if url not in settings.repos:
            settings.repos.append(url)
            self.save(settings)
        return settings

    def remove_repo(self, url: str) -> AppSettings:
        settings = self.load()
        settings.repos = [repo for repo in settings.repos if repo != url]
        self.save(settings)
        return settings

    def set_game_path(self, path: Optional[str | Path], rules=None) -> AppSettings:
        """Store a game path after validating it; ``None`` clears it."""
        from modspool.detect import validate_game_path

        settings = self.load()
        if path is not None:
            validate_game_path(Path(path), rules)
            settings.game_path = str(Path(path))
        else:
            settings.game_path = None
        self.save(settings)
        return settings
