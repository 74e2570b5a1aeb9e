"""
modspool: BepInEx mod manager core.

Find the game in the Steam libraries, check the BepInEx loader, cache mod
repositories, and install or uninstall mods.
"""

from modspool.config import AppSettings, Paths, SettingsStore
from modspool.detect import detect_loader, get_game_status, validate_game_path
from modspool.errors import (
    InvalidDataError,
    LoaderNotInstalledError,
    ModSpoolError,
    NotFoundError,
    TransportError,
)
from modspool.installer import ArtifactKind, ModInstaller, classify_artifact
from modspool.ledger import InstalledLedger
from modspool.models import (
    Catalog,
    CatalogSummary,
    GameDetectionResult,
    GameStatus,
    InstallRecord,
    InstallResult,
    LoaderStatus,
    ModDownload,
    ModEntry,
)
from modspool.platforms import MacRules, PlatformRules, UnsupportedRules, WindowsRules, current_rules
from modspool.repository import RepositoryCache, validate_catalog
from modspool.search import search_mods
from modspool.steam import GameLocator, parse_library_folders

__all__ = [
    "AppSettings",
    "Paths",
    "SettingsStore",
    "detect_loader",
    "get_game_status",
    "validate_game_path",
    "InvalidDataError",
    "LoaderNotInstalledError",
    "ModSpoolError",
    "NotFoundError",
    "TransportError",
    "ArtifactKind",
    "ModInstaller",
    "classify_artifact",
    "InstalledLedger",
    "Catalog",
    "CatalogSummary",
    "GameDetectionResult",
    "GameStatus",
    "InstallRecord",
    "InstallResult",
    "LoaderStatus",
    "ModDownload",
    "ModEntry",
    "MacRules",
    "PlatformRules",
    "UnsupportedRules",
    "WindowsRules",
    "current_rules",
    "RepositoryCache",
    "validate_catalog",
    "search_mods",
    "GameLocator",
    "parse_library_folders",
]

__version__ = "0.1.0"
