"""
Pydantic data models for mod catalogs, installed-mod records and detection
results.

Wire names follow the catalog and ledger JSON documents; Python attribute
names are snake_case. Every model accepts either form on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


def utc_now() -> str:
    """Current UTC time as an RFC 3339 string."""
    return datetime.now(timezone.utc).isoformat()


# ── Catalog models (fetched from repository URLs) ──────────────────


class ModDownload(BaseModel):
    """A single downloadable artifact of a mod."""

    url: str
    label: str = ""


class ModEntry(BaseModel):
    """One installable mod as published in a catalog."""

    id: str
    title: str
    description: str
    requirements: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    downloads: list[ModDownload] = Field(default_factory=list)
    homepage: Optional[str] = None
    authors: list[str] = Field(default_factory=list)
    game_version: str = Field(
        alias="game_version",
        validation_alias=AliasChoices("game_version", "gameVersion"),
    )
    updated_at: str = Field(
        alias="updated_at",
        validation_alias=AliasChoices("updated_at", "updatedAt"),
    )

    model_config = {"populate_by_name": True}


class Catalog(BaseModel):
    """
    A mod repository document.

    ``version`` is the catalog format version, not a content revision.
    """

    catalog_id: str = Field(
        alias="repo_id",
        validation_alias=AliasChoices("repo_id", "catalogId", "catalog_id"),
    )
    name: str
    version: int
    mods: list[ModEntry] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class CachedCatalog(BaseModel):
    """On-disk cache entry: a catalog plus where and when it was fetched."""

    source_url: str = ""
    fetched_at: Optional[str] = None
    catalog: Catalog


class CatalogSummary(BaseModel):
    """Lightweight description of a cached catalog, used for listings."""

    id: str
    name: str
    url: str = ""
    version: int
    last_updated: Optional[str] = None
    mod_count: int = 0


# ── Installed-mod ledger ───────────────────────────────────────────


class InstallRecord(BaseModel):
    """A mod this tool has installed, keyed by ``mod_id``."""

    mod_id: str = Field(alias="modId")
    mod_title: str = Field(alias="modTitle")
    version: str
    installed_at: str = Field(default_factory=utc_now, alias="installedAt")
    installed_files: list[str] = Field(default_factory=list, alias="installedFiles")
    game_path: str = Field(alias="gamePath")
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")

    model_config = {"populate_by_name": True}


class LedgerDocument(BaseModel):
    """The persisted ledger: every record plus a set-wide timestamp."""

    mods: list[InstallRecord] = Field(default_factory=list)
    last_updated: str = Field(default_factory=utc_now, alias="lastUpdated")

    model_config = {"populate_by_name": True}


# ── Installer results ──────────────────────────────────────────────


class InstallResult(BaseModel):
    success: bool
    message: str
    installed_files: list[str] = Field(default_factory=list)
    mod_folder_name: Optional[str] = Field(default=None, alias="modFolderName")

    model_config = {"populate_by_name": True}


# ── Game and loader detection ──────────────────────────────────────


class LoaderStatus(BaseModel):
    """Derived state of the mod loader under a game root. Never persisted."""

    present: bool = False
    initialized: bool = False
    message: str = ""


class SteamApp(BaseModel):
    appid: str = ""
    name: str
    installdir: str


class SteamLibrary(BaseModel):
    path: Path
    apps: list[SteamApp] = Field(default_factory=list)


class GameDetectionResult(BaseModel):
    found: bool = False
    path: Optional[Path] = None
    libraries: list[SteamLibrary] = Field(default_factory=list)


class GameStatus(BaseModel):
    path: Optional[Path] = None
    found: bool = False
    loader: LoaderStatus = Field(default_factory=LoaderStatus)
