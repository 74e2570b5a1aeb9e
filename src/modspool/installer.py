"""
BepInEx mod installer.

Handles the complete flow of installing a mod from a download URL:
  1. Stream the artifact into a private scratch directory
  2. Classify it (zip, tar.gz, plugin DLL, directory, anything else)
  3. Make sure ``BepInEx/plugins`` exists under the game root
  4. Extract or copy it into the plugins folder
  5. Remove the scratch directory

Archives, directories and unknown files each get their own
``plugins/<mod name>/`` folder, replaced wholesale on reinstall. A bare
plugin DLL is copied to ``plugins/<mod name>.dll``.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import os
import re
import shutil
import tarfile
import tempfile
import time
import zipfile
import zlib
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import httpx
from tqdm import tqdm

from modspool.config import Paths
from modspool.errors import (
    InvalidDataError,
    LoaderNotInstalledError,
    NotFoundError,
    TransportError,
)
from modspool.models import InstallResult
from modspool.platforms import LOADER_DIR, PLUGIN_SUFFIX, PLUGINS_DIR

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK"
GZIP_MAGIC = b"\x1f\x8b"
CHUNK_SIZE = 65536
# Scratch directories older than this are left over from abandoned installs
STALE_SCRATCH_AGE = 6 * 3600

ProgressCallback = Callable[[int, int, str], None]


class ArtifactKind(str, Enum):
    ZIP = "zip"
    TAR_GZ = "tar.gz"
    PLUGIN = "plugin"
    DIRECTORY = "directory"
    OPAQUE = "opaque"


def classify_artifact(path: Path) -> ArtifactKind:
    """
    Decide how a downloaded artifact is installed.

    A directory is a directory. For files the first bytes are checked
    before the extension: a ZIP or GZIP signature always means an archive,
    whatever the file is called. Without a signature, ``.dll`` marks a
    loader plugin and everything else (including a ``.zip`` with a broken
    header) is opaque.
    """
    path = Path(path)
    if path.is_dir():
        return ArtifactKind.DIRECTORY
    with open(path, "rb") as fp:
        head = fp.read(4)
    if head.startswith(ZIP_MAGIC):
        return ArtifactKind.ZIP
    if head.startswith(GZIP_MAGIC):
        return ArtifactKind.TAR_GZ
    if path.suffix.lower() == PLUGIN_SUFFIX:
        return ArtifactKind.PLUGIN
    return ArtifactKind.OPAQUE


def normalize_mod_name(mod_name: str) -> str:
    """Turn a display name into a folder name safe on every platform."""
    name = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", mod_name).strip().strip(".")
    if not name:
        raise InvalidDataError(f"Invalid mod name: {mod_name!r}", field="mod_name")
    return name


def _artifact_name(url: str) -> str:
    name = unquote(PurePosixPath(urlparse(url).path).name)
    name = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", name).strip(". ")
    return name or "download"


def _member_target(dest: Path, member_name: str) -> Optional[Path]:
    """Resolve an archive member below ``dest``; reject anything escaping it."""
    name = member_name.replace("\\", "/")
    parts = [p for p in PurePosixPath(name).parts if p not in ("", ".")]
    if (
        name.startswith("/")
        or ".." in parts
        or (parts and re.match(r"^[A-Za-z]:", parts[0]))
    ):
        raise InvalidDataError(f"Unsafe path in archive: {member_name}")
    if not parts:
        return None
    return dest.joinpath(*parts)


def _extract_zip(archive: Path, dest: Path) -> list[str]:
    files = []
    try:
        with zipfile.ZipFile(archive) as zf:
            members = zf.infolist()
            targets = [_member_target(dest, info.filename) for info in members]
            for info, target in zip(members, targets):
                if target is None:
                    continue
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                files.append(str(target))
    except zipfile.BadZipFile as e:
        raise InvalidDataError(f"Failed to read ZIP archive: {e}") from e
    return files


def _extract_tar_gz(archive: Path, dest: Path) -> list[str]:
    files = []
    try:
        with tarfile.open(archive, "r:gz") as tf:
            members = tf.getmembers()
            targets = [_member_target(dest, member.name) for member in members]
            for member, target in zip(members, targets):
                if target is None:
                    continue
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                if not member.isfile():
                    logger.debug("Skipping non-regular archive member %s", member.name)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                src = tf.extractfile(member)
                with src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                files.append(str(target))
    except (tarfile.TarError, gzip.BadGzipFile, EOFError, zlib.error) as e:
        raise InvalidDataError(f"Failed to read TAR.GZ archive: {e}") from e
    return files


def _copy_tree(source: Path, dest: Path) -> list[str]:
    files = []
    for dirpath, dirnames, filenames in os.walk(source):
        dirnames.sort()
        rel = Path(dirpath).relative_to(source)
        (dest / rel).mkdir(parents=True, exist_ok=True)
        for filename in sorted(filenames):
            target = dest / rel / filename
            shutil.copy2(Path(dirpath) / filename, target)
            files.append(str(target))
    return files


class ModInstaller:
    """
    Install and uninstall BepInEx mods under a game root.

    Usage::

        async with ModInstaller(Paths.default()) as installer:
            result = await installer.install(url, game_root, "My Mod")
    """

    def __init__(
        self,
        paths: Paths,
        client: Optional[httpx.AsyncClient] = None,
        download_timeout: float = 120.0,
        show_progress: bool = True,
    ):
        self.scratch_dir = paths.scratch_dir
        self._download_timeout = download_timeout
        self._show_progress = show_progress
        self._client = client
        self._locks: dict[Path, asyncio.Lock] = {}

    async def __aenter__(self) -> ModInstaller:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._download_timeout, follow_redirects=True
            )
        return self._client

    def _lock_for(self, game_root: Path) -> asyncio.Lock:
        return self._locks.setdefault(game_root, asyncio.Lock())

    # ── Plugin folder ──────────────────────────────────────────────

    @staticmethod
    def plugins_dir(game_root: str | Path) -> Path:
        return Path(game_root).absolute() / LOADER_DIR / PLUGINS_DIR

    def require_loader(self, game_root: str | Path) -> Path:
        """
        Return ``BepInEx/plugins`` without creating anything.

        Raises:
            LoaderNotInstalledError: ``BepInEx`` itself is missing.
        """
        plugins = self.plugins_dir(game_root)
        if not plugins.parent.is_dir():
            raise LoaderNotInstalledError("BepInEx not found. Please install BepInEx first.")
        return plugins

    def prepare_plugins_dir(self, game_root: str | Path) -> Path:
        """Return ``BepInEx/plugins``, creating ``plugins`` if needed."""
        plugins = self.require_loader(game_root)
        plugins.mkdir(exist_ok=True)
        return plugins

    # ── Install ────────────────────────────────────────────────────

    async def install(
        self,
        download_url: str,
        game_root: str | Path,
        mod_name: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> InstallResult:
        """
        Download ``download_url`` and install it as ``mod_name``.

        Args:
            download_url: HTTP(S) URL of the artifact.
            game_root: Validated game directory.
            mod_name: Name of the mod folder (normalised, see
                :attr:`InstallResult.mod_folder_name`).
            progress_callback: Optional ``(downloaded, total, message)``
                callback; ``total`` is 0 when the size is unknown.

        Raises:
            InvalidDataError: bad URL, bad mod name or unreadable archive.
            LoaderNotInstalledError: no BepInEx under ``game_root``.
            TransportError: the download failed.
        """
        if not download_url.startswith(("http://", "https://")):
            raise InvalidDataError(
                "Invalid URL format. Must start with http:// or https://", field="url"
            )
        normalize_mod_name(mod_name)
        self.require_loader(game_root)

        self._purge_stale_scratch()
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="install-", dir=self.scratch_dir))
        try:
            artifact = scratch / _artifact_name(download_url)
            await self._download_file(download_url, artifact, progress_callback)
            return await self.install_from_path(artifact, game_root, mod_name)
        finally:
            self._remove_scratch(scratch)

    async def install_from_path(
        self,
        source: str | Path,
        game_root: str | Path,
        mod_name: str,
    ) -> InstallResult:
        """Install a local file or directory as ``mod_name``."""
        source = Path(source)
        if not source.exists():
            raise NotFoundError(f"Artifact not found: {source}")
        folder = normalize_mod_name(mod_name)
        kind = classify_artifact(source)
        logger.debug("Classified %s as %s", source.name, kind.value)

        game_root = Path(game_root).absolute()
        async with self._lock_for(game_root):
            plugins = self.prepare_plugins_dir(game_root)
            files = await asyncio.to_thread(self._materialize, kind, source, plugins, folder)

        logger.info("Installed %s (%s, %d files)", folder, kind.value, len(files))
        return InstallResult(
            success=True,
            message=f"Successfully installed {len(files)} files",
            installed_files=files,
            mod_folder_name=folder,
        )

    @staticmethod
    def _materialize(kind: ArtifactKind, source: Path, plugins: Path, folder: str) -> list[str]:
        if kind is ArtifactKind.PLUGIN:
            target = plugins / f"{folder}{PLUGIN_SUFFIX}"
            shutil.copy2(source, target)
            return [str(target)]

        mod_dir = plugins / folder
        if mod_dir.is_dir():
            shutil.rmtree(mod_dir)
        elif mod_dir.exists():
            mod_dir.unlink()
        mod_dir.mkdir()
        try:
            if kind is ArtifactKind.ZIP:
                return _extract_zip(source, mod_dir)
            if kind is ArtifactKind.TAR_GZ:
                return _extract_tar_gz(source, mod_dir)
            if kind is ArtifactKind.DIRECTORY:
                return _copy_tree(source, mod_dir)
            target = mod_dir / source.name
            shutil.copy2(source, target)
            return [str(target)]
        except BaseException:
            shutil.rmtree(mod_dir, ignore_errors=True)
            raise

    async def _download_file(
        self,
        url: str,
        target: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Stream ``url`` into ``target``."""
        try:
            async with self.client.stream("GET", url) as resp:
                if not resp.is_success:
                    raise TransportError(
                        f"Download failed with status: {resp.status_code}",
                        url=url,
                        status_code=resp.status_code,
                    )
                total = int(resp.headers.get("content-length") or 0)
                downloaded = 0
                with open(target, "wb") as fp, tqdm(
                    total=total or None,
                    desc=f"Downloading {target.name}",
                    unit="B",
                    unit_scale=True,
                    disable=not self._show_progress,
                ) as pbar:
                    async for chunk in resp.aiter_bytes(CHUNK_SIZE):
                        fp.write(chunk)
                        downloaded += len(chunk)
                        pbar.update(len(chunk))
                        if progress_callback:
                            progress_callback(downloaded, total, f"Downloading {target.name}")
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to download file: {e}", url=url) from e
        logger.debug("Downloaded %d bytes from %s", downloaded, url)

    # ── Scratch cleanup ────────────────────────────────────────────

    @staticmethod
    def _remove_scratch(scratch: Path) -> None:
        try:
            shutil.rmtree(scratch)
        except OSError as e:
            logger.warning("Could not remove scratch directory %s: %s", scratch, e)

    def _purge_stale_scratch(self) -> None:
        if not self.scratch_dir.is_dir():
            return
        cutoff = time.time() - STALE_SCRATCH_AGE
        for child in self.scratch_dir.iterdir():
            try:
                if child.stat().st_mtime >= cutoff:
                    continue
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
                logger.debug("Removed stale scratch %s", child)
            except OSError as e:
                logger.warning("Could not remove stale scratch %s: %s", child, e)

    # ── Uninstall / list ───────────────────────────────────────────

    def uninstall(self, game_root: str | Path, mod_name: str) -> InstallResult:
        """
        Remove ``plugins/<mod name>/`` or, failing that,
        ``plugins/<mod name>.dll``. A mod that is not there is reported
        with ``success=False`` and message ``"not found"``.
        """
        folder = normalize_mod_name(mod_name)
        plugins = self.plugins_dir(game_root)

        mod_dir = plugins / folder
        if mod_dir.is_dir():
            shutil.rmtree(mod_dir)
            logger.info("Uninstalled %s", mod_dir)
            return InstallResult(
                success=True, message="Mod uninstalled successfully", mod_folder_name=folder
            )

        plugin_file = plugins / f"{folder}{PLUGIN_SUFFIX}"
        if plugin_file.is_file():
            plugin_file.unlink()
            logger.info("Uninstalled %s", plugin_file)
            return InstallResult(
                success=True, message="Mod uninstalled successfully", mod_folder_name=folder
            )

        return InstallResult(success=False, message="not found", mod_folder_name=folder)

    def list_mods(self, game_root: str | Path) -> list[str]:
        """
        Names of everything in the plugins folder: sub-directories as-is,
        plugin DLLs without their extension.

        Raises:
            LoaderNotInstalledError: no BepInEx under ``game_root``.
        """
        plugins = self.require_loader(game_root)
        if not plugins.is_dir():
            return []

        names = []
        for entry in sorted(plugins.iterdir(), key=lambda p: p.name.lower()):
            if entry.is_dir():
                names.append(entry.name)
            elif entry.is_file() and entry.suffix.lower() == PLUGIN_SUFFIX:
                names.append(entry.stem)
        return names
