"""
Mod repository fetching and on-disk caching.

A repository URL serves a JSON catalog::

    {
      "repo_id": "core",
      "name": "Core Mods",
      "version": 1,
      "mods": [{"id": "...", "title": "...", ...}]
    }

Fetched catalogs are validated in full and written to
``<cache_dir>/repos/repo_<id>.json`` together with the source URL. Cached
catalogs stay readable without network access.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from modspool.config import Paths
from modspool.errors import InvalidDataError, NotFoundError, TransportError
from modspool.files import atomic_write_text
from modspool.models import CachedCatalog, Catalog, CatalogSummary, utc_now

logger = logging.getLogger(__name__)

CACHE_PREFIX = "repo_"

# (attribute, label) pairs checked on every mod, in order
_REQUIRED_MOD_FIELDS = (
    ("title", "title"),
    ("description", "description"),
    ("game_version", "game version"),
    ("updated_at", "updated_at"),
)


def validate_catalog(catalog: Catalog) -> None:
    """
    Check the value-level invariants of a parsed catalog.

    The first violation rejects the whole catalog.

    Raises:
        InvalidDataError: with ``field`` set, and ``mod_index``/``mod_id``
            for per-mod violations.
    """
    if not catalog.catalog_id:
        raise InvalidDataError("Repository ID cannot be empty", field="repo_id")
    if not catalog.name:
        raise InvalidDataError("Repository name cannot be empty", field="name")
    if catalog.version <= 0:
        raise InvalidDataError("Repository version must be greater than 0", field="version")

    for index, mod in enumerate(catalog.mods):
        if not mod.id:
            raise InvalidDataError(
                f"Mod at index {index} has empty ID", field="id", mod_index=index
            )
        for attr, label in _REQUIRED_MOD_FIELDS:
            if not getattr(mod, attr):
                raise InvalidDataError(
                    f"Mod '{mod.id}' (index {index}) has empty {label}",
                    field=attr,
                    mod_index=index,
                    mod_id=mod.id,
                )


def cache_file_name(catalog_id: str) -> str:
    """Cache file name for a catalog id; distinct ids never share a file."""
    safe_id = quote(catalog_id, safe="-_.")
    return f"{CACHE_PREFIX}{safe_id}.json"


class RepositoryCache:
    """
    Fetch catalogs over HTTP and serve cached copies.

    Usage::

        async with RepositoryCache(Paths.default()) as repos:
            catalog = await repos.fetch("https://example.com/mods.json")

        for summary in RepositoryCache(paths).list_cached():
            print(summary.name, summary.mod_count)
    """

    def __init__(
        self,
        paths: Paths,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.cache_dir = paths.repo_cache_dir
        self._timeout = timeout
        self._client = client

    async def __aenter__(self) -> RepositoryCache:
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
                timeout=self._timeout,
                follow_redirects=True,
                headers={"Accept": "application/json"},
            )
        return self._client

    def cache_path(self, catalog_id: str) -> Path:
        return self.cache_dir / cache_file_name(catalog_id)

    # ── Network ────────────────────────────────────────────────────

    async def fetch(self, url: str) -> Catalog:
        """
        Download, validate and cache the catalog at ``url``.

        An existing cache entry for the same catalog id is replaced; nothing
        is written unless the whole catalog is valid.

        Raises:
            InvalidDataError: bad URL scheme, malformed JSON, or an invalid
                catalog.
            TransportError: connection failure or non-2xx status.
        """
        if not url.startswith(("http://", "https://")):
            raise InvalidDataError(
                "Invalid URL format. Must start with http:// or https://", field="url"
            )

        try:
            resp = await self.client.get(url)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to fetch repository: {e}", url=url) from e
        if not resp.is_success:
            raise TransportError(
                f"Repository request failed with status: {resp.status_code}",
                url=url,
                status_code=resp.status_code,
            )

        try:
            catalog = Catalog.model_validate_json(resp.content)
        except ValidationError as e:
            raise InvalidDataError(f"Failed to parse repository JSON: {e}") from e
        validate_catalog(catalog)

        entry = CachedCatalog(source_url=url, fetched_at=utc_now(), catalog=catalog)
        atomic_write_text(
            self.cache_path(catalog.catalog_id),
            entry.model_dump_json(indent=2, by_alias=True),
        )
        logger.info(
            "Fetched repository '%s' (%s) with %d mods",
            catalog.name,
            catalog.catalog_id,
            len(catalog.mods),
        )
        return catalog

    # ── Cache ──────────────────────────────────────────────────────

    def _read_entry(self, path: Path) -> CachedCatalog:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise NotFoundError(f"Repository cache entry not found: {path.name}") from e
        except UnicodeDecodeError as e:
            raise InvalidDataError(f"Cached repository {path.name} is not UTF-8: {e}") from e
        try:
            entry = CachedCatalog.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidDataError(f"Failed to parse cached repository {path.name}: {e}") from e
        validate_catalog(entry.catalog)
        return entry

    def load_cached(self, catalog_id: str) -> Catalog:
        """
        Read a cached catalog without touching the network.

        Raises:
            NotFoundError: the catalog was never fetched.
            InvalidDataError: the entry exists but is corrupt.
        """
        catalog = self._read_entry(self.cache_path(catalog_id)).catalog
        if catalog.catalog_id != catalog_id:
            raise InvalidDataError(
                f"Cache entry for '{catalog_id}' holds repository '{catalog.catalog_id}'",
                field="repo_id",
            )
        return catalog

    def list_cached(self) -> list[CatalogSummary]:
        """Summaries of every readable cache entry; corrupt entries are skipped."""
        if not self.cache_dir.is_dir():
            return []

        summaries = []
        for path in sorted(self.cache_dir.glob(f"{CACHE_PREFIX}*.json")):
            try:
                entry = self._read_entry(path)
            except (InvalidDataError, NotFoundError, OSError) as e:
                logger.warning("Skipping unreadable cache entry %s: %s", path.name, e)
                continue
            catalog = entry.catalog
            summaries.append(
                CatalogSummary(
                    id=catalog.catalog_id,
                    name=catalog.name,
                    url=entry.source_url,
                    version=catalog.version,
                    last_updated=entry.fetched_at,
                    mod_count=len(catalog.mods),
                )
            )
        return summaries

    def evict(self, catalog_id: str) -> None:
        self.cache_path(catalog_id).unlink(missing_ok=True)
        logger.debug("Evicted repository cache for %s", catalog_id)

    def evict_all(self) -> None:
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
        logger.info("Cleared repository cache %s", self.cache_dir)
