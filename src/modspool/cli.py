"""
CLI entry point for modspool.

Commands:
  - ``modspool detect``
  - ``modspool validate <game_dir> [--save]``
  - ``modspool repo fetch|list|show|evict|add|remove``
  - ``modspool search <repo_id> [query]``
  - ``modspool install <url_or_path> --name <mod name>``
  - ``modspool uninstall <mod name>``
  - ``modspool list`` / ``modspool installed``
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

# Load .env so MODSPOOL_* variables can be set via .env file
load_dotenv()

from modspool.config import Paths, SettingsStore
from modspool.detect import get_game_status, validate_game_path
from modspool.errors import ModSpoolError
from modspool.installer import ModInstaller
from modspool.ledger import InstalledLedger
from modspool.models import InstallRecord
from modspool.platforms import current_rules
from modspool.repository import RepositoryCache
from modspool.search import SORT_KEYS, search_mods
from modspool.steam import GameLocator


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def _game_root(ctx: click.Context, game_path: Optional[str]) -> Path:
    if game_path:
        return Path(game_path)
    settings = SettingsStore(ctx.obj["paths"]).load()
    if settings.game_path:
        return Path(settings.game_path)
    _fail(ModSpoolError("No game path set. Use --game-path or 'modspool validate <dir> --save'."))


game_path_option = click.option(
    "--game-path",
    "-g",
    envvar="MODSPOOL_GAME_PATH",
    type=click.Path(file_okay=False),
    help="Game directory (defaults to the saved one).",
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """modspool: find the game, browse mod repositories and manage BepInEx mods."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj.setdefault("paths", Paths.default())
    ctx.obj.setdefault("rules", current_rules())
    ctx.obj["verbose"] = verbose


@main.command()
@click.pass_context
def detect(ctx: click.Context) -> None:
    """Look for the game in the Steam libraries and check BepInEx."""
    status = get_game_status(GameLocator(ctx.obj["rules"]))
    if status.found:
        click.echo(f"Game:     {status.path}")
    else:
        click.echo("Game:     not found")
    click.echo(f"BepInEx:  {status.loader.message}")


@main.command()
@click.argument("game_dir", type=click.Path())
@click.option("--save", is_flag=True, help="Remember this directory.")
@click.pass_context
def validate(ctx: click.Context, game_dir: str, save: bool) -> None:
    """Check that GAME_DIR is a game installation."""
    try:
        status = validate_game_path(Path(game_dir), ctx.obj["rules"])
        if save:
            SettingsStore(ctx.obj["paths"]).set_game_path(game_dir, ctx.obj["rules"])
    except ModSpoolError as e:
        _fail(e)
    click.echo(f"✓ Valid game directory: {status.path}")
    click.echo(f"  BepInEx: {status.loader.message}")


# ── Repositories ───────────────────────────────────────────────────


@main.group()
def repo() -> None:
    """Manage mod repositories."""


@repo.command("fetch")
@click.argument("url", required=False)
@click.pass_context
def repo_fetch(ctx: click.Context, url: Optional[str]) -> None:
    """Fetch URL (or every saved repository) into the cache."""
    paths = ctx.obj["paths"]
    urls = [url] if url else SettingsStore(paths).load().repos
    if not urls:
        click.echo("No repositories configured.")
        return

    async def run():
        failed = 0
        async with RepositoryCache(paths) as repos:
            for repo_url in urls:
                try:
                    catalog = await repos.fetch(repo_url)
                except ModSpoolError as e:
                    failed += 1
                    click.echo(f"✗ {repo_url}: {e}", err=True)
                    continue
                click.echo(f"✓ {catalog.name} [{catalog.catalog_id}]: {len(catalog.mods)} mods")
        return failed

    if asyncio.run(run()):
        sys.exit(1)


@repo.command("list")
@click.pass_context
def repo_list(ctx: click.Context) -> None:
    """List cached repositories."""
    summaries = RepositoryCache(ctx.obj["paths"]).list_cached()
    if not summaries:
        click.echo("No cached repositories.")
        return
    for s in summaries:
        click.echo(f"  [{s.id}] {s.name}  v{s.version}  {s.mod_count} mods  {s.url}")


@repo.command("show")
@click.argument("repo_id")
@click.pass_context
def repo_show(ctx: click.Context, repo_id: str) -> None:
    """Show the mods of a cached repository."""
    try:
        catalog = RepositoryCache(ctx.obj["paths"]).load_cached(repo_id)
    except ModSpoolError as e:
        _fail(e)
    click.echo(f"{catalog.name} [{catalog.catalog_id}] ({len(catalog.mods)} mods)")
    for mod in catalog.mods:
        authors = ", ".join(mod.authors) if mod.authors else "Unknown"
        click.echo(f"  [{mod.id}] {mod.title} by {authors}  (game {mod.game_version})")
        for download in mod.downloads:
            click.echo(f"      {download.label or 'download'}: {download.url}")


@repo.command("evict")
@click.argument("repo_id", required=False)
@click.option("--all", "evict_all", is_flag=True, help="Clear the whole cache.")
@click.pass_context
def repo_evict(ctx: click.Context, repo_id: Optional[str], evict_all: bool) -> None:
    """Remove a repository (or all of them) from the cache."""
    repos = RepositoryCache(ctx.obj["paths"])
    if evict_all:
        repos.evict_all()
    elif repo_id:
        repos.evict(repo_id)
    else:
        raise click.UsageError("Give a REPO_ID or --all.")
    click.echo("Cache cleared.")


@repo.command("add")
@click.argument("url")
@click.pass_context
def repo_add(ctx: click.Context, url: str) -> None:
    """Save a repository URL."""
    try:
        SettingsStore(ctx.obj["paths"]).add_repo(url)
    except ModSpoolError as e:
        _fail(e)
    click.echo(f"Added {url}")


@repo.command("remove")
@click.argument("url")
@click.pass_context
def repo_remove(ctx: click.Context, url: str) -> None:
    """Forget a saved repository URL."""
    SettingsStore(ctx.obj["paths"]).remove_repo(url)
    click.echo(f"Removed {url}")


@main.command()
@click.argument("repo_id")
@click.argument("query", default="")
@click.option("--requirement", "-r", multiple=True, help="Required dependency (repeatable).")
@click.option("--author", "-a", multiple=True, help="Author filter (repeatable).")
@click.option("--sort", "sort_by", type=click.Choice(sorted(SORT_KEYS)), default="title")
@click.option("--desc", is_flag=True, help="Sort descending.")
@click.pass_context
def search(
    ctx: click.Context,
    repo_id: str,
    query: str,
    requirement: tuple[str, ...],
    author: tuple[str, ...],
    sort_by: str,
    desc: bool,
) -> None:
    """Search the mods of a cached repository."""
    try:
        catalog = RepositoryCache(ctx.obj["paths"]).load_cached(repo_id)
    except ModSpoolError as e:
        _fail(e)
    results = search_mods(catalog.mods, query, requirement, author, sort_by, desc)
    if not results:
        click.echo("No results found.")
        return
    for mod in results:
        click.echo(f"  [{mod.id}] {mod.title}  - {mod.description[:80]}")


# ── Install / uninstall ────────────────────────────────────────────


@main.command()
@click.argument("source")
@click.option("--name", "-n", "mod_name", required=True, help="Mod folder name.")
@click.option("--mod-id", default=None, help="Ledger id (defaults to the folder name).")
@click.option("--version", "mod_version", default="unknown", help="Version to record.")
@game_path_option
@click.pass_context
def install(
    ctx: click.Context,
    source: str,
    mod_name: str,
    mod_id: Optional[str],
    mod_version: str,
    game_path: Optional[str],
) -> None:
    """Install a mod from a URL or a local file/directory."""
    paths = ctx.obj["paths"]
    game_root = _game_root(ctx, game_path)
    is_url = source.startswith(("http://", "https://"))

    async def run():
        async with ModInstaller(paths) as installer:
            if is_url:
                return await installer.install(source, game_root, mod_name)
            return await installer.install_from_path(source, game_root, mod_name)

    try:
        result = asyncio.run(run())
        folder = result.mod_folder_name or mod_name
        InstalledLedger(paths).add(
            InstallRecord(
                mod_id=mod_id or folder,
                mod_title=mod_name,
                version=mod_version,
                installed_files=result.installed_files,
                game_path=str(game_root),
                download_url=source if is_url else None,
            )
        )
    except ModSpoolError as e:
        _fail(e)
    click.echo(f"\n✓ Installed '{folder}'")
    click.echo(f"  {result.message}")


@main.command()
@click.argument("mod_name")
@click.option("--mod-id", default=None, help="Ledger id (defaults to the folder name).")
@game_path_option
@click.pass_context
def uninstall(ctx: click.Context, mod_name: str, mod_id: Optional[str], game_path: Optional[str]) -> None:
    """Remove an installed mod."""
    paths = ctx.obj["paths"]
    try:
        result = ModInstaller(paths).uninstall(_game_root(ctx, game_path), mod_name)
        if result.success:
            InstalledLedger(paths).remove(mod_id or result.mod_folder_name)
    except ModSpoolError as e:
        _fail(e)
    if not result.success:
        click.echo(f"{mod_name}: {result.message}", err=True)
        sys.exit(1)
    click.echo(f"✓ Uninstalled '{result.mod_folder_name}'")


@main.command("list")
@game_path_option
@click.pass_context
def list_(ctx: click.Context, game_path: Optional[str]) -> None:
    """List everything in BepInEx/plugins."""
    try:
        names = ModInstaller(ctx.obj["paths"]).list_mods(_game_root(ctx, game_path))
    except ModSpoolError as e:
        _fail(e)
    if not names:
        click.echo("No plugins installed.")
    for name in names:
        click.echo(f"  {name}")


@main.command()
@click.pass_context
def installed(ctx: click.Context) -> None:
    """List mods recorded in the ledger."""
    try:
        records = InstalledLedger(ctx.obj["paths"]).all()
    except ModSpoolError as e:
        _fail(e)
    if not records:
        click.echo("No mods recorded.")
    for record in records:
        click.echo(
            f"  [{record.mod_id}] {record.mod_title} {record.version}"
            f"  ({len(record.installed_files)} files, {record.installed_at})"
        )


if __name__ == "__main__":
    main()
