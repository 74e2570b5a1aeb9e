"""Tests for artifact classification, install, uninstall and listing."""

import asyncio
import io
import os
import tarfile
import time
import zipfile

import httpx
import pytest

from modspool.errors import InvalidDataError, LoaderNotInstalledError, TransportError
from modspool.installer import (
    STALE_SCRATCH_AGE,
    ArtifactKind,
    ModInstaller,
    classify_artifact,
    normalize_mod_name,
)


def _zip_bytes(files):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


def _tar_gz_bytes(files):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _installer(paths, routes=None, status=200):
    routes = routes or {}

    def handler(request):
        body = routes.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(status, content=body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ModInstaller(paths, client=client, show_progress=False)


def _install(installer, url, game_root, name, **kwargs):
    async def run():
        async with installer:
            return await installer.install(url, game_root, name, **kwargs)

    return asyncio.run(run())


def _plugin_entries(game_root):
    return sorted(os.listdir(game_root / "BepInEx" / "plugins"))


class TestClassify:
    def test_zip_signature_wins_over_extension(self, tmp_path):
        path = tmp_path / "plugin.dll"
        path.write_bytes(b"PK\x03\x04rest")
        assert classify_artifact(path) is ArtifactKind.ZIP

    def test_gzip_signature(self, tmp_path):
        path = tmp_path / "download"
        path.write_bytes(b"\x1f\x8b\x08\x00")
        assert classify_artifact(path) is ArtifactKind.TAR_GZ

    def test_plugin_dll(self, tmp_path):
        path = tmp_path / "Mod.DLL"
        path.write_bytes(b"MZ\x90\x00")
        assert classify_artifact(path) is ArtifactKind.PLUGIN

    def test_extensionless_unknown(self, tmp_path):
        path = tmp_path / "blob"
        path.write_bytes(b"\x00\x01\x02\x03")
        assert classify_artifact(path) is ArtifactKind.OPAQUE

    def test_zip_name_with_broken_header(self, tmp_path):
        path = tmp_path / "mod.zip"
        path.write_bytes(b"oops")
        assert classify_artifact(path) is ArtifactKind.OPAQUE

    def test_short_file(self, tmp_path):
        path = tmp_path / "x"
        path.write_bytes(b"P")
        assert classify_artifact(path) is ArtifactKind.OPAQUE

    def test_directory(self, tmp_path):
        assert classify_artifact(tmp_path) is ArtifactKind.DIRECTORY


class TestNormalizeModName:
    def test_replaces_separators(self):
        assert normalize_mod_name("Mods/Cool: Mod") == "Mods_Cool_ Mod"

    def test_rejects_empty(self):
        with pytest.raises(InvalidDataError):
            normalize_mod_name(" .. ")


class TestInstall:
    def test_zip_into_mod_folder(self, paths, game_root):
        archive = _zip_bytes({"Cool/Cool.dll": b"MZ", "Cool/readme.txt": b"hi"})
        installer = _installer(paths, {"/cool.zip": archive})

        result = _install(installer, "https://x/cool.zip", game_root, "Cool Mod")

        mod_dir = game_root / "BepInEx" / "plugins" / "Cool Mod"
        assert result.success
        assert result.mod_folder_name == "Cool Mod"
        assert result.installed_files == [
            str(mod_dir / "Cool" / "Cool.dll"),
            str(mod_dir / "Cool" / "readme.txt"),
        ]
        assert (mod_dir / "Cool" / "readme.txt").read_bytes() == b"hi"

    def test_reinstall_replaces_folder(self, paths, game_root):
        _install(_installer(paths, {"/a.zip": _zip_bytes({"old.txt": b"1"})}), "https://x/a.zip", game_root, "M")
        _install(_installer(paths, {"/a.zip": _zip_bytes({"new.txt": b"2"})}), "https://x/a.zip", game_root, "M")

        mod_dir = game_root / "BepInEx" / "plugins" / "M"
        assert sorted(os.listdir(mod_dir)) == ["new.txt"]

    def test_tar_gz(self, paths, game_root):
        archive = _tar_gz_bytes({"lib/a.dll": b"MZ"})
        result = _install(_installer(paths, {"/pkg": archive}), "https://x/pkg", game_root, "T")
        assert result.installed_files == [str(game_root / "BepInEx" / "plugins" / "T" / "lib" / "a.dll")]

    def test_plugin_dll_is_flat(self, paths, game_root):
        result = _install(
            _installer(paths, {"/files/Thing.dll": b"MZ\x90\x00"}),
            "https://x/files/Thing.dll",
            game_root,
            "Thing",
        )
        assert result.installed_files == [str(game_root / "BepInEx" / "plugins" / "Thing.dll")]
        assert _plugin_entries(game_root) == ["Thing.dll"]

    def test_opaque_file_gets_folder(self, paths, game_root):
        result = _install(_installer(paths, {"/cfg.json": b"{}"}), "https://x/cfg.json", game_root, "Cfg")
        assert result.installed_files == [str(game_root / "BepInEx" / "plugins" / "Cfg" / "cfg.json")]

    def test_creates_plugins_folder(self, paths, game_root):
        assert not (game_root / "BepInEx" / "plugins").exists()
        _install(_installer(paths, {"/a.dll": b"MZ"}), "https://x/a.dll", game_root, "A")
        assert (game_root / "BepInEx" / "plugins").is_dir()

    def test_progress_callback(self, paths, game_root):
        seen = []
        _install(
            _installer(paths, {"/a.dll": b"MZ" * 10}),
            "https://x/a.dll",
            game_root,
            "A",
            progress_callback=lambda done, total, msg: seen.append((done, total)),
        )
        assert seen[-1] == (20, 20)

    def test_scratch_removed(self, paths, game_root):
        _install(_installer(paths, {"/a.zip": _zip_bytes({"f": b"1"})}), "https://x/a.zip", game_root, "A")
        assert os.listdir(paths.scratch_dir) == []

    def test_stale_scratch_purged(self, paths, game_root):
        stale = paths.scratch_dir / "install-old"
        stale.mkdir(parents=True)
        old = time.time() - STALE_SCRATCH_AGE - 60
        os.utime(stale, (old, old))

        _install(_installer(paths, {"/a.dll": b"MZ"}), "https://x/a.dll", game_root, "A")
        assert not stale.exists()


class TestInstallFailures:
    def test_loader_missing(self, paths, tmp_path):
        installer = _installer(paths, {"/a.zip": _zip_bytes({"f": b"1"})})
        with pytest.raises(LoaderNotInstalledError):
            _install(installer, "https://x/a.zip", tmp_path, "A")
        assert not (tmp_path / "BepInEx").exists()

    def test_http_404_leaves_nothing(self, paths, game_root):
        with pytest.raises(TransportError) as exc:
            _install(_installer(paths), "https://x/missing.zip", game_root, "A")
        assert exc.value.status_code == 404
        assert not (game_root / "BepInEx" / "plugins").exists()
        assert os.listdir(paths.scratch_dir) == []

    def test_failed_download_keeps_existing_plugins(self, paths, game_root):
        plugins = game_root / "BepInEx" / "plugins"
        plugins.mkdir()
        (plugins / "Existing.dll").write_bytes(b"MZ")
        with pytest.raises(TransportError):
            _install(_installer(paths), "https://x/missing.zip", game_root, "A")
        assert _plugin_entries(game_root) == ["Existing.dll"]

    def test_rejects_non_http_url(self, paths, game_root):
        with pytest.raises(InvalidDataError):
            _install(_installer(paths), "file:///etc/passwd", game_root, "A")

    def test_unsafe_zip_member(self, paths, game_root):
        archive = _zip_bytes({"../escape.txt": b"x"})
        with pytest.raises(InvalidDataError, match="Unsafe"):
            _install(_installer(paths, {"/a.zip": archive}), "https://x/a.zip", game_root, "A")
        assert _plugin_entries(game_root) == []
        assert not (game_root / "BepInEx" / "escape.txt").exists()

    def test_corrupt_tar_gz(self, paths, game_root):
        with pytest.raises(InvalidDataError):
            _install(_installer(paths, {"/a.tgz": b"\x1f\x8b\x08\x00garbage"}), "https://x/a.tgz", game_root, "A")
        assert _plugin_entries(game_root) == []


class TestInstallFromPath:
    def test_directory(self, paths, game_root, tmp_path):
        source = tmp_path / "src"
        (source / "sub").mkdir(parents=True)
        (source / "a.dll").write_bytes(b"MZ")
        (source / "sub" / "b.txt").write_text("b")

        result = asyncio.run(ModInstaller(paths).install_from_path(source, game_root, "Dir"))
        mod_dir = game_root / "BepInEx" / "plugins" / "Dir"
        assert result.installed_files == [str(mod_dir / "a.dll"), str(mod_dir / "sub" / "b.txt")]
        assert (mod_dir / "sub" / "b.txt").read_text() == "b"


class TestUninstall:
    def test_missing_mod(self, paths, game_root):
        result = ModInstaller(paths).uninstall(game_root, "missing-mod")
        assert result.success is False
        assert result.message == "not found"

    def test_missing_loader_is_not_found(self, paths, tmp_path):
        result = ModInstaller(paths).uninstall(tmp_path, "anything")
        assert result.message == "not found"

    @pytest.mark.parametrize(
        "path,body",
        [
            ("/m.zip", _zip_bytes({"a/b.txt": b"x"})),
            ("/m.dll", b"MZ"),
            ("/m.bin", b"\x00\x00"),
        ],
    )
    def test_install_then_uninstall_restores_plugins(self, paths, game_root, path, body):
        plugins = game_root / "BepInEx" / "plugins"
        plugins.mkdir()
        (plugins / "Existing.dll").write_bytes(b"MZ")
        before = _plugin_entries(game_root)

        _install(_installer(paths, {path: body}), f"https://x{path}", game_root, "Mod")
        assert _plugin_entries(game_root) != before
        result = ModInstaller(paths).uninstall(game_root, "Mod")

        assert result.success
        assert _plugin_entries(game_root) == before


class TestListMods:
    def test_lists_folders_and_plugins(self, paths, game_root):
        plugins = game_root / "BepInEx" / "plugins"
        (plugins / "Folder Mod").mkdir(parents=True)
        (plugins / "Flat.dll").write_bytes(b"MZ")
        (plugins / "notes.txt").write_text("x")
        assert ModInstaller(paths).list_mods(game_root) == ["Flat", "Folder Mod"]

    def test_no_plugins_folder(self, paths, game_root):
        assert ModInstaller(paths).list_mods(game_root) == []

    def test_no_loader(self, paths, tmp_path):
        with pytest.raises(LoaderNotInstalledError):
            ModInstaller(paths).list_mods(tmp_path)
