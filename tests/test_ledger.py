"""Tests for the installed-mod ledger."""

import json

import pytest

from modspool.errors import InvalidDataError, NotFoundError
from modspool.ledger import InstalledLedger
from modspool.models import InstallRecord


def _record(mod_id="m1", version="1.0", files=None):
    return InstallRecord(
        mod_id=mod_id,
        mod_title=f"Mod {mod_id}",
        version=version,
        installed_files=files or [f"/game/BepInEx/plugins/{mod_id}/a.dll"],
        game_path="/game",
        download_url="https://x/e.zip",
    )


class TestInstalledLedger:
    def test_empty_without_file(self, paths):
        ledger = InstalledLedger(paths)
        assert ledger.all() == []
        assert ledger.count() == 0
        assert ledger.get("m1") is None
        assert not ledger.has("m1")

    def test_add_and_get(self, paths):
        ledger = InstalledLedger(paths)
        ledger.add(_record())
        assert ledger.has("m1")
        assert ledger.get("m1").version == "1.0"

    def test_add_same_id_replaces(self, paths):
        ledger = InstalledLedger(paths)
        ledger.add(_record(version="1.0"))
        replacement = _record(version="2.0")
        ledger.add(replacement)
        assert ledger.count() == 1
        assert ledger.get("m1") == replacement

    def test_remove(self, paths):
        ledger = InstalledLedger(paths)
        ledger.add(_record("m1"))
        ledger.add(_record("m2"))
        ledger.remove("m1")
        ledger.remove("unknown")
        assert [r.mod_id for r in ledger.all()] == ["m2"]

    def test_update_version(self, paths):
        ledger = InstalledLedger(paths)
        ledger.add(_record())
        ledger.update_version("m1", "1.1", ["/game/BepInEx/plugins/m1/b.dll"])
        record = ledger.get("m1")
        assert record.version == "1.1"
        assert record.installed_files == ["/game/BepInEx/plugins/m1/b.dll"]

    def test_update_version_unknown(self, paths):
        with pytest.raises(NotFoundError, match="ghost"):
            InstalledLedger(paths).update_version("ghost", "1", [])

    def test_clear(self, paths):
        ledger = InstalledLedger(paths)
        ledger.add(_record("m1"))
        ledger.clear()
        assert ledger.count() == 0
        assert paths.ledger_path.exists()

    def test_document_format(self, paths):
        ledger = InstalledLedger(paths)
        ledger.add(_record())
        data = json.loads(paths.ledger_path.read_text())
        assert data["lastUpdated"]
        assert data["mods"][0]["modId"] == "m1"
        assert data["mods"][0]["installedFiles"] == ["/game/BepInEx/plugins/m1/a.dll"]

    def test_last_updated_refreshed(self, paths):
        ledger = InstalledLedger(paths)
        ledger.add(_record())
        first = ledger.load().last_updated
        ledger.remove("m1")
        assert ledger.load().last_updated >= first

    def test_no_temp_files_left(self, paths):
        ledger = InstalledLedger(paths)
        ledger.add(_record())
        ledger.add(_record("m2"))
        assert [p.name for p in paths.ledger_path.parent.iterdir()] == ["installed_mods.json"]

    def test_corrupt_document(self, paths):
        paths.ledger_path.parent.mkdir(parents=True)
        paths.ledger_path.write_text("[broken")
        with pytest.raises(InvalidDataError):
            InstalledLedger(paths).all()

    def test_non_utf8_document(self, paths):
        paths.ledger_path.parent.mkdir(parents=True)
        paths.ledger_path.write_bytes(b"\xff\xfe")
        with pytest.raises(InvalidDataError):
            InstalledLedger(paths).all()

    def test_failed_write_keeps_previous_document(self, paths, monkeypatch):
        ledger = InstalledLedger(paths)
        ledger.add(_record("m1"))
        before = paths.ledger_path.read_bytes()

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("modspool.files.os.replace", fail_replace)
        with pytest.raises(OSError, match="disk full"):
            ledger.add(_record("m2"))

        assert paths.ledger_path.read_bytes() == before
        assert [p.name for p in paths.ledger_path.parent.iterdir()] == ["installed_mods.json"]
        assert [r.mod_id for r in ledger.all()] == ["m1"]
