"""Shared fixtures."""

import copy

import pytest

from modspool.config import Paths

SAMPLE_CATALOG = {
    "repo_id": "core",
    "name": "Core Mods",
    "version": 1,
    "mods": [
        {
            "id": "m1",
            "title": "Example",
            "description": "d",
            "requirements": [],
            "images": [],
            "downloads": [{"url": "https://x/e.zip", "label": "dl"}],
            "authors": ["A"],
            "game_version": "1.0",
            "updated_at": "2024-01-01T00:00:00Z",
        }
    ],
}


@pytest.fixture
def catalog_data():
    return copy.deepcopy(SAMPLE_CATALOG)


@pytest.fixture
def paths(tmp_path):
    return Paths(app_data_dir=tmp_path / "data", cache_dir=tmp_path / "cache")


@pytest.fixture
def game_root(tmp_path):
    """A Windows-style game directory with BepInEx installed."""
    root = tmp_path / "Hollow Knight Silksong"
    root.mkdir()
    (root / "Hollow Knight Silksong.exe").write_bytes(b"MZ")
    (root / "BepInEx").mkdir()
    (root / "winhttp.dll").write_bytes(b"MZ")
    return root
