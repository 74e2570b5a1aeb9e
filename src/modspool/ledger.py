"""
Ledger of mods installed by modspool.

Stored as ``installed_mods.json``::

    {
      "mods": [{"modId": "...", "modTitle": "...", "version": "...",
                "installedAt": "...", "installedFiles": [...],
                "gamePath": "...", "downloadUrl": null}],
      "lastUpdated": "2024-01-01T00:00:00+00:00"
    }

The ledger records what this tool did; it is not a view of the plugin
folder (see :meth:`ModInstaller.list_mods` for that).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from modspool.config import Paths
from modspool.errors import InvalidDataError, NotFoundError
from modspool.files import atomic_write_text
from modspool.models import InstallRecord, LedgerDocument, utc_now

logger = logging.getLogger(__name__)


class InstalledLedger:
    """At most one :class:`InstallRecord` per ``mod_id``."""

    def __init__(self, paths: Paths):
        self.path: Path = paths.ledger_path

    def load(self) -> LedgerDocument:
        if not self.path.exists():
            return LedgerDocument()
        try:
            return LedgerDocument.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, ValidationError) as e:
            raise InvalidDataError(f"Failed to parse installed mods data: {e}") from e

    def _save(self, document: LedgerDocument) -> None:
        document.last_updated = utc_now()
        atomic_write_text(self.path, document.model_dump_json(indent=2, by_alias=True))

    def add(self, record: InstallRecord) -> None:
        """Store ``record``, replacing any record with the same id."""
        document = self.load()
        document.mods = [m for m in document.mods if m.mod_id != record.mod_id]
        document.mods.append(record)
        self._save(document)
        logger.info("Recorded %s %s (%d files)", record.mod_id, record.version, len(record.installed_files))

    def remove(self, mod_id: str) -> None:
        document = self.load()
        document.mods = [m for m in document.mods if m.mod_id != mod_id]
        self._save(document)

    def get(self, mod_id: str) -> Optional[InstallRecord]:
        return next((m for m in self.load().mods if m.mod_id == mod_id), None)

    def has(self, mod_id: str) -> bool:
        return self.get(mod_id) is not None

    def all(self) -> list[InstallRecord]:
        return self.load().mods

    def update_version(self, mod_id: str, version: str, files: list[str]) -> InstallRecord:
        """
        Point an existing record at a reinstalled version.

        Raises:
            NotFoundError: no record for ``mod_id``.
        """
        document = self.load()
        for record in document.mods:
            if record.mod_id == mod_id:
                record.version = version
                record.installed_files = list(files)
                record.installed_at = utc_now()
                self._save(document)
                return record
        raise NotFoundError(f"Mod with ID {mod_id} not found")

    def clear(self) -> None:
        self._save(LedgerDocument())

    def count(self) -> int:
        return len(self.load().mods)
