"""Exception hierarchy shared by the modspool components."""

from __future__ import annotations

from typing import Optional


class ModSpoolError(Exception):
    """Base class for every error raised by modspool."""


class NotFoundError(ModSpoolError, LookupError):
    """A path, cache entry, ledger entry or installed mod does not exist."""


class LoaderNotInstalledError(NotFoundError):
    """The mod loader root is missing under the game directory."""


class InvalidDataError(ModSpoolError, ValueError):
    """
    Input was rejected as a whole: a bad URL, a malformed or invalid catalog,
    a corrupt cache entry or ledger document, or an unsafe archive.

    ``field``, ``mod_index`` and ``mod_id`` locate the offending value when
    the error comes from catalog validation.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        mod_index: Optional[int] = None,
        mod_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.field = field
        self.mod_index = mod_index
        self.mod_id = mod_id


class TransportError(ModSpoolError):
    """An HTTP request failed: non-2xx status or connection failure."""

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
