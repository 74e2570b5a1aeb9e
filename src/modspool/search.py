"""Text search, filtering and sorting over catalog mods."""

from __future__ import annotations

from typing import Iterable, Sequence

from modspool.models import ModEntry

SORT_KEYS = {
    "title": lambda mod: mod.title.lower(),
    "updated": lambda mod: mod.updated_at,
    "authors": lambda mod: ", ".join(mod.authors).lower(),
}


def _matches_query(mod: ModEntry, query: str) -> bool:
    haystacks = [mod.title, mod.description, *mod.authors, *mod.requirements]
    return any(query in text.lower() for text in haystacks)


def search_mods(
    mods: Iterable[ModEntry],
    query: str = "",
    requirements: Sequence[str] = (),
    authors: Sequence[str] = (),
    sort_by: str = "title",
    descending: bool = False,
) -> list[ModEntry]:
    """
    Filter ``mods`` by a free-text query and requirement/author filters.

    Matching is case-insensitive substring matching. Every requirement
    filter must match one of the mod's requirements; any author filter may
    match one of its authors.
    """
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key {sort_by!r}; expected one of {sorted(SORT_KEYS)}")

    results = list(mods)
    query = query.strip().lower()
    if query:
        results = [mod for mod in results if _matches_query(mod, query)]

    if requirements:
        wanted = [req.lower() for req in requirements]
        results = [
            mod
            for mod in results
            if all(any(w in r.lower() for r in mod.requirements) for w in wanted)
        ]

    if authors:
        wanted = [author.lower() for author in authors]
        results = [
            mod
            for mod in results
            if any(any(w in a.lower() for a in mod.authors) for w in wanted)
        ]

    return sorted(results, key=SORT_KEYS[sort_by], reverse=descending)
