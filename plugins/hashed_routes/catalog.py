import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

log = logging.getLogger("mkdocs.plugins.hashed_routes")

DEFAULT_EXTENSION = ".md"
DEFAULT_INDEX_NAME = "index"


@dataclass(frozen=True)
class CatalogEntry:
    """One numbered content file discovered in a collection.

    ``order`` only makes sense inside the collection the entry came from.
    ``source_path`` is the filename relative to the collection root with the
    content extension removed, e.g. ``01.Vue`` for ``01.Vue.md``.
    """

    order: int
    label: str
    source_path: str

    def filename(self, extension: str = DEFAULT_EXTENSION) -> str:
        return f"{self.source_path}{extension}"


def filename_pattern(extension: str = DEFAULT_EXTENSION) -> "re.Pattern[str]":
    """Return the regex matching ``<order>.<label><extension>``."""
    return re.compile(rf"^([0-9]+)\.(.+){re.escape(extension)}$")


def parse_filename(
    filename: str,
    extension: str = DEFAULT_EXTENSION,
    index_name: str = DEFAULT_INDEX_NAME,
) -> Optional[CatalogEntry]:
    """Parse a single filename into a CatalogEntry.

    Returns None for the reserved index page and for anything that does not
    look like a numbered content file (README files, assets...).
    """
    if filename == f"{index_name}{extension}":
        return None

    match = filename_pattern(extension).match(filename)
    if not match:
        return None

    # Label is kept exactly as written so titles round-trip into navigation
    return CatalogEntry(
        order=int(match.group(1)),
        label=match.group(2),
        source_path=filename[: -len(extension)] if extension else filename,
    )


def parse_entries(
    filenames: Iterable[str],
    extension: str = DEFAULT_EXTENSION,
    index_name: str = DEFAULT_INDEX_NAME,
) -> List[CatalogEntry]:
    """Turn a raw directory listing into entries sorted by ``order``.

    ``sorted`` is stable, so files sharing an order keep the relative order
    they had in ``filenames``.
    """
    entries = []
    seen = set()
    for filename in filenames:
        entry = parse_filename(filename, extension, index_name)
        if entry is None or entry.source_path in seen:
            continue
        seen.add(entry.source_path)
        entries.append(entry)
    return sorted(entries, key=lambda entry: entry.order)


def scan_collection(
    root: Union[str, Path],
    extension: str = DEFAULT_EXTENSION,
    index_name: str = DEFAULT_INDEX_NAME,
) -> List[CatalogEntry]:
    """Read a collection directory and return its ordered catalog.

    A missing or unreadable directory is not fatal: a warning is logged and
    the collection is treated as empty.
    """
    root = Path(root)
    if not root.is_dir():
        log.warning(f"[hashed_routes] collection directory not found: {root}")
        return []

    try:
        with os.scandir(root) as it:
            filenames = [item.name for item in it if item.is_file()]
    except OSError as e:
        log.warning(f"[hashed_routes] unable to list collection directory {root}: {e}")
        return []

    entries = parse_entries(filenames, extension, index_name)
    log.debug(f"[hashed_routes] {root}: {len(entries)} of {len(filenames)} files catalogued")
    return entries
