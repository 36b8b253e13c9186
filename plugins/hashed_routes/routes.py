"""
Route mapping for numbered content collections.

Every catalogued file gets a short identifier derived from its collection key
and source path. The identifiers drive three outputs consumed by MkDocs:
the navigation groups, the rewrite table (on-disk path -> identifier path)
and a reverse lookup used for debugging.

Identifier width: 10 hex chars of SHA-256 is 40 bits. For n files in one
collection the collision probability is about n^2 / 2^41, i.e. ~1e-7 for
500 files. A detected collision is always a hard error; rename the content
rather than widening the identifier on the fly.
"""

import functools
import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from mkdocs.exceptions import PluginError

from plugins.hashed_routes.catalog import (
    DEFAULT_EXTENSION,
    DEFAULT_INDEX_NAME,
    CatalogEntry,
    scan_collection,
)

log = logging.getLogger("mkdocs.plugins.hashed_routes")

IDENTIFIER_LENGTH = 10
MAX_IDENTIFIER_LENGTH = 64  # sha256 hexdigest
DEFAULT_FALLBACK_LINK = "/"

IdentifierFunc = Callable[[str, str], str]


class RouteCollisionError(PluginError):
    """Two distinct source paths of one collection share an identifier."""

    def __init__(self, collection_key: str, identifier: str, first_path: str, second_path: str):
        self.collection_key = collection_key
        self.identifier = identifier
        self.first_path = first_path
        self.second_path = second_path
        super().__init__(
            f"[hashed_routes] identifier collision in collection '{collection_key}': "
            f"'{first_path}' and '{second_path}' both map to '{identifier}'. "
            f"Rename one of the files."
        )


class RewriteConflictError(PluginError):
    """One on-disk file is claimed by two collections with different targets."""

    def __init__(self, collection_key: str, other_key: str, source_path: str):
        self.collection_key = collection_key
        self.other_key = other_key
        self.source_path = source_path
        super().__init__(
            f"[hashed_routes] '{source_path}' is already routed by collection "
            f"'{other_key}' and cannot also be routed by '{collection_key}'."
        )


@dataclass(frozen=True)
class Collection:
    content_root: str
    key: str
    title: str

    @property
    def route_prefix(self) -> str:
        return route_prefix(self.key)

    @property
    def nav_key(self) -> str:
        return f"{self.route_prefix.rstrip('/')}/"


@dataclass(frozen=True)
class RouteMapping:
    identifier: str
    original_path: str
    label: str


@dataclass(frozen=True)
class NavigationItem:
    label: str
    link: str


@dataclass(frozen=True)
class NavigationGroup:
    label: str
    items: Tuple[NavigationItem, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "items": [{"label": item.label, "link": item.link} for item in self.items],
        }


def identifier_for(collection_key: str, source_path: str, length: int = IDENTIFIER_LENGTH) -> str:
    """Return the identifier of ``source_path`` inside ``collection_key``.

    Only the path takes part in the hash. Renumbering or relabeling a file
    without renaming it keeps its identifier.
    """
    digest = hashlib.sha256(f"{collection_key}/{source_path}".encode("utf-8")).hexdigest()
    return digest[:length]


def route_prefix(collection_key: str) -> str:
    key = collection_key.strip("/")
    return f"/{key}" if key else ""


def link_for(collection_key: str, identifier: str, base_path: str = "", suffix: str = "") -> str:
    """``<base_path>/<key>/<identifier><suffix>``.

    ``base_path`` is the site sub-path (e.g. ``/Interview-Question-Bank``),
    ``suffix`` is ``.html`` when MkDocs serves flat URLs.
    """
    return f"{base_path.rstrip('/')}{route_prefix(collection_key)}/{identifier}{suffix}"


def _assign_identifiers(
    collection_key: str,
    entries: Iterable[CatalogEntry],
    identifier: IdentifierFunc,
) -> Dict[str, CatalogEntry]:
    """Map identifier -> entry, first writer wins and a rival path raises."""
    assigned: Dict[str, CatalogEntry] = {}
    for entry in entries:
        ident = identifier(collection_key, entry.source_path)
        existing = assigned.get(ident)
        if existing is None:
            assigned[ident] = entry
        elif existing.source_path != entry.source_path:
            raise RouteCollisionError(collection_key, ident, existing.source_path, entry.source_path)
    return assigned


def build_navigation(
    collection_key: str,
    entries: Sequence[CatalogEntry],
    title: Optional[str] = None,
    identifier: IdentifierFunc = identifier_for,
    base_path: str = "",
    suffix: str = "",
) -> NavigationGroup:
    """Build the navigation group of a collection, keeping input order."""
    items = tuple(
        NavigationItem(
            label=entry.label,
            link=link_for(
                collection_key, identifier(collection_key, entry.source_path), base_path, suffix
            ),
        )
        for entry in entries
    )
    return NavigationGroup(label=title if title is not None else collection_key, items=items)


def build_first_link(
    collection_key: str,
    entries: Sequence[CatalogEntry],
    fallback: str = DEFAULT_FALLBACK_LINK,
    identifier: IdentifierFunc = identifier_for,
    base_path: str = "",
    suffix: str = "",
) -> str:
    """Link of the first entry, or ``fallback`` for an empty collection."""
    if not entries:
        return fallback
    first = entries[0]
    return link_for(collection_key, identifier(collection_key, first.source_path), base_path, suffix)


def build_route_mappings(
    collection_key: str,
    entries: Sequence[CatalogEntry],
    identifier: IdentifierFunc = identifier_for,
) -> List[RouteMapping]:
    assigned = _assign_identifiers(collection_key, entries, identifier)
    return [
        RouteMapping(identifier=ident, original_path=entry.source_path, label=entry.label)
        for ident, entry in assigned.items()
    ]


def build_reverse_lookup(
    collection_key: str,
    entries: Sequence[CatalogEntry],
    identifier: IdentifierFunc = identifier_for,
) -> Dict[str, RouteMapping]:
    return {
        mapping.identifier: mapping
        for mapping in build_route_mappings(collection_key, entries, identifier)
    }


def build_rewrite_table(
    collection_key: str,
    entries: Sequence[CatalogEntry],
    extension: str = DEFAULT_EXTENSION,
    content_root: Optional[str] = None,
    identifier: IdentifierFunc = identifier_for,
) -> Dict[str, str]:
    """Map each on-disk path to its identifier-based public path.

    ``content_root/01.Vue.md`` -> ``collection_key/<identifier>.md``. Paths
    are relative to ``docs_dir`` and use forward slashes, like MkDocs'
    ``File.src_uri``.
    """
    key = collection_key.strip("/")
    root = (content_root if content_root is not None else key).strip("/")
    rewrites: Dict[str, str] = {}
    for ident, entry in _assign_identifiers(collection_key, entries, identifier).items():
        original = f"{root}/{entry.filename(extension)}" if root else entry.filename(extension)
        public = f"{key}/{ident}{extension}" if key else f"{ident}{extension}"
        rewrites[original] = public
    return rewrites


@dataclass
class CollectionRoutes:
    collection: Collection
    entries: List[CatalogEntry]
    navigation: NavigationGroup
    first_link: str
    mappings: List[RouteMapping]
    rewrites: Dict[str, str]
    lookup: Dict[str, RouteMapping] = field(default_factory=dict)

    def reverse_lookup(self, identifier: str) -> Optional[RouteMapping]:
        return self.lookup.get(identifier)


def build_collection_routes(
    collection: Collection,
    entries: Sequence[CatalogEntry],
    extension: str = DEFAULT_EXTENSION,
    fallback_link: str = DEFAULT_FALLBACK_LINK,
    identifier_length: int = IDENTIFIER_LENGTH,
    base_path: str = "",
    link_suffix: str = "",
) -> CollectionRoutes:
    """Run every mapper step for one collection.

    Raises RouteCollisionError if two files of the collection collide.
    ``fallback_link`` is used as given; ``base_path`` is not applied to it.
    """
    identifier = functools.partial(identifier_for, length=identifier_length)
    key = collection.key

    mappings = build_route_mappings(key, entries, identifier)
    rewrites = build_rewrite_table(key, entries, extension, collection.content_root, identifier)

    return CollectionRoutes(
        collection=collection,
        entries=list(entries),
        navigation=build_navigation(
            key, entries, collection.title, identifier, base_path, link_suffix
        ),
        first_link=build_first_link(key, entries, fallback_link, identifier, base_path, link_suffix),
        mappings=mappings,
        rewrites=rewrites,
        lookup={mapping.identifier: mapping for mapping in mappings},
    )


@dataclass
class SiteRoutes:
    """Merged routes of every collection built in one run."""

    collections: Dict[str, CollectionRoutes] = field(default_factory=dict)
    errors: List[PluginError] = field(default_factory=list)
    fallback_link: str = DEFAULT_FALLBACK_LINK

    @property
    def navigation(self) -> Dict[str, List[NavigationGroup]]:
        return {
            routes.collection.nav_key: [routes.navigation]
            for routes in self.collections.values()
        }

    @property
    def first_links(self) -> Dict[str, str]:
        return {
            routes.collection.nav_key: routes.first_link
            for routes in self.collections.values()
        }

    @property
    def rewrites(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for routes in self.collections.values():
            merged.update(routes.rewrites)
        return merged

    def first_link(self, collection_key: str) -> str:
        routes = self.collections.get(collection_key.strip("/"))
        return routes.first_link if routes else self.fallback_link

    def mappings_dump(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            routes.collection.route_prefix: [
                {"identifier": m.identifier, "file": m.original_path, "label": m.label}
                for m in routes.mappings
            ]
            for routes in self.collections.values()
        }

    def to_extra(self) -> Dict[str, Any]:
        """Plain data published to templates through ``config.extra``."""
        return {
            "navigation": {
                nav_key: [group.to_dict() for group in groups]
                for nav_key, groups in self.navigation.items()
            },
            "first_links": self.first_links,
            "rewrites": self.rewrites,
        }


def build_site_routes(
    collections: Iterable[Collection],
    docs_dir: Union[str, Path],
    extension: str = DEFAULT_EXTENSION,
    index_name: str = DEFAULT_INDEX_NAME,
    fallback_link: str = DEFAULT_FALLBACK_LINK,
    identifier_length: int = IDENTIFIER_LENGTH,
    base_path: str = "",
    link_suffix: str = "",
) -> SiteRoutes:
    """Scan and map every collection independently.

    A collision only drops the collection it happened in; the error is kept
    in ``SiteRoutes.errors`` so the caller decides whether to stop the build.
    The same applies to a collection whose files are already routed by an
    earlier collection: the first one keeps them.
    """
    docs_dir = Path(docs_dir)
    site = SiteRoutes(fallback_link=fallback_link)
    # on-disk path -> key of the collection routing it
    claimed: Dict[str, str] = {}

    for collection in collections:
        entries = scan_collection(docs_dir / collection.content_root, extension, index_name)
        try:
            routes = build_collection_routes(
                collection,
                entries,
                extension,
                fallback_link,
                identifier_length,
                base_path,
                link_suffix,
            )
            for source_path in routes.rewrites:
                if source_path in claimed:
                    raise RewriteConflictError(collection.key, claimed[source_path], source_path)
        except (RouteCollisionError, RewriteConflictError) as e:
            log.error(str(e))
            site.errors.append(e)
            continue

        claimed.update(dict.fromkeys(routes.rewrites, collection.key))
        site.collections[collection.key.strip("/")] = routes
        log.info(
            f"[hashed_routes] {collection.route_prefix or '/'}: {len(routes.mappings)} routes"
        )

    log.debug(f"[hashed_routes] rewrites: {site.rewrites}")
    return site
