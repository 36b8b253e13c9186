import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import yaml
from mkdocs.config import config_options as c
from mkdocs.config.defaults import MkDocsConfig
from mkdocs.exceptions import ConfigurationError, PluginError
from mkdocs.plugins import BasePlugin
from mkdocs.structure.files import File, Files

from plugins.hashed_routes.routes import (
    DEFAULT_FALLBACK_LINK,
    IDENTIFIER_LENGTH,
    MAX_IDENTIFIER_LENGTH,
    Collection,
    SiteRoutes,
    build_site_routes,
)

# Use MkDocs' plugin logger namespace so debug logs appear only with `--verbose`.
log = logging.getLogger("mkdocs.plugins.hashed_routes")


class HashedRoutesPlugin(BasePlugin):
    """Serve numbered content files under stable, hash-based URLs.

    Configuration options:
    - collections (list): One item per content directory, either a mapping
      ``{path, title, key}`` (``key`` defaults to ``path``) or a
      ``[path, key, title]`` list.
    - extension (str): Content file extension.
    - index_name (str): Basename of the collection landing page, never listed.
    - fallback_link (str): Link used as first link of an empty collection.
    - identifier_length (int): Hex characters kept from the SHA-256 digest.
    - inject_nav (bool): Add one nav section per collection to an explicit `nav`.
    - mappings_file (str): Debug dump of identifier -> file (json or yaml),
      relative to the project root. Empty disables it.
    - strict (bool): Abort the build on any identifier collision.

    Links published in ``config.extra.hashed_routes`` follow MkDocs' URL
    settings: the path of ``site_url`` is prepended and ``.html`` is appended
    when ``use_directory_urls`` is off. ``fallback_link`` is published as
    written.
    """

    config_scheme = (
        ("collections", c.Type(list, default=[])),
        ("extension", c.Type(str, default=".md")),
        ("index_name", c.Type(str, default="index")),
        ("fallback_link", c.Type(str, default=DEFAULT_FALLBACK_LINK)),
        ("identifier_length", c.Type(int, default=IDENTIFIER_LENGTH)),
        ("inject_nav", c.Type(bool, default=True)),
        ("mappings_file", c.Type(str, default="")),
        ("strict", c.Type(bool, default=True)),
    )

    def __init__(self):
        super().__init__()
        self.collections: List[Collection] = []
        self.routes: Optional[SiteRoutes] = None

    # ------------------------------------------------------------
    # Build the routes once the MkDocs config is known
    # ------------------------------------------------------------
    def on_config(self, config: MkDocsConfig) -> MkDocsConfig:
        length = self.config["identifier_length"]
        if isinstance(length, bool) or not 1 <= length <= MAX_IDENTIFIER_LENGTH:
            raise ConfigurationError(
                f"[hashed_routes] identifier_length must be between 1 and "
                f"{MAX_IDENTIFIER_LENGTH}, got {length}"
            )

        self.collections = self.load_collections(self.config["collections"])
        # Recomputed from scratch on every build, `mkdocs serve` included
        self.routes = build_site_routes(
            self.collections,
            config["docs_dir"],
            extension=self.config["extension"],
            index_name=self.config["index_name"],
            fallback_link=self.config["fallback_link"],
            identifier_length=length,
            base_path=urlsplit(config.get("site_url") or "").path,
            link_suffix="" if config.get("use_directory_urls", True) else ".html",
        )

        if self.routes.errors and self.config["strict"]:
            raise PluginError("\n".join(str(e) for e in self.routes.errors))

        config["extra"]["hashed_routes"] = self.routes.to_extra()

        if self.config["inject_nav"]:
            if config.get("nav") is None:
                log.info("[hashed_routes] no explicit nav configured; skipping nav injection")
            else:
                config["nav"] = self.inject_nav(config["nav"])

        return config

    # ------------------------------------------------------------
    # Move numbered pages to their identifier URLs
    # ------------------------------------------------------------
    def on_files(self, files: Files, config: MkDocsConfig) -> Files:
        rewrites = self.routes.rewrites if self.routes else {}
        if not rewrites:
            return files

        rewritten = 0
        for file in files:
            target_uri = rewrites.get(file.src_uri)
            if target_uri is None:
                continue
            # Let MkDocs compute the destination the rewritten path would get
            target = File(
                target_uri,
                config["docs_dir"],
                config["site_dir"],
                config["use_directory_urls"],
            )
            file.dest_uri = target.dest_uri
            file.url = target.url
            file.abs_dest_path = target.abs_dest_path
            rewritten += 1
            log.debug(f"[hashed_routes] {file.src_uri} -> {file.url}")

        log.info(f"[hashed_routes] rewrote {rewritten} of {len(rewrites)} routes")
        return files

    # ------------------------------------------------------------
    # Optional debug dump, regenerated on every build
    # ------------------------------------------------------------
    def on_post_build(self, config: MkDocsConfig) -> None:
        mappings_file = self.config["mappings_file"]
        if not mappings_file or self.routes is None:
            return

        project_root = Path(config["config_file_path"]).resolve().parent
        output_path = project_root / mappings_file
        self.write_route_mappings(self.routes, output_path)
        log.info(f"[hashed_routes] route mappings saved to {output_path}")

    # ----- Helper functions -------

    @staticmethod
    def load_collections(raw_collections: List[Any]) -> List[Collection]:
        """Validate the `collections` option into Collection values."""
        collections: List[Collection] = []
        seen_keys = set()
        seen_roots = set()

        for index, item in enumerate(raw_collections):
            if isinstance(item, dict):
                path = item.get("path")
                key = item.get("key", path)
                title = item.get("title", key)
            elif isinstance(item, (list, tuple)) and len(item) == 3:
                path, key, title = item
            else:
                raise ConfigurationError(
                    f"[hashed_routes] collections[{index}] must be a mapping with "
                    f"'path' and 'title' or a [path, key, title] list, got {item!r}"
                )

            if not isinstance(path, str) or not path.strip("/"):
                raise ConfigurationError(f"[hashed_routes] collections[{index}] is missing 'path'")
            if not isinstance(key, str) or not isinstance(title, str):
                raise ConfigurationError(
                    f"[hashed_routes] collections[{index}] 'key' and 'title' must be strings"
                )

            key = key.strip("/")
            if key in seen_keys:
                raise ConfigurationError(f"[hashed_routes] duplicate collection key '{key}'")
            seen_keys.add(key)

            # Each file can only be served under one identifier URL
            content_root = path.strip("/")
            if content_root in seen_roots:
                raise ConfigurationError(
                    f"[hashed_routes] collection path '{content_root}' is used by more than one collection"
                )
            seen_roots.add(content_root)

            collections.append(Collection(content_root=content_root, key=key, title=title))

        return collections

    def inject_nav(self, nav: List[Any]) -> List[Any]:
        """Replace (by title) or append one nav section per collection.

        Empty or missing collections add nothing. Collections dropped after a
        collision (``strict: false``) are not touched either, so a section
        written by hand under the same title stays as it is.
        """
        nav = list(nav)
        extension = self.config["extension"]

        for routes in self.routes.collections.values():
            collection = routes.collection
            if not routes.entries:
                log.debug(f"[hashed_routes] no entries in '{collection.content_root}'; nav left as is")
                continue
            section = {
                collection.title: [
                    {entry.label: f"{collection.content_root}/{entry.filename(extension)}"}
                    for entry in routes.entries
                ]
            }
            for position, item in enumerate(nav):
                if isinstance(item, dict) and collection.title in item:
                    nav[position] = section
                    break
            else:
                nav.append(section)

        return nav

    @staticmethod
    def write_route_mappings(routes: SiteRoutes, output_path: Path) -> None:
        """Write identifier -> file/label per collection as JSON or YAML."""
        data: Dict[str, List[Dict[str, str]]] = routes.mappings_dump()
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if output_path.suffix in (".yml", ".yaml"):
            text = yaml.safe_dump(data, allow_unicode=True, sort_keys=False)
        else:
            text = json.dumps(data, ensure_ascii=False, indent=2) + "\n"

        output_path.write_text(text, encoding="utf-8")
