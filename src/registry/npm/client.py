"""NPM registry client: version catalogs and weekly download counts."""

from __future__ import annotations

import logging
import urllib.parse
from typing import Optional

import requests

from constants import Constants
from common.http_client import get_json
from common.errors import RegistryError
from common.logging_utils import extra_context, is_debug_enabled, Timer

from .catalog import CatalogCache, Downloads, VersionCatalog

logger = logging.getLogger(__name__)

PACKUMENT_HEADERS = {"Accept": "application/json"}


def quote_package_name(name: str) -> str:
    """URL-quote a package name, escaping the scope separator."""
    return urllib.parse.quote(name, safe="@")


class NpmClient:
    """Registry client holding an explicitly-owned catalog cache."""

    def __init__(
        self,
        registry_base: Optional[str] = None,
        api_base: Optional[str] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[CatalogCache] = None,
    ):
        self.registry_base = (registry_base or Constants.REGISTRY_URL_NPM).rstrip("/")
        self.api_base = (api_base or Constants.API_URL_NPM).rstrip("/")
        self.session = session
        self.cache = cache if cache is not None else CatalogCache()

    def get_catalog(self, package_name: str) -> VersionCatalog:
        """Return the version catalog for ``package_name``.

        Served from the cache when present; otherwise fetched once, parsed and
        stored. Cached snapshots are never refreshed.

        Raises:
            PackageNotFoundError: The registry has no such package.
            RegistryError: Transport, status or decoding failure.
        """
        cached = self.cache.get(package_name)
        if cached is not None:
            if is_debug_enabled(logger):
                logger.debug(
                    "Catalog cache hit",
                    extra=extra_context(event="cache_hit", component="npm_client", target=package_name),
                )
            return cached

        url = f"{self.registry_base}/{quote_package_name(package_name)}"
        with Timer() as timer:
            packument = get_json(
                url, context="npm registry", session=self.session, headers=PACKUMENT_HEADERS
            )
        if not isinstance(packument, dict) or not isinstance(packument.get("versions"), dict):
            raise RegistryError(f"Malformed packument for {package_name}", url=url)

        catalog = VersionCatalog.from_packument(packument, name=package_name)
        if catalog.latest is None:
            logger.warning("No usable 'latest' dist-tag for %s", package_name)
        logger.debug(
            "Fetched catalog for %s: %d versions in %d ms",
            package_name,
            len(catalog),
            timer.duration_ms(),
        )
        return self.cache.set_if_absent(package_name, catalog)

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_weekly_downloads(self, package_name: str) -> Downloads:
        """Fetch per-version download counts for the last week (uncached).

        Raises:
            RegistryError: Transport, status or decoding failure.
        """
        url = f"{self.api_base}/versions/{quote_package_name(package_name)}/last-week"
        data = get_json(url, context="npm downloads api", session=self.session)
        downloads = data.get("downloads") if isinstance(data, dict) else None
        if not isinstance(downloads, dict):
            raise RegistryError(f"Malformed download counts for {package_name}", url=url)
        return Downloads(downloads)
