"""
Refresh Pipeline - Fetch, resolve, normalize, slim and write.

Run order:
1. Start fetching the official registry in a worker thread
2. Stage the plugin packages (temp npm install, removed on exit) and
   resolve installed versions meanwhile
3. Fetch the community registry
4. Normalize both record sets and slim their property trees
5. Write the three artifacts

Nothing is written until every remote fetch has succeeded, so a transport
failure leaves the previous cache intact.
"""

from __future__ import annotations

import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

from .config import Settings, get_settings
from .fetcher import PaginatedFetcher
from .http import HttpClient
from .installer import PackageStage, staged_packages
from .models import RefreshSummary
from .normalizer import normalize_community, normalize_official
from .observability import get_logger
from .resolver import NodeProbe, VersionResolver
from .slimmer import build_property_records
from .writer import (
    COMMUNITY_FILENAME,
    OFFICIAL_FILENAME,
    PROPERTIES_FILENAME,
    REFRESH_HINT,
    CacheWriter,
)


def raise_if_failed(future: Future) -> None:
    """Re-raise the error of a future that has already failed, without waiting."""
    if future.done() and future.exception() is not None:
        future.result()


class RefreshPipeline:
    """
    Rebuild the local node registry cache.

    Usage:
        summary = RefreshPipeline(get_settings()).run()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[PaginatedFetcher] = None,
        resolver_factory: Optional[Callable[[PackageStage], VersionResolver]] = None,
        writer: Optional[CacheWriter] = None,
    ):
        """
        Args:
            settings: Refresh settings (global settings if omitted)
            fetcher: Registry fetcher (built from settings if omitted)
            resolver_factory: Builds a resolver for the staged packages
            writer: Artifact writer (settings.output_dir if omitted)
        """
        self.settings = settings or get_settings()
        self.fetcher = fetcher or PaginatedFetcher(
            official_url=self.settings.official_url,
            community_url=self.settings.community_url,
            page_size=self.settings.page_size,
            client=HttpClient(timeout=self.settings.request_timeout_s),
        )
        self.resolver_factory = resolver_factory or self._default_resolver
        self.writer = writer or CacheWriter(Path(self.settings.output_dir))
        self.run_id = uuid.uuid4().hex[:12]
        self.logger = get_logger(__name__, run_id=self.run_id)

    def _default_resolver(self, stage: PackageStage) -> VersionResolver:
        probe = None
        if self.settings.dynamic_probe:
            probe = NodeProbe(
                node_modules=stage.node_modules,
                node_executable=self.settings.node_executable,
                timeout=self.settings.probe_timeout_s,
            )
            if not probe.available:
                self.logger.warning(
                    "%s not found, using static extraction only",
                    self.settings.node_executable,
                )
        return VersionResolver(probe=probe, workers=self.settings.resolver_workers)

    def _stage(self):
        return staged_packages(
            self.settings.packages,
            npm_executable=self.settings.npm_executable,
            install_timeout=self.settings.install_timeout_s,
            packages_dir=self.settings.packages_dir,
        )

    def run(self) -> RefreshSummary:
        """
        Perform a full refresh.

        Raises:
            RegistryTransportError: If any registry request fails
            CacheWriteError: If an artifact cannot be written
        """
        started = time.time()
        settings = self.settings
        summary = RefreshSummary()

        # The official fetch runs alongside install + resolve
        with ThreadPoolExecutor(max_workers=1) as pool:
            official_future = pool.submit(self.fetcher.fetch_official)
            with self._stage() as stage:
                raise_if_failed(official_future)
                summary.install_failures = len(stage.failures)
                resolver = self.resolver_factory(stage)
                overrides, package_stats = resolver.resolve(settings.packages, stage)
            official = official_future.result()

        community = self.fetcher.fetch_community()

        official_entries, official_stats = normalize_official(official, overrides)
        community_entries, community_stats = normalize_community(community)
        property_records, slim_stats = build_property_records(
            [*official, *community], max_depth=settings.max_schema_depth
        )

        written = [
            self.writer.write_index(
                OFFICIAL_FILENAME,
                settings.official_url,
                f"Cached n8n official node registry. {REFRESH_HINT}",
                official_entries,
            ),
            self.writer.write_index(
                COMMUNITY_FILENAME,
                settings.community_url,
                f"Cached n8n community node registry. {REFRESH_HINT}",
                community_entries,
            ),
            self.writer.write_properties(PROPERTIES_FILENAME, property_records),
        ]

        summary.official_fetched = len(official)
        summary.community_fetched = len(community)
        summary.official_total = official_stats.total
        summary.community_total = community_stats.total
        summary.overrides_total = len(overrides)
        summary.overrides_by_strategy = overrides.count_by_strategy()
        summary.versions_updated = official_stats.overridden
        summary.dropped_records = official_stats.dropped + community_stats.dropped
        summary.property_records = slim_stats.records
        summary.schema_warnings = slim_stats.malformed
        summary.packages = package_stats
        summary.artifacts = [str(p) for p in written]

        self.logger.info(
            "Refresh finished in %.1fs: %d official, %d community, %d overrides, %d property records",
            time.time() - started,
            summary.official_total,
            summary.community_total,
            summary.overrides_total,
            summary.property_records,
        )
        return summary
