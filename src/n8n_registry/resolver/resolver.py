"""
Version Resolver - Authoritative node versions from installed packages.

The registry API only reports major versions; installed packages declare the
real `defaultVersion` (e.g. 4.4). For each package, in the fixed scan order,
the resolver reads the node file list from the package manifest
(`package.json` -> `n8n.nodes`) and tries, per file:

1. the dynamic probe (load the module with node, read its description)
2. static extraction from the source text, only if the probe failed

Files are independent and are probed concurrently; their results are merged
by the calling thread in manifest order, so the first file to resolve an
identifier wins within a package. Package maps are then folded together in
scan order.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..errors import ExtractionError
from ..installer import PackageStage
from ..models import (
    ExtractionStrategy,
    PackageScanStats,
    VersionOverride,
    VersionOverrideMap,
)
from ..observability import get_logger, with_run_context
from .dynamic import NodeProbe
from .static import extract_static_from_file


logger = get_logger(__name__)

MANIFEST_FILE = "package.json"


@dataclass
class FileOutcome:
    """Result of resolving a single node file."""

    path: Path
    identifier: Optional[str] = None
    override: Optional[VersionOverride] = None
    error: Optional[str] = None


@dataclass
class PackageScanResult:
    """Overrides and counts for one package."""

    stats: PackageScanStats
    overrides: VersionOverrideMap = field(default_factory=VersionOverrideMap)


def read_node_manifest(package_dir: Path) -> List[str]:
    """
    Relative paths of the node implementations a package declares.

    Raises:
        ExtractionError: If the manifest is missing or malformed
    """
    manifest_path = Path(package_dir) / MANIFEST_FILE
    try:
        with open(manifest_path, encoding="utf-8") as f:
            manifest = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ExtractionError(f"Cannot read manifest: {e}", path=str(manifest_path)) from e

    n8n_section = manifest.get("n8n") if isinstance(manifest, dict) else None
    nodes = (n8n_section or {}).get("nodes") or []
    if not isinstance(nodes, list):
        raise ExtractionError("'n8n.nodes' is not a list", path=str(manifest_path))
    return [str(p) for p in nodes if isinstance(p, str) and p]


class VersionResolver:
    """
    Resolve node versions for installed plugin packages.

    Usage:
        resolver = VersionResolver(probe=NodeProbe(stage.node_modules))
        overrides, stats = resolver.resolve(["n8n-nodes-base"], stage)
    """

    def __init__(self, probe: Optional[NodeProbe] = None, workers: int = 8):
        """
        Args:
            probe: Dynamic probe; None (or an unavailable probe) means static only
            workers: Concurrent file resolutions per package
        """
        self.probe = probe if probe is not None and probe.available else None
        self.workers = workers

    def resolve_file(self, path: Path, prefix: str) -> FileOutcome:
        """Resolve one node file, dynamic strategy first."""
        if self.probe is not None:
            try:
                found = self.probe.probe(path)
            except ExtractionError as e:
                logger.debug("Dynamic probe failed for %s: %s", path, e)
                found = None
            if found is not None:
                return FileOutcome(
                    path=path,
                    identifier=f"{prefix}.{found.name}",
                    override=VersionOverride(
                        version=found.version,
                        strategy=ExtractionStrategy.DYNAMIC,
                        source_file=str(path),
                    ),
                )

        try:
            static = extract_static_from_file(path)
        except ExtractionError as e:
            return FileOutcome(path=path, error=str(e))

        if static is None:
            return FileOutcome(path=path, error="no version declaration found")
        return FileOutcome(
            path=path,
            identifier=f"{prefix}.{static.name}",
            override=VersionOverride(
                version=static.version,
                strategy=ExtractionStrategy.STATIC,
                source_file=str(path),
            ),
        )

    def scan_package(self, package: str, package_dir: Path) -> PackageScanResult:
        """Resolve every node file a package declares."""
        stats = PackageScanStats(package=package)
        result = PackageScanResult(stats=stats)
        extra = with_run_context(package=package)

        try:
            rel_paths = read_node_manifest(package_dir)
        except ExtractionError as e:
            stats.error = str(e)
            logger.warning("Skipping package: %s", e, extra=extra)
            return result

        stats.files = len(rel_paths)
        paths = [Path(package_dir) / rel for rel in rel_paths]
        if not paths:
            logger.info("Manifest lists no node files", extra=extra)
            return result

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            outcomes = list(pool.map(lambda p: self.resolve_file(p, package), paths))

        for outcome in outcomes:
            if outcome.override is None or outcome.identifier is None:
                stats.failed += 1
                logger.debug("No version for %s: %s", outcome.path, outcome.error)
                continue
            if not result.overrides.add(outcome.identifier, outcome.override):
                logger.debug(
                    "%s already resolved, ignoring %s", outcome.identifier, outcome.path
                )
                continue
            stats.resolved += 1
            if outcome.override.strategy is ExtractionStrategy.DYNAMIC:
                stats.dynamic += 1
            else:
                stats.static += 1

        logger.info(
            "%s: %d versions (%d dynamic, %d static), %d file(s) unresolved",
            package, stats.resolved, stats.dynamic, stats.static, stats.failed,
            extra=extra,
        )
        return result

    def resolve(
        self,
        packages: Sequence[str],
        stage: PackageStage,
    ) -> Tuple[VersionOverrideMap, List[PackageScanStats]]:
        """
        Scan packages in order and merge their overrides.

        Packages missing from the stage contribute nothing and are reported
        with their failure reason.
        """
        merged = VersionOverrideMap()
        all_stats: List[PackageScanStats] = []

        for package in packages:
            package_dir = stage.package_dir(package)
            if package_dir is None:
                reason = stage.failures.get(package, "not installed")
                all_stats.append(PackageScanStats(package=package, error=reason))
                continue

            result = self.scan_package(package, package_dir)
            all_stats.append(result.stats)
            for identifier in merged.merge(result.overrides):
                kept = merged.get_override(identifier)
                refused = result.overrides.get_override(identifier)
                logger.warning(
                    "Refusing to downgrade %s from %s (%s) to %s (%s)",
                    identifier, kept.version, kept.source_file,
                    refused.version, refused.source_file,
                    extra=with_run_context(package=package),
                )

        logger.info("Total version overrides: %d", len(merged))
        return merged, all_stats
