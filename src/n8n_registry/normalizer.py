"""
Record Normalizer - Project raw registry records into index entries.

Official entries take their version from the override map when the node was
resolved from an installed package, otherwise the API value is passed
through untouched (including null, which means "version unknown").
Community entries are never overridden.

Both lists are sorted case-insensitively by display name, ties broken by
type identifier, so reruns produce identical files.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel

from .models import (
    CommunityIndexEntry,
    NormalizedIndexEntry,
    RawCommunityRecord,
    RawNodeRecord,
    VersionOverrideMap,
)


logger = logging.getLogger(__name__)


class NormalizeStats(BaseModel):
    """Counts from one normalization pass."""

    total: int = 0
    dropped: int = 0
    overridden: int = 0


def _sort_key(entry: NormalizedIndexEntry | CommunityIndexEntry) -> Tuple[str, str]:
    return entry.display_name.lower(), entry.name


def normalize_official(
    records: Iterable[RawNodeRecord],
    overrides: Optional[VersionOverrideMap] = None,
) -> Tuple[List[NormalizedIndexEntry], NormalizeStats]:
    """
    Build official index entries.

    Args:
        records: Raw official records
        overrides: Versions resolved from installed packages

    Returns:
        (sorted entries, stats)
    """
    overrides = overrides or VersionOverrideMap()
    stats = NormalizeStats()
    entries: List[NormalizedIndexEntry] = []

    for record in records:
        if not record.type_identifier:
            stats.dropped += 1
            continue

        version = record.api_version
        if record.type_identifier in overrides:
            version = overrides.get(record.type_identifier)
            if version != record.api_version:
                stats.overridden += 1

        entries.append(NormalizedIndexEntry(
            name=record.type_identifier,
            display_name=record.display_name,
            version=version,
            description=record.description,
            group=record.group,
            alias=record.aliases,
            categories=record.categories,
        ))

    entries.sort(key=_sort_key)
    stats.total = len(entries)

    if stats.dropped:
        logger.warning("Dropped %d official record(s) without a node name", stats.dropped)
    logger.info("%d node(s) had their version updated from installed packages", stats.overridden)
    return entries, stats


def normalize_community(
    records: Iterable[RawCommunityRecord],
) -> Tuple[List[CommunityIndexEntry], NormalizeStats]:
    """Build community index entries (API versions only)."""
    stats = NormalizeStats()
    entries: List[CommunityIndexEntry] = []

    for record in records:
        if not record.type_identifier:
            stats.dropped += 1
            continue

        entries.append(CommunityIndexEntry(
            name=record.type_identifier,
            display_name=record.display_name,
            package_name=record.package_name,
            version=record.api_version,
            description=record.description,
            alias=record.aliases,
            author_name=record.author_name,
            is_official_node=record.is_official,
        ))

    entries.sort(key=_sort_key)
    stats.total = len(entries)

    if stats.dropped:
        logger.warning("Dropped %d community record(s) without a node name", stats.dropped)
    return entries, stats
