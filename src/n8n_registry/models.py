"""
Registry Models - Record shapes flowing through a refresh run.

Raw (ephemeral, parsed from the API):
- RawNodeRecord: official registry entry
- RawCommunityRecord: community registry entry

Resolved:
- VersionOverride / VersionOverrideMap: versions read from installed packages

Persisted:
- NormalizedIndexEntry / CommunityIndexEntry: index file rows
- PropertyRecord: one properties-log line

Reporting:
- PackageScanStats / RefreshSummary
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


Version = Union[int, float]


def coerce_version(value: Any) -> Optional[Version]:
    """
    Turn a declared version into a number, or None if it is not one.

    Integral values come back as int so that `2` is written as `2`, not `2.0`.
    Rejects booleans, NaN, infinities and negatives.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    if float(value).is_integer():
        return int(value)
    return float(value)


def max_version(values: Any) -> Optional[Version]:
    """Largest valid version in a scalar or list declaration."""
    if isinstance(values, (list, tuple)):
        candidates = [v for v in (coerce_version(x) for x in values) if v is not None]
        return max(candidates) if candidates else None
    return coerce_version(values)


# =============================================================================
# RAW RECORDS
# =============================================================================

class RawNodeRecord(BaseModel):
    """
    Official registry entry, reduced to the fields a refresh needs.

    Icon buffers and other heavy attributes are never copied in.
    """
    model_config = ConfigDict(extra="ignore")

    type_identifier: str = Field("", description="Package-prefixed node type")
    display_name: str = Field("", description="Human-readable name")
    api_version: Any = Field(None, description="Version reported by the API")
    description: Any = Field("", description="Node description")
    group: Any = Field("[]", description="Group as returned by the API")
    aliases: List[Any] = Field(default_factory=list)
    categories: List[Any] = Field(default_factory=list)
    properties: List[Any] = Field(default_factory=list, description="Raw property tree")

    @classmethod
    def from_api(cls, entry: Dict[str, Any]) -> "RawNodeRecord":
        """Create from an official API `data` entry."""
        attrs = entry.get("attributes") or {}
        codex = (attrs.get("codex") or {}).get("data") or {}

        raw_props = attrs.get("properties") or {}
        if isinstance(raw_props, dict):
            raw_props = raw_props.get("data") or []

        return cls(
            type_identifier=attrs.get("name") or "",
            display_name=attrs.get("displayName") or "",
            api_version=attrs.get("version"),
            description=attrs.get("description", ""),
            group=attrs.get("group", "[]"),
            aliases=codex.get("alias") or [],
            categories=codex.get("categories") or [],
            properties=raw_props if isinstance(raw_props, list) else [],
        )


class RawCommunityRecord(RawNodeRecord):
    """Community registry entry. Not installed locally, so never overridden."""

    package_name: str = Field("", description="npm package to install")
    author_name: str = Field("", description="Package author")
    is_official: bool = Field(False, description="Verified by n8n")

    @classmethod
    def from_api(cls, entry: Dict[str, Any]) -> "RawCommunityRecord":
        """Create from a community API `data` entry."""
        attrs = entry.get("attributes") or {}
        node_desc = attrs.get("nodeDescription") or {}
        codex = node_desc.get("codex") or {}
        raw_props = node_desc.get("properties") or []

        return cls(
            type_identifier=node_desc.get("name") or node_desc.get("originalName") or "",
            display_name=attrs.get("displayName") or node_desc.get("displayName") or "",
            api_version=node_desc.get("version"),
            description=node_desc.get("description", attrs.get("description", "")),
            aliases=codex.get("alias") or [],
            properties=raw_props if isinstance(raw_props, list) else [],
            package_name=attrs.get("packageName") or "",
            author_name=attrs.get("authorName") or "",
            is_official=bool(attrs.get("isOfficialNode", False)),
        )


# =============================================================================
# VERSION OVERRIDES
# =============================================================================

class ExtractionStrategy(str, Enum):
    """How a version override was obtained."""
    DYNAMIC = "dynamic"
    STATIC = "static"


class VersionOverride(BaseModel):
    """A version read from an installed node implementation."""
    model_config = ConfigDict(frozen=True)

    version: Version
    strategy: ExtractionStrategy
    source_file: str = ""


class VersionOverrideMap:
    """
    Accumulator of resolved versions keyed by fully-qualified node type.

    Each package scan builds its own map with add() (first value wins);
    the caller folds package maps together with merge() in package order.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, VersionOverride] = {}

    def add(self, identifier: str, override: VersionOverride) -> bool:
        """Record an override unless the identifier is already resolved."""
        if identifier in self._entries:
            return False
        self._entries[identifier] = override
        return True

    def merge(self, other: "VersionOverrideMap") -> List[str]:
        """
        Fold a later package scan into this map.

        New identifiers are added; existing ones are replaced unless that
        would lower the version.

        Returns:
            Identifiers whose replacement was refused as a downgrade
        """
        refused = []
        for identifier, override in other.items():
            current = self._entries.get(identifier)
            if current is not None and override.version < current.version:
                refused.append(identifier)
                continue
            self._entries[identifier] = override
        return refused

    def get(self, identifier: str) -> Optional[Version]:
        """Resolved version for an identifier, if any."""
        override = self._entries.get(identifier)
        return override.version if override else None

    def get_override(self, identifier: str) -> Optional[VersionOverride]:
        return self._entries.get(identifier)

    def items(self) -> Iterator[tuple[str, VersionOverride]]:
        return iter(self._entries.items())

    def as_dict(self) -> Dict[str, Version]:
        """Plain identifier -> version mapping, sorted by identifier."""
        return {k: self._entries[k].version for k in sorted(self._entries)}

    def count_by_strategy(self) -> Dict[str, int]:
        counts = {strategy.value: 0 for strategy in ExtractionStrategy}
        for override in self._entries.values():
            counts[override.strategy.value] += 1
        return counts

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# PERSISTED RECORDS
# =============================================================================

class NormalizedIndexEntry(BaseModel):
    """Row of the official index file."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    display_name: str = Field("", alias="displayName")
    version: Any = None
    description: Any = ""
    group: Any = "[]"
    alias: List[Any] = Field(default_factory=list)
    categories: List[Any] = Field(default_factory=list)


class CommunityIndexEntry(BaseModel):
    """Row of the community index file."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    display_name: str = Field("", alias="displayName")
    package_name: str = Field("", alias="packageName")
    version: Any = None
    description: Any = ""
    alias: List[Any] = Field(default_factory=list)
    author_name: str = Field("", alias="authorName")
    is_official_node: bool = Field(False, alias="isOfficialNode")


class PropertyRecord(BaseModel):
    """One line of the properties log."""

    node: str
    properties: List[Dict[str, Any]]


# =============================================================================
# REPORTING
# =============================================================================

class PackageScanStats(BaseModel):
    """Per-package resolver counts."""

    package: str
    files: int = 0
    resolved: int = 0
    dynamic: int = 0
    static: int = 0
    failed: int = 0
    error: Optional[str] = Field(None, description="Why the package was skipped")


class RefreshSummary(BaseModel):
    """Counts reported at the end of a refresh run."""

    official_fetched: int = Field(0, description="Records returned by the official registry")
    community_fetched: int = Field(0, description="Records returned by the community registry")
    official_total: int = Field(0, description="Official entries written")
    community_total: int = Field(0, description="Community entries written")
    overrides_total: int = 0
    overrides_by_strategy: Dict[str, int] = Field(default_factory=dict)
    versions_updated: int = 0
    dropped_records: int = 0
    property_records: int = 0
    schema_warnings: int = 0
    install_failures: int = 0
    packages: List[PackageScanStats] = Field(default_factory=list)
    artifacts: List[str] = Field(default_factory=list)


__all__ = [
    "Version",
    "coerce_version",
    "max_version",
    "RawNodeRecord",
    "RawCommunityRecord",
    "ExtractionStrategy",
    "VersionOverride",
    "VersionOverrideMap",
    "NormalizedIndexEntry",
    "CommunityIndexEntry",
    "PropertyRecord",
    "PackageScanStats",
    "RefreshSummary",
]
