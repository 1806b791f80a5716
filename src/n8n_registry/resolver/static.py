"""
Static version extraction from compiled node sources.

Reads a node file as text, without executing it. The grammar is small:

    description block  := anchor, then the next BLOCK_LENGTH characters
    anchor             := "this.description" | "baseDescription"
    node name          := name: '<identifier>'        (inside the block)
    version declaration:= defaultVersion: N           (anywhere in the file)
                        | version: [N, N, ...]        (inside the block, max wins)
                        | version: N                  (inside the block)

Anchors and version declarations are tried in the order listed; the first
one that matches wins. `baseDescription` covers versioned composite nodes
(Merge, Agent, ...) whose versions live on a shared base description.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple

from ..errors import ExtractionError
from ..models import Version, coerce_version, max_version


BLOCK_LENGTH = 2000

DESCRIPTION_ANCHORS: Tuple[str, ...] = ("this.description", "baseDescription")

NAME_PATTERN = re.compile(r"""\bname:\s*['"]([a-zA-Z][a-zA-Z0-9]*)['"]""")

_NUMBER = r"(\d+(?:\.\d+)?)"
DEFAULT_VERSION_PATTERN = re.compile(r"\bdefaultVersion:\s*" + _NUMBER)
VERSION_ARRAY_PATTERN = re.compile(r"\bversion:\s*\[([\d.,\s]+)\]")
VERSION_SCALAR_PATTERN = re.compile(r"\bversion:\s*" + _NUMBER)


@dataclass(frozen=True)
class StaticExtraction:
    """Node name and version read from source text."""

    name: str
    version: Version
    shape: str
    anchor: str


@dataclass(frozen=True)
class VersionMatcher:
    """One version declaration shape; `scope` is 'file' or 'block'."""

    shape: str
    scope: str
    match: Callable[[str], Optional[Version]]

    def __call__(self, source: str, block: str) -> Optional[Version]:
        return self.match(source if self.scope == "file" else block)


def _match_default_version(text: str) -> Optional[Version]:
    found = DEFAULT_VERSION_PATTERN.search(text)
    return coerce_version(found.group(1)) if found else None


def _match_version_array(text: str) -> Optional[Version]:
    found = VERSION_ARRAY_PATTERN.search(text)
    if not found:
        return None
    return max_version([part.strip() for part in found.group(1).split(",") if part.strip()])


def _match_version_scalar(text: str) -> Optional[Version]:
    found = VERSION_SCALAR_PATTERN.search(text)
    return coerce_version(found.group(1)) if found else None


VERSION_MATCHERS: Tuple[VersionMatcher, ...] = (
    VersionMatcher("defaultVersion", "file", _match_default_version),
    VersionMatcher("versionArray", "block", _match_version_array),
    VersionMatcher("version", "block", _match_version_scalar),
)


def find_description_block(source: str) -> Optional[Tuple[str, str, str]]:
    """
    Locate the description block that declares the node name.

    Returns:
        (anchor, block, name) for the first anchor whose block has a name
    """
    for anchor in DESCRIPTION_ANCHORS:
        index = source.find(anchor)
        if index == -1:
            continue
        block = source[index:index + BLOCK_LENGTH]
        name = NAME_PATTERN.search(block)
        if name:
            return anchor, block, name.group(1)
    return None


def extract_static(source: str) -> Optional[StaticExtraction]:
    """Extract the node name and version from source text."""
    located = find_description_block(source)
    if located is None:
        return None
    anchor, block, name = located

    for matcher in VERSION_MATCHERS:
        version = matcher(source, block)
        if version is not None:
            return StaticExtraction(name=name, version=version, shape=matcher.shape, anchor=anchor)
    return None


def extract_static_from_file(path: Path) -> Optional[StaticExtraction]:
    """
    Read a node file and extract its name and version.

    Raises:
        ExtractionError: If the file cannot be read
    """
    try:
        source = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ExtractionError(f"Cannot read {path}: {e}", path=str(path)) from e
    return extract_static(source)
