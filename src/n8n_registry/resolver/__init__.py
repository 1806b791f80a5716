"""
Version resolution for installed n8n node packages.

- static: text-pattern extraction from compiled sources
- dynamic: one-shot node process per file
- resolver: per-package scan and merge
"""

from .dynamic import DynamicExtraction, NodeProbe
from .resolver import PackageScanResult, VersionResolver, read_node_manifest
from .static import StaticExtraction, extract_static, extract_static_from_file

__all__ = [
    "DynamicExtraction",
    "NodeProbe",
    "PackageScanResult",
    "VersionResolver",
    "read_node_manifest",
    "StaticExtraction",
    "extract_static",
    "extract_static_from_file",
]
