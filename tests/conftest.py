"""Pytest configuration and fixtures."""
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Set test environment variables
os.environ["N8N_REGISTRY_ENV"] = "test"
os.environ["N8N_REGISTRY_LOG_FORMAT"] = "text"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop the cached global settings around every test."""
    from n8n_registry.config import reset_settings

    reset_settings()
    yield
    reset_settings()


def official_entry(
    name: Optional[str],
    display_name: str,
    version: Any = 1,
    properties: Optional[List[Dict[str, Any]]] = None,
    **attributes: Any,
) -> Dict[str, Any]:
    """Official registry `data` entry as returned by the API."""
    attrs: Dict[str, Any] = {
        "displayName": display_name,
        "version": version,
        "description": f"{display_name} node",
        "group": '["transform"]',
        "iconData": {"type": "file", "fileBuffer": "data:image/svg+xml;base64,AAAA"},
        "codex": {"data": {"alias": [display_name.lower()], "categories": ["Core Nodes"]}},
        "properties": {"data": properties or []},
    }
    if name is not None:
        attrs["name"] = name
    attrs.update(attributes)
    return {"id": abs(hash(display_name)) % 10000, "attributes": attrs}


def community_entry(
    name: str,
    display_name: str,
    package_name: str,
    version: Any = 1,
    properties: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Community registry `data` entry as returned by the API."""
    return {
        "id": abs(hash(name)) % 10000,
        "attributes": {
            "displayName": display_name,
            "packageName": package_name,
            "authorName": "someone",
            "isOfficialNode": False,
            "nodeDescription": {
                "name": name,
                "displayName": display_name,
                "version": version,
                "description": f"{display_name} community node",
                "properties": properties or [],
            },
        },
    }


def official_page(entries: List[Dict[str, Any]], page_count: int) -> Dict[str, Any]:
    """Official registry page envelope."""
    return {
        "data": entries,
        "meta": {"pagination": {"page": 1, "pageSize": 500, "pageCount": page_count}},
    }


def write_package(
    node_modules: Path,
    package: str,
    files: Dict[str, str],
    manifest_nodes: Optional[List[str]] = None,
) -> Path:
    """
    Create an installed package with node source files.

    Args:
        node_modules: node_modules directory
        package: Package name (may be scoped)
        files: Relative path -> file contents
        manifest_nodes: Paths listed under n8n.nodes (defaults to all files)
    """
    pkg_dir = node_modules.joinpath(*package.split("/"))
    pkg_dir.mkdir(parents=True, exist_ok=True)
    for rel_path, source in files.items():
        path = pkg_dir / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
    manifest = {
        "name": package,
        "version": "1.0.0",
        "n8n": {"nodes": list(files) if manifest_nodes is None else manifest_nodes},
    }
    (pkg_dir / "package.json").write_text(json.dumps(manifest))
    return pkg_dir


def node_source(name: str, version_decl: str) -> str:
    """Compiled node class source with a description block."""
    return (
        '"use strict";\n'
        "Object.defineProperty(exports, \"__esModule\", { value: true });\n"
        f"class {name.title()} {{\n"
        "    constructor() {\n"
        "        this.description = {\n"
        f"            displayName: '{name.title()}',\n"
        f"            name: '{name}',\n"
        "            group: ['output'],\n"
        f"            {version_decl}\n"
        "            inputs: ['main'],\n"
        "        };\n"
        "    }\n"
        "}\n"
        f"exports.{name.title()} = {name.title()};\n"
    )
