"""
Cache Writer - Persist the three registry artifacts.

- node-registry-official.json: {"_meta": {...}, "nodes": [...]}
- node-registry-community.json: same envelope, community entries
- node-registry-properties.jsonl: one {"node", "properties"} object per line

Every file is written to a temporary sibling, flushed to disk and renamed
over the destination, so a failed write leaves the previous file in place.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Sequence

from pydantic import BaseModel

from .errors import CacheWriteError
from .models import PropertyRecord


logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o666

OFFICIAL_FILENAME = "node-registry-official.json"
COMMUNITY_FILENAME = "node-registry-community.json"
PROPERTIES_FILENAME = "node-registry-properties.jsonl"

REFRESH_HINT = "Run n8n-registry-refresh to update."


def index_envelope(source: str, description: str, nodes: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Wrap index entries with provenance metadata."""
    return {
        "_meta": {
            "source": source,
            "total": len(nodes),
            "description": description,
        },
        "nodes": list(nodes),
    }


def _current_umask() -> int:
    # os.umask can only be read by setting it
    mask = os.umask(0)
    os.umask(mask)
    return mask


class CacheWriter:
    """
    Atomically write registry artifacts into an output directory.

    Usage:
        writer = CacheWriter(Path("references"))
        writer.write_index(OFFICIAL_FILENAME, source, description, entries)
        writer.write_properties(PROPERTIES_FILENAME, records)
    """

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.file_mode = DEFAULT_FILE_MODE & ~_current_umask()

    def _atomic_write(self, filename: str, text: str) -> Path:
        destination = self.output_dir / filename
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{filename}.", suffix=".tmp", dir=self.output_dir
            )
        except OSError as e:
            raise CacheWriteError(f"Cannot prepare {destination}: {e}", path=str(destination)) from e

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                # mkstemp creates 0600; match a plain open() under the umask
                os.fchmod(f.fileno(), self.file_mode)
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, destination)
        except OSError as e:
            raise CacheWriteError(f"Cannot write {destination}: {e}", path=str(destination)) from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

        logger.info("Saved %s", destination)
        return destination

    def write_index(
        self,
        filename: str,
        source: str,
        description: str,
        entries: Iterable[BaseModel],
    ) -> Path:
        """Write an index document (official or community)."""
        nodes = [entry.model_dump(by_alias=True) for entry in entries]
        document = index_envelope(source, description, nodes)
        return self._atomic_write(filename, json.dumps(document, indent=2))

    def write_properties(self, filename: str, records: Iterable[PropertyRecord]) -> Path:
        """Write the properties log, one JSON object per line."""
        lines = [json.dumps(record.model_dump()) + "\n" for record in records]
        return self._atomic_write(filename, "".join(lines))
