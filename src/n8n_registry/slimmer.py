"""
Property Schema Slimmer - Reduce node property trees to a minimal schema.

Properties keep name, type, default, required, description, options and
displayOptions; options keep name, value, description and their nested
options/values. Everything else (styling hints, UI flags, typeOptions...) is
dropped. displayOptions is copied verbatim.

Recursion is bounded by `max_depth`; a deeper tree is reported as malformed
and only that node's record is skipped.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Tuple

from pydantic import BaseModel

from .errors import MalformedSchemaError
from .models import PropertyRecord, RawNodeRecord


logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32

PROPERTY_KEYS = ("name", "type", "default", "required", "description")
OPTION_KEYS = ("name", "value", "description")


class SlimStats(BaseModel):
    """Counts from one slimming pass."""

    records: int = 0
    malformed: int = 0
    duplicates: int = 0


def _check_depth(depth: int, max_depth: int) -> None:
    if depth > max_depth:
        raise MalformedSchemaError(
            f"Property tree nested deeper than {max_depth} levels", depth=depth
        )


def slim_option(option: Any, depth: int = 0, max_depth: int = DEFAULT_MAX_DEPTH) -> Any:
    """Slim one entry of an `options` list. Non-dict options pass through."""
    _check_depth(depth, max_depth)
    if not isinstance(option, dict):
        return option

    result: Dict[str, Any] = {k: option[k] for k in OPTION_KEYS if k in option}
    if "options" in option:
        result["options"] = [
            slim_option(o, depth + 1, max_depth) for o in _as_list(option["options"])
        ]
    if "values" in option:
        result["values"] = [
            slim_property(v, depth + 1, max_depth) for v in _as_list(option["values"])
        ]
    return result


def slim_property(prop: Any, depth: int = 0, max_depth: int = DEFAULT_MAX_DEPTH) -> Dict[str, Any]:
    """
    Slim one property definition.

    Raises:
        MalformedSchemaError: If the tree is too deep or a property is not an object
    """
    _check_depth(depth, max_depth)
    if not isinstance(prop, dict):
        raise MalformedSchemaError(
            f"Property is {type(prop).__name__}, expected object", depth=depth
        )

    result: Dict[str, Any] = {k: prop[k] for k in PROPERTY_KEYS if k in prop}
    if "options" in prop:
        result["options"] = [
            slim_option(o, depth + 1, max_depth) for o in _as_list(prop["options"])
        ]
    if "displayOptions" in prop:
        result["displayOptions"] = prop["displayOptions"]
    return result


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def slim_properties(properties: Iterable[Any], max_depth: int = DEFAULT_MAX_DEPTH) -> List[Dict[str, Any]]:
    """Slim a node's full property list."""
    return [slim_property(p, 0, max_depth) for p in properties]


def build_property_records(
    records: Iterable[RawNodeRecord],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Tuple[List[PropertyRecord], SlimStats]:
    """
    One PropertyRecord per node with a non-empty property tree.

    Records are taken in the order given; if two records share a type
    identifier the first one is kept. Output is sorted by node.
    """
    stats = SlimStats()
    by_node: Dict[str, PropertyRecord] = {}

    for record in records:
        if not record.type_identifier or not record.properties:
            continue
        if record.type_identifier in by_node:
            stats.duplicates += 1
            logger.debug("Duplicate properties for %s ignored", record.type_identifier)
            continue
        try:
            slim = slim_properties(record.properties, max_depth)
        except MalformedSchemaError as e:
            stats.malformed += 1
            logger.warning("Skipping properties of %s: %s", record.type_identifier, e)
            continue
        by_node[record.type_identifier] = PropertyRecord(
            node=record.type_identifier, properties=slim
        )

    property_records = [by_node[node] for node in sorted(by_node)]
    stats.records = len(property_records)
    return property_records, stats
