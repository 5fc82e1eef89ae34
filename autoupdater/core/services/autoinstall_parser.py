"""
Autoinstall spec parser — one document in, an ordered action list out.

An autoinstall document is an array of objects:

    [
      { "action": "install", "serial": 2017100100, "ref-kind": "app",
        "name": "org.example.MyApp", "collection-id": "com.example.Apps",
        "remote": "example-apps",
        "filters": { "~architecture": ["armhf"] } }
    ]

Documents are read with a YAML loader, so the loosely-quoted form
administrators tend to write (single quotes, trailing layout) is
accepted as well as strict JSON.

Validation is all-or-nothing: one bad element fails the whole
document with MalformedSpec. Elements whose filters do not match the
current environment are dropped silently.
"""

from __future__ import annotations

import logging
from typing import Any

import yaml

from autoupdater.core.errors import MalformedSpec
from autoupdater.core.models.environment import EnvironmentFacts
from autoupdater.core.models.ref_action import (
    SERIAL_MAX,
    SERIAL_MIN,
    Filter,
    FilterDimension,
    LocationRef,
    RefAction,
    RefActionType,
    RefIdentity,
    RefKind,
)
from autoupdater.core.services.autoinstall_filters import filters_match

logger = logging.getLogger(__name__)

# Required keys, in the order they are checked
_STRING_KEYS = ("action", "ref-kind", "name", "collection-id", "remote")
_REQUIRED_KEYS = ("action", "serial", "ref-kind", "name", "collection-id", "remote")

_FILTER_KEYS = {
    "architecture": (FilterDimension.ARCHITECTURE, False),
    "~architecture": (FilterDimension.ARCHITECTURE, True),
    "locale": (FilterDimension.LOCALE, False),
    "~locale": (FilterDimension.LOCALE, True),
}


def _decode(data: bytes | str, source: str) -> str:
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedSpec(f"Document is not valid UTF-8: {e}", source=source) from e


def _load_document(text: str, source: str) -> list[Any]:
    """Parse the document text and check the top-level shape."""
    try:
        document = yaml.safe_load(text)
    except (yaml.YAMLError, ValueError, TypeError, RecursionError) as e:
        # constructors raise plain ValueError on e.g. an impossible implicit date
        raise MalformedSpec(f"Cannot parse document: {e}", source=source) from e

    # An empty document is valid and contains no actions
    if document is None:
        return []

    if not isinstance(document, list):
        raise MalformedSpec(
            f"Expected an array at the top level, got {type(document).__name__}",
            source=source,
        )
    return document


def _parse_filters(raw: Any, source: str, index: int) -> list[Filter]:
    if not isinstance(raw, dict):
        raise MalformedSpec(
            f"'filters' must be an object, got {type(raw).__name__}",
            source=source,
            index=index,
        )

    filters: list[Filter] = []
    seen: dict[FilterDimension, Filter] = {}

    for key, values in raw.items():
        spec = _FILTER_KEYS.get(key)
        if spec is None:
            logger.warning("%s[%d]: ignoring unknown filter %r", source, index, key)
            continue
        dimension, negated = spec

        if not isinstance(values, list):
            raise MalformedSpec(
                f"Filter '{key}' must be an array of strings",
                source=source,
                index=index,
            )
        for value in values:
            if not isinstance(value, str):
                raise MalformedSpec(
                    f"Filter '{key}' contains a non-string value: {value!r}",
                    source=source,
                    index=index,
                )

        flt = Filter(dimension=dimension, negated=negated, values=frozenset(values))
        if dimension in seen:
            raise MalformedSpec(
                f"Filters '{seen[dimension].key}' and '{flt.key}' cannot both be set",
                source=source,
                index=index,
            )
        seen[dimension] = flt
        filters.append(flt)

    return filters


def _parse_element(element: Any, source: str, index: int) -> tuple[RefAction, list[Filter]]:
    """Validate one array element and build its action."""
    if not isinstance(element, dict):
        raise MalformedSpec(
            f"Expected an object, got {type(element).__name__}",
            source=source,
            index=index,
        )

    for key in _REQUIRED_KEYS:
        if key not in element:
            raise MalformedSpec(f"Missing required key '{key}'", source=source, index=index)

    for key in _STRING_KEYS:
        if not isinstance(element[key], str):
            raise MalformedSpec(
                f"'{key}' must be a string, got {type(element[key]).__name__}",
                source=source,
                index=index,
            )

    serial = element["serial"]
    # bool is an int subclass; true/false are not serials
    if isinstance(serial, bool) or not isinstance(serial, int):
        raise MalformedSpec(
            f"'serial' must be an integer, got {type(serial).__name__}",
            source=source,
            index=index,
        )
    if not SERIAL_MIN <= serial <= SERIAL_MAX:
        raise MalformedSpec(
            f"'serial' {serial} is outside the signed 32-bit range",
            source=source,
            index=index,
        )

    try:
        action_type = RefActionType(element["action"])
    except ValueError:
        raise MalformedSpec(
            f"Unknown action '{element['action']}'", source=source, index=index,
        ) from None

    try:
        kind = RefKind(element["ref-kind"])
    except ValueError:
        raise MalformedSpec(
            f"Unknown ref-kind '{element['ref-kind']}'", source=source, index=index,
        ) from None

    filters: list[Filter] = []
    if "filters" in element:
        filters = _parse_filters(element["filters"], source, index)

    action = RefAction(
        type=action_type,
        ref=LocationRef(
            identity=RefIdentity(
                kind=kind,
                name=element["name"],
                collection_id=element["collection-id"],
            ),
            remote=element["remote"],
        ),
        source=source,
        serial=serial,
    )
    return action, filters


def parse_autoinstall_data(
    data: bytes | str,
    source: str,
    facts: EnvironmentFacts,
) -> list[RefAction]:
    """Parse one autoinstall document.

    Args:
        data: Raw document contents.
        source: Label recorded on every action (usually the file name).
        facts: Environment the entries' filters are evaluated against.

    Returns:
        Actions that passed their filters, in document order.

    Raises:
        MalformedSpec: If any part of the document is invalid. No
            partial list is ever returned.
    """
    document = _load_document(_decode(data, source), source)

    # Validate everything before filtering anything
    parsed = [_parse_element(element, source, i) for i, element in enumerate(document)]

    actions: list[RefAction] = []
    for action, filters in parsed:
        if filters_match(filters, facts):
            actions.append(action)
        else:
            logger.debug(
                "%s: %s %s excluded by filters",
                source,
                action.type.value,
                action.identity,
            )

    logger.debug("Parsed %d/%d actions from %s", len(actions), len(parsed), source)
    return actions
