"""Recursive field-schema inference over object instance data maps."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from .models import FieldSchema, FieldType, ObjectField

REQUIRED_RATIO = 0.8
MAX_EXAMPLES = 3

_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_URL_RE = re.compile(r"^https?://")
_INVALID_CHARS_RE = re.compile(r"[^a-zA-Z0-9_]")

_TRANSLITERATIONS = str.maketrans({
    "à": "a", "á": "a", "â": "a", "ã": "a", "ä": "a", "å": "a", "æ": "ae",
    "ç": "c", "è": "e", "é": "e", "ê": "e", "ë": "e", "ì": "i", "í": "i",
    "î": "i", "ï": "i", "ñ": "n", "ò": "o", "ó": "o", "ô": "o", "õ": "o",
    "ö": "o", "ø": "o", "ù": "u", "ú": "u", "û": "u", "ü": "u", "ý": "y",
    "ÿ": "y", "ā": "a", "ē": "e", "ī": "i", "ō": "o", "ū": "u", "ß": "ss",
})


def sanitize_field_name(name: str) -> str:
    """Turn an arbitrary data key into an identifier (``[A-Za-z_][A-Za-z0-9_]*``).

    ``@type`` -> ``type``, ``café`` -> ``cafe``, ``2nd-line`` -> ``_2nd_line``.
    """
    if name.startswith("@"):
        name = name[1:]
    result = _INVALID_CHARS_RE.sub("_", name.translate(_TRANSLITERATIONS))
    if result[:1].isdigit():
        result = "_" + result
    return result or "field"


def classify_value(value: Any) -> FieldType:
    """Map one JSON value onto the closed set of field types."""
    if value is None:
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        if _DATETIME_RE.match(value):
            return "datetime"
        if _URL_RE.match(value):
            return "url"
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return "string"


def consolidate_types(types: Iterable[FieldType]) -> FieldType:
    """A key observed with more than one type falls back to ``string``."""
    distinct = set(types)
    if len(distinct) == 1:
        return distinct.pop()
    return "string"


@dataclass
class _FieldStats:
    types: list[FieldType] = field(default_factory=list)
    present: int = 0
    examples: list[Any] = field(default_factory=list)
    samples: list[Any] = field(default_factory=list)


def _array_element_schema(samples: list[Any]) -> list[FieldSchema] | None:
    arrays = [value for value in samples if isinstance(value, (list, tuple))]
    first = next((value for value in arrays if value), None)
    if first is None:
        return None

    element_type = classify_value(first[0])
    if element_type != "object":
        return [FieldSchema(type=element_type)]

    items = [item for value in arrays for item in value if isinstance(item, Mapping)]
    return [FieldSchema(type="object", fields=infer_fields(items))]


def infer_fields(data_maps: Iterable[Mapping[str, Any]]) -> list[ObjectField]:
    """Infer one :class:`ObjectField` per sanitized key across *data_maps*.

    A field is required when present in at least 80% of the maps. Object
    fields recurse into their object samples; array fields describe the
    element type of the first non-empty sample.
    """
    data_maps = list(data_maps)
    stats: dict[str, _FieldStats] = {}

    for data in data_maps:
        seen: set[str] = set()
        for key, value in data.items():
            name = sanitize_field_name(key)
            entry = stats.setdefault(name, _FieldStats())
            entry.types.append(classify_value(value))
            if name not in seen:
                entry.present += 1
                seen.add(name)
            if len(entry.examples) < MAX_EXAMPLES:
                entry.examples.append(value)
            if value is not None:
                entry.samples.append(value)

    total = len(data_maps)
    fields: list[ObjectField] = []
    for name, entry in stats.items():
        field_type = consolidate_types(entry.types)
        nested: list[ObjectField] | None = None
        of: list[FieldSchema] | None = None

        if field_type == "object":
            objects = [value for value in entry.samples if isinstance(value, Mapping)]
            if objects:
                nested = infer_fields(objects)
        elif field_type == "array":
            of = _array_element_schema(entry.samples)

        fields.append(
            ObjectField(
                name=name,
                type=field_type,
                required=entry.present >= total * REQUIRED_RATIO,
                examples=entry.examples,
                fields=nested,
                of=of,
            )
        )
    return fields
