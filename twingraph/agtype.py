"""
agtype codec - decoding Apache AGE result cells

AGE returns every cypher() column as agtype text: JSON extended with type
annotations, e.g. ``{"id": 1, "label": "Twin", "properties": {...}}::vertex``,
``[{...}::vertex, {...}::edge, {...}::vertex]::path`` or ``1.5::numeric``.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from twingraph.errors import DeserializationError

_MARKER = '__agtype__'
_ELEMENT_KINDS = ('vertex', 'edge')


@dataclass
class Vertex:
    id: Optional[int]
    label: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Edge:
    id: Optional[int]
    label: str
    start_id: Optional[int]
    end_id: Optional[int]
    properties: Dict[str, Any] = field(default_factory=dict)


def _annotate(text: str) -> str:
    """Strip type annotations, tagging vertex/edge objects so the JSON hook can build them"""
    out = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == '\\' and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
            continue
        if text.startswith('::', i):
            j = i + 2
            while j < n and (text[j].isalnum() or text[j] == '_'):
                j += 1
            kind = text[i + 2:j]
            if kind in _ELEMENT_KINDS:
                k = len(out) - 1
                while k >= 0 and out[k].isspace():
                    k -= 1
                if k < 0 or out[k] != '}':
                    raise DeserializationError(f"Malformed agtype {kind}: {text[:80]}")
                out[k] = f', "{_MARKER}": "{kind}"}}'
            i = j
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def _build(obj: Dict[str, Any]) -> Any:
    kind = obj.pop(_MARKER, None)
    if kind == 'vertex':
        return Vertex(id=obj.get('id'), label=obj.get('label'),
                      properties=obj.get('properties') or {})
    if kind == 'edge':
        return Edge(id=obj.get('id'), label=obj.get('label'),
                    start_id=obj.get('start_id'), end_id=obj.get('end_id'),
                    properties=obj.get('properties') or {})
    return obj


def parse_agtype(value: Any) -> Any:
    """Decode one agtype cell; SQL NULL stays None and non-text values pass through"""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(_annotate(value), object_hook=_build)
    except json.JSONDecodeError as e:
        raise DeserializationError(f"Invalid agtype value: {e}") from e


def hydrate(value: Any) -> Any:
    """Unwrap vertices and edges (also inside lists such as paths) to their property maps"""
    if isinstance(value, (Vertex, Edge)):
        return value.properties
    if isinstance(value, list):
        return [hydrate(v) for v in value]
    return value
