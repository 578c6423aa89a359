"""Rendering Python values and names as Cypher source text"""
import math
import re
from decimal import Decimal
from typing import Any

from twingraph.errors import BadArgument

_IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

_ESCAPES = {
    '\\': '\\\\',
    "'": "\\'",
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
}


def is_identifier(name: str) -> bool:
    return bool(_IDENTIFIER_RE.match(name))


def require_label(name: str) -> str:
    """Labels are interpolated into patterns, so only plain identifiers are allowed"""
    if not isinstance(name, str) or not is_identifier(name):
        raise BadArgument(f"'{name}' is not a valid relationship name")
    return name


def check_graph_name(graph: str) -> str:
    """Graph names end up in SQL and in generated function calls; keep them plain"""
    if not isinstance(graph, str) or not is_identifier(graph):
        raise BadArgument(f"'{graph}' is not a valid graph name")
    return graph


def quote_string(value: str) -> str:
    return "'" + ''.join(_ESCAPES.get(ch, ch) for ch in value) + "'"


def property_key(name: str) -> str:
    """Map key / property name, backquoted unless it is a plain identifier"""
    if is_identifier(name):
        return name
    return '`' + name.replace('`', '``') + '`'


def cypher_literal(value: Any) -> str:
    """Render a JSON-compatible value as a Cypher literal"""
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise BadArgument(f"{value} cannot be stored in the graph")
        return repr(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, str):
        return quote_string(value)
    if isinstance(value, dict):
        items = ', '.join(f"{property_key(str(k))}: {cypher_literal(v)}" for k, v in value.items())
        return '{' + items + '}'
    if isinstance(value, (list, tuple)):
        return '[' + ', '.join(cypher_literal(v) for v in value) + ']'
    raise BadArgument(f"Values of type {type(value).__name__} cannot be stored in the graph")
