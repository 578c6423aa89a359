"""
DTDL interface parser

Parses DTDL v2/v3 interface documents into ``InterfaceInfo`` objects whose
contents carry a JSON Schema for every property, so twin documents can be
checked with jsonschema before they are written to the graph.

Usage:
    parser = ModelParser(resolver=models.get_models_by_ids)
    interfaces = parser.parse([room_json, building_json])
    violations = interfaces['dtmi:com:example:Room;1'].contents['temperature'].validate(21.5)
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

from jsonschema import Draft7Validator, FormatChecker

from twingraph.errors import ModelParsingFailed, ModelResolutionFailed

logger = logging.getLogger(__name__)

DTMI_RE = re.compile(r'^dtmi:[A-Za-z](?:[A-Za-z0-9_]*[A-Za-z0-9])?'
                     r'(?::[A-Za-z_](?:[A-Za-z0-9_]*[A-Za-z0-9])?)*;[1-9][0-9]{0,8}(?:\.[0-9]{1,6})?$')
NAME_RE = re.compile(r'^[A-Za-z](?:[A-Za-z0-9_]{0,62}[A-Za-z0-9])?$')

CONTENT_KINDS = ('Property', 'Relationship', 'Telemetry', 'Component', 'Command')

Resolver = Callable[[List[str]], Iterable[Any]]


# ============================================================================
# Schema conversion tables
# ============================================================================

def _int_range(bits: int, signed: bool = True) -> Dict[str, Any]:
    if signed:
        return {'type': 'integer', 'minimum': -2 ** (bits - 1), 'maximum': 2 ** (bits - 1) - 1}
    return {'type': 'integer', 'minimum': 0, 'maximum': 2 ** bits - 1}


_POSITION = {'type': 'array', 'items': {'type': 'number'}, 'minItems': 2}
_LINE = {'type': 'array', 'items': _POSITION, 'minItems': 2}
_POLYGON = {'type': 'array', 'items': {'type': 'array', 'items': _POSITION, 'minItems': 4}}


def _geojson(kind: str, coordinates: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'type': 'object',
        'required': ['type', 'coordinates'],
        'properties': {'type': {'const': kind}, 'coordinates': coordinates},
    }


PRIMITIVE_SCHEMAS = {
    'boolean': {'type': 'boolean'},
    'date': {'type': 'string', 'format': 'date'},
    'dateTime': {'type': 'string', 'format': 'date-time'},
    'time': {'type': 'string', 'format': 'time'},
    'duration': {'type': 'string', 'pattern': r'^P(?!$)(\d+Y)?(\d+M)?(\d+W)?(\d+D)?'
                                                r'(T(?=\d)(\d+H)?(\d+M)?(\d+(\.\d+)?S)?)?$'},
    'double': {'type': 'number'},
    'float': {'type': 'number'},
    'decimal': {'type': 'number'},
    'integer': _int_range(32),
    'long': _int_range(64),
    'byte': _int_range(8),
    'short': _int_range(16),
    'unsignedByte': _int_range(8, signed=False),
    'unsignedShort': _int_range(16, signed=False),
    'unsignedInteger': _int_range(32, signed=False),
    'unsignedLong': _int_range(64, signed=False),
    'string': {'type': 'string'},
    'uuid': {'type': 'string', 'format': 'uuid'},
    'bytes': {'type': 'string', 'pattern': r'^[A-Za-z0-9+/]*={0,2}$'},
    # geospatial schemas are GeoJSON geometries
    'point': _geojson('Point', _POSITION),
    'multiPoint': _geojson('MultiPoint', {'type': 'array', 'items': _POSITION}),
    'lineString': _geojson('LineString', _LINE),
    'multiLineString': _geojson('MultiLineString', {'type': 'array', 'items': _LINE}),
    'polygon': _geojson('Polygon', _POLYGON),
    'multiPolygon': _geojson('MultiPolygon', {'type': 'array', 'items': _POLYGON}),
}


# ============================================================================
# Parsed entities
# ============================================================================

@dataclass
class ContentInfo:
    """One element of an interface's ``contents``"""
    name: str
    kind: str                               # Property, Relationship, Telemetry, Component, Command
    defined_in: str                         # id of the interface that declares it
    schema: Optional[Dict[str, Any]] = None  # JSON Schema for Property / Telemetry values
    document: Dict[str, Any] = field(default_factory=dict, repr=False)

    def validate(self, value: Any) -> List[str]:
        """Return one message per schema violation of ``value`` (empty when valid)"""
        if self.schema is None:
            return []
        validator = Draft7Validator(self.schema, format_checker=FormatChecker())
        messages = []
        for error in validator.iter_errors(value):
            if error.path:
                path = ".".join(str(p) for p in error.path)
                messages.append(f"{path}: {error.message}")
            else:
                messages.append(error.message)
        return sorted(messages)


@dataclass
class InterfaceInfo:
    """A parsed interface with its own and inherited contents"""
    id: str
    extends: List[str]
    contents: Dict[str, ContentInfo]
    document: Dict[str, Any] = field(repr=False)

    @property
    def components(self) -> List[str]:
        """Interface ids referenced by Component contents"""
        return [c.document['schema'] for c in self.contents.values()
                if c.kind == 'Component' and isinstance(c.document.get('schema'), str)]


# ============================================================================
# Parser
# ============================================================================

def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _types(element: Dict[str, Any]) -> List[str]:
    return [t for t in _as_list(element.get('@type')) if isinstance(t, str)]


def _inline_children(document: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    for base in _as_list(document.get('extends')):
        if isinstance(base, dict):
            yield base
    for content in _as_list(document.get('contents')):
        if isinstance(content, dict) and isinstance(content.get('schema'), dict) \
                and 'Interface' in _types(content['schema']):
            yield content['schema']


def inline_interfaces(document: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Interfaces declared inside ``document`` (extends, component schemas), nested ones included"""
    found = []
    for inline in _inline_children(document):
        found.append(inline)
        found.extend(inline_interfaces(inline))
    return found


def load_documents(documents: Iterable[Any]) -> List[Dict[str, Any]]:
    """Flatten dicts, JSON object strings and JSON array strings into interface dicts"""
    flattened = []
    for document in documents:
        if isinstance(document, (str, bytes)):
            try:
                document = json.loads(document)
            except json.JSONDecodeError as e:
                raise ModelParsingFailed(f"Model is not valid JSON: {e}") from e
        if isinstance(document, list):
            flattened.extend(load_documents(document))
        elif isinstance(document, dict):
            flattened.append(document)
        else:
            raise ModelParsingFailed(f"Model must be a JSON object, got {type(document).__name__}")
    return flattened


class ModelParser:
    """
    Parses DTDL interfaces, fetching referenced interfaces through ``resolver``.

    The resolver receives the list of still-unknown ids and returns the
    documents it found; it is called at most once per resolution round.
    """

    def __init__(self, resolver: Optional[Resolver] = None):
        self.resolver = resolver

    def parse(self, documents: Iterable[Any]) -> Dict[str, InterfaceInfo]:
        known: Dict[str, Dict[str, Any]] = {}
        for document in load_documents(documents):
            self._register(document, known, allow_existing=False)

        self._resolve(known)

        schemas = self._local_schemas(known)
        built: Dict[str, InterfaceInfo] = {}
        for model_id in known:
            self._build(model_id, known, schemas, built, set())
        logger.debug("parsed %d interface(s)", len(built))
        return built

    # ------------------------------------------------------------------------
    # Loading and resolution
    # ------------------------------------------------------------------------

    def _register(self, document: Dict[str, Any], known: Dict[str, Dict[str, Any]],
                  allow_existing: bool) -> None:
        model_id = document.get('@id')
        if not isinstance(model_id, str) or not DTMI_RE.match(model_id):
            raise ModelParsingFailed(f"'{model_id}' is not a valid DTMI")
        if 'Interface' not in _types(document):
            raise ModelParsingFailed(f"{model_id}: @type must be Interface")
        if model_id in known:
            if allow_existing:
                return
            raise ModelParsingFailed(f"{model_id} is defined more than once")
        known[model_id] = document

        # Inline interfaces in extends / component schemas are documents too
        for inline in _inline_children(document):
            self._register(inline, known, allow_existing)

    @staticmethod
    def _references(document: Dict[str, Any]) -> Set[str]:
        refs = set()
        for base in _as_list(document.get('extends')):
            refs.add(base['@id'] if isinstance(base, dict) else base)
        for content in _as_list(document.get('contents')):
            if isinstance(content, dict) and 'Component' in _types(content):
                schema = content.get('schema')
                if isinstance(schema, str):
                    refs.add(schema)
        return refs

    def _resolve(self, known: Dict[str, Dict[str, Any]]) -> None:
        while True:
            missing = set()
            for document in known.values():
                missing |= self._references(document)
            missing -= known.keys()
            if not missing:
                return
            if self.resolver is None:
                raise ModelResolutionFailed(missing)

            logger.debug("resolving %d model(s): %s", len(missing), sorted(missing))
            found = 0
            for document in load_documents(self.resolver(sorted(missing))):
                if document.get('@id') in missing and document['@id'] not in known:
                    self._register(document, known, allow_existing=True)
                    found += 1
            if not found:
                raise ModelResolutionFailed(missing)

    # ------------------------------------------------------------------------
    # Interface building
    # ------------------------------------------------------------------------

    @staticmethod
    def _local_schemas(known: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        schemas = {}
        for model_id, document in known.items():
            for schema in _as_list(document.get('schemas')):
                if not isinstance(schema, dict) or not isinstance(schema.get('@id'), str):
                    raise ModelParsingFailed(f"{model_id}: every entry of schemas needs an @id")
                schemas[schema['@id']] = schema
        return schemas

    def _build(self, model_id: str, known: Dict[str, Dict[str, Any]],
               schemas: Dict[str, Dict[str, Any]], built: Dict[str, InterfaceInfo],
               visiting: Set[str]) -> InterfaceInfo:
        if model_id in built:
            return built[model_id]
        if model_id in visiting:
            raise ModelParsingFailed(f"Inheritance cycle through {model_id}")
        visiting.add(model_id)

        document = known[model_id]
        extends = [b['@id'] if isinstance(b, dict) else b for b in _as_list(document.get('extends'))]

        contents: Dict[str, ContentInfo] = {}
        for base in extends:
            for name, content in self._build(base, known, schemas, built, visiting).contents.items():
                # the same content reached through two bases is fine
                if name in contents and contents[name] is not content:
                    raise ModelParsingFailed(
                        f"{model_id}: content '{name}' is inherited from both "
                        f"{contents[name].defined_in} and {content.defined_in}")
                contents[name] = content

        for element in _as_list(document.get('contents')):
            content = self._content(model_id, element, schemas)
            if content.name in contents:
                raise ModelParsingFailed(f"{model_id}: content '{content.name}' is defined more than once")
            contents[content.name] = content

        visiting.discard(model_id)
        info = InterfaceInfo(id=model_id, extends=extends, contents=contents, document=document)
        built[model_id] = info
        return info

    def _content(self, model_id: str, element: Any,
                 schemas: Dict[str, Dict[str, Any]]) -> ContentInfo:
        if not isinstance(element, dict):
            raise ModelParsingFailed(f"{model_id}: contents must hold objects")
        name = element.get('name')
        if not isinstance(name, str) or not NAME_RE.match(name):
            raise ModelParsingFailed(f"{model_id}: '{name}' is not a valid content name")
        kinds = [t for t in _types(element) if t in CONTENT_KINDS]
        if len(kinds) != 1:
            raise ModelParsingFailed(f"{model_id}: content '{name}' must have exactly one of {', '.join(CONTENT_KINDS)}")
        kind = kinds[0]

        schema = None
        if kind in ('Property', 'Telemetry'):
            if 'schema' not in element:
                raise ModelParsingFailed(f"{model_id}: {kind} '{name}' has no schema")
            schema = self.to_json_schema(element['schema'], schemas, f"{model_id}:{name}")
        return ContentInfo(name=name, kind=kind, defined_in=model_id, schema=schema, document=element)

    def to_json_schema(self, schema: Any, schemas: Dict[str, Dict[str, Any]],
                       where: str, seen: Optional[Set[str]] = None) -> Dict[str, Any]:
        """Convert a DTDL schema (primitive name, reference or complex object) into JSON Schema"""
        seen = seen or set()
        if isinstance(schema, str):
            if schema in PRIMITIVE_SCHEMAS:
                return PRIMITIVE_SCHEMAS[schema]
            if schema in schemas:
                if schema in seen:
                    raise ModelParsingFailed(f"{where}: schema {schema} refers to itself")
                return self.to_json_schema(schemas[schema], schemas, where, seen | {schema})
            raise ModelParsingFailed(f"{where}: unknown schema '{schema}'")

        if not isinstance(schema, dict):
            raise ModelParsingFailed(f"{where}: schema must be a name or an object")

        types = _types(schema)
        if 'Object' in types:
            properties = {}
            for f in _as_list(schema.get('fields')):
                if not isinstance(f, dict) or not isinstance(f.get('name'), str) or 'schema' not in f:
                    raise ModelParsingFailed(f"{where}: Object fields need a name and a schema")
                properties[f['name']] = self.to_json_schema(f['schema'], schemas, where, seen)
            return {'type': 'object', 'properties': properties, 'additionalProperties': False}

        if 'Map' in types:
            value = schema.get('mapValue')
            if not isinstance(value, dict) or 'schema' not in value:
                raise ModelParsingFailed(f"{where}: Map needs a mapValue schema")
            return {'type': 'object',
                    'additionalProperties': self.to_json_schema(value['schema'], schemas, where, seen)}

        if 'Enum' in types:
            values = [v.get('enumValue') for v in _as_list(schema.get('enumValues')) if isinstance(v, dict)]
            if not values:
                raise ModelParsingFailed(f"{where}: Enum has no enumValues")
            value_schema = schema.get('valueSchema', 'string')
            if value_schema not in ('integer', 'string'):
                raise ModelParsingFailed(f"{where}: Enum valueSchema must be integer or string")
            return {'type': value_schema, 'enum': values}

        if 'Array' in types:
            if 'elementSchema' not in schema:
                raise ModelParsingFailed(f"{where}: Array needs an elementSchema")
            return {'type': 'array',
                    'items': self.to_json_schema(schema['elementSchema'], schemas, where, seen)}

        raise ModelParsingFailed(f"{where}: unsupported schema type {types}")


def parse_models(documents: Iterable[Any], resolver: Optional[Resolver] = None) -> Dict[str, InterfaceInfo]:
    return ModelParser(resolver).parse(documents)
