"""Twin access: model-validated writes and reads of Twin vertices"""
import json
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from twingraph.agtype import hydrate
from twingraph.cypher import cypher_literal, property_key
from twingraph.dtdl import InterfaceInfo
from twingraph.errors import (
    BadArgument, DigitalTwinNotFound, UnsupportedOperation, ValidationFailed
)
from twingraph.types import as_document, decode_with

logger = logging.getLogger(__name__)

# Keys maintained by the store, never checked against the model
RESERVED_KEYS = ('$dtId', '$etag', '$metadata')


def new_etag() -> str:
    return f'W/"{uuid.uuid4()}"'


def validate_twin(interface: InterfaceInfo, document: Dict[str, Any]) -> List[str]:
    """Every violation of ``document`` against ``interface``, in document order"""
    violations = []
    for name, value in document.items():
        if name in RESERVED_KEYS:
            continue
        content = interface.contents.get(name)
        if content is None:
            violations.append(f"Property '{name}' is not defined in the model")
        elif content.kind != 'Property':
            violations.append(f"Property '{name}' is a {content.kind} and is not supported")
        else:
            violations.extend(f"Property '{name}': {message}" for message in content.validate(value))
    return violations


def _unescape(segment: str) -> str:
    return segment.replace('~1', '/').replace('~0', '~')


def parse_pointer(path: Any) -> List[str]:
    """Split a JSON pointer (``/a/b~1c``) into unescaped segments"""
    if not isinstance(path, str) or not path.startswith('/') or path == '/':
        raise BadArgument(f"'{path}' is not a valid JSON pointer")
    return [_unescape(segment) for segment in path[1:].split('/')]


def _is_protected(segments: List[str]) -> bool:
    return segments[0] in ('$dtId', '$etag') or segments[:2] in (['$metadata'], ['$metadata', '$model'])


class TwinRepository:
    """Twin CRUD against one graph; writes are validated against the twin's model"""

    def __init__(self, store, graph_name: str, models):
        self.store = store
        self.graph_name = graph_name
        self.models = models

    def _match(self, twin_id: str) -> str:
        return f"MATCH (t:Twin) WHERE t['$dtId'] = {cypher_literal(twin_id)}"

    def get(self, twin_id: str, decode: Optional[Callable] = None) -> Any:
        rows = self.store.query(self.graph_name, f"{self._match(twin_id)} RETURN t", ('t',))
        if not rows:
            raise DigitalTwinNotFound(f"Digital Twin with ID {twin_id} not found")
        return decode_with(decode, hydrate(rows[0]['t']))

    def upsert(self, twin_id: str, document: Any, decode: Optional[Callable] = None) -> Any:
        """Create or fully replace a twin after validating it against its model"""
        twin = as_document(document)

        metadata = twin.get('$metadata')
        if not isinstance(metadata, dict):
            raise BadArgument("Digital Twin must contain a $metadata object")
        model_id = metadata.get('$model')
        if not isinstance(model_id, str) or not model_id:
            raise BadArgument("Digital Twin's $metadata must contain a $model property of type string")
        if twin.get('$dtId', twin_id) != twin_id:
            raise BadArgument(f"Digital Twin's $dtId '{twin['$dtId']}' does not match '{twin_id}'")

        violations = validate_twin(self.models.get_interface(model_id), twin)
        if violations:
            raise ValidationFailed(violations)

        twin['$dtId'] = twin_id
        twin['$etag'] = new_etag()
        rows = self.store.query(
            self.graph_name,
            f"MERGE (t:Twin {{{property_key('$dtId')}: {cypher_literal(twin_id)}}}) "
            f"SET t = {cypher_literal(twin)} RETURN t",
            ('t',))
        logger.debug("upserted twin %s (%s)", twin_id, model_id)
        return decode_with(decode, hydrate(rows[0]['t']))

    def update(self, twin_id: str, patch: Any) -> None:
        """Apply JSON Patch operations (add, replace, remove) in one statement"""
        if isinstance(patch, (str, bytes)):
            try:
                patch = json.loads(patch)
            except json.JSONDecodeError as e:
                raise BadArgument(f"Patch is not valid JSON: {e}") from e
        if not isinstance(patch, list):
            raise BadArgument("Patch must be a list of operations")

        violations = []
        clauses = []
        for operation in patch:
            if not isinstance(operation, dict):
                raise BadArgument("Patch operations must be objects")
            op = operation.get('op')
            path = operation.get('path')
            segments = parse_pointer(path)
            if _is_protected(segments):
                violations.append(f"Cannot update the {path} property")
                continue

            target = 't.' + '.'.join(property_key(s) for s in segments)
            if op in ('add', 'replace'):
                if 'value' not in operation:
                    raise BadArgument(f"Operation '{op}' on {path} has no value")
                clauses.append(f"SET {target} = {cypher_literal(operation['value'])}")
            elif op == 'remove':
                clauses.append(f"REMOVE {target}")
            else:
                raise UnsupportedOperation(f"Operation '{op}' is not supported")

        if violations:
            raise ValidationFailed(violations)

        clauses.append(f"SET t.{property_key('$etag')} = {cypher_literal(new_etag())}")
        rows = self.store.query(
            self.graph_name, f"{self._match(twin_id)} {' '.join(clauses)} RETURN t", ('t',))
        if not rows:
            raise DigitalTwinNotFound(f"Digital Twin with ID {twin_id} not found")
        logger.debug("patched twin %s with %d operation(s)", twin_id, len(patch))

    def delete(self, twin_id: str) -> None:
        deleted = self.store.execute(self.graph_name, f"{self._match(twin_id)} DELETE t RETURN 1")
        if not deleted:
            raise DigitalTwinNotFound(f"Digital Twin with ID {twin_id} not found")
        logger.debug("deleted twin %s", twin_id)
