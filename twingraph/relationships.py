"""Relationship access: labeled edges between Twin vertices"""
import logging
from typing import Any, Callable, Dict, Iterator, Optional

from twingraph.agtype import Edge
from twingraph.cypher import cypher_literal, property_key, require_label
from twingraph.errors import BadArgument, DigitalTwinNotFound
from twingraph.twins import new_etag
from twingraph.types import as_document, decode_with

logger = logging.getLogger(__name__)

_COLUMNS = ('rel', 'source_id', 'target_id')
_RETURN = "RETURN rel, source['$dtId'], target['$dtId']"


def _twin(variable: str, twin_id: Optional[str] = None) -> str:
    if twin_id is None:
        return f"({variable}:Twin)"
    return f"({variable}:Twin {{{property_key('$dtId')}: {cypher_literal(twin_id)}}})"


def relationship_document(row: Dict[str, Any]) -> Dict[str, Any]:
    """Edge properties with source, target and name taken from the graph itself"""
    edge = row['rel']
    if not isinstance(edge, Edge) or row.get('source_id') is None or row.get('target_id') is None:
        raise DigitalTwinNotFound("Relationship endpoints not found")
    document = dict(edge.properties)
    if '$relationshipId' not in document:
        raise DigitalTwinNotFound("Relationship has no $relationshipId")
    document['$sourceId'] = row['source_id']
    document['$targetId'] = row['target_id']
    document['$relationshipName'] = edge.label
    return document


class RelationshipRepository:
    """Relationship CRUD against one graph; properties are not validated"""

    def __init__(self, store, graph_name: str):
        self.store = store
        self.graph_name = graph_name

    def get(self, twin_id: str, relationship_id: str, decode: Optional[Callable] = None) -> Any:
        rel = f"[rel {{{property_key('$relationshipId')}: {cypher_literal(relationship_id)}}}]"
        rows = self.store.query(
            self.graph_name,
            f"MATCH {_twin('source', twin_id)}-{rel}->{_twin('target')} {_RETURN}",
            _COLUMNS)
        if not rows:
            raise DigitalTwinNotFound(f"Relationship with ID {relationship_id} not found")
        return decode_with(decode, relationship_document(rows[0]))

    def list(self, twin_id: str, relationship_name: Optional[str] = None,
             decode: Optional[Callable] = None, cancel=None) -> Iterator[Any]:
        """Lazily yield the outgoing relationships of a twin, optionally of one name"""
        rel = f"[rel:{require_label(relationship_name)}]" if relationship_name else "[rel]"
        cypher = f"MATCH {_twin('source', twin_id)}-{rel}->{_twin('target')} {_RETURN}"
        return self._stream(cypher, decode, cancel)

    def list_incoming(self, twin_id: str, decode: Optional[Callable] = None,
                      cancel=None) -> Iterator[Any]:
        cypher = f"MATCH {_twin('source')}-[rel]->{_twin('target', twin_id)} {_RETURN}"
        return self._stream(cypher, decode, cancel)

    def _stream(self, cypher: str, decode: Optional[Callable], cancel) -> Iterator[Any]:
        for row in self.store.stream(self.graph_name, cypher, _COLUMNS, cancel):
            yield decode_with(decode, relationship_document(row))

    def upsert(self, twin_id: str, relationship_id: str, document: Any,
               decode: Optional[Callable] = None) -> Any:
        """
        Create or replace the relationship ``relationship_id`` of ``twin_id``.

        Both endpoints must exist. The edge is keyed by its id only, so a
        concurrent create with the same id and another name is not prevented.
        """
        relationship = as_document(document)
        name = relationship.get('$relationshipName')
        target_id = relationship.get('$targetId')
        if not isinstance(name, str) or not name:
            raise BadArgument("Relationship must contain a $relationshipName of type string")
        require_label(name)
        if not isinstance(target_id, str) or not target_id:
            raise BadArgument("Relationship must contain a $targetId of type string")

        relationship['$relationshipId'] = relationship_id
        relationship['$sourceId'] = twin_id
        relationship['$etag'] = new_etag()

        rel = f"[rel:{name} {{{property_key('$relationshipId')}: {cypher_literal(relationship_id)}}}]"
        rows = self.store.query(
            self.graph_name,
            f"MATCH {_twin('source', twin_id)}, {_twin('target', target_id)} "
            f"MERGE (source)-{rel}->(target) "
            f"SET rel = {cypher_literal(relationship)} {_RETURN}",
            _COLUMNS)
        if not rows:
            raise DigitalTwinNotFound(
                f"Digital Twin with ID {twin_id} or {target_id} not found")
        logger.debug("upserted relationship %s (%s) from %s to %s", relationship_id, name, twin_id, target_id)
        return decode_with(decode, relationship_document(rows[0]))

    def delete(self, twin_id: str, relationship_id: str, relationship_name: str) -> None:
        rel = (f"[rel:{require_label(relationship_name)} "
               f"{{{property_key('$relationshipId')}: {cypher_literal(relationship_id)}}}]")
        deleted = self.store.execute(
            self.graph_name,
            f"MATCH {_twin('source', twin_id)}-{rel}->(:Twin) DELETE rel RETURN 1")
        if not deleted:
            raise DigitalTwinNotFound(f"Relationship with ID {relationship_id} not found")
        logger.debug("deleted relationship %s of %s", relationship_id, twin_id)
