"""Model graph access: DTDL interfaces stored as Model vertices linked by _extends edges"""
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from twingraph.agtype import hydrate
from twingraph.cypher import cypher_literal
from twingraph.dtdl import InterfaceInfo, ModelParser, inline_interfaces, load_documents
from twingraph.errors import ModelNotFound

logger = logging.getLogger(__name__)


class ModelRepository:
    """Create, read and delete models in one graph"""

    def __init__(self, store, graph_name: str, parser: Optional[ModelParser] = None):
        self.store = store
        self.graph_name = graph_name
        self.parser = parser or ModelParser(resolver=self.get_models_by_ids)

    def create_models(self, documents: Iterable[Any]) -> List[Dict[str, Any]]:
        """
        Parse and store a batch of interfaces.

        Bases that are not part of the batch are resolved from the graph.
        Interfaces declared inline (under extends or as component schemas)
        are stored as Model vertices of their own, after their parents. The
        vertex statement and the _extends statements run separately; when an
        edge statement fails the vertices already written stay in place.
        """
        models = load_documents(documents)
        if not models:
            return []
        interfaces = self.parser.parse(models)
        stored = models + [inline for model in models for inline in inline_interfaces(model)]

        rows = self.store.query(
            self.graph_name,
            f"UNWIND {cypher_literal(stored)} AS model CREATE (m:Model) SET m = model RETURN m",
            ('m',))
        created = [hydrate(row['m']) for row in rows]
        logger.info("created %d model(s) in %s", len(created), self.graph_name)

        pairs = [(model['@id'], base) for model in stored for base in interfaces[model['@id']].extends]
        for model_id, base_id in pairs:
            try:
                self.store.execute(
                    self.graph_name,
                    f"MATCH (m:Model), (b:Model) "
                    f"WHERE m['@id'] = {cypher_literal(model_id)} AND b['@id'] = {cypher_literal(base_id)} "
                    f"CREATE (m)-[:_extends]->(b)")
            except Exception:
                logger.error("failed to link %s to base %s; models of this batch remain stored",
                             model_id, base_id)
                raise
        return created

    def get_model(self, model_id: str) -> Dict[str, Any]:
        rows = self.store.query(
            self.graph_name,
            f"MATCH (m:Model) WHERE m['@id'] = {cypher_literal(model_id)} RETURN m",
            ('m',))
        if not rows:
            raise ModelNotFound(f"Model with ID {model_id} not found")
        return hydrate(rows[0]['m'])

    def get_models_by_ids(self, model_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Fetch every stored model among ``model_ids``; unknown ids are skipped"""
        model_ids = list(model_ids)
        if not model_ids:
            return []
        rows = self.store.query(
            self.graph_name,
            f"MATCH (m:Model) WHERE m['@id'] IN {cypher_literal(model_ids)} RETURN m",
            ('m',))
        return [hydrate(row['m']) for row in rows]

    def list_models(self, cancel=None) -> Iterator[Dict[str, Any]]:
        for row in self.store.stream(self.graph_name, "MATCH (m:Model) RETURN m", ('m',), cancel):
            yield hydrate(row['m'])

    def get_interface(self, model_id: str) -> InterfaceInfo:
        """Fetch a model and parse it together with its bases"""
        interfaces = self.parser.parse([self.get_model(model_id)])
        return interfaces[model_id]

    def delete_model(self, model_id: str) -> None:
        deleted = self.store.execute(
            self.graph_name,
            f"MATCH (m:Model) WHERE m['@id'] = {cypher_literal(model_id)} DETACH DELETE m RETURN 1")
        if not deleted:
            raise ModelNotFound(f"Model with ID {model_id} not found")
        logger.info("deleted model %s from %s", model_id, self.graph_name)
