"""
DigitalTwinsClient - one entry point over the model, twin, relationship and query layers

Usage:
    with DigitalTwinsClient(graph_name='building') as client:
        client.create_graph()
        client.create_models([room_model])
        client.upsert_digital_twin('room1', {'$metadata': {'$model': 'dtmi:example:Room;1'}})
        for row in client.query_twins("SELECT T FROM DIGITALTWINS T"):
            print(row['T'])
"""
import logging
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

import pandas as pd

from twingraph.cypher import check_graph_name
from twingraph.db import GRAPH_NAME, AgeGraphStore
from twingraph.dtdl import InterfaceInfo, ModelParser
from twingraph.models import ModelRepository
from twingraph.query import QueryExecutor
from twingraph.relationships import RelationshipRepository
from twingraph.twins import TwinRepository

logger = logging.getLogger(__name__)

# ============================================================================
# Graph bootstrap
# ============================================================================

LABEL_INDEXES = (
    ('Twin', 'twin', '$dtId'),
    ('Model', 'model', '@id'),
)

IS_OF_MODEL_FUNCTION = """
CREATE OR REPLACE FUNCTION {graph}.is_of_model(twin agtype, model_id agtype)
RETURNS boolean
LANGUAGE plpgsql
STABLE
AS $function$
DECLARE
    twin_model agtype;
    found boolean;
BEGIN
    twin_model := ag_catalog.agtype_access_operator(twin, '"$metadata"'::agtype, '"$model"'::agtype);
    IF twin_model IS NULL OR model_id IS NULL THEN
        RETURN false;
    END IF;
    IF twin_model = model_id THEN
        RETURN true;
    END IF;
    EXECUTE format(
        'SELECT EXISTS (SELECT 1 FROM ag_catalog.cypher(%L, $q$ '
        'MATCH (m:Model)-[:_extends*]->(b:Model) '
        'WHERE m[''@id''] = %s AND b[''@id''] = %s RETURN b $q$) AS (b agtype))',
        '{graph}', twin_model::text, model_id::text)
    INTO found;
    RETURN found;
END;
$function$
"""


class DigitalTwinsClient:
    """Digital twin operations on one AGE graph"""

    def __init__(self, store: Optional[AgeGraphStore] = None, graph_name: Optional[str] = None,
                 parser: Optional[ModelParser] = None):
        self.store = store if store is not None else AgeGraphStore()
        self.graph_name = check_graph_name(graph_name or GRAPH_NAME)
        self.models = ModelRepository(self.store, self.graph_name, parser)
        self.twins = TwinRepository(self.store, self.graph_name, self.models)
        self.relationships = RelationshipRepository(self.store, self.graph_name)
        self.queries = QueryExecutor(self.store, self.graph_name)

    def __enter__(self) -> 'DigitalTwinsClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.store.close()

    # ------------------------------------------------------------------------
    # Graph lifecycle
    # ------------------------------------------------------------------------

    def create_graph(self) -> None:
        """Create the graph, its labels and indexes, and the is_of_model function"""
        graph = self.graph_name
        self.store.execute_sql("SELECT * FROM ag_catalog.create_graph(%s)", (graph,))
        for label, prefix, key in LABEL_INDEXES:
            self.store.execute_sql("SELECT * FROM ag_catalog.create_vlabel(%s, %s)", (graph, label))
            self.store.execute_sql(
                f'CREATE UNIQUE INDEX {prefix}_id_idx ON {graph}."{label}" '
                f"(ag_catalog.agtype_access_operator(properties, '\"{key}\"'::agtype))")
            self.store.execute_sql(f'CREATE INDEX {prefix}_gin_idx ON {graph}."{label}" USING gin (properties)')
        self.store.execute_sql(IS_OF_MODEL_FUNCTION.replace('{graph}', graph))
        logger.info("created graph %s", graph)

    def drop_graph(self) -> None:
        self.store.execute_sql("SELECT * FROM ag_catalog.drop_graph(%s, true)", (self.graph_name,))
        logger.info("dropped graph %s", self.graph_name)

    # ------------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------------

    def create_models(self, documents: Iterable[Any]) -> List[Dict[str, Any]]:
        return self.models.create_models(documents)

    def get_model(self, model_id: str) -> Dict[str, Any]:
        return self.models.get_model(model_id)

    def get_models_by_ids(self, model_ids: Iterable[str]) -> List[Dict[str, Any]]:
        return self.models.get_models_by_ids(model_ids)

    def list_models(self, cancel=None) -> Iterator[Dict[str, Any]]:
        return self.models.list_models(cancel)

    def get_interface(self, model_id: str) -> InterfaceInfo:
        return self.models.get_interface(model_id)

    def delete_model(self, model_id: str) -> None:
        self.models.delete_model(model_id)

    # ------------------------------------------------------------------------
    # Twins
    # ------------------------------------------------------------------------

    def get_digital_twin(self, twin_id: str, decode: Optional[Callable] = None) -> Any:
        return self.twins.get(twin_id, decode)

    def upsert_digital_twin(self, twin_id: str, document: Any, decode: Optional[Callable] = None) -> Any:
        return self.twins.upsert(twin_id, document, decode)

    def update_digital_twin(self, twin_id: str, patch: Any) -> None:
        self.twins.update(twin_id, patch)

    def delete_digital_twin(self, twin_id: str) -> None:
        self.twins.delete(twin_id)

    # ------------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------------

    def get_relationship(self, twin_id: str, relationship_id: str, decode: Optional[Callable] = None) -> Any:
        return self.relationships.get(twin_id, relationship_id, decode)

    def list_relationships(self, twin_id: str, relationship_name: Optional[str] = None,
                           decode: Optional[Callable] = None, cancel=None) -> Iterator[Any]:
        return self.relationships.list(twin_id, relationship_name, decode, cancel)

    def list_incoming_relationships(self, twin_id: str, decode: Optional[Callable] = None,
                                    cancel=None) -> Iterator[Any]:
        return self.relationships.list_incoming(twin_id, decode, cancel)

    def upsert_relationship(self, twin_id: str, relationship_id: str, document: Any,
                            decode: Optional[Callable] = None) -> Any:
        return self.relationships.upsert(twin_id, relationship_id, document, decode)

    def delete_relationship(self, twin_id: str, relationship_id: str, relationship_name: str) -> None:
        self.relationships.delete(twin_id, relationship_id, relationship_name)

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    def query_twins(self, query: str, decode: Optional[Callable] = None, cancel=None) -> Iterator[Any]:
        return self.queries.query_twins(query, decode, cancel)

    def query_frame(self, query: str, cancel=None) -> pd.DataFrame:
        return self.queries.query_frame(query, cancel)
