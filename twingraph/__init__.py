"""
twingraph - Digital twin graphs on PostgreSQL + Apache AGE

This package provides:
- Twin, relationship and model storage validated against DTDL interfaces
- Translation of the twin query language (SELECT ... FROM DIGITALTWINS) into Cypher
- Pooled, streaming execution through psycopg2
"""

from .db import DB_CONFIG, GRAPH_NAME, AgeGraphStore, cypher_sql
from .agtype import Vertex, Edge, parse_agtype, hydrate
from .parser import parse_query, tokenize, Lexer, Parser
from .compiler import CypherTranslator, PatternBuilder, to_cypher
from .expressions import ExpressionRewriter, rewrite_expression
from .dtdl import ModelParser, InterfaceInfo, ContentInfo, parse_models
from .models import ModelRepository
from .twins import TwinRepository
from .relationships import RelationshipRepository
from .query import QueryExecutor, is_native_query, return_columns
from .types import BasicDigitalTwin, BasicRelationship, DigitalTwinMetadata
from .client import DigitalTwinsClient
from .errors import (
    DigitalTwinsError, InvalidQuery, BadArgument, ValidationFailed, ModelNotFound,
    DigitalTwinNotFound, UnsupportedOperation, DeserializationError,
    ModelParsingFailed, ModelResolutionFailed, OperationCancelled, status_code_for
)

__all__ = [
    # Database
    'DB_CONFIG', 'GRAPH_NAME', 'AgeGraphStore', 'cypher_sql',
    'Vertex', 'Edge', 'parse_agtype', 'hydrate',

    # Query translation
    'parse_query', 'tokenize', 'Lexer', 'Parser',
    'CypherTranslator', 'PatternBuilder', 'to_cypher',
    'ExpressionRewriter', 'rewrite_expression',

    # Models
    'ModelParser', 'InterfaceInfo', 'ContentInfo', 'parse_models',

    # Access layer
    'ModelRepository', 'TwinRepository', 'RelationshipRepository',
    'QueryExecutor', 'is_native_query', 'return_columns',
    'BasicDigitalTwin', 'BasicRelationship', 'DigitalTwinMetadata',
    'DigitalTwinsClient',

    # Errors
    'DigitalTwinsError', 'InvalidQuery', 'BadArgument', 'ValidationFailed',
    'ModelNotFound', 'DigitalTwinNotFound', 'UnsupportedOperation',
    'DeserializationError', 'ModelParsingFailed', 'ModelResolutionFailed',
    'OperationCancelled', 'status_code_for',
]
