"""
Twin Query Translator - twin query language to AGE Cypher

Pipeline: query text -> normalize -> parse -> AST -> MATCH pattern + rewritten
projection/predicate -> Cypher text
"""
import logging
import re
from typing import List, Optional, Tuple

from twingraph.errors import InvalidQuery
from twingraph.expressions import ExpressionRewriter
from twingraph.parser import (
    JoinClause, JoinSource, MatchSource, RelationshipsSource, SelectAST, TwinsSource, parse_query
)

logger = logging.getLogger(__name__)

DEFAULT_TWIN_ALIAS = 'T'
DEFAULT_RELATIONSHIP_ALIAS = 'R'

_BARE_NODE_RE = re.compile(r'\((\w+)\)')
_LABELED_EDGE_RE = re.compile(r'\[(\w+):([\w|]+)\]')
_ANONYMOUS_ALTERNATION_RE = re.compile(r'\[\s*:[\w|]*\|')


# ============================================================================
# FROM clause to MATCH pattern
# ============================================================================

class PatternBuilder:
    """Translates FROM sources into Cypher MATCH patterns"""

    @staticmethod
    def from_relationships(alias: str) -> str:
        return f"(:Twin)-[{alias}]->(:Twin)"

    @staticmethod
    def from_twins(alias: str) -> str:
        return f"({alias}:Twin)"

    @staticmethod
    def from_join(join: JoinClause) -> str:
        edge = f"{join.alias}:{join.relationship}" if join.alias else f":{join.relationship}"
        return f"({join.source}:Twin)-[{edge}]->({join.target}:Twin)"

    @staticmethod
    def from_match(pattern: str) -> Tuple[str, List[str]]:
        """
        Label bare nodes as twins and replace edge label alternation.

        AGE does not support ``[R:a|b]`` in patterns, so when the pattern uses
        alternation every aliased labeled edge becomes ``[R]`` and its labels
        move into a ``(label(R) = 'a' OR label(R) = 'b')`` predicate.
        """
        pattern = _BARE_NODE_RE.sub(r'(\1:Twin)', pattern)
        label_predicates = []
        if '|' in pattern:
            if _ANONYMOUS_ALTERNATION_RE.search(pattern):
                raise InvalidQuery("Edges with alternative labels must have an alias")
            for match in _LABELED_EDGE_RE.finditer(pattern):
                alias, labels = match.group(1), match.group(2).split('|')
                conditions = ' OR '.join(f"label({alias}) = '{label}'" for label in labels if label)
                label_predicates.append(f"({conditions})")
            pattern = _LABELED_EDGE_RE.sub(r'[\1]', pattern)
        return pattern, label_predicates


# ============================================================================
# Translator
# ============================================================================

class CypherTranslator:
    """
    Translates twin query language text into a Cypher query for one graph.

    The graph name is needed because IS_OF_MODEL becomes a call to the
    ``<graph>.is_of_model`` function installed with the graph.
    """

    def __init__(self, graph_name: str):
        self.rewriter = ExpressionRewriter(graph_name)
        self.graph_name = graph_name

    def translate(self, query: str) -> str:
        ast = parse_query(query)
        cypher = self.compile(ast)
        logger.debug("translated %r -> %r", query, cypher)
        return cypher

    def compile(self, ast: SelectAST) -> str:
        projection = self.rewriter.rewrite(ast.projection)
        # Only a bare * or COUNT(*) may fall back to an implicit alias
        allows_default = projection == '*' or projection.upper() == 'COUNT(*)'

        pattern, label_predicates, default_alias = self._pattern(ast.source, allows_default)

        where = self.rewriter.rewrite(ast.where, default_alias) if ast.where else ''

        cypher = 'MATCH ' + pattern
        if where and label_predicates:
            cypher += ' WHERE ' + ' AND '.join(label_predicates) + ' AND (' + where + ')'
        elif where:
            cypher += ' WHERE ' + where
        elif label_predicates:
            cypher += ' WHERE ' + ' AND '.join(label_predicates)
        cypher += ' RETURN ' + projection
        if ast.limit is not None:
            cypher += f' LIMIT {ast.limit}'
        return cypher

    def _pattern(self, source, allows_default: bool) -> Tuple[str, List[str], Optional[str]]:
        """Returns (pattern, label predicates, implicit alias or None)"""
        if isinstance(source, RelationshipsSource):
            alias, default_alias = self._alias(source.alias, DEFAULT_RELATIONSHIP_ALIAS,
                                               allows_default, 'RELATIONSHIPS')
            return PatternBuilder.from_relationships(alias), [], default_alias

        if isinstance(source, TwinsSource):
            alias, default_alias = self._alias(source.alias, DEFAULT_TWIN_ALIAS,
                                               allows_default, 'DIGITALTWINS')
            return PatternBuilder.from_twins(alias), [], default_alias

        if isinstance(source, MatchSource):
            pattern, label_predicates = PatternBuilder.from_match(source.pattern)
            return pattern, label_predicates, None

        if isinstance(source, JoinSource):
            return ','.join(PatternBuilder.from_join(j) for j in source.joins), [], None

        raise InvalidQuery(f"Unsupported FROM clause: {source!r}")

    @staticmethod
    def _alias(alias: Optional[str], default: str, allows_default: bool,
               collection: str) -> Tuple[str, Optional[str]]:
        if alias:
            return alias, None
        if allows_default:
            return default, default
        raise InvalidQuery(f"FROM {collection} needs an alias unless the query selects * or COUNT()")


def to_cypher(query: str, graph_name: str) -> str:
    """Translate one twin query language string into Cypher"""
    return CypherTranslator(graph_name).translate(query)
