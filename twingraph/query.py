"""
Generic query execution

Accepts either native Cypher (anything with a top-level RETURN) or the twin
query language (translated first), derives the column list AGE needs from the
RETURN clause, and streams hydrated rows.
"""
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

import pandas as pd

from twingraph.agtype import hydrate
from twingraph.compiler import CypherTranslator
from twingraph.errors import InvalidQuery
from twingraph.parser import CLOSERS, OPENERS, Token, TokenType, tokenize
from twingraph.types import decode_with

logger = logging.getLogger(__name__)

# Words that end a RETURN item list
_RETURN_TERMINATORS = frozenset({'ORDER', 'SKIP', 'LIMIT', 'UNION'})
# Clauses that end a MATCH pattern (OPTIONAL is followed by MATCH again)
_CLAUSE_WORDS = frozenset({'OPTIONAL', 'WITH', 'UNWIND', 'CREATE', 'MERGE', 'SET', 'DELETE',
                           'DETACH', 'REMOVE', 'CALL'}) | _RETURN_TERMINATORS


def _top_level(tokens: List[Token]) -> Iterator[Token]:
    """Tokens outside any brackets"""
    depth = 0
    for token in tokens:
        if token.type in CLOSERS:
            depth -= 1
        elif depth == 0:
            yield token
        if token.type in OPENERS:
            depth += 1


def _split_items(tokens: List[Token]) -> List[List[Token]]:
    items, current, depth = [], [], 0
    for token in tokens:
        if token.type in OPENERS:
            depth += 1
        elif token.type in CLOSERS:
            depth -= 1
        if depth == 0 and token.type is TokenType.COMMA:
            items.append(current)
            current = []
        else:
            current.append(token)
    if current:
        items.append(current)
    return items


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('`', "'", '"'):
        return value[1:-1]
    return value


def is_native_query(query: str) -> bool:
    return any(t.type is TokenType.RETURN for t in _top_level(tokenize(query)))


def pattern_variables(tokens: List[Token]) -> List[str]:
    """Node, edge and path variables declared in MATCH patterns, in order of appearance"""
    names = []
    in_pattern = False
    brackets: List[TokenType] = []
    for i, token in enumerate(tokens[:-1]):
        if not brackets and (token.type in (TokenType.MATCH, TokenType.WHERE, TokenType.RETURN)
                             or (token.is_word() and token.value.upper() in _CLAUSE_WORDS)):
            in_pattern = token.type is TokenType.MATCH
        # map literals hold values, not variables
        in_map = TokenType.LBRACE in brackets
        if token.type in OPENERS:
            brackets.append(token.type)
        elif token.type in CLOSERS and brackets:
            brackets.pop()
        if not in_pattern or in_map:
            continue
        following = tokens[i + 1]
        name = None
        if token.type in (TokenType.LPAREN, TokenType.LBRACKET) and following.type is TokenType.IDENTIFIER:
            after = tokens[i + 2] if i + 2 < len(tokens) else None
            if after is not None and (after.type in (TokenType.RPAREN, TokenType.RBRACKET, TokenType.LBRACE)
                                      or after.value in (':', '*')):
                name = _unquote(following.value)
        elif (token.type in (TokenType.MATCH, TokenType.COMMA) and following.type is TokenType.IDENTIFIER
              and i + 3 < len(tokens) and tokens[i + 2].value == '='
              and tokens[i + 3].type is TokenType.LPAREN):
            name = _unquote(following.value)
        if name and name not in names:
            names.append(name)
    return names


def _column_name(item: List[Token], index: int) -> str:
    words = [t for t in _top_level(item)]
    for j in range(len(words) - 2, -1, -1):
        if words[j].is_word() and words[j].value.upper() == 'AS':
            return _unquote(words[j + 1].value)
    last = item[-1]
    if len(item) == 1 and last.is_word():
        return _unquote(last.value)
    if last.is_word() and len(item) >= 2 and item[-2].type is TokenType.DOT:
        return _unquote(last.value)
    if last.type is TokenType.RBRACKET and len(item) >= 2 and item[-2].type is TokenType.STRING:
        return _unquote(item[-2].value)
    if item[0].is_word() and len(item) >= 2 and item[1].type is TokenType.LPAREN:
        return item[0].value.lower()
    return f"column{index}"


def return_columns(cypher: str) -> List[str]:
    """Column names for the AS clause of ag_catalog.cypher(), taken from the last RETURN"""
    tokens = tokenize(cypher)[:-1]
    top = list(_top_level(tokens))
    returns = [t for t in top if t.type is TokenType.RETURN]
    if not returns:
        raise InvalidQuery("Query has no RETURN clause")
    start = tokens.index(returns[-1]) + 1

    clause = []
    depth = 0
    for token in tokens[start:]:
        if depth == 0 and token.is_word() and token.value.upper() in _RETURN_TERMINATORS:
            break
        if token.type in OPENERS:
            depth += 1
        elif token.type in CLOSERS:
            depth -= 1
        clause.append(token)
    if clause and clause[0].is_word() and clause[0].value.upper() == 'DISTINCT':
        clause = clause[1:]
    if not clause:
        raise InvalidQuery("RETURN clause is empty")

    names = []
    for index, item in enumerate(_split_items(clause)):
        if len(item) == 1 and item[0].value == '*':
            names.extend(pattern_variables(tokens[:start]))
        else:
            names.append(_column_name(item, index))

    columns = []
    for name in names:
        unique, n = name, 1
        while unique in columns:
            n += 1
            unique = f"{name}_{n}"
        columns.append(unique)
    if not columns:
        raise InvalidQuery("RETURN * needs at least one pattern variable")
    return columns


class QueryExecutor:
    """Runs twin query language or Cypher queries against one graph"""

    def __init__(self, store, graph_name: str, translator: Optional[CypherTranslator] = None):
        self.store = store
        self.graph_name = graph_name
        self.translator = translator or CypherTranslator(graph_name)

    def prepare(self, query: str) -> str:
        """Return the Cypher to run for ``query``"""
        if not isinstance(query, str) or not query.strip():
            raise InvalidQuery("Query is empty")
        if is_native_query(query):
            return query.strip()
        first = tokenize(query)[0]
        if first.type is TokenType.SELECT:
            return self.translator.translate(query)
        raise InvalidQuery("Query must be a SELECT statement or a Cypher query with a RETURN clause")

    def query_twins(self, query: str, decode: Optional[Callable] = None,
                    cancel=None) -> Iterator[Any]:
        """
        Lazily yield one result per row.

        Rows are dicts keyed by column; vertices and edges are replaced by
        their property maps. Translation errors raise immediately, database
        errors on first iteration.
        """
        cypher = self.prepare(query)
        columns = return_columns(cypher)
        logger.debug("query %r runs as %r with columns %s", query, cypher, columns)
        return self._rows(cypher, columns, decode, cancel)

    def _rows(self, cypher: str, columns: List[str], decode: Optional[Callable],
              cancel) -> Iterator[Any]:
        for row in self.store.stream(self.graph_name, cypher, columns, cancel):
            yield decode_with(decode, {column: hydrate(value) for column, value in row.items()})

    def query_frame(self, query: str, cancel=None) -> pd.DataFrame:
        """Materialize a query as a DataFrame, one column per RETURN item"""
        cypher = self.prepare(query)
        columns = return_columns(cypher)
        rows: List[Dict[str, Any]] = list(self._rows(cypher, columns, None, cancel))
        return pd.DataFrame.from_records(rows, columns=columns)
