"""
Expression rewriting for projections and WHERE predicates

Two rewrites run in one pass over the token stream:

- property accessors: ``T.$metadata.$model`` becomes ``T['$metadata']['$model']``
  and, when an implicit alias is in effect, bare property names get it
  prepended (``name`` -> ``T.name``, ``$dtId`` -> ``T['$dtId']``);
- predicate functions: the query-language functions below become native
  Cypher operators or a call into the graph's ``is_of_model`` function.
"""
from typing import List, Optional

from twingraph.cypher import check_graph_name
from twingraph.errors import InvalidQuery
from twingraph.parser import CLOSERS, OPENERS, Token, TokenType, tokenize

# Operator words that are never property names
OPERATOR_WORDS = frozenset({
    'AND', 'OR', 'NOT', 'XOR', 'IN', 'IS', 'NULL', 'TRUE', 'FALSE',
    'STARTS', 'ENDS', 'WITH', 'CONTAINS',
})

INFIX_FUNCTIONS = {
    'STARTSWITH': 'STARTS WITH',
    'ENDSWITH': 'ENDS WITH',
    'CONTAINS': 'CONTAINS',
}

NULL_CHECK_FUNCTIONS = {
    'IS_NULL': 'IS NULL',
    'IS_DEFINED': 'IS NOT NULL',
}


def _matching_paren(tokens: List[Token], open_index: int) -> int:
    depth = 0
    for i in range(open_index, len(tokens)):
        if tokens[i].type is TokenType.LPAREN:
            depth += 1
        elif tokens[i].type is TokenType.RPAREN:
            depth -= 1
            if depth == 0:
                return i
    raise InvalidQuery("Unbalanced parentheses in expression")


def _split_arguments(tokens: List[Token]) -> List[List[Token]]:
    if not tokens:
        return []
    args, current, depth = [], [], 0
    for token in tokens:
        if token.type in OPENERS:
            depth += 1
        elif token.type in CLOSERS:
            depth -= 1
        if depth == 0 and token.type is TokenType.COMMA:
            args.append(current)
            current = []
        else:
            current.append(token)
    args.append(current)
    return args


def _with_alias(alias: str, name: str) -> str:
    if name.startswith('$'):
        return f"{alias}['{name}']"
    return f"{alias}.{name}"


class ExpressionRewriter:
    """Rewrites projection and predicate token runs into Cypher expressions"""

    def __init__(self, graph_name: str):
        self.graph_name = check_graph_name(graph_name)

    def rewrite(self, tokens: List[Token], alias: Optional[str] = None) -> str:
        """Render ``tokens`` as Cypher; ``alias`` is prepended to bare property names"""
        return self._render(tokens, alias).strip()

    def _render(self, tokens: List[Token], alias: Optional[str]) -> str:
        out = []
        i = 0
        while i < len(tokens):
            token = tokens[i]
            previous = tokens[i - 1] if i > 0 else None
            following = tokens[i + 1] if i + 1 < len(tokens) else None
            after_dot = previous is not None and previous.type is TokenType.DOT

            if (token.is_word() and not after_dot and following is not None
                    and following.type is TokenType.LPAREN):
                close = _matching_paren(tokens, i + 1)
                call = self._function(token.value, tokens[i + 1], tokens[i + 2:close], tokens[close], alias)
                out.append(token.ws + call)
                i = close + 1
                continue

            if (token.type is TokenType.DOT and following is not None and not following.ws
                    and following.type is TokenType.IDENTIFIER and following.value.startswith('$')):
                out.append(f"{token.ws}['{following.value}']")
                i += 2
                continue

            if (alias and token.is_word() and not after_dot
                    and token.value.upper() not in OPERATOR_WORDS):
                out.append(token.ws + _with_alias(alias, token.value))
            else:
                out.append(token.ws + token.value)
            i += 1
        return ''.join(out)

    def _function(self, name: str, open_paren: Token, inner: List[Token],
                  close_paren: Token, alias: Optional[str]) -> str:
        upper = name.upper()
        args = _split_arguments(inner)

        if upper == 'IS_OF_MODEL':
            if not args:
                raise InvalidQuery("IS_OF_MODEL expects a model id")
            # Arguments are an alias and/or literals, never property names
            raw = self._render(inner, None).strip()
            if alias and len(args) == 1:
                return f"{self.graph_name}.is_of_model({alias},{raw})"
            return f"{self.graph_name}.is_of_model({raw})"

        if upper in INFIX_FUNCTIONS:
            self._check_arity(name, args, 2)
            left, right = (self._render(arg, alias).strip() for arg in args)
            return f"{left} {INFIX_FUNCTIONS[upper]} {right}"

        if upper in NULL_CHECK_FUNCTIONS:
            self._check_arity(name, args, 1)
            return f"{self._render(args[0], alias).strip()} {NULL_CHECK_FUNCTIONS[upper]}"

        if upper == 'COUNT' and not inner:
            return 'COUNT(*)'

        return f"{name}{open_paren.ws}({self._render(inner, alias)}{close_paren.ws})"

    @staticmethod
    def _check_arity(name: str, args: List[List[Token]], expected: int) -> None:
        if len(args) != expected or any(not arg for arg in args):
            raise InvalidQuery(f"{name} expects {expected} argument(s), got {len(args)}")


def rewrite_expression(expression: str, graph_name: str, alias: Optional[str] = None) -> str:
    """Rewrite a standalone expression string"""
    tokens = tokenize(expression)[:-1]  # drop EOF
    return ExpressionRewriter(graph_name).rewrite(tokens, alias)
