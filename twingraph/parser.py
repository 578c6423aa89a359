"""
Twin Query Language Parser - lexer, AST and recursive-descent parser
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from twingraph.errors import InvalidQuery

# ============================================================================
# Twin Query Language Grammar (BNF)
# ============================================================================
"""
<query>        ::= "SELECT" ["TOP" "(" <integer> ")"] <projection>
                   "FROM" <source>
                   ["WHERE" <predicate>]

<source>       ::= "RELATIONSHIPS" [<alias>]
                 | "DIGITALTWINS" "MATCH" <pattern>
                 | "DIGITALTWINS" [<alias>] <join> (<join>)*
                 | "DIGITALTWINS" [<alias>]

<join>         ::= "JOIN" <alias> "RELATED" <alias> "." <identifier> [<alias>]

<projection>, <pattern> and <predicate> are token runs handed on to the
expression rewriter (projection, predicate) or kept verbatim (pattern).
"""


class TokenType(Enum):
    # Keywords
    SELECT = "SELECT"
    TOP = "TOP"
    FROM = "FROM"
    WHERE = "WHERE"
    DIGITALTWINS = "DIGITALTWINS"
    RELATIONSHIPS = "RELATIONSHIPS"
    MATCH = "MATCH"
    JOIN = "JOIN"
    RELATED = "RELATED"
    RETURN = "RETURN"

    # Literals
    IDENTIFIER = "IDENTIFIER"
    STRING = "STRING"
    NUMBER = "NUMBER"

    # Punctuation
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    LBRACE = "{"
    RBRACE = "}"
    COMMA = ","
    DOT = "."
    OPERATOR = "OPERATOR"

    # Special
    EOF = "EOF"


KEYWORD_TYPES = frozenset({
    TokenType.SELECT, TokenType.TOP, TokenType.FROM, TokenType.WHERE,
    TokenType.DIGITALTWINS, TokenType.RELATIONSHIPS, TokenType.MATCH,
    TokenType.JOIN, TokenType.RELATED, TokenType.RETURN,
})

OPENERS = frozenset({TokenType.LPAREN, TokenType.LBRACKET, TokenType.LBRACE})
CLOSERS = frozenset({TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE})


@dataclass
class Token:
    type: TokenType
    value: str          # source text; string literals keep their quotes
    pos: int
    ws: str = ''        # whitespace in front of the token

    @property
    def end(self) -> int:
        return self.pos + len(self.value)

    def is_word(self) -> bool:
        return self.type is TokenType.IDENTIFIER or self.type in KEYWORD_TYPES


class Lexer:
    """Tokenizer for the twin query language (also good enough for Cypher text)"""

    KEYWORDS = {t.value for t in KEYWORD_TYPES}

    PUNCTUATION = {
        '(': TokenType.LPAREN, ')': TokenType.RPAREN,
        '[': TokenType.LBRACKET, ']': TokenType.RBRACKET,
        '{': TokenType.LBRACE, '}': TokenType.RBRACE,
        ',': TokenType.COMMA, '.': TokenType.DOT,
    }

    TWO_CHAR_OPERATORS = ('<=', '>=', '<>', '!=')

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def tokenize(self) -> List[Token]:
        tokens = []
        while True:
            ws = self._skip_whitespace()
            if self.pos >= len(self.text):
                tokens.append(Token(TokenType.EOF, '', self.pos, ws))
                return tokens

            ch = self.text[self.pos]
            if ch in ("'", '"'):
                token = self._read_string(ch)
            elif ch == '`':
                token = self._read_quoted_identifier()
            elif ch in self.PUNCTUATION:
                token = Token(self.PUNCTUATION[ch], ch, self.pos)
                self.pos += 1
            elif ch.isalpha() or ch in '_$@':
                token = self._read_identifier(tokens[-1] if tokens else None)
            elif ch.isdigit():
                token = self._read_number()
            else:
                token = self._read_operator()
            token.ws = ws
            tokens.append(token)

    def _skip_whitespace(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1
        return self.text[start:self.pos]

    def _read_string(self, quote: str) -> Token:
        start = self.pos
        self.pos += 1  # opening quote
        while self.pos < len(self.text) and self.text[self.pos] != quote:
            if self.text[self.pos] == '\\':
                self.pos += 1
            self.pos += 1
        if self.pos >= len(self.text):
            raise InvalidQuery(f"Unterminated string literal at position {start}")
        self.pos += 1  # closing quote
        return Token(TokenType.STRING, self.text[start:self.pos], start)

    def _read_quoted_identifier(self) -> Token:
        start = self.pos
        end = self.text.find('`', start + 1)
        if end < 0:
            raise InvalidQuery(f"Unterminated quoted identifier at position {start}")
        self.pos = end + 1
        return Token(TokenType.IDENTIFIER, self.text[start:self.pos], start)

    def _read_identifier(self, previous: Optional[Token]) -> Token:
        start = self.pos
        while self.pos < len(self.text) and (self.text[self.pos].isalnum() or self.text[self.pos] in '_$@'):
            self.pos += 1
        value = self.text[start:self.pos]

        # After a dot every word is a property name, never a keyword
        follows_dot = previous is not None and previous.type is TokenType.DOT
        if value.upper() in self.KEYWORDS and not follows_dot:
            return Token(TokenType[value.upper()], value, start)
        return Token(TokenType.IDENTIFIER, value, start)

    def _read_number(self) -> Token:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos].isdigit():
            self.pos += 1
        if (self.pos + 1 < len(self.text) and self.text[self.pos] == '.'
                and self.text[self.pos + 1].isdigit()):
            self.pos += 1
            while self.pos < len(self.text) and self.text[self.pos].isdigit():
                self.pos += 1
        return Token(TokenType.NUMBER, self.text[start:self.pos], start)

    def _read_operator(self) -> Token:
        start = self.pos
        if self.text[start:start + 2] in self.TWO_CHAR_OPERATORS:
            self.pos += 2
        else:
            self.pos += 1
        return Token(TokenType.OPERATOR, self.text[start:self.pos], start)


# ============================================================================
# AST
# ============================================================================

@dataclass
class RelationshipsSource:
    """FROM RELATIONSHIPS [alias]"""
    alias: Optional[str]


@dataclass
class TwinsSource:
    """FROM DIGITALTWINS [alias]"""
    alias: Optional[str]


@dataclass
class MatchSource:
    """FROM DIGITALTWINS MATCH <pattern>"""
    pattern: str


@dataclass
class JoinClause:
    """JOIN <target> RELATED <source>.<relationship> [alias]"""
    target: str
    source: str
    relationship: str
    alias: Optional[str]


@dataclass
class JoinSource:
    """FROM DIGITALTWINS [alias] JOIN ..."""
    alias: Optional[str]
    joins: List[JoinClause]


@dataclass
class SelectAST:
    """AST node for a complete SELECT statement"""
    projection: List[Token]
    limit: Optional[int]
    source: Any  # one of the *Source nodes above
    where: Optional[List[Token]]


class Parser:
    """Recursive-descent parser for the twin query language"""

    def __init__(self, tokens: List[Token], text: str):
        self.tokens = tokens
        self.text = text
        self.pos = 0

    def parse(self) -> SelectAST:
        self._expect(TokenType.SELECT)

        limit = None
        if self._check(TokenType.TOP):
            self._advance()
            self._expect(TokenType.LPAREN)
            count = self._expect(TokenType.NUMBER)
            if not count.value.isdigit():
                raise InvalidQuery(f"TOP expects an integer, got '{count.value}'")
            limit = int(count.value)
            self._expect(TokenType.RPAREN)

        projection = self._until(TokenType.FROM)
        if not projection:
            raise InvalidQuery("SELECT clause has no projection")
        self._expect(TokenType.FROM)

        source = self._parse_source()

        where = None
        if self._check(TokenType.WHERE):
            self._advance()
            where = self._until(TokenType.EOF)
            if not where:
                raise InvalidQuery("WHERE clause is empty")

        self._expect(TokenType.EOF)
        return SelectAST(projection=projection, limit=limit, source=source, where=where)

    def _current(self) -> Token:
        return self.tokens[self.pos]

    def _check(self, type: TokenType) -> bool:
        return self._current().type == type

    def _advance(self) -> Token:
        token = self._current()
        if not self._check(TokenType.EOF):
            self.pos += 1
        return token

    def _expect(self, type: TokenType) -> Token:
        if not self._check(type):
            found = self._current().value or 'end of query'
            raise InvalidQuery(f"Expected {type.value}, got '{found}'")
        return self._advance()

    def _until(self, stop: TokenType) -> List[Token]:
        """Collect tokens up to ``stop`` at bracket depth zero"""
        collected = []
        depth = 0
        while not self._check(TokenType.EOF):
            token = self._current()
            if depth == 0 and token.type == stop:
                break
            if token.type in OPENERS:
                depth += 1
            elif token.type in CLOSERS:
                depth -= 1
                if depth < 0:
                    raise InvalidQuery(f"Unbalanced '{token.value}' at position {token.pos}")
            collected.append(self._advance())
        if depth != 0:
            raise InvalidQuery("Unbalanced brackets")
        return collected

    def _optional_alias(self) -> Optional[str]:
        if self._check(TokenType.IDENTIFIER):
            return self._advance().value
        return None

    def _parse_source(self) -> Any:
        if self._check(TokenType.RELATIONSHIPS):
            self._advance()
            return RelationshipsSource(alias=self._optional_alias())

        if not self._check(TokenType.DIGITALTWINS):
            found = self._current().value or 'end of query'
            raise InvalidQuery(f"Expected DIGITALTWINS or RELATIONSHIPS after FROM, got '{found}'")
        self._advance()

        if self._check(TokenType.MATCH):
            self._advance()
            pattern = self._until(TokenType.WHERE)
            if not pattern:
                raise InvalidQuery("MATCH clause has no pattern")
            return MatchSource(pattern=self.text[pattern[0].pos:pattern[-1].end])

        alias = self._optional_alias()
        joins = []
        while self._check(TokenType.JOIN):
            joins.append(self._parse_join())
        if joins:
            return JoinSource(alias=alias, joins=joins)
        return TwinsSource(alias=alias)

    def _parse_join(self) -> JoinClause:
        self._expect(TokenType.JOIN)
        target = self._expect(TokenType.IDENTIFIER).value
        self._expect(TokenType.RELATED)
        source = self._expect(TokenType.IDENTIFIER).value
        self._expect(TokenType.DOT)
        relationship = self._expect(TokenType.IDENTIFIER).value
        alias = self._optional_alias()
        return JoinClause(target=target, source=source, relationship=relationship, alias=alias)


def normalize_whitespace(query: str) -> str:
    return re.sub(r'\s+', ' ', query).strip()


def tokenize(text: str) -> List[Token]:
    return Lexer(text).tokenize()


def parse_query(query: str) -> SelectAST:
    """Parse a twin query language string into its AST"""
    text = normalize_whitespace(query)
    return Parser(tokenize(text), text).parse()
