import pytest

from twingraph.errors import InvalidQuery
from twingraph.parser import (
    JoinSource, MatchSource, RelationshipsSource, TokenType, TwinsSource, normalize_whitespace,
    parse_query, tokenize
)


def test_tokenize_keeps_leading_whitespace():
    tokens = tokenize("SELECT  T FROM x")
    assert [t.type for t in tokens] == [
        TokenType.SELECT, TokenType.IDENTIFIER, TokenType.FROM, TokenType.IDENTIFIER, TokenType.EOF]
    assert tokens[1].ws == "  "
    assert tokens[1].value == "T"


def test_words_after_dot_are_never_keywords():
    tokens = tokenize("DT.match")
    assert tokens[2].type is TokenType.IDENTIFIER


def test_string_literals_keep_quotes_and_escapes():
    tokens = tokenize(r"name = 'it\'s'")
    assert tokens[2].type is TokenType.STRING
    assert tokens[2].value == r"'it\'s'"


def test_numbers_and_two_char_operators():
    tokens = tokenize("a >= 2.5 <> 3")
    assert [t.value for t in tokens[:-1]] == ['a', '>=', '2.5', '<>', '3']


def test_normalize_whitespace():
    assert normalize_whitespace("  SELECT\n\tT   FROM ") == "SELECT T FROM"


def test_parse_twins_source_with_top():
    ast = parse_query("SELECT TOP(3) T FROM DIGITALTWINS T WHERE T.x = 1")
    assert ast.limit == 3
    assert ast.source == TwinsSource(alias='T')
    assert [t.value for t in ast.projection] == ['T']
    assert [t.value for t in ast.where] == ['T', '.', 'x', '=', '1']


def test_parse_relationships_source():
    ast = parse_query("SELECT * FROM RELATIONSHIPS")
    assert ast.source == RelationshipsSource(alias=None)
    assert ast.where is None


def test_parse_match_keeps_pattern_text():
    ast = parse_query("SELECT T FROM DIGITALTWINS MATCH (S)-[R:has]->(T) WHERE S.$dtId = 'a'")
    assert ast.source == MatchSource(pattern="(S)-[R:has]->(T)")


def test_parse_joins():
    ast = parse_query("SELECT B FROM DIGITALTWINS A JOIN B RELATED A.has R JOIN C RELATED B.feeds")
    assert isinstance(ast.source, JoinSource)
    assert ast.source.alias == 'A'
    assert [(j.target, j.source, j.relationship, j.alias) for j in ast.source.joins] == [
        ('B', 'A', 'has', 'R'), ('C', 'B', 'feeds', None)]


@pytest.mark.parametrize("query", [
    "SELECT * FROM DIGITALTWINS JOIN B RELATED A",
    "SELECT * FROM DIGITALTWINS WHERE (name = 'x'",
    "SELECT * FROM DIGITALTWINS WHERE name = 'x')",
    "SELECT * FROM DIGITALTWINS T extra",
    "SELECT * FROM DIGITALTWINS WHERE `name = 1",
])
def test_parse_errors(query):
    with pytest.raises(InvalidQuery):
        parse_query(query)
