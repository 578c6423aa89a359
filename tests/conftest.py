"""Pytest configuration for twingraph tests."""

import pytest

from twingraph.agtype import Edge, Vertex
from twingraph.errors import OperationCancelled


class FakeGraphStore:
    """
    In-memory stand-in for AgeGraphStore.

    Records every statement and replays queued results in order: a list of
    rows for query/stream, an int for execute, or an exception to raise.
    """

    def __init__(self):
        self.calls = []
        self.responses = []
        self.closed = False

    def respond(self, *results):
        self.responses.extend(results)

    @property
    def statements(self):
        return [call[2] for call in self.calls if call[0] != 'sql']

    def _next(self, default):
        if not self.responses:
            return default
        result = self.responses.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    def query(self, graph, cypher, columns=('result',), cancel=None):
        self.calls.append(('query', graph, cypher, tuple(columns)))
        return list(self._next([]))

    def stream(self, graph, cypher, columns=('result',), cancel=None):
        self.calls.append(('stream', graph, cypher, tuple(columns)))
        for row in self._next([]):
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("Operation was cancelled")
            yield row

    def execute(self, graph, cypher, cancel=None):
        self.calls.append(('execute', graph, cypher, ()))
        return self._next(0)

    def execute_sql(self, sql, params=None):
        self.calls.append(('sql', None, sql, params))

    def close(self):
        self.closed = True


def twin_vertex(twin_id, model='dtmi:example:Room;1', **properties):
    return Vertex(id=1, label='Twin', properties={
        '$dtId': twin_id, '$etag': 'W/"1"', '$metadata': {'$model': model}, **properties})


def relationship_edge(rel_id, name='contains', **properties):
    return Edge(id=10, label=name, start_id=1, end_id=2,
                properties={'$relationshipId': rel_id, **properties})


ROOM_MODEL = {
    '@context': 'dtmi:dtdl:context;3',
    '@id': 'dtmi:example:Room;1',
    '@type': 'Interface',
    'extends': 'dtmi:example:Space;1',
    'contents': [
        {'@type': 'Property', 'name': 'temperature', 'schema': 'double'},
        {'@type': 'Property', 'name': 'occupied', 'schema': 'boolean'},
        {'@type': 'Relationship', 'name': 'contains', 'target': 'dtmi:example:Light;1'},
        {'@type': 'Telemetry', 'name': 'humidity', 'schema': 'double'},
    ],
}

SPACE_MODEL = {
    '@context': 'dtmi:dtdl:context;3',
    '@id': 'dtmi:example:Space;1',
    '@type': 'Interface',
    'contents': [
        {'@type': 'Property', 'name': 'name', 'schema': 'string'},
    ],
}


@pytest.fixture
def store():
    return FakeGraphStore()


@pytest.fixture
def room_model():
    return dict(ROOM_MODEL)


@pytest.fixture
def space_model():
    return dict(SPACE_MODEL)
