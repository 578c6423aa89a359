import pytest

from twingraph.errors import BadArgument, DeserializationError
from twingraph.types import BasicDigitalTwin, BasicRelationship, as_document, decode_with


def test_twin_round_trip():
    document = {'$dtId': 'room1', '$etag': 'W/"1"',
                '$metadata': {'$model': 'dtmi:example:Room;1', 'temperature': {'lastUpdateTime': 't'}},
                'temperature': 21.5}
    twin = BasicDigitalTwin.from_dict(document)
    assert twin.contents == {'temperature': 21.5}
    assert twin.metadata.properties == {'temperature': {'lastUpdateTime': 't'}}
    assert twin.to_dict() == document


def test_relationship_round_trip():
    document = {'$relationshipId': 'r1', '$sourceId': 'a', '$targetId': 'b',
                '$relationshipName': 'contains', 'weight': 2}
    rel = BasicRelationship.from_dict(document)
    assert rel.properties == {'weight': 2}
    assert rel.to_dict() == document


def test_as_document_copies():
    original = {'a': 1}
    copy = as_document(original)
    copy['b'] = 2
    assert original == {'a': 1}


def test_as_document_rejects_non_objects():
    with pytest.raises(BadArgument):
        as_document('[1, 2]')
    with pytest.raises(BadArgument):
        as_document(3)


def test_decode_with():
    assert decode_with(None, {'a': 1}) == {'a': 1}
    assert decode_with(lambda d: d['a'], {'a': 1}) == 1
    with pytest.raises(DeserializationError):
        decode_with(lambda d: d['missing'], {'a': 1})
