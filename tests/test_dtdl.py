import json

import pytest

from twingraph.dtdl import ModelParser, inline_interfaces, parse_models
from twingraph.errors import ModelParsingFailed, ModelResolutionFailed

from conftest import ROOM_MODEL, SPACE_MODEL


def interface(model_id, contents=(), extends=None, **extra):
    document = {'@id': model_id, '@type': 'Interface', 'contents': list(contents), **extra}
    if extends is not None:
        document['extends'] = extends
    return document


def test_parse_batch_with_inheritance():
    interfaces = parse_models([ROOM_MODEL, SPACE_MODEL])
    room = interfaces['dtmi:example:Room;1']
    assert room.extends == ['dtmi:example:Space;1']
    assert set(room.contents) == {'name', 'temperature', 'occupied', 'contains', 'humidity'}
    assert room.contents['name'].defined_in == 'dtmi:example:Space;1'
    assert room.contents['contains'].kind == 'Relationship'


def test_json_strings_and_arrays_are_accepted():
    interfaces = parse_models([json.dumps([ROOM_MODEL, SPACE_MODEL])])
    assert set(interfaces) == {'dtmi:example:Room;1', 'dtmi:example:Space;1'}


def test_resolver_is_called_once_per_round():
    calls = []

    def resolver(ids):
        calls.append(ids)
        return [SPACE_MODEL]

    interfaces = ModelParser(resolver).parse([ROOM_MODEL])
    assert calls == [['dtmi:example:Space;1']]
    assert 'name' in interfaces['dtmi:example:Room;1'].contents


def test_unresolved_models():
    with pytest.raises(ModelResolutionFailed) as err:
        ModelParser(lambda ids: []).parse([ROOM_MODEL])
    assert err.value.missing == ['dtmi:example:Space;1']

    with pytest.raises(ModelResolutionFailed):
        parse_models([ROOM_MODEL])


def test_property_validation_messages():
    content = parse_models([SPACE_MODEL])['dtmi:example:Space;1'].contents['name']
    assert content.validate('lobby') == []
    assert content.validate(5) == ["5 is not of type 'string'"]


@pytest.mark.parametrize("schema, good, bad", [
    ('integer', 7, 2 ** 40),
    ('boolean', False, 'yes'),
    ('date', '2024-02-29', 'not-a-date'),
    ('duration', 'PT5M', '5 minutes'),
    ({'@type': 'Enum', 'valueSchema': 'string',
      'enumValues': [{'name': 'on', 'enumValue': 'on'}, {'name': 'off', 'enumValue': 'off'}]}, 'on', 'dim'),
    ({'@type': 'Object', 'fields': [{'name': 'x', 'schema': 'double'}]}, {'x': 1.5}, {'y': 1}),
    ({'@type': 'Map', 'mapKey': {'name': 'k', 'schema': 'string'},
      'mapValue': {'name': 'v', 'schema': 'integer'}}, {'a': 1}, {'a': 'b'}),
    ({'@type': 'Array', 'elementSchema': 'string'}, ['a'], [1]),
    ('point', {'type': 'Point', 'coordinates': [1.0, 2.0]}, {'type': 'Point'}),
])
def test_schemas(schema, good, bad):
    model = interface('dtmi:example:Thing;1', [{'@type': 'Property', 'name': 'value', 'schema': schema}])
    content = parse_models([model])['dtmi:example:Thing;1'].contents['value']
    assert content.validate(good) == []
    assert content.validate(bad) != []


def test_nested_violation_paths():
    schema = {'@type': 'Object', 'fields': [{'name': 'x', 'schema': 'double'}]}
    model = interface('dtmi:example:Thing;1', [{'@type': 'Property', 'name': 'pos', 'schema': schema}])
    content = parse_models([model])['dtmi:example:Thing;1'].contents['pos']
    assert content.validate({'x': 'far'}) == ["x: 'far' is not of type 'number'"]


def test_interface_local_schemas():
    model = interface(
        'dtmi:example:Thing;1',
        [{'@type': 'Property', 'name': 'mode', 'schema': 'dtmi:example:Mode;1'}],
        schemas=[{'@id': 'dtmi:example:Mode;1', '@type': 'Enum', 'valueSchema': 'integer',
                  'enumValues': [{'name': 'a', 'enumValue': 1}]}])
    content = parse_models([model])['dtmi:example:Thing;1'].contents['mode']
    assert content.validate(1) == []
    assert content.validate(2) != []


def test_semantic_types_are_allowed():
    model = interface('dtmi:example:Thing;1',
                      [{'@type': ['Property', 'Temperature'], 'name': 't', 'schema': 'double', 'unit': 'degreeCelsius'}])
    assert parse_models([model])['dtmi:example:Thing;1'].contents['t'].kind == 'Property'


def test_components_are_resolved():
    model = interface('dtmi:example:Thing;1',
                      [{'@type': 'Component', 'name': 'space', 'schema': 'dtmi:example:Space;1'}])
    interfaces = ModelParser(lambda ids: [SPACE_MODEL]).parse([model])
    assert interfaces['dtmi:example:Thing;1'].components == ['dtmi:example:Space;1']


def test_inline_interfaces_are_collected_depth_first():
    light = interface('dtmi:example:Light;1')
    space = interface('dtmi:example:Space;1', [{'@type': 'Component', 'name': 'light', 'schema': light}])
    room = interface('dtmi:example:Room;1', extends=[space, 'dtmi:example:Base;1'])
    assert inline_interfaces(room) == [space, light]
    assert inline_interfaces(light) == []


@pytest.mark.parametrize("documents", [
    [interface('not-a-dtmi')],
    [{'@id': 'dtmi:example:A;1', '@type': 'Telemetry'}],
    [interface('dtmi:example:A;1'), interface('dtmi:example:A;1')],
    [interface('dtmi:example:A;1', extends='dtmi:example:B;1'),
     interface('dtmi:example:B;1', extends='dtmi:example:A;1')],
    [interface('dtmi:example:A;1', [{'@type': 'Property', 'name': 'x', 'schema': 'double'},
                                    {'@type': 'Property', 'name': 'x', 'schema': 'string'}])],
    [interface('dtmi:example:A;1', [{'@type': 'Property', 'name': 'x', 'schema': 'nope'}])],
    [interface('dtmi:example:A;1', [{'@type': 'Property', 'name': 'x'}])],
    [interface('dtmi:example:A;1', [{'@type': 'Property', 'name': '1x', 'schema': 'double'}])],
    ['{not json'],
    [42],
])
def test_malformed_models(documents):
    with pytest.raises(ModelParsingFailed):
        parse_models(documents)


def test_name_clash_between_bases():
    a = interface('dtmi:example:A;1', [{'@type': 'Property', 'name': 'x', 'schema': 'double'}])
    b = interface('dtmi:example:B;1', [{'@type': 'Property', 'name': 'x', 'schema': 'double'}])
    c = interface('dtmi:example:C;1', extends=['dtmi:example:A;1', 'dtmi:example:B;1'])
    with pytest.raises(ModelParsingFailed):
        parse_models([a, b, c])


def test_diamond_inheritance_is_fine():
    base = interface('dtmi:example:Base;1', [{'@type': 'Property', 'name': 'x', 'schema': 'double'}])
    left = interface('dtmi:example:Left;1', extends='dtmi:example:Base;1')
    right = interface('dtmi:example:Right;1', extends='dtmi:example:Base;1')
    leaf = interface('dtmi:example:Leaf;1', extends=['dtmi:example:Left;1', 'dtmi:example:Right;1'])
    assert set(parse_models([base, left, right, leaf])['dtmi:example:Leaf;1'].contents) == {'x'}
