import psycopg2
import pytest

from twingraph.agtype import Vertex
from twingraph.errors import ModelNotFound, ModelResolutionFailed
from twingraph.models import ModelRepository

from conftest import ROOM_MODEL, SPACE_MODEL


def model_row(document):
    return {'m': Vertex(id=1, label='Model', properties=document)}


def test_create_models_writes_vertices_then_extends_edges(store):
    repo = ModelRepository(store, 'g')
    store.respond([model_row(SPACE_MODEL), model_row(ROOM_MODEL)], 1)

    created = repo.create_models([SPACE_MODEL, ROOM_MODEL])

    assert created == [SPACE_MODEL, ROOM_MODEL]
    create, link = store.statements
    assert create.startswith("UNWIND [{`@context`: 'dtmi:dtdl:context;3', `@id`: 'dtmi:example:Space;1'")
    assert create.endswith(" AS model CREATE (m:Model) SET m = model RETURN m")
    assert link == ("MATCH (m:Model), (b:Model) WHERE m['@id'] = 'dtmi:example:Room;1' "
                    "AND b['@id'] = 'dtmi:example:Space;1' CREATE (m)-[:_extends]->(b)")


def test_create_models_stores_inline_bases_as_models(store):
    repo = ModelRepository(store, 'g')
    room = {**ROOM_MODEL, 'extends': [SPACE_MODEL]}
    store.respond([model_row(room), model_row(SPACE_MODEL)], 1)

    created = repo.create_models([room])

    assert [model['@id'] for model in created] == ['dtmi:example:Room;1', 'dtmi:example:Space;1']
    create, link = store.statements
    assert create.endswith(", {`@context`: 'dtmi:dtdl:context;3', `@id`: 'dtmi:example:Space;1', "
                           "`@type`: 'Interface', contents: [{`@type`: 'Property', name: 'name', "
                           "schema: 'string'}]}] AS model CREATE (m:Model) SET m = model RETURN m")
    assert link == ("MATCH (m:Model), (b:Model) WHERE m['@id'] = 'dtmi:example:Room;1' "
                    "AND b['@id'] = 'dtmi:example:Space;1' CREATE (m)-[:_extends]->(b)")


def test_create_models_resolves_bases_from_the_graph(store):
    repo = ModelRepository(store, 'g')
    store.respond([model_row(SPACE_MODEL)], [model_row(ROOM_MODEL)])

    repo.create_models([ROOM_MODEL])

    lookup = store.statements[0]
    assert lookup == "MATCH (m:Model) WHERE m['@id'] IN ['dtmi:example:Space;1'] RETURN m"
    assert len(store.statements) == 3


def test_create_models_fails_before_writing_when_unresolved(store):
    repo = ModelRepository(store, 'g')
    with pytest.raises(ModelResolutionFailed):
        repo.create_models([ROOM_MODEL])
    assert all('CREATE' not in s for s in store.statements)


def test_create_models_reraises_edge_failures(store):
    repo = ModelRepository(store, 'g')
    store.respond([model_row(SPACE_MODEL), model_row(ROOM_MODEL)], psycopg2.OperationalError("gone"))
    with pytest.raises(psycopg2.OperationalError):
        repo.create_models([SPACE_MODEL, ROOM_MODEL])


def test_create_models_empty_batch(store):
    assert ModelRepository(store, 'g').create_models([]) == []
    assert store.calls == []


def test_get_model(store):
    repo = ModelRepository(store, 'g')
    store.respond([model_row(ROOM_MODEL)])
    assert repo.get_model('dtmi:example:Room;1') == ROOM_MODEL
    assert store.statements == ["MATCH (m:Model) WHERE m['@id'] = 'dtmi:example:Room;1' RETURN m"]


def test_get_model_not_found(store):
    with pytest.raises(ModelNotFound) as err:
        ModelRepository(store, 'g').get_model('dtmi:example:Nope;1')
    assert err.value.status_code == 404


def test_get_models_by_ids_skips_empty_lookups(store):
    assert ModelRepository(store, 'g').get_models_by_ids([]) == []
    assert store.calls == []


def test_list_models_is_lazy(store):
    repo = ModelRepository(store, 'g')
    store.respond([model_row(SPACE_MODEL), model_row(ROOM_MODEL)])
    models = repo.list_models()
    assert store.calls == []
    assert list(models) == [SPACE_MODEL, ROOM_MODEL]


def test_get_interface_parses_with_bases(store):
    repo = ModelRepository(store, 'g')
    store.respond([model_row(ROOM_MODEL)], [model_row(SPACE_MODEL)])
    interface = repo.get_interface('dtmi:example:Room;1')
    assert 'name' in interface.contents


def test_delete_model(store):
    repo = ModelRepository(store, 'g')
    store.respond(1)
    repo.delete_model('dtmi:example:Room;1')
    assert store.statements == [
        "MATCH (m:Model) WHERE m['@id'] = 'dtmi:example:Room;1' DETACH DELETE m RETURN 1"]

    with pytest.raises(ModelNotFound):
        repo.delete_model('dtmi:example:Room;1')
