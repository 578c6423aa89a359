#!/usr/bin/env python3
"""
Building Twin Graph
===================
Creates a small building graph (models, twins, relationships) in Apache AGE
and queries it with the twin query language.

Requires a PostgreSQL server with the AGE extension; connection settings come
from the TWINGRAPH_* environment variables.
"""
import logging

from twingraph import DigitalTwinsClient, ValidationFailed

SPACE = {
    '@context': 'dtmi:dtdl:context;3',
    '@id': 'dtmi:example:Space;1',
    '@type': 'Interface',
    'contents': [
        {'@type': 'Property', 'name': 'name', 'schema': 'string'},
        {'@type': 'Relationship', 'name': 'contains'},
    ],
}

ROOM = {
    '@context': 'dtmi:dtdl:context;3',
    '@id': 'dtmi:example:Room;1',
    '@type': 'Interface',
    'extends': 'dtmi:example:Space;1',
    'contents': [
        {'@type': 'Property', 'name': 'temperature', 'schema': 'double'},
    ],
}


def run_building_demo(graph_name='building_demo'):
    print("=" * 60)
    print("twingraph: Building Twin Graph")
    print("=" * 60)

    with DigitalTwinsClient(graph_name=graph_name) as client:
        print("\n[1] Creating graph and models...")
        client.create_graph()
        client.create_models([SPACE, ROOM])

        print("\n[2] Creating twins...")
        client.upsert_digital_twin('floor1', {'$metadata': {'$model': 'dtmi:example:Space;1'}, 'name': 'Floor 1'})
        for i, temperature in enumerate([20.5, 22.0, 19.0], start=1):
            client.upsert_digital_twin(f'room{i}', {
                '$metadata': {'$model': 'dtmi:example:Room;1'},
                'name': f'Room {i}',
                'temperature': temperature,
            })
            client.upsert_relationship('floor1', f'floor1-room{i}', {
                '$relationshipName': 'contains',
                '$targetId': f'room{i}',
            })

        print("\n[3] Rejected write...")
        try:
            client.upsert_digital_twin('room4', {'$metadata': {'$model': 'dtmi:example:Room;1'},
                                                 'temperature': 'warm', 'color': 'red'})
        except ValidationFailed as e:
            for violation in e.violations:
                print(f"   {violation}")

        print("\n[4] Rooms on floor1 warmer than 20 degrees:")
        frame = client.query_frame(
            "SELECT Room.name, Room.temperature FROM DIGITALTWINS Floor "
            "JOIN Room RELATED Floor.contains "
            "WHERE Floor.$dtId = 'floor1' AND Room.temperature > 20")
        print(frame.to_string(index=False))

        print("\n[5] Twins of model Space (including Rooms):")
        for row in client.query_twins("SELECT COUNT() FROM DIGITALTWINS WHERE IS_OF_MODEL('dtmi:example:Space;1')"):
            print(f"   {row['count']}")

        client.drop_graph()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_building_demo()
