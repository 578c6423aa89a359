"""
Typed documents

Twins and relationships travel as plain dicts; these dataclasses are optional
decode targets (``decode=BasicDigitalTwin.from_dict``) and are accepted as
write input through ``to_dict()``.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from twingraph.errors import BadArgument, DeserializationError

_TWIN_KEYS = ('$dtId', '$etag', '$metadata')
_RELATIONSHIP_KEYS = ('$relationshipId', '$sourceId', '$targetId', '$relationshipName', '$etag')


@dataclass
class DigitalTwinMetadata:
    model: str
    properties: Dict[str, Any] = field(default_factory=dict)  # per-property metadata

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DigitalTwinMetadata':
        rest = {k: v for k, v in data.items() if k != '$model'}
        return cls(model=data['$model'], properties=rest)

    def to_dict(self) -> Dict[str, Any]:
        return {'$model': self.model, **self.properties}


@dataclass
class BasicDigitalTwin:
    id: str
    metadata: DigitalTwinMetadata
    etag: Optional[str] = None
    contents: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BasicDigitalTwin':
        return cls(
            id=data['$dtId'],
            metadata=DigitalTwinMetadata.from_dict(data['$metadata']),
            etag=data.get('$etag'),
            contents={k: v for k, v in data.items() if k not in _TWIN_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        document = {'$dtId': self.id, '$metadata': self.metadata.to_dict(), **self.contents}
        if self.etag is not None:
            document['$etag'] = self.etag
        return document


@dataclass
class BasicRelationship:
    id: str
    source_id: str
    target_id: str
    name: str
    etag: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BasicRelationship':
        return cls(
            id=data['$relationshipId'],
            source_id=data['$sourceId'],
            target_id=data['$targetId'],
            name=data['$relationshipName'],
            etag=data.get('$etag'),
            properties={k: v for k, v in data.items() if k not in _RELATIONSHIP_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        document = {
            '$relationshipId': self.id,
            '$sourceId': self.source_id,
            '$targetId': self.target_id,
            '$relationshipName': self.name,
            **self.properties,
        }
        if self.etag is not None:
            document['$etag'] = self.etag
        return document


def as_document(value: Any) -> Dict[str, Any]:
    """Accept a dict, a JSON object string or an object with ``to_dict()``; returns a copy"""
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise BadArgument(f"Document is not valid JSON: {e}") from e
    elif hasattr(value, 'to_dict'):
        value = value.to_dict()
    if not isinstance(value, dict):
        raise BadArgument(f"Document must be a JSON object, got {type(value).__name__}")
    return dict(value)


def decode_with(decode: Optional[Callable[[Dict[str, Any]], Any]], document: Dict[str, Any]) -> Any:
    """Apply a caller's decode step; failures surface as DeserializationError"""
    if decode is None:
        return document
    try:
        return decode(document)
    except Exception as e:
        raise DeserializationError(f"Unable to decode document: {e}") from e
