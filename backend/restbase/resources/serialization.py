"""
RestBase: Record Serialization
===============================

What:  Converts records (or whatever a get-hook returned) into JSON-ready
       structures.
How:   With a pydantic schema: `model_validate(..., from_attributes=True)`.
       Without one: every loaded column attribute plus every relationship that
       was eager-loaded, walked recursively. Attributes that are not loaded
       are skipped, so serialization never triggers lazy IO on an async
       session.
"""

from typing import Any, Dict, Mapping, Optional, Type

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import InstanceState


def record_to_dict(record: Any, _path: frozenset = frozenset()) -> Dict[str, Any]:
    """
    Loaded columns and loaded relationships of a mapped instance.

    A relationship pointing back to an instance already being serialized
    higher up (e.g. book → author → books → same book) is left out.
    """
    state = sa_inspect(record)
    mapper = state.mapper
    unloaded = state.unloaded
    path = _path | {id(record)}

    data: Dict[str, Any] = {}
    for prop in mapper.column_attrs:
        if prop.key not in unloaded:
            data[prop.key] = getattr(record, prop.key)

    for rel in mapper.relationships:
        if rel.key in unloaded:
            continue
        value = getattr(record, rel.key)
        if value is None:
            data[rel.key] = None
        elif rel.uselist:
            data[rel.key] = [record_to_dict(item, path) for item in value if id(item) not in path]
        elif id(value) not in path:
            data[rel.key] = record_to_dict(value, path)
    return data


def serialize(record: Any, schema: Optional[Type[BaseModel]] = None) -> Any:
    """JSON-compatible representation of a record or a get-hook result."""
    if schema is not None:
        return schema.model_validate(record, from_attributes=True).model_dump(mode="json")
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    if isinstance(record, Mapping):
        return jsonable_encoder({key: _plain(value) for key, value in record.items()})
    return jsonable_encoder(_plain(record))


def _plain(value: Any) -> Any:
    if isinstance(sa_inspect(value, raiseerr=False), InstanceState):
        return record_to_dict(value)
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value
