"""
RestBase: Resource Hooks
=========================

What:  The extension points of a ResourceController, bundled in one
       immutable object that is injected at construction.
How:   Each field is a callable. It may be a plain function or a coroutine
       function; the controller awaits whatever comes back if it is
       awaitable. Unset fields fall back to the no-op defaults below.

Hook            Called with            Returns        Default
──────────────  ─────────────────────  ─────────────  ───────────────────
relations       (request, action)      [str]          []
filters         (request, action)      FilterSet      {}
before_get      (record)               record|dict    record unchanged
before_create   (request)              FieldMap       JSON request body
before_update   (request)              FieldMap       JSON request body
before_delete   (record)               ignored        nothing

Example:
    hooks = ResourceHooks(
        relations=lambda request, action: ["author"] if action is Action.GET else [],
        filters=lambda request, action: {"owner": request.headers["X-Owner"]},
    )
"""

import inspect
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Sequence, TypeVar, Union

from starlette.requests import Request

from restbase.exceptions import ValidationError
from restbase.query import FilterSet

T = TypeVar("T")

FieldMap = Dict[str, Any]
MaybeAwaitable = Union[T, Awaitable[T]]


class Action(str, Enum):
    """The controller operation a relation/filter hook is being asked about."""
    LIST = "LIST"
    GET = "GET"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


RelationSelector = Callable[[Request, Action], MaybeAwaitable[Sequence[str]]]
FilterSelector = Callable[[Request, Action], MaybeAwaitable[FilterSet]]
GetHook = Callable[[Any], MaybeAwaitable[Any]]
DataHook = Callable[[Request], MaybeAwaitable[FieldMap]]
DeleteHook = Callable[[Any], MaybeAwaitable[None]]


def no_relations(request: Request, action: Action) -> Sequence[str]:
    return []


def no_filters(request: Request, action: Action) -> FilterSet:
    return {}


def identity(record: Any) -> Any:
    return record


def do_nothing(record: Any) -> None:
    return None


async def request_body(request: Request) -> FieldMap:
    """
    The JSON body of `request`, which must be an object.

    Raises:
        ValidationError: body is empty, not JSON, or not a JSON object
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(message="Request body must be valid JSON", field="body") from exc
    if not isinstance(body, dict):
        raise ValidationError(message="Request body must be a JSON object", field="body")
    return body


async def resolve(value: MaybeAwaitable[T]) -> T:
    """Await `value` when a hook handed back a coroutine or other awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class ResourceHooks:
    relations: RelationSelector = no_relations
    filters: FilterSelector = no_filters
    before_get: GetHook = identity
    before_create: DataHook = request_body
    before_update: DataHook = request_body
    before_delete: DeleteHook = do_nothing
