"""
RestBase: Query Builder
========================

What:  Turns list parameters, a filter set and a relation list into a
       SQLAlchemy `Select` over a record type.
How:   Pure functions over the model's mapper. Nothing here executes SQL;
       controllers run the statements on their request session.
Who:   Used by ResourceController for every operation.

Filter set syntax:
    {"status": "published"}              → status = 'published'
    {"deleted_at": None}                 → deleted_at IS NULL
    {"pages__gte": 100}                  → pages >= 100
    {"owner__in": ["ann", "bob"]}        → owner IN ('ann', 'bob')
    {"title__ilike": "%python%"}         → title ILIKE '%python%'
    {"archived_at__isnull": False}       → archived_at IS NOT NULL

    All conditions are combined with AND.

Relation syntax:
    ["author"]                   → selectinload(Book.author)
    ["author.publisher"]         → selectinload(Book.author).selectinload(Author.publisher)

Ordering:
    Results are always ordered. Without `sort`, by primary key; with `sort`,
    by that column and then the primary key, both in the requested direction,
    so pages never overlap and asc/desc are exact reverses.
"""

import operator
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from fastapi import Query
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Select, func, inspect as sa_inspect, select
from sqlalchemy.orm import InstrumentedAttribute, selectinload

from restbase.exceptions import ResourceConfigurationError, ValidationError
from restbase.schemas import ListParams, SortOrder


FilterSet = Mapping[str, Any]


def _as_list(value: Any) -> List[Any]:
    """A single string or scalar becomes a one-item list."""
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return [value]
    return list(value)


_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "eq": lambda col, v: col.is_(None) if v is None else col == v,
    "ne": lambda col, v: col.is_not(None) if v is None else col != v,
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
    "in": lambda col, v: col.in_(_as_list(v)),
    "notin": lambda col, v: col.not_in(_as_list(v)),
    "like": lambda col, v: col.like(v),
    "ilike": lambda col, v: col.ilike(v),
    "isnull": lambda col, v: col.is_(None) if v else col.is_not(None),
}


# ══════════════════════════════════════════════════════════════════════════
# Request Parameters
# ══════════════════════════════════════════════════════════════════════════

def list_params(
    skip: Optional[str] = Query(default=None, description="Number of records to skip (>= 0)"),
    limit: Optional[str] = Query(default=None, description="Maximum number of records (>= 1)"),
    sort: Optional[str] = Query(default=None, description="Column to sort by"),
    order: Optional[str] = Query(default=None, description="Sort direction: asc or desc"),
) -> ListParams:
    """
    FastAPI dependency reading skip/limit/sort/order from the query string.

    Values arrive as raw strings so that every problem is reported the same
    way (400 with the offending field) instead of FastAPI's 422.
    """
    try:
        return ListParams(skip=skip, limit=limit, sort=sort, order=order)
    except PydanticValidationError as exc:
        problems = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err["msg"]}
            for err in exc.errors()
        ]
        first = problems[0]
        raise ValidationError(
            message=f"Invalid value for '{first['field']}': {first['message']}",
            field=first["field"],
            context={"errors": problems},
        ) from exc


# ══════════════════════════════════════════════════════════════════════════
# Mapper Helpers
# ══════════════════════════════════════════════════════════════════════════

def column_names(model: type) -> List[str]:
    """Attribute names of every mapped column on `model`."""
    return [prop.key for prop in sa_inspect(model).column_attrs]


def column_attribute(model: type, name: str) -> Optional[InstrumentedAttribute]:
    """The mapped column attribute called `name`, or None when there is none."""
    mapper = sa_inspect(model)
    if name not in mapper.column_attrs:
        return None
    return getattr(model, name)


def primary_key_attribute(model: type) -> InstrumentedAttribute:
    """
    The primary key attribute of `model`.

    Raises:
        ResourceConfigurationError: the model has a composite primary key
    """
    mapper = sa_inspect(model)
    if len(mapper.primary_key) != 1:
        raise ResourceConfigurationError(
            message=f"{model.__name__} must have a single-column primary key",
            context={"model": model.__name__, "primary_key": [c.name for c in mapper.primary_key]},
        )
    prop = mapper.get_property_by_column(mapper.primary_key[0])
    return getattr(model, prop.key)


# ══════════════════════════════════════════════════════════════════════════
# Clause Builders
# ══════════════════════════════════════════════════════════════════════════

def build_filters(model: type, filters: Optional[FilterSet]) -> List[Any]:
    """
    Translate a filter set into WHERE clauses.

    Raises:
        ResourceConfigurationError: unknown column or operator
    """
    clauses = []
    for key, value in (filters or {}).items():
        if column_attribute(model, key) is not None:
            name, op = key, "eq"
        else:
            name, _, op = key.rpartition("__")
        column = column_attribute(model, name) if name else None
        if column is None:
            raise ResourceConfigurationError(
                message=f"Cannot filter {model.__name__} by unknown field '{key}'",
                context={"model": model.__name__, "filter": key},
            )
        apply = _OPERATORS.get(op)
        if apply is None:
            raise ResourceConfigurationError(
                message=f"Unknown filter operator '{op}'",
                context={"model": model.__name__, "filter": key, "operators": sorted(_OPERATORS)},
            )
        clauses.append(apply(column, value))
    return clauses


def build_eager_loads(model: type, relations: Sequence[str]) -> List[Any]:
    """
    Translate relation names (dotted for nesting) into selectinload options.

    Raises:
        ResourceConfigurationError: a path segment is not a relationship
    """
    options = []
    if isinstance(relations, str):
        relations = [relations]
    for path in relations or ():
        loader = None
        current = model
        for name in path.split("."):
            relationship = sa_inspect(current).relationships.get(name)
            if relationship is None:
                raise ResourceConfigurationError(
                    message=f"{current.__name__} has no relationship '{name}'",
                    context={"model": model.__name__, "relation": path},
                )
            attribute = getattr(current, name)
            loader = selectinload(attribute) if loader is None else loader.selectinload(attribute)
            current = relationship.mapper.class_
        options.append(loader)
    return options


def apply_list_params(model: type, query: Select, params: ListParams) -> Select:
    """
    Apply ordering, offset and limit to `query`.

    Raises:
        ValidationError: `params.sort` does not name a mapped column
    """
    pk = primary_key_attribute(model)
    descending = params.order is SortOrder.DESC

    if params.sort:
        column = column_attribute(model, params.sort)
        if column is None:
            raise ValidationError(
                message=f"Cannot sort by unknown field '{params.sort}'",
                field="sort",
                context={"allowed": column_names(model)},
            )
        query = query.order_by(column.desc() if descending else column.asc())
    if params.sort != pk.key:
        query = query.order_by(pk.desc() if descending else pk.asc())

    if params.skip:
        query = query.offset(params.skip)
    if params.limit is not None:
        query = query.limit(params.limit)
    return query


# ══════════════════════════════════════════════════════════════════════════
# Statement Builders
# ══════════════════════════════════════════════════════════════════════════

def prepare_query(
    model: type,
    params: Optional[ListParams] = None,
    relations: Sequence[str] = (),
    filters: Optional[FilterSet] = None,
) -> Select:
    """
    Build the SELECT for a resource operation.

    Args:
        model:     Record type to select
        params:    List parameters; None for single-record lookups (no
                   ordering, offset or limit)
        relations: Relationship names to eager-load
        filters:   Conjunctive conditions

    Returns:
        A `Select` ready to execute. Callers may chain further `.where()`.
    """
    query = select(model)
    clauses = build_filters(model, filters)
    if clauses:
        query = query.where(*clauses)
    options = build_eager_loads(model, relations)
    if options:
        query = query.options(*options)
    if params is not None:
        query = apply_list_params(model, query, params)
    return query


def count_query(model: type, filters: Optional[FilterSet] = None) -> Select:
    """SELECT COUNT(*) over the records matching `filters` (no paging)."""
    query = select(func.count()).select_from(model)
    clauses = build_filters(model, filters)
    if clauses:
        query = query.where(*clauses)
    return query
