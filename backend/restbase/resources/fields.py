"""
RestBase: Fillable Fields
==========================

What:  Whitelisting for the field maps produced by create/update data hooks.
How:   A resource declares which attributes a request may assign (its
       "fillable" set). Anything else in the field map is dropped before the
       record is touched.

Default fillable set: every mapped column except the primary key.
"""

import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import inspect as sa_inspect

from restbase.exceptions import ResourceConfigurationError, ValidationError
from restbase.query import column_names

logger = logging.getLogger(__name__)


def fillable_fields(model: type, fillable: Optional[Iterable[str]] = None) -> frozenset:
    """
    The set of attributes requests may assign on `model`.

    Raises:
        ResourceConfigurationError: `fillable` names something that is not a
            mapped column
    """
    columns = set(column_names(model))
    if fillable is not None:
        requested = frozenset(fillable)
        unknown = requested - columns
        if unknown:
            raise ResourceConfigurationError(
                message=f"{model.__name__} has no columns {sorted(unknown)}",
                context={"model": model.__name__, "unknown": sorted(unknown)},
            )
        return requested

    mapper = sa_inspect(model)
    return frozenset(
        prop.key
        for prop in mapper.column_attrs
        if not any(getattr(col, "primary_key", False) for col in prop.columns)
    )


def extract_fields(data: Any, allowed: frozenset, resource: str = "record") -> dict:
    """
    The part of `data` that may be assigned.

    Raises:
        ValidationError: `data` is not a mapping
    """
    if not isinstance(data, Mapping):
        raise ValidationError(
            message="Request body must be a JSON object",
            field="body",
            context={"received": type(data).__name__},
        )
    fields = {key: value for key, value in data.items() if key in allowed}
    ignored = sorted(str(key) for key in data if key not in allowed)
    if ignored:
        logger.debug("Ignoring non-fillable %s fields: %s", resource, ", ".join(ignored))
    return fields
