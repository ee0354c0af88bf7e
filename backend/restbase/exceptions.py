"""
RestBase: Custom Exception Hierarchy
=====================================

What:  Application-specific exceptions raised by the query utility and the
       resource controllers.
How:   Each exception carries a message and an optional context dict. Global
       exception handlers (registered in main.py) turn them into structured
       JSON error responses with the matching HTTP status code.
Who:   Raised by controllers, hooks and the query builder; caught by handlers.

Exception Hierarchy:
    RestBaseError (base)
    ├── ValidationError              → 400 Bad Request (client can fix)
    ├── NotFoundError                → 404 Not Found
    └── ResourceConfigurationError   → 500 Internal Server Error

Errors raised by the record store (SQLAlchemy) are NOT part of this
hierarchy. They propagate unchanged and are rendered at the HTTP boundary.
"""

from typing import Any, Dict, Optional


class RestBaseError(Exception):
    """
    Base exception for all RestBase errors.

    Attributes:
        message:  User-facing error description (safe to return in a response)
        context:  Additional debug info (logged; only some handlers return it)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(RestBaseError):
    """
    Raised when client input fails validation.

    When:    Unknown sort column, bad order/skip/limit value, request body
             that is not a JSON object.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": {
                "code": "validation_error",
                "reason": "Cannot sort by unknown field 'colour'",
                "details": {"field": "sort"}
            }
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(RestBaseError):
    """
    Raised when no record matches an id (plus the resource's filters).

    HTTP:    404 Not Found

    SQLAlchemy returns None for missing records; controllers convert that
    None into this exception so the handler can answer with 404.
    """

    def __init__(
        self,
        resource: str = "Entity",
        resource_id: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id is not None:
            message = f"{resource} with {resource_id} id does not exist"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = str(resource_id)
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class ResourceConfigurationError(RestBaseError):
    """
    Raised when a resource or one of its hooks names something the record
    type does not have (unknown column, relationship or filter operator).

    HTTP:    500 Internal Server Error

    The message returned to the client is generic; the context (which column,
    which resource) is logged server-side.
    """

    def __init__(
        self,
        message: str = "Resource is misconfigured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
