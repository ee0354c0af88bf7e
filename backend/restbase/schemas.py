"""
RestBase: Pydantic Request/Response Schemas
============================================

What:  Pydantic models for the parts of the API contract that do not depend
       on the concrete record type: list query parameters, the id payload
       returned by mutations, the error envelope and the health report.
How:   FastAPI uses these for query validation and OpenAPI generation;
       exception handlers build ErrorResponse bodies from them.

Record payloads themselves are not modelled here. A resource either
serializes its model's columns directly or supplies its own schema.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


# ══════════════════════════════════════════════════════════════════════════
# Query Parameter Models
# ══════════════════════════════════════════════════════════════════════════


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ListParams(BaseModel):
    """
    What:  Validated query parameters for a resource's list endpoint.

    Parameters:
        skip:  Records to skip before the first returned one (>= 0)
        limit: Maximum number of records to return (>= 1)
        sort:  Column to sort by; must name a mapped column of the resource
        order: 'asc' or 'desc' (case-insensitive, default 'asc')

    Absent skip/limit/sort mean "not applied". The column check for `sort`
    happens in the query builder, which knows the record type.
    """
    skip: Optional[int] = Field(default=None, ge=0, description="Records to skip")
    limit: Optional[int] = Field(default=None, ge=1, description="Maximum records to return")
    sort: Optional[str] = Field(default=None, description="Column to sort by")
    order: SortOrder = Field(default=SortOrder.ASC, description="Sort direction: asc or desc")

    @field_validator("skip", "limit", "sort", mode="before")
    @classmethod
    def blank_as_missing(cls, v: Any) -> Any:
        """`?sort=` and `?limit=` behave like the parameter was omitted."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("order", mode="before")
    @classmethod
    def normalize_order(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return SortOrder.ASC
        if isinstance(v, str):
            return v.strip().lower()
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class IdResponse(BaseModel):
    """
    What:  Body returned by create (201), update (200 when configured) and
           delete (202).
    """
    id: Any = Field(description="Primary key of the affected record")


class ErrorDetail(BaseModel):
    code: str = Field(description="Machine-readable error code")
    reason: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class ErrorResponse(BaseModel):
    """
    What:  Error envelope used by every exception handler.

    Example:
        {
            "error": {
                "code": "not_found",
                "reason": "Book with 42 id does not exist",
                "details": null,
                "request_id": "3f2a9c1d"
            }
        }
    """
    error: ErrorDetail


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and database status.
    Who:   Returned by GET /health for monitoring and load balancer checks.
    """
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Package version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    resources: List[str] = Field(default_factory=list, description="Mounted resource prefixes")
    uptime_seconds: float = Field(description="Seconds since service started")
