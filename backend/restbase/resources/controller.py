"""
RestBase: Resource Controller
==============================

What:  Generic CRUD endpoints (list, get-one, create, update, delete) over one
       SQLAlchemy record type.
How:   Each operation resolves its hooks, builds a statement with the query
       builder, runs it on the request session and hands the result back.
       `router` wraps the operations in FastAPI endpoints with the right status
       codes; `create_app` mounts it.
Who:   Instantiated once per exposed record type by the host application.
When:  Operations run once per request; no state is kept between requests.

Endpoint Map (prefix /books):
    GET    /books          → list_records   200 [record, ...] + X-Total-Count
    GET    /books/{id}     → get_one        200 record          | 404
    POST   /books          → create         201 {"id": ...}
    PUT    /books/{id}     → update         204 (X-Resource-ID) | 404
    PATCH  /books/{id}     → update         204 (X-Resource-ID) | 404
    DELETE /books/{id}     → delete         202 {"id": ...}     | 404

Error Handling:
    Missing records raise NotFoundError. Everything the record store raises
    (IntegrityError and friends) propagates untouched; the session dependency
    rolls back and the global handlers render the response.

Example:
    books = ResourceController(
        Book,
        hooks=ResourceHooks(relations=lambda request, action: ["author"]),
        fillable=["title", "pages", "author_id"],
    )
    app = create_app(resources=[books])
"""

import logging
from datetime import date, datetime, time
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Type

from fastapi import APIRouter, Depends, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from restbase.config import settings
from restbase.database import get_db_session
from restbase.exceptions import NotFoundError
from restbase.query import (
    FilterSet,
    count_query,
    list_params,
    prepare_query,
    primary_key_attribute,
)
from restbase.resources.fields import extract_fields, fillable_fields
from restbase.resources.hooks import Action, ResourceHooks, resolve
from restbase.resources.serialization import serialize
from restbase.schemas import ErrorResponse, IdResponse, ListParams

logger = logging.getLogger(__name__)


class ResourceController:
    """
    CRUD operations and HTTP endpoints for a single record type.

    Args:
        model:    SQLAlchemy declarative class (the record type)
        hooks:    Extension points; defaults are no-ops
        prefix:   URL prefix; defaults to "/<tablename>"
        name:     Display name used in messages and route names; defaults to
                  the model class name
        tags:     OpenAPI tags; defaults to [name]
        schema:   Optional pydantic model used to serialize records
        fillable: Attributes a request body may assign; defaults to every
                  column except the primary key
    """

    def __init__(
        self,
        model: type,
        *,
        hooks: Optional[ResourceHooks] = None,
        prefix: Optional[str] = None,
        name: Optional[str] = None,
        tags: Optional[List[str]] = None,
        schema: Optional[Type[BaseModel]] = None,
        fillable: Optional[Iterable[str]] = None,
    ):
        self.model = model
        self.hooks = hooks or ResourceHooks()
        self.name = name or model.__name__
        self.prefix = "/" + (prefix or model.__tablename__).strip("/")
        self.schema = schema
        self.fillable = fillable_fields(model, fillable)
        self._pk = primary_key_attribute(model)
        self._id_type = _python_type(sa_inspect(model).primary_key[0])
        self.router = self._build_router(tags or [self.name])

    @property
    def record_type(self) -> type:
        return self.model

    def __repr__(self) -> str:
        return f"<ResourceController({self.name}, prefix='{self.prefix}')>"

    # ══════════════════════════════════════════════════════════════════════
    # Operations
    # ══════════════════════════════════════════════════════════════════════

    async def list_records(
        self,
        request: Request,
        db: AsyncSession,
        params: Optional[ListParams] = None,
    ) -> List[Any]:
        """
        Records matching the LIST filters, paged and sorted by `params`,
        each passed through the get-hook.
        """
        records, _ = await self._list(request, db, params or ListParams(), with_total=False)
        return records

    async def get_one(self, request: Request, db: AsyncSession, record_id: Any) -> Any:
        """
        The record with `record_id` (within the GET filters), passed through
        the get-hook.

        Raises:
            NotFoundError: no such record
        """
        record_id = self.coerce_id(record_id)
        relations = await self._relations(request, Action.GET)
        filters = await self._filters(request, Action.GET)
        record = await self._find(db, record_id, relations, filters)
        if record is None:
            raise NotFoundError(resource=self.name, resource_id=record_id)
        return await resolve(self.hooks.before_get(record))

    async def create(self, request: Request, db: AsyncSession) -> Any:
        """
        Insert a record from the create-hook's field map; returns its id.

        Raises:
            ValidationError: the field map is not a mapping
        """
        data = await resolve(self.hooks.before_create(request))
        fields = extract_fields(data, self.fillable, self.name)
        record = self.model(**fields)
        db.add(record)
        # Flush assigns the primary key and surfaces constraint errors here
        await db.flush()
        record_id = getattr(record, self._pk.key)
        logger.info("Created %s %s", self.name, record_id)
        return record_id

    async def update(self, request: Request, db: AsyncSession, record_id: Any) -> Any:
        """
        Merge the update-hook's field map into an existing record.

        Only the supplied fillable fields change. When the record does not
        exist the update-hook is not called.

        Raises:
            NotFoundError: no such record (within the UPDATE filters)
        """
        record_id = self.coerce_id(record_id)
        filters = await self._filters(request, Action.UPDATE)
        record = await self._find(db, record_id, (), filters)
        if record is None:
            raise NotFoundError(resource=self.name, resource_id=record_id)

        data = await resolve(self.hooks.before_update(request))
        fields = extract_fields(data, self.fillable, self.name)
        for key, value in fields.items():
            setattr(record, key, value)
        await db.flush()
        logger.info("Updated %s %s: %s", self.name, record_id, ", ".join(sorted(fields)) or "no fields")
        return record_id

    async def delete(self, request: Request, db: AsyncSession, record_id: Any) -> Any:
        """
        Remove an existing record after running the delete-hook once.

        Raises:
            NotFoundError: no such record (within the DELETE filters); the
                delete-hook is not called
        """
        record_id = self.coerce_id(record_id)
        filters = await self._filters(request, Action.DELETE)
        record = await self._find(db, record_id, (), filters)
        if record is None:
            raise NotFoundError(resource=self.name, resource_id=record_id)

        await resolve(self.hooks.before_delete(record))
        await db.delete(record)
        await db.flush()
        logger.info("Deleted %s %s", self.name, record_id)
        return record_id

    def coerce_id(self, raw: Any) -> Any:
        """
        Convert a path id to the primary key's Python type.

        Raises:
            NotFoundError: `raw` cannot be converted (no record can match it)
        """
        if self._id_type is None or isinstance(raw, self._id_type):
            return raw
        try:
            return _parse_id(self._id_type, raw)
        except (TypeError, ValueError, ArithmeticError, AttributeError):
            raise NotFoundError(resource=self.name, resource_id=raw)

    # ══════════════════════════════════════════════════════════════════════
    # Internals
    # ══════════════════════════════════════════════════════════════════════

    async def _relations(self, request: Request, action: Action) -> List[str]:
        relations = await resolve(self.hooks.relations(request, action))
        # A hook returning "author" means ["author"]
        if isinstance(relations, str):
            return [relations]
        return list(relations or [])

    async def _filters(self, request: Request, action: Action) -> FilterSet:
        return dict(await resolve(self.hooks.filters(request, action)) or {})

    async def _find(
        self,
        db: AsyncSession,
        record_id: Any,
        relations: Sequence[str],
        filters: FilterSet,
    ) -> Any:
        query = prepare_query(self.model, None, relations, filters).where(self._pk == record_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def _list(
        self,
        request: Request,
        db: AsyncSession,
        params: ListParams,
        with_total: bool,
    ) -> Tuple[List[Any], Optional[int]]:
        relations = await self._relations(request, Action.LIST)
        filters = await self._filters(request, Action.LIST)

        result = await db.execute(prepare_query(self.model, params, relations, filters))
        records = [await resolve(self.hooks.before_get(record)) for record in result.scalars().all()]

        total = None
        if with_total:
            total = (await db.execute(count_query(self.model, filters))).scalar_one()
        logger.debug("Listed %d %s records (total=%s)", len(records), self.name, total)
        return records, total

    # ══════════════════════════════════════════════════════════════════════
    # HTTP Endpoints
    # ══════════════════════════════════════════════════════════════════════

    def _build_router(self, tags: List[str]) -> APIRouter:
        router = APIRouter(prefix=self.prefix, tags=tags)
        bad_request = {400: {"description": "Invalid parameters or body", "model": ErrorResponse}}
        not_found = {404: {"description": f"{self.name} not found", "model": ErrorResponse}}
        conflict = {409: {"description": "Constraint violation", "model": ErrorResponse}}

        router.add_api_route(
            "",
            self._list_endpoint,
            methods=["GET"],
            name=f"{self.name}.list",
            summary=f"List {self.name} records",
            description="Supports skip, limit, sort and order query parameters.",
            responses=bad_request,
        )
        router.add_api_route(
            "/{record_id}",
            self._get_endpoint,
            methods=["GET"],
            name=f"{self.name}.get",
            summary=f"Get a single {self.name} by id",
            responses=not_found,
        )
        router.add_api_route(
            "",
            self._create_endpoint,
            methods=["POST"],
            status_code=201,
            name=f"{self.name}.create",
            summary=f"Create a {self.name}",
            responses={201: {"model": IdResponse}, **bad_request, **conflict},
        )
        for method in ("PUT", "PATCH"):
            router.add_api_route(
                "/{record_id}",
                self._update_endpoint,
                methods=[method],
                status_code=settings.update_status_code,
                name=f"{self.name}.update.{method.lower()}",
                summary=f"Update a {self.name}",
                responses={**bad_request, **not_found, **conflict},
            )
        router.add_api_route(
            "/{record_id}",
            self._delete_endpoint,
            methods=["DELETE"],
            status_code=202,
            name=f"{self.name}.delete",
            summary=f"Delete a {self.name}",
            responses={202: {"model": IdResponse}, **not_found, **conflict},
        )
        return router

    async def _list_endpoint(
        self,
        request: Request,
        params: ListParams = Depends(list_params),
        db: AsyncSession = Depends(get_db_session),
    ) -> Response:
        records, total = await self._list(request, db, params, with_total=True)
        return JSONResponse(
            content=[serialize(record, self.schema) for record in records],
            headers={"X-Total-Count": str(total)},
        )

    async def _get_endpoint(
        self,
        request: Request,
        record_id: str,
        db: AsyncSession = Depends(get_db_session),
    ) -> Response:
        record = await self.get_one(request, db, record_id)
        return JSONResponse(content=serialize(record, self.schema))

    async def _create_endpoint(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_session),
    ) -> Response:
        record_id = await self.create(request, db)
        return JSONResponse(status_code=201, content={"id": jsonable_encoder(record_id)})

    async def _update_endpoint(
        self,
        request: Request,
        record_id: str,
        db: AsyncSession = Depends(get_db_session),
    ) -> Response:
        record_id = await self.update(request, db, record_id)
        if settings.update_status_code == 204:
            return Response(status_code=204, headers={"X-Resource-ID": str(record_id)})
        return JSONResponse(
            status_code=settings.update_status_code,
            content={"id": jsonable_encoder(record_id)},
        )

    async def _delete_endpoint(
        self,
        request: Request,
        record_id: str,
        db: AsyncSession = Depends(get_db_session),
    ) -> Response:
        record_id = await self.delete(request, db, record_id)
        return JSONResponse(status_code=202, content={"id": jsonable_encoder(record_id)})


def _python_type(column: Any) -> Optional[type]:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def _parse_id(id_type: type, raw: Any) -> Any:
    # date/datetime/time constructors do not accept ISO strings
    if isinstance(raw, str) and issubclass(id_type, (date, datetime, time)):
        return id_type.fromisoformat(raw)
    return id_type(raw)
