"""Router factory exposing a CrudService over HTTP."""
import json
from collections.abc import AsyncGenerator, Callable, Sequence
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import require_roles
from core.config import Settings, get_settings
from core.count_cache import get_count_cache_registry
from core.principal import ClaimsPrincipal
from schemas.query import DynamicQueryResponse, PageResponse, QueryArgs
from services.crud_service import CrudService, CrudServiceDependencies
from services.exceptions import (
    CannotInsertNullError,
    EntityNotFoundError,
    PersistenceError,
    QueryExpressionError,
)

SERVICE_ERRORS = (EntityNotFoundError, QueryExpressionError, PersistenceError, ValueError)


def to_http_exception(exc: Exception) -> HTTPException:
    """Map a service-layer exception to an HTTPException."""
    if isinstance(exc, EntityNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, CannotInsertNullError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, PersistenceError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": type(exc).__name__, "message": str(exc)},
        )
    # QueryExpressionError and other ValueErrors
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def get_query_args(
    filter: str | None = Query(default=None, description="e.g. ReleaseDate > @0"),  # noqa: A002
    filter_parameters: str | None = Query(
        default=None,
        description='JSON array of positional values, e.g. ["1972-01-01"]',
    ),
    order_by: str | None = Query(default=None, description="e.g. Title, ReleaseDate desc"),
    skip: int | None = Query(default=None, ge=0),
    top: int | None = Query(default=None, ge=0),
    select: str | None = Query(default=None, description="e.g. new {SysGuid, Title}"),
    expand: str | None = Query(default=None, description="e.g. Songs"),
) -> QueryArgs:
    """Build QueryArgs from query-string parameters."""
    parameters = None
    if filter_parameters:
        try:
            parameters = json.loads(filter_parameters)
        except json.JSONDecodeError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="filter_parameters must be a JSON array",
            ) from e
        if not isinstance(parameters, list):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="filter_parameters must be a JSON array",
            )
    return QueryArgs(
        filter=filter,
        filter_parameters=parameters,
        order_by=order_by,
        skip=skip,
        top=top,
        select=select,
        expand=expand,
    )


def build_crud_router(  # noqa: PLR0915
    *,
    prefix: str,
    tag: str,
    service_class: type[CrudService],
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    response_schema: type[BaseModel],
    session_dependency: Callable[[], AsyncGenerator[AsyncSession]],
    read_roles: Sequence[str],
    write_roles: Sequence[str],
) -> APIRouter:
    """
    Build a router with create/get/update/delete and the three query endpoints.

    Read endpoints require one of read_roles; write endpoints one of write_roles.
    """
    router = APIRouter(prefix=prefix, tags=[tag])

    def service_dependency(roles: Sequence[str]) -> Callable[..., Any]:
        check_roles = require_roles(*roles)

        async def get_service(
            principal: ClaimsPrincipal = Depends(check_roles),
            db: AsyncSession = Depends(session_dependency),
            settings: Settings = Depends(get_settings),
        ) -> CrudService:
            registry = get_count_cache_registry()
            if registry is None:
                raise RuntimeError("Count cache registry has not been initialized")
            return service_class(
                CrudServiceDependencies(
                    db=db,
                    principal=principal,
                    count_cache_registry=registry,
                    settings=settings,
                ),
            )

        return get_service

    read_service = service_dependency(read_roles)
    write_service = service_dependency(write_roles)

    @router.get("/", response_model=PageResponse[response_schema])
    async def get_page(
        query_args: QueryArgs = Depends(get_query_args),
        service: CrudService = Depends(read_service),
    ) -> PageResponse:
        """
        Get a page of records.

        `filter_parameters` is a JSON array referenced from the filter as `@0`, `@1`, ...
        Any `select` is ignored; use `/select` for projections.
        """
        try:
            page = await service.get_page(query_args)
        except SERVICE_ERRORS as e:
            raise to_http_exception(e) from e
        return PageResponse[response_schema](
            data=[response_schema.model_validate(entity) for entity in page.data],
            count_across_pages=page.count_across_pages,
        )

    @router.get("/select", response_model=PageResponse[dict[str, Any]])
    async def get_page_select(
        query_args: QueryArgs = Depends(get_query_args),
        service: CrudService = Depends(read_service),
    ) -> PageResponse:
        """Get a page of records projected by `select` (all columns when omitted)."""
        try:
            page = await service.get_page_select(query_args)
        except SERVICE_ERRORS as e:
            raise to_http_exception(e) from e
        return PageResponse[dict[str, Any]](
            data=page.data,
            count_across_pages=page.count_across_pages,
        )

    @router.get("/dynamic", response_model=DynamicQueryResponse[dict[str, Any]])
    async def get_dynamic(
        select: str | None = None,
        include: str | None = None,
        where: str | None = None,
        order_by: str | None = None,
        skip: int | None = Query(default=None, ge=0),
        take: int | None = Query(default=None, ge=0),
        total_records: int | None = Query(default=None, ge=0),
        service: CrudService = Depends(read_service),
    ) -> DynamicQueryResponse:
        """
        Run a query from raw expressions.

        `current_page` is computed from `skip`, `take` and the caller's
        `total_records`; `row_count` is always recomputed.
        """
        try:
            result = await service.get_dynamic_query_result(
                select,
                include=include,
                where=where,
                order_by=order_by,
                skip=skip,
                take=take,
                total_records=total_records,
            )
        except SERVICE_ERRORS as e:
            raise to_http_exception(e) from e
        return DynamicQueryResponse[dict[str, Any]](
            data=result.data,
            current_page=result.current_page,
            page_count=result.page_count,
            page_size=result.page_size,
            row_count=result.row_count,
        )

    @router.post("/", response_model=response_schema, status_code=status.HTTP_201_CREATED)
    async def create(
        payload: create_schema,  # type: ignore[valid-type]
        service: CrudService = Depends(write_service),
    ) -> BaseModel:
        """Create a record. sys_guid is generated when not supplied."""
        try:
            entity = await service.create(service.model(**payload.model_dump()))
        except SERVICE_ERRORS as e:
            raise to_http_exception(e) from e
        return response_schema.model_validate(entity)

    @router.get("/{entity_id}", response_model=response_schema)
    async def get_one(
        entity_id: int,
        service: CrudService = Depends(read_service),
    ) -> BaseModel:
        """Get a record by id."""
        try:
            entity = await service.find_required(entity_id)
        except SERVICE_ERRORS as e:
            raise to_http_exception(e) from e
        return response_schema.model_validate(entity)

    @router.put("/{entity_id}", response_model=response_schema)
    async def update(
        entity_id: int,
        payload: update_schema,  # type: ignore[valid-type]
        service: CrudService = Depends(write_service),
    ) -> BaseModel:
        """Update a record. Omitted fields are left unchanged."""
        try:
            entity = await service.update(payload, entity_id)
        except SERVICE_ERRORS as e:
            raise to_http_exception(e) from e
        return response_schema.model_validate(entity)

    @router.delete("/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete(
        entity_id: int,
        service: CrudService = Depends(write_service),
    ) -> None:
        """Delete a record."""
        try:
            await service.delete(entity_id)
        except SERVICE_ERRORS as e:
            raise to_http_exception(e) from e

    return router
