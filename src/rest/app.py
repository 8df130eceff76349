"""FastAPI application exposing every table of one schema as REST routes."""

import json
import logging
from typing import Any, Callable, List, Optional, Sequence

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from common.errors import ErrorCode, PolyrestError, ValidationError
from dal.adapter import DatabaseAdapter
from rest.compiler import DEFAULT_MAX_ROWS
from rest.service import RestService

logger = logging.getLogger(__name__)

# Binary column values are returned as hex strings.
_ENCODERS = {bytes: lambda value: value.hex()}


def _json_response(content: Any, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(content, custom_encoder=_ENCODERS),
    )


def _build_error_response(exc: PolyrestError) -> dict:
    """Build the ``{"error": {...}}`` payload for a taxonomy error."""
    return {"error": exc.to_dict()}


async def polyrest_error_handler(request: Request, exc: PolyrestError) -> JSONResponse:
    """Map taxonomy errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_build_error_response(exc))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report unexpected failures without leaking internals."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": ErrorCode.INTERNAL_ERROR.value, "message": "Internal error"}},
    )


async def _read_json(request: Request) -> Any:
    body = await request.body()
    if not body:
        raise ValidationError("Request body is required")
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Request body is not valid JSON: {exc.msg}") from exc


def _query_pairs(request: Request) -> List[tuple]:
    return list(request.query_params.multi_items())


def build_router(service: RestService) -> APIRouter:
    """Build the router; fixed routes are registered before the table routes."""
    router = APIRouter()

    @router.get("/schema")
    async def openapi_schema() -> JSONResponse:
        """OpenAPI document for every table."""
        return _json_response(await service.openapi())

    @router.get("/health")
    async def health() -> JSONResponse:
        """Backend health check; 503 when it fails."""
        healthy, body = await service.health()
        code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
        return _json_response(body, code)

    @router.get("/{table}")
    async def list_rows(table: str, request: Request) -> JSONResponse:
        return _json_response(await service.list_rows(table, _query_pairs(request)))

    @router.post("/{table}")
    async def insert_rows(table: str, request: Request) -> JSONResponse:
        body = await _read_json(request)
        return _json_response(await service.insert(table, body), status.HTTP_201_CREATED)

    @router.patch("/{table}")
    async def update_rows(table: str, request: Request) -> JSONResponse:
        body = await _read_json(request)
        return _json_response(await service.update(table, _query_pairs(request), body))

    @router.delete("/{table}")
    async def delete_rows(table: str, request: Request) -> JSONResponse:
        return _json_response(await service.delete(table, _query_pairs(request)))

    @router.get("/{table}/{key}")
    async def get_row(table: str, key: str) -> JSONResponse:
        return _json_response(await service.get_row(table, key))

    @router.put("/{table}/{key}")
    async def replace_row(table: str, key: str, request: Request) -> JSONResponse:
        body = await _read_json(request)
        return _json_response(await service.replace(table, key, body))

    @router.delete("/{table}/{key}")
    async def delete_row(table: str, key: str) -> JSONResponse:
        return _json_response(await service.delete_row(table, key))

    return router


def create_app(
    adapter: DatabaseAdapter,
    base_path: str = "",
    max_rows: int = DEFAULT_MAX_ROWS,
    cors_origins: Optional[Sequence[str]] = None,
    schema: Optional[str] = None,
    lifespan: Optional[Callable] = None,
) -> FastAPI:
    """Build the REST application for ``adapter``.

    ``base_path`` prefixes every route (for example ``/api``). CORS is enabled
    only when origins are given.
    """
    base_path = base_path.rstrip("/")
    service = RestService(adapter, schema=schema, max_rows=max_rows, base_path=base_path)

    app = FastAPI(title=f"{adapter.provider} REST API", lifespan=lifespan)
    app.state.service = service
    app.add_exception_handler(PolyrestError, polyrest_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(build_router(service), prefix=base_path)

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    return app
