"""
HTTP transport for the external source.

Endpoints consumed by Deep Intelligence:
- GET  /source/info                 feature list and instance count
- POST /source/instances            insert instances (JSON array of objects)
- POST /source/update               request a replication push
- GET  /source/instances/count      count instances matching a filter
- GET  /source/instances            stream instances matching a filter
- GET  /source/nominal_values       distinct values of a nominal feature
- GET  /healthz                     health check (no authentication)

Every /source endpoint requires the x-public-key and x-secret-key headers.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from auth import require_credentials
from config import ServerConfig
from container import SourceContainer
from errors import AuthError, StoreError
from query.coercion import coerce_instances, instance_to_wire
from query.filters import parse_filter

logger = logging.getLogger(__name__)

# Largest value PostgreSQL accepts for LIMIT / OFFSET
MAX_BIGINT = 2 ** 63 - 1


class FeatureInfo(BaseModel):
    index: int
    name: str
    type: str


class SourceInfoResponse(BaseModel):
    fields: list[FeatureInfo]
    size: int


class InsertResponse(BaseModel):
    inserted: int


class CountResponse(BaseModel):
    count: int


def _parse_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    """Lenient integer parsing for query parameters. Values outside bigint range count as absent."""
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except ValueError:
        return default
    if abs(number) > MAX_BIGINT:
        return default
    return number


def create_app(container: SourceContainer, server_config: Optional[ServerConfig] = None) -> FastAPI:
    """Build the FastAPI application around an already constructed container."""
    server_config = server_config or ServerConfig()
    source_config = container.source_config
    schema = container.schema
    store = container.store

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await container.start()
        try:
            yield
        finally:
            await container.stop()

    docs_kwargs = {} if server_config.api_docs else {"docs_url": None, "redoc_url": None, "openapi_url": None}
    app = FastAPI(title="Deep Intelligence External Source", lifespan=lifespan, **docs_kwargs)
    app.state.container = container

    async def verify_credentials(
        x_public_key: Optional[str] = Header(None),
        x_secret_key: Optional[str] = Header(None),
    ):
        require_credentials(source_config.public_key, source_config.secret_key, x_public_key, x_secret_key)

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return JSONResponse(status_code=HTTP_401_UNAUTHORIZED, content={"error": "unauthorized"})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "store_error"})

    authenticated = [Depends(verify_credentials)]

    @app.get("/source/info", response_model=SourceInfoResponse, dependencies=authenticated)
    async def source_info():
        size = await store.count(None)
        return {"fields": schema.describe(), "size": size}

    @app.post("/source/instances", response_model=InsertResponse, dependencies=authenticated)
    async def push_instances(request: Request):
        try:
            body = await request.json()
        except (ValueError, RecursionError):
            return JSONResponse(status_code=HTTP_400_BAD_REQUEST, content={"error": "invalid_json"})
        if not isinstance(body, list):
            return JSONResponse(status_code=HTTP_400_BAD_REQUEST, content={"error": "expected_array"})

        instances = coerce_instances(body, schema)
        inserted = await store.insert(instances)
        container.queue.notify()
        return {"inserted": inserted}

    @app.post("/source/update", dependencies=authenticated)
    async def notice_update():
        container.queue.notify()
        return {"ok": True}

    @app.get("/source/instances/count", response_model=CountResponse, dependencies=authenticated)
    async def count_instances(filter: Optional[str] = None):
        return {"count": await store.count(parse_filter(filter, schema))}

    @app.get("/source/instances", dependencies=authenticated)
    async def query_instances(
        filter: Optional[str] = None,
        order: Optional[str] = None,
        dir: str = "asc",
        skip: Optional[str] = None,
        limit: Optional[str] = None,
        projection: Optional[str] = None,
    ):
        indexes = schema.resolve_projection(projection)
        features = store.select_features(indexes)
        rows = store.iter_instances(
            parse_filter(filter, schema),
            order=_parse_int(order),
            direction=dir,
            skip=_parse_int(skip),
            limit=_parse_int(limit),
            projection=indexes,
        )

        # Pull the first row before answering so early store errors become a 500
        try:
            first = await rows.__anext__()
        except StopAsyncIteration:
            first = None

        async def body():
            try:
                yield '{"features":' + json.dumps([f.to_dict() for f in features]) + ',"instances":['
                if first is not None:
                    yield json.dumps(instance_to_wire(first))
                    async for instance in rows:
                        yield "," + json.dumps(instance_to_wire(instance))
                yield "]}"
            finally:
                await rows.aclose()

        # The background task also closes the cursor when body() is never iterated
        return StreamingResponse(body(), media_type="application/json", background=BackgroundTask(rows.aclose))

    @app.get("/source/nominal_values", dependencies=authenticated)
    async def nominal_values(filter: Optional[str] = None, query: Optional[str] = None, feature: Optional[str] = None):
        return await store.distinct_values(parse_filter(filter, schema), query, _parse_int(feature))

    @app.get("/healthz")
    async def health_check():
        database_ok = await container.db.check_connection()
        content = {
            "status": "healthy" if database_ok else "unhealthy",
            "database": "connected" if database_ok else "disconnected",
            "pool": container.db.get_pool_stats(),
            "replication": {
                "running": container.queue.is_running,
                "pending": container.queue.pending_count,
            },
        }
        if not database_ok:
            return JSONResponse(status_code=HTTP_503_SERVICE_UNAVAILABLE, content=content)
        return content

    return app


def run_http_server(container: SourceContainer, server_config: ServerConfig, host: Optional[str] = None, port: Optional[int] = None):
    """
    Run the source server with uvicorn.

    TLS is used when both SSL_CERT and SSL_KEY are configured, on SSL_PORT.
    """
    app = create_app(container, server_config)
    host = host or server_config.host
    log_level = "warning" if server_config.log_mode == "SILENT" else "info"

    if server_config.ssl_enabled:
        logger.info(f"Source server (HTTPS) starting on https://{host}:{port or server_config.ssl_port}")
        uvicorn.run(
            app,
            host=host,
            port=port or server_config.ssl_port,
            ssl_certfile=server_config.ssl_cert,
            ssl_keyfile=server_config.ssl_key,
            log_level=log_level,
        )
    else:
        logger.info(f"Source server (HTTP) starting on http://{host}:{port or server_config.http_port}")
        uvicorn.run(app, host=host, port=port or server_config.http_port, log_level=log_level)
