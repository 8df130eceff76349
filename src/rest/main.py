"""REST server entrypoint.

Serve with ``uvicorn rest.main:app`` or run the module directly. The backend is
selected by DB_PROVIDER and connected from the ``DB_*`` variables at startup.

Environment Variables:
    REST_BASE_PATH: Prefix for every route (default: "")
    REST_MAX_ROWS: Row ceiling for list queries (default: 1000)
    REST_CORS_ORIGINS: Comma-separated allowed origins; CORS is off when unset
    DB_SCHEMA: Schema to expose (default: the backend's default schema)
    LOG_LEVEL: Root log level (default: INFO)
    OTEL_ENABLED: Export spans over OTLP (default: false)
    REST_HOST, REST_PORT: Bind address when run as a script (default: 0.0.0.0:8000)
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from common.config.env import get_env_bool, get_env_int, get_env_list, get_env_str
from dal.registry import default_registry, provider_from_env
from rest.app import create_app
from rest.compiler import DEFAULT_MAX_ROWS
from schema.connection import ConnectionConfig

load_dotenv()

logging.basicConfig(level=get_env_str("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


@dataclass
class RestSettings:
    """Server settings read from the environment."""

    base_path: str = ""
    max_rows: int = DEFAULT_MAX_ROWS
    cors_origins: List[str] = field(default_factory=list)
    schema: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RestSettings":
        """Load settings from ``REST_*`` and ``DB_SCHEMA``."""
        return cls(
            base_path=get_env_str("REST_BASE_PATH", ""),
            max_rows=get_env_int("REST_MAX_ROWS", DEFAULT_MAX_ROWS),
            cors_origins=get_env_list("REST_CORS_ORIGINS"),
            schema=get_env_str("DB_SCHEMA"),
        )


def setup_telemetry() -> None:
    """Install an OTLP span exporter when OTEL_ENABLED is set."""
    if not get_env_bool("OTEL_ENABLED", False):
        return
    service_name = get_env_str("OTEL_SERVICE_NAME", "polyrest")
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    endpoint = get_env_str("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    logger.info(f"OTEL initialized for {service_name}, exporting to {endpoint}")


def build_app(settings: Optional[RestSettings] = None) -> FastAPI:
    """Build the application for the provider selected by DB_PROVIDER."""
    settings = settings or RestSettings.from_env()
    adapter = default_registry().build(provider_from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Connect the adapter pool on startup and release it on shutdown."""
        await adapter.connect(ConnectionConfig.from_env())
        logger.info(f"REST API serving {adapter.provider} under '{settings.base_path or '/'}'")
        try:
            yield
        finally:
            await adapter.disconnect()

    return create_app(
        adapter,
        base_path=settings.base_path,
        max_rows=settings.max_rows,
        cors_origins=settings.cors_origins,
        schema=settings.schema,
        lifespan=lifespan,
    )


setup_telemetry()
app = build_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=get_env_str("REST_HOST", "0.0.0.0"),
        port=get_env_int("REST_PORT", 8000),
    )
