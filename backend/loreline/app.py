"""
Loreline - FastAPI Backend
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from loreline.config import Settings, get_settings
from loreline.database.db import DatabaseRegistry
from loreline.dependencies import DATABASE_HEADER
from loreline.logging import audit_timeline_operation, get_logger, setup_logging
from loreline.routers import nodes, timeline_state_changes, timeline_structure
from loreline.services.graph_nodes import NodeService
from loreline.services.timeline_dual_write import TimelineDualWriteService
from loreline.services.timeline_state_changes import TimelineStateChangeService
from loreline.services.timeline_structure import TimelineStructureService

logger = get_logger('main')

TIMELINE_PATH_PREFIX = "/api/timeline-"
TEMPORAL_QUERIES = {"snapshot", "projection", "history", "diff"}
REQUIRED_ERROR_TYPES = {"missing", "string_too_short"}


def format_validation_errors(errors: list[dict]) -> str:
    """Collapse pydantic error dicts into one readable message."""
    messages = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "header", "path")]
        field = loc[-1] if loc else None
        message = str(error.get("msg", "invalid value")).removeprefix("Value error, ")
        if field and error.get("type") in REQUIRED_ERROR_TYPES:
            messages.append(f"{field} is required")
        elif field:
            messages.append(f"{field}: {message}")
        else:
            messages.append(message)
    return "; ".join(messages) or "invalid request"


def describe_timeline_request(method: str, path: str) -> tuple[str, str | None]:
    """Audit action name and resource id for a ``/api/timeline-*`` request."""
    parts = [part for part in path.split("/") if part][1:]
    resource = parts[0] if parts else "timeline"
    rest = parts[1:]
    if rest and rest[0] in TEMPORAL_QUERIES:
        return f"{resource}.{rest[0]}", None
    if method == "POST":
        return f"{resource}.create", None
    if method == "PUT":
        return f"{resource}.{'link-event' if rest[1:] == ['event'] else 'update'}", rest[0] if rest else None
    if method == "DELETE":
        if rest[:1] == ["event"]:
            return f"{resource}.unlink-event", rest[1] if len(rest) > 1 else None
        return f"{resource}.delete", rest[0] if rest else None
    return (f"{resource}.get", rest[0]) if rest else (f"{resource}.list", None)


def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(app_settings.LOG_LEVEL)
        logger.info("Starting Loreline API")

        databases = DatabaseRegistry(app_settings.DATABASE_DIR)
        await databases.init_db(app_settings.DEFAULT_DATABASE)
        logger.info("Database initialized")

        # Initialize services
        app.state.databases = databases
        app.state.structure_service = TimelineStructureService(databases)
        app.state.state_change_service = TimelineStateChangeService(databases)
        app.state.node_service = NodeService(databases)
        app.state.dual_write_service = TimelineDualWriteService(
            state_changes=app.state.state_change_service,
            enabled=app_settings.dual_write_enabled,
        )
        logger.info(
            f"Services initialized (read mode: {app_settings.TIMELINE_READ_MODE}, "
            f"write mode: {app_settings.TIMELINE_WRITE_MODE})"
        )

        yield

        logger.info("Shutting down application")

    app = FastAPI(
        title="Loreline API",
        description="Timeline-first worldbuilding data manager",
        version="1.0.0",
        lifespan=lifespan,
        debug=app_settings.DEBUG,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"message": format_validation_errors(exc.errors())})

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"message": format_validation_errors(exc.errors())})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.middleware("http")
    async def audit_timeline_requests(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith(TIMELINE_PATH_PREFIX):
            action, resource_id = describe_timeline_request(request.method, request.url.path)
            audit_timeline_operation(
                app_settings.TIMELINE_AUDIT_ENABLED,
                action,
                method=request.method,
                path=request.url.path,
                dbName=request.headers.get(DATABASE_HEADER),
                resourceId=resource_id,
                result="success" if response.status_code < 400 else "error",
                statusCode=response.status_code,
                readMode=app_settings.TIMELINE_READ_MODE,
                writeMode=app_settings.TIMELINE_WRITE_MODE,
            )
        return response

    app.include_router(timeline_structure.router, prefix="/api", tags=["Timeline Structure"])
    app.include_router(timeline_state_changes.router, prefix="/api", tags=["Timeline State Changes"])
    app.include_router(nodes.router, prefix="/api/nodes", tags=["Nodes"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "loreline",
            "timeline_write_mode": app_settings.TIMELINE_WRITE_MODE,
        }

    @app.get("/")
    async def root():
        return {
            "name": "Loreline API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health"
        }

    return app
