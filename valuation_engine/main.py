import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers.valuation import router as valuation_router
from .core.config import settings
from .core.database import init_db
from .core.logging import configure_logging, CorrelationIdMiddleware
from .core.metrics import PromMiddleware, metrics_endpoint
from .data.report_store import PersistenceError, RequestNotFoundError

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Valuation engine started (env=%s)", settings.ENV)
    yield

def register_error_handlers(app: FastAPI) -> None:
    """Storage and time-budget failures surface as 404 / 503 / 504."""

    @app.exception_handler(RequestNotFoundError)
    async def request_not_found(request: Request, exc: RequestNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_failed(request: Request, exc: PersistenceError):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(asyncio.TimeoutError)
    async def valuation_timed_out(request: Request, exc: asyncio.TimeoutError):
        return JSONResponse(
            status_code=504,
            content={"detail": f"valuation exceeded {settings.VALUATION_TIMEOUT_SECONDS:g}s"},
        )

def create_app() -> FastAPI:
    """
    App factory so tests and ASGI servers can instantiate cleanly.
    """
    configure_logging()

    app = FastAPI(
        title="Property Valuation Engine",
        version="1.0.0",
        description="Comparable sales, value range, risk flags and narrative analysis for a subject property.",
        lifespan=lifespan,
    )

    origins = [o.strip() for o in settings.ALLOW_ORIGINS.split(",") if o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
    app.add_middleware(CorrelationIdMiddleware)
    if settings.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)
        app.add_route("/v1/metrics", metrics_endpoint, methods=["GET"])

    register_error_handlers(app)

    @app.get("/v1/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    @app.get("/v1/ping", tags=["meta"])
    def ping():
        return {"pong": True}

    app.include_router(valuation_router, prefix="/v1", tags=["valuation"])
    return app

app = create_app()
