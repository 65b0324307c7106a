"""
Call Relay - FastAPI Backend Application
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from callrelay import __version__
from callrelay.config import Settings, settings
from callrelay.database import engine, get_db
from callrelay.api import calls, relay, suggestions
from callrelay.webhooks import twilio
from callrelay.llm.suggestions import SuggestionGenerator
from callrelay.relay.registry import SessionRegistry
from callrelay.relay.store import CallStore


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging over the stdlib logging module"""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper(), logging.INFO))

    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger()


def configure_services(
    app: FastAPI,
    app_settings: Settings,
    session_factory: Optional[async_sessionmaker] = None,
) -> None:
    """Create the relay's shared services on app.state"""
    store = CallStore(session_factory)
    app.state.settings = app_settings
    app.state.store = store
    app.state.registry = SessionRegistry.from_settings(store, app_settings)
    app.state.generator = SuggestionGenerator.from_settings(store, app_settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Call Relay API", version=__version__)

    # Missing credentials are fatal for the instance, not for a single call
    settings.validate_relay()
    configure_services(app, settings)
    logger.info(
        "Relay configured",
        speech_provider=settings.speech_provider,
        suggestion_provider=settings.suggestion_provider,
        stream_url=settings.relay_stream_url,
    )

    yield

    logger.info("Shutting down Call Relay API", active_sessions=app.state.registry.active_count)
    await engine.dispose()


# Create FastAPI application
app = FastAPI(
    title="Call Relay",
    description="Live call transcription relay with agent reply suggestions",
    version=__version__,
    lifespan=lifespan,
)


# Health check endpoints
@app.get("/health")
async def health():
    """Basic health check"""
    return {"status": "healthy", "service": "relay", "version": __version__}


@app.get("/health/ready")
async def ready(request: Request, db: AsyncSession = Depends(get_db)):
    """Readiness check with dependency verification"""
    checks = {}

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"failed: {str(e)}"

    registry = getattr(request.app.state, "registry", None)
    checks["relay"] = "ok" if registry is not None else "not configured"

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "active_sessions": registry.active_count if registry is not None else 0,
    }


# Include API routers
app.include_router(calls.router, prefix="/calls", tags=["Calls"])
app.include_router(suggestions.router, prefix="/suggestions", tags=["Suggestions"])

# Include relay WebSocket router
app.include_router(relay.router, prefix="/relay", tags=["Relay"])

# Include webhook routers
app.include_router(twilio.router, prefix="/webhooks/twilio", tags=["Webhooks"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "callrelay.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
