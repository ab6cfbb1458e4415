"""Spendwise API gateway — FastAPI application entry point.

Every programmatic route runs behind the request gate: API key
authentication first, then per-minute and per-day rate limits.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from src.api.deps import GateRejected, gate_rejected_handler, get_gateway_store, require_scope
from src.api.responses import success_body
from src.logging.audit import get_audit_logger, request_id_var, setup_logging
from src.security.auth import drain_background_tasks
from src.security.gate import Proceed
from src.store.store import GatewayStore, StoreError

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    get_audit_logger().info("Gateway started")
    yield
    await drain_background_tasks()
    get_audit_logger().info("Gateway stopped")


app = FastAPI(
    title="Spendwise API",
    description="API key authentication and rate limiting for the Spendwise API",
    version=VERSION,
    lifespan=lifespan,
)
app.add_exception_handler(GateRejected, gate_rejected_handler)


@app.get("/health")
@app.get("/v1/health")
async def health(store: GatewayStore = Depends(get_gateway_store)):
    """Public health check with store connectivity, no API key required."""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        await store.ping()
    except StoreError:
        get_audit_logger().error("Health check: store unreachable", exc_info=True)
        return JSONResponse(
            status_code=503,
            content=success_body({
                "status": "degraded",
                "database": "disconnected",
                "timestamp": timestamp,
            }),
        )

    return success_body({
        "status": "healthy",
        "database": "connected",
        "version": VERSION,
        "timestamp": timestamp,
    })


@app.get("/v1/key")
async def current_key(gate: Proceed = Depends(require_scope("read"))):
    """Non-secret details of the calling API key."""
    return success_body(gate.key.public_view(), request_id_var.get())


@app.get("/v1/rate-limit")
async def current_rate_limit(gate: Proceed = Depends(require_scope("read"))):
    """Quota state after counting this request."""
    info = gate.rate_info
    return success_body(
        {"limit": info.limit, "remaining": info.remaining, "reset": info.reset},
        request_id_var.get(),
    )
