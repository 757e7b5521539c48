import logging
import time
import traceback
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from garagehub.config import settings
from garagehub.database import engine
from garagehub.middleware.logging_config import configure_logging

configure_logging(settings.log_level, settings.json_logging)

from garagehub.api.appointments import router as appointments_router  # noqa: E402
from garagehub.api.audit import router as audit_router  # noqa: E402
from garagehub.api.auth import router as auth_router  # noqa: E402
from garagehub.api.customers import router as customers_router  # noqa: E402
from garagehub.api.inspections import router as inspections_router  # noqa: E402
from garagehub.api.inventory import router as inventory_router  # noqa: E402
from garagehub.api.invoices import router as invoices_router  # noqa: E402
from garagehub.api.metrics import router as metrics_router  # noqa: E402
from garagehub.api.repair_orders import router as repair_orders_router  # noqa: E402
from garagehub.api.users import router as users_router  # noqa: E402
from garagehub.api.vehicles import router as vehicles_router  # noqa: E402

logger = logging.getLogger("garagehub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: verify DB connection
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("GarageHub API started (%s)", settings.environment)
    yield
    await engine.dispose()


app = FastAPI(
    title="GarageHub",
    description="Garage management back office: customers, vehicles, repair orders and billing",
    version="0.1.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# ── Security headers middleware ──────────────────────────────────────────────
from garagehub.middleware.security_headers import SecurityHeadersMiddleware  # noqa: E402

app.add_middleware(SecurityHeadersMiddleware)

# ── Rate limiting middleware ─────────────────────────────────────────────────
if settings.rate_limit_enabled:
    from garagehub.middleware.rate_limit import RateLimitMiddleware  # noqa: E402

    app.add_middleware(RateLimitMiddleware)

# ── Request context middleware (request ID + actor + timing) ─────────────────
from garagehub.middleware.request_context import RequestContextMiddleware  # noqa: E402

app.add_middleware(RequestContextMiddleware)

# ── Prometheus metrics middleware ────────────────────────────────────────────
from garagehub.middleware.metrics import PrometheusMiddleware  # noqa: E402

app.add_middleware(PrometheusMiddleware)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return detailed error info in development mode so 500s are debuggable."""
    tb = traceback.format_exc()
    logger.error(
        "Unhandled %s on %s %s: %s\n%s",
        type(exc).__name__, request.method, request.url.path, exc, tb,
    )
    if settings.environment == "development":
        return JSONResponse(
            status_code=500,
            content={"detail": f"{type(exc).__name__}: {exc}", "traceback": tb.splitlines()[-5:]},
        )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Register API routers
app.include_router(auth_router)
app.include_router(customers_router)
app.include_router(vehicles_router)
app.include_router(appointments_router)
app.include_router(repair_orders_router)
app.include_router(invoices_router)
app.include_router(inspections_router)
app.include_router(inventory_router)
app.include_router(users_router)
app.include_router(audit_router)
app.include_router(metrics_router)


# ── Health check ─────────────────────────────────────────────────────────────

_health_cache: dict = {}
_health_cache_ts: float = 0.0
HEALTH_CACHE_TTL = 10.0  # seconds


@app.get("/api/health")
async def health_check():
    global _health_cache, _health_cache_ts

    now = time.time()
    if _health_cache and (now - _health_cache_ts) < HEALTH_CACHE_TTL:
        return _health_cache

    components: dict = {}

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        components["database"] = {"status": "connected"}
    except Exception as exc:
        components["database"] = {"status": "disconnected", "error": str(exc)}

    # Redis only backs rate limiting, so losing it degrades rather than fails.
    try:
        r = aioredis.from_url(settings.redis_url, decode_responses=True)
        await r.ping()
        await r.aclose()
        components["redis"] = {"status": "connected"}
    except Exception as exc:
        components["redis"] = {"status": "disconnected", "error": str(exc)}

    db_ok = components["database"]["status"] == "connected"
    redis_ok = components["redis"]["status"] == "connected"

    if db_ok and redis_ok:
        overall = "healthy"
    elif not db_ok:
        overall = "unhealthy"
    else:
        overall = "degraded"

    result = {
        "status": overall,
        "environment": settings.environment,
        "components": components,
    }

    _health_cache = result
    _health_cache_ts = now
    return result
