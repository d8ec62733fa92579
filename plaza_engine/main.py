# plaza_engine/main.py
"""
FastAPI application entry point.
Includes security middleware, engine error handlers, all routers and the
reservation expiry sweeper.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from plaza_engine.routers import spots, occupancies, reservations, movements, health
from plaza_engine.database import create_tables
from plaza_engine.config import settings
from plaza_engine.errors import EngineError
from plaza_engine.utils.logger import get_logger
import time
import asyncio

logger = get_logger(__name__)

app = FastAPI(
    title="Plaza Engine API",
    description="Parking spot lifecycle, occupancy and reservation engine.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (allow the operator dashboard to call the API) ─────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to dashboard origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Engine Errors ────────────────────────────────────────────────────────────
@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ── Global Exception Handler ─────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(spots.router,        prefix="/api/v1", tags=["Spots"])
app.include_router(occupancies.router,  prefix="/api/v1", tags=["Occupancy"])
app.include_router(reservations.router, prefix="/api/v1", tags=["Reservations"])
app.include_router(movements.router,    prefix="/api/v1", tags=["Movements"])
app.include_router(health.router,       prefix="/api/v1", tags=["Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
_background_tasks = set()


@app.on_event("startup")
async def startup():
    logger.info("🚀 Plaza Engine starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"🕐 Facility time zone: {settings.FACILITY_TIMEZONE}")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")

    if settings.EXPIRY_SWEEP_ENABLED:
        from plaza_engine.services.expiry_sweeper import start_expiry_sweeper
        task = asyncio.create_task(start_expiry_sweeper(), name="expiry-sweeper")
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Plaza Engine shutting down...")
    for task in list(_background_tasks):
        task.cancel()
