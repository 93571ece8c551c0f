import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress import __version__
from inkpress.api.v1 import router as api_v1_router
from inkpress.config import get_settings
from inkpress.database import AsyncSessionLocal, Base, engine, get_db, get_redis, redis_client
from inkpress.exceptions import DomainError, ValidationFailed
from inkpress.logging_setup import new_request_id, request_id_var, setup_logging
from inkpress.schemas import HealthResponse
from inkpress.services.categories import CategoryResolver

settings = get_settings()
logger = logging.getLogger("inkpress.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    # Create tables (development only)
    if settings.DEBUG:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        default = await CategoryResolver(session).ensure_default()
        await session.commit()
        logger.info("Default category ready: %s (id=%s)", default.name, default.id)

    yield

    # Shutdown
    await redis_client.aclose()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Article publishing with follower notifications",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    token = request_id_var.set(request_id)
    try:
        logger.info("Request: %s %s", request.method, request.url.path)
        response = await call_next(request)
        logger.info("Response: %s %s -> %s", request.method, request.url.path, response.status_code)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


# Exception handlers
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    content = {"detail": exc.detail, "error": exc.error_code}
    if isinstance(exc, ValidationFailed):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


# Include routers
app.include_router(api_v1_router)


@app.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db), redis_client: redis.Redis = Depends(get_redis)):
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception:
        db_status = "unhealthy"

    try:
        await redis_client.ping()
        redis_status = "healthy"
    except Exception:
        redis_status = "unhealthy"

    overall = "ok" if db_status == "healthy" and redis_status == "healthy" else "degraded"
    return HealthResponse(status=overall, database=db_status, redis=redis_status)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "inkpress.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
