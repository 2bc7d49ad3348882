"""Main FastAPI application."""

import logging

from fastapi import FastAPI

from media_lifecycle.api.v1 import api_router
from media_lifecycle.config import settings

logging.basicConfig(level=settings.log_level.upper())

app = FastAPI(
    title="Media Lifecycle Service",
    description="Upload deduplication, usage tracking and reclamation for media assets",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Include API router
app.include_router(api_router, prefix="/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    from media_lifecycle.database import engine
    from media_lifecycle.storage.factory import get_object_store
    from sqlalchemy import text
    import redis

    # Check database
    db_status = "disconnected"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    # Check Redis
    redis_status = "disconnected"
    try:
        r = redis.from_url(settings.redis_url, socket_connect_timeout=2)
        r.ping()
        redis_status = "connected"
    except Exception as e:
        redis_status = f"error: {str(e)}"

    # Check object store
    store_status = "disconnected"
    try:
        if await get_object_store().test_connection():
            store_status = "connected"
    except Exception as e:
        store_status = f"error: {str(e)}"

    ok = db_status == redis_status == store_status == "connected"

    return {
        "status": "ok" if ok else "degraded",
        "db": db_status,
        "redis": redis_status,
        "store": store_status,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "media_lifecycle.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
