import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from repair_admin.config import settings
from repair_admin.documents import RepositoryError
from repair_admin.metrics import get_metrics_bytes, get_metrics_content_type
from repair_admin.redis_client import close_redis, get_redis
from repair_admin.repository import BookingNotFoundError
from repair_admin.routes import bookings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.document_backend == "postgres":
        from repair_admin.db import close_pool, get_pool, init_schema
        await init_schema(await get_pool())
        logger.info("Document backend: Postgres")
        yield
        await close_pool()
    else:
        await get_redis()
        logger.info("Document backend: Redis (%s)", settings.redis_url)
        yield
        await close_redis()


app = FastAPI(title="Repair Admin Console", lifespan=lifespan)
app.include_router(bookings.router)


@app.exception_handler(BookingNotFoundError)
async def booking_not_found(request: Request, exc: BookingNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"status": "not_found", "detail": "Booking not found", "booking_id": exc.booking_id},
    )


@app.exception_handler(RepositoryError)
async def repository_error(request: Request, exc: RepositoryError) -> JSONResponse:
    logger.error("Document store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content={"status": "error", "detail": "Document store unavailable"},
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint: booking transitions, saves, save failures."""
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )
