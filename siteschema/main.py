"""FastAPI app entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from siteschema.api.routes import router
from siteschema.config import get_settings
from siteschema.logging_config import setup_logging
from siteschema.store.redis import PageStoreError, RedisPageStore, create_redis_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # Initialize logging FIRST so all subsequent operations produce JSON logs
    setup_logging(settings.log_level)
    logger.info("starting siteschema service")

    redis_client = await create_redis_client(settings.redis_url)
    store = RedisPageStore(redis_client, ttl=settings.page_ttl_seconds)

    # Attach to app state for dependency injection
    app.state.settings = settings
    app.state.store = store

    logger.info(
        "siteschema service ready",
        extra={
            "render": settings.crawl_render,
            "max_pages": settings.crawl_max_pages,
            "ai_validation": settings.ai_validation_enabled,
            "validator_model": settings.validator_model,
        },
    )

    yield

    logger.info("shutting down siteschema service")
    await redis_client.aclose()


app = FastAPI(title="Site Schema Service", lifespan=lifespan)
app.include_router(router)


@app.exception_handler(PageStoreError)
async def page_store_error_handler(request: Request, exc: PageStoreError) -> JSONResponse:
    logger.error("page store unavailable", extra={"path": request.url.path})
    return JSONResponse(status_code=503, content={"detail": "Page store unavailable"})


@app.get("/health")
async def health():
    return {"status": "ok"}
