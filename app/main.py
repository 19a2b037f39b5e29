import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.cache import cache
from app.clients.auth_client import AuthClient
from app.clients.catalog_client import CatalogClient
from app.config import settings
from app.consumers.auth_consumer import AuthInvalidationSubscriber
from app.consumers.catalog_consumer import ArticleDeletedSubscriber
from app.database import async_session
from app.event_bus import EventBus
from app.exceptions import QuestionsServiceError
from app.routers import questions

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await cache.connect()

    bus = EventBus()
    app.state.event_bus = bus
    app.state.catalog_client = CatalogClient()
    app.state.auth_client = AuthClient()

    # A subscriber that cannot reach the broker logs and stays down; the
    # HTTP API keeps serving.
    await AuthInvalidationSubscriber(bus, cache).start()
    await ArticleDeletedSubscriber(bus, async_session).start()

    yield

    # Shutdown
    await bus.close()
    await app.state.catalog_client.close()
    await app.state.auth_client.close()
    await cache.disconnect()


app = FastAPI(
    title="Questions API",
    description="Questions and answers on catalog articles",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(QuestionsServiceError)
async def questions_error_handler(request: Request, exc: QuestionsServiceError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(questions.router)


@app.get("/health")
async def health():
    bus = getattr(app.state, "event_bus", None)
    return {
        "status": "healthy",
        "version": "1.0.0",
        "event_bus_connected": bool(bus and bus.is_connected),
        "token_cache": cache.stats,
    }
