import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from contentdesk.cache import cache
from contentdesk.config import settings
from contentdesk.errors import install_error_handlers
from contentdesk.logging_config import configure_logging
from contentdesk.middleware import RequestContextMiddleware
from contentdesk.routers import articles, categories, contact, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging(settings)
    await cache.connect()  # degrades to no caching when Redis is unreachable
    logger.info("contentdesk started", extra={"app_env": settings.APP_ENV})
    yield
    # Shutdown
    await cache.disconnect()


app = FastAPI(
    title="contentdesk",
    description="Content management backend: articles, categories and contact intake",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-request-id", "x-response-time-ms", "x-query-count"],
)

install_error_handlers(app)

# Routers
app.include_router(articles.router)
app.include_router(categories.router)
app.include_router(contact.router)
app.include_router(users.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "cache": cache.stats}
