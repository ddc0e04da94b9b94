import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from studious.api.router import api_router
from studious.core.config import get_settings
from studious.core.errors import register_exception_handlers
from studious.core.logger import setup_logging
from studious.services.container import build_services

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build shared services on startup; drain notifications and close clients on shutdown."""
    app.state.services = build_services(settings)
    yield
    await app.state.services.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Classroom backend: classes, assignments, announcements and file uploads",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/health", tags=["health"])
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


app.include_router(api_router, prefix="/api")
