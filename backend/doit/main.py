from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from doit.core.config import settings
from doit.core.database import AsyncSessionLocal
from doit.core.logger import get_logger
from doit.services.system_service import initialize_database
from doit.api import auth, oauth, todos, tags, ai, calendar, gmail, jira, slack, smart_suggestions, system

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tables, column migrations and default tags
    async with AsyncSessionLocal() as session:
        await initialize_database(session)
    logger.info(f"{settings.app_name} {settings.app_version} started")
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth.router)
app.include_router(oauth.router)
app.include_router(todos.router)
app.include_router(tags.router)
app.include_router(ai.router)
app.include_router(calendar.router)
app.include_router(gmail.router)
app.include_router(jira.router)
app.include_router(slack.router)
app.include_router(smart_suggestions.router)
app.include_router(system.router)


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
