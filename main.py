import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_pagination import add_pagination
import uvicorn
from core.settings import settings
from core.async_engine import async_engine
from core.base import Base
from core.exceptions import PollsError, polls_exception_handler
from api.api import api_router

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.CREATE_TABLES_ON_STARTUP:
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")
    yield
    await async_engine.dispose()


app = FastAPI(title="Polls API", version="1.0.0", lifespan=lifespan)

if settings.BACKEND_CORS_ORIGINS:
    logger.info(f"Adding CORS middleware with origins: {settings.BACKEND_CORS_ORIGINS}")
    cors_origins = [str(origin) for origin in settings.BACKEND_CORS_ORIGINS]
else:
    logger.info("No CORS origins configured, using wildcard")
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_origins != ["*"],  # credentials are not allowed with a wildcard
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=32400,
)

app.add_exception_handler(PollsError, polls_exception_handler)

app.include_router(api_router)

# Must run after the routers are included so their Page responses are set up
add_pagination(app)


@app.get("/")
async def root():
    return {"message": "Polls API", "version": "1.0.0"}

@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "cors_origins": settings.BACKEND_CORS_ORIGINS,
        "frontend_url": settings.FRONTEND_URL
    }


if __name__ == "__main__":
    run_args = {
        "app": "main:app",
        "host": settings.SERVER_ADDRESS,
        "port": settings.SERVER_PORT,
        "log_level": settings.LOG_LEVEL,
        "reload": settings.WATCH_FILES,
    }

    uvicorn.run(**run_args)
