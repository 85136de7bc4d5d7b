from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from api.src.config import get_settings
from api.src.routes import health_router, generations_router, usage_router

settings = get_settings()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting AppForge API on {settings.api_host}:{settings.api_port}")
    yield
    logger.info("Shutting down AppForge API")

app = FastAPI(
    title="AppForge",
    description="Prompt-to-application generation service",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(generations_router, prefix="/api")
app.include_router(usage_router, prefix="/api")

@app.get("/")
async def root():
    return {
        "name": "AppForge",
        "version": "0.1.0",
        "docs": "/docs"
    }
