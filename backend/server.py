"""
Speech Vendor Benchmark - API server

This module bootstraps the FastAPI application:
- Configuration and environment setup
- Database initialization
- CORS middleware
- Router inclusion
- Uvicorn server startup

The engine is organized into:
- voicebench/config.py: Environment variables and logging
- voicebench/db.py: Database initialization and helpers
- voicebench/models.py: Pydantic models
- voicebench/providers/: Template registry, request builder, call executor
- voicebench/services/: Batch orchestrator, job and vendor persistence
- voicebench/routers/: API route handlers
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from voicebench.config import CORS_ORIGINS, ensure_directories
from voicebench.db import init_database
from voicebench.deps import close_http_client, get_registry
from voicebench.routers import dashboard, files, jobs, templates, vendors


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_registry()
    yield
    await close_http_client()


app = FastAPI(title="Speech Vendor Benchmark", version="1.0.0", lifespan=lifespan)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if CORS_ORIGINS == "*" else CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Ensure required directories exist
ensure_directories()

# Initialize database on startup
init_database()

# Include all API routers
app.include_router(dashboard.router)
app.include_router(templates.router)
app.include_router(vendors.router)
app.include_router(jobs.router)
app.include_router(files.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8001, reload=True)
