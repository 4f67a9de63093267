"""
Lead Finder - FastAPI Backend
Main application entry point with health check and API routing.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings, validate_security_settings
from database import engine, Base
from exceptions import LeadFinderError
import models  # noqa: F401
from routers import (
    health,
    lead_finder,
    leads,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Lead Finder API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    if not settings.SEARCH_PROVIDER_API_KEY:
        print("⚠️ SEARCH_PROVIDER_API_KEY is not set; searches will fail until it is configured.")
    yield
    # Shutdown
    print("👋 Shutting down API...")


app = FastAPI(
    title="Lead Finder API",
    description="Metered local business search with credit packages and saved leads",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LeadFinderError)
async def lead_finder_error_handler(request: Request, exc: LeadFinderError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(lead_finder.router, prefix="/lead-finder", tags=["Lead Finder"])
app.include_router(leads.router, prefix="/lead-finder/leads", tags=["Leads"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Lead Finder API",
        "version": "0.1.0",
        "status": "running"
    }
