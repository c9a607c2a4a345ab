from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from shortlister.routers import resumes
from shortlister.utils.logging_config import get_logger
from shortlister.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    RequestLoggingMiddleware,
    PerformanceMiddleware,
)

logger = get_logger(__name__)

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    logger.info("Resume Shortlister starting up...")

    try:
        from shortlister.services.db import init_indexes
        await init_indexes()
    except Exception as e:
        logger.warning(f"Database index initialization had issues: {e}")
        logger.info("Application will continue - some operations may be slower without indexes")

    logger.info("Resume Shortlister startup completed")
    yield
    logger.info("Resume Shortlister shutting down...")


app = FastAPI(title="Resume Shortlister", version=APP_VERSION, lifespan=lifespan)

# Middleware runs LIFO; the exception handler is added first so it sits next to the routes
app.add_middleware(ExceptionHandlerMiddleware)
app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
@app.head("/")
async def root():
    """Root endpoint - handles both GET and HEAD requests for health checks"""
    return {"message": "Welcome to the Resume Shortlister API", "version": APP_VERSION, "status": "ok"}


@app.get("/health")
@app.head("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}


app.include_router(resumes.router)

logger.info("Resume Shortlister API initialized successfully")
