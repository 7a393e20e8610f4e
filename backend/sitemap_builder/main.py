"""
FastAPI main application module for the sitemap builder
"""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
import time
import logging

from sitemap_builder.core.config import settings
from sitemap_builder.core.database import SessionLocal
from sitemap_builder.core.database_utils import create_all_tables, check_database_connection
from sitemap_builder.api.api_v1.api import api_router
from sitemap_builder.services.publish_events import register_publish_listener
from sitemap_builder.services.sitemap_builder import handle_content_published
from sitemap_builder.services.sitemap_file import get_sitemap_file
from sitemap_builder.services.task_queue import get_task_queue

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Sitemap Builder API",
    description="Batched XML sitemap generation for published content",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response

# Include API routes
app.include_router(api_router, prefix="/api/v1")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": "1.0.0"
    }

# The generated document
@app.get("/sitemap.xml", include_in_schema=False)
async def sitemap_xml():
    """Serve the last generated sitemap"""
    path = get_sitemap_file().path
    if not path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sitemap not generated yet")
    return FileResponse(path, media_type="application/xml")

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred"
        }
    )

def on_content_published(content_id: int, old_status):
    """Publish hook for content edited through this process"""
    return handle_content_published(
        content_id, old_status, get_task_queue(), settings.SITEMAP_REBUILD_DELAY_SECONDS
    )

# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info("Starting Sitemap Builder API...")

    # Check database connection
    if not check_database_connection():
        logger.error("Failed to connect to database")
        raise Exception("Database connection failed")

    # Create database tables in development
    if settings.ENVIRONMENT == "development":
        try:
            create_all_tables()
            logger.info("Database tables created/verified successfully")
        except Exception as e:
            logger.error(f"Failed to create database tables: {e}")
            raise

    register_publish_listener(SessionLocal, on_content_published, settings.SITEMAP_POST_TYPES.keys())

    logger.info("Application startup complete")

# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown"""
    logger.info("Shutting down Sitemap Builder API...")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "sitemap_builder.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
