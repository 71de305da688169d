"""
tripstream API - Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from .utils.config import settings  # noqa: E402
from .routes.trips import router as trips_router  # noqa: E402

# Create FastAPI app
app = FastAPI(
    title="tripstream API",
    description="Progressive itinerary generation with validation and refinement",
    version="1.0.0"
)

# CORS middleware - allow frontend to call our API
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Local development
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "service": "tripstream API",
        "status": "running",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "api": "ok",
        "environment": settings.environment,
        "validation_enabled": settings.enable_validation,
    }


app.include_router(trips_router)
