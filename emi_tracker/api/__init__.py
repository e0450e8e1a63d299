"""
EMI Tracker API Application Factory
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .emis import router as emis_router
from .splits import router as splits_router
from .stats import router as stats_router
from ..config import get_config
from ..logging_config import setup_logging


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(level=config.log_level, log_format=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="EMI Tracker API",
        description="Installment loan amortization, daily recalculation and cost splitting",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(emis_router, prefix="/emis", tags=["EMIs"])
    app.include_router(splits_router, prefix="/emis", tags=["Splits"])
    app.include_router(stats_router, tags=["Statistics"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "emi_tracker_api",
            "version": "1.0.0"
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "EMI Tracker API",
            "version": "1.0.0",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "emis": "/emis",
                "stats": "/stats",
                "participants": "/participants"
            }
        }

    return app


app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "emi_tracker.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
