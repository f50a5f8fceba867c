"""
Workflow Engine API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import TPMConfig, get_config
from ..logging_config import setup_logging
from ..storage import StorageInterface
from .dependencies import WorkflowSystem
from .errors import register_exception_handlers
from .instances import router as instances_router
from .steps import router as steps_router
from .summary import router as summary_router
from .templates import router as templates_router


def create_app(config: Optional[TPMConfig] = None,
               storage: Optional[StorageInterface] = None) -> FastAPI:
    """Create and configure the FastAPI application

    Args:
        config: Settings to use instead of the environment-derived ones
        storage: Backend to use instead of the one named by config.database_url
    """
    config = config or get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Close the storage backend on shutdown"""
        yield
        app.state.workflow_system.close()

    app = FastAPI(
        title="TPM Workflow Engine API",
        description="Multi-tenant approval workflows for trade promotion management",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.workflow_system = WorkflowSystem(config, storage)

    register_exception_handlers(app)

    app.include_router(summary_router, prefix="/workflows", tags=["Workflows"])
    app.include_router(templates_router, prefix="/workflows/templates", tags=["Templates"])
    app.include_router(instances_router, prefix="/workflows/instances", tags=["Instances"])
    app.include_router(steps_router, prefix="/workflows/steps", tags=["Steps"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "tpm_workflows",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "TPM Workflow Engine API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "summary": "/workflows/summary",
                "options": "/workflows/options",
                "templates": "/workflows/templates",
                "instances": "/workflows/instances",
                "steps": "/workflows/steps",
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "tpm_workflows.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
