# main.py - FastAPI app entry point for the content_service
# This file initializes and runs the FastAPI application for content generation workflows.

import asyncio
import logging
import sys
import os
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, project_root)

from services.content_service.config import Settings, settings
from services.content_service.routes import workflows, runs
from services.content_service.event_publisher import ContentEventPublisher
from services.content_service.image_client import ImageClient
from services.content_service.llm_client import LLMClient
from services.content_service.models import StepType
from services.content_service.phase_executor import PhaseExecutor
from services.content_service.post_processing import PostProcessingRunner
from services.content_service.run_store import RunStore
from services.content_service.workflow_engine import WorkflowEngine
from services.content_service.workflow_registry import WorkflowModelRegistry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

cleanup_task = None

def build_engine(config: Settings) -> WorkflowEngine:
    """Wire the registry, executor, post-processing and collaborators from settings."""
    runner = PostProcessingRunner.with_builtin_handlers(ImageClient.from_settings(config))
    registry = WorkflowModelRegistry(handler_types=runner.handler_types)
    registry.load_builtin_models(config.default_workflow_id)

    run_store = RunStore(config)
    if not run_store.ping():
        logger.warning("Redis unavailable, run records will not be persisted")
        run_store = None

    return WorkflowEngine(
        registry=registry,
        executor=PhaseExecutor(LLMClient.from_settings(config), config.retry_base_delay,
                               config.retry_max_delay),
        runner=runner,
        event_publisher=ContentEventPublisher(config),
        run_store=run_store,
        run_timeout=config.run_timeout,
        max_concurrent_runs=config.max_concurrent_runs,
        run_retention=config.run_retention,
    )

async def close_engine(engine: WorkflowEngine):
    await engine.shutdown()
    await engine.executor.llm_client.close()
    image_handler = engine.runner.handlers.get(StepType.IMAGE_GENERATION)
    if image_handler and image_handler.image_client:
        await image_handler.image_client.close()
    if engine.event_publisher:
        await engine.event_publisher.close()

async def periodic_cleanup(engine: WorkflowEngine):
    """Background task to cleanup completed runs."""
    while True:
        try:
            await asyncio.sleep(60)  # Run every minute
            engine.cleanup_completed_runs()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Periodic cleanup failed: {str(e)}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    global cleanup_task

    # Startup
    logger.info(f"Starting {settings.service_name} on port {settings.service_port}")
    engine = build_engine(settings)
    app.state.workflow_engine = engine
    logger.info(f"Registered workflow models: {', '.join(engine.registry.ids())}")

    cleanup_task = asyncio.create_task(periodic_cleanup(engine))
    logger.info("Started periodic cleanup task")

    yield

    # Shutdown
    logger.info("Shutting down content service...")
    if cleanup_task:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass

    await close_engine(engine)
    logger.info("Content service shutdown complete")

# Create FastAPI app
app = FastAPI(
    title="Content Workflow Service",
    description="Generates blog articles through multi-phase LLM workflows",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(workflows.router)
app.include_router(runs.router)

@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }

@app.get("/health")
async def health_check(engine: WorkflowEngine = Depends(workflows.get_engine)):
    """Basic health check endpoint."""
    if engine.run_store is None:
        redis_status = "disabled"
    else:
        redis_status = "healthy" if engine.run_store.ping() else "unhealthy"

    llm_status = "healthy" if engine.executor.llm_client.backends else "unconfigured"
    overall_status = "healthy" if redis_status != "unhealthy" and llm_status == "healthy" else "degraded"

    return {
        "status": overall_status,
        "service": settings.service_name,
        "components": {
            "redis": redis_status,
            "llm": llm_status,
            "workflow_models": len(engine.registry)
        },
        "running_runs": len(engine.get_running_runs())
    }

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.service_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
