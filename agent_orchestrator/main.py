"""FastAPI application entry point for the agent orchestrator.

This module provides:
- Session endpoints (start, query, stats, clear)
- Status, prompt preview and health endpoints
- Error handling and request logging middleware
"""

import time
import uuid

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from . import __version__
from .models import (
    ClearSessionResponse,
    ErrorResponse,
    HealthResponse,
    OrchestratorStatus,
    PromptPreviewResponse,
    QueryRequest,
    RoutingResult,
    SessionStats,
    StartSessionRequest,
)
from .router import RouterError, SpecialistRouter, ValidationError, get_router
from .utils import ConfigurationError, get_current_timestamp, initialize_app, sanitize_for_logging

# Initialize logging and configuration
initialize_app()

app = FastAPI(
    title="Agent Orchestrator",
    description="Routes user queries to specialist backends with multi-turn context",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # React development server
        "http://localhost:8080",  # Alternative development port
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


@app.middleware("http")
async def logging_and_timing_middleware(request: Request, call_next):
    """Log requests and responses with timing information."""
    start_time = time.time()
    request_id = str(uuid.uuid4())[:8]
    request.state.request_id = request_id

    logger.info(
        "Incoming request",
        method=request.method,
        path=request.url.path,
        request_id=request_id,
        client_ip=request.client.host if request.client else "unknown"
    )

    response = await call_next(request)

    logger.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        processing_time_ms=(time.time() - start_time) * 1000,
        request_id=request_id
    )
    return response


def _request_id(request: Request) -> str:
    return getattr(request.state, 'request_id', None) or str(uuid.uuid4())[:8]


# Global exception handlers
@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """Handle configuration errors."""
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="CONFIGURATION_ERROR",
            message="System configuration error",
            details={"error": str(exc)},
            request_id=_request_id(request)
        ).dict()
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle request validation errors raised by the router."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="VALIDATION_ERROR",
            message=str(exc),
            request_id=_request_id(request)
        ).dict()
    )


@app.exception_handler(RouterError)
async def router_error_handler(request: Request, exc: RouterError):
    """Handle router pipeline errors."""
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="ROUTER_ERROR",
            message="Error processing your request",
            details={"error": str(exc)},
            request_id=_request_id(request)
        ).dict()
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error="HTTP_ERROR",
            message=str(exc.detail),
            details={"status_code": exc.status_code},
            request_id=_request_id(request)
        ).dict()
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the session sweeper of a router that was actually built."""
    from . import router as router_module

    if router_module._router_instance is not None:
        await router_module._router_instance.store.shutdown()
        logger.info("Session sweeper stopped")


@app.get("/")
async def root():
    return {
        "service": "Agent Orchestrator",
        "version": __version__,
        "docs": "/docs",
        "endpoints": [
            "/orchestrator/status",
            "/orchestrator/session/start",
            "/orchestrator/query",
            "/orchestrator/session/{session_id}/stats",
            "/orchestrator/preview/{agent_id}",
            "/health"
        ]
    }


@app.get("/health", response_model=HealthResponse)
async def health_check(router: SpecialistRouter = Depends(get_router)) -> HealthResponse:
    """Session store health and specialist registration."""
    status = router.get_status()
    return HealthResponse(
        status="healthy",
        timestamp=get_current_timestamp(),
        version=__version__,
        components={
            "session_store": router.store.get_health_status(),
            "specialists": len(status.specialists),
            "classifier_enabled": status.classifier_enabled
        }
    )


@app.get("/orchestrator/status", response_model=OrchestratorStatus)
async def orchestrator_status(router: SpecialistRouter = Depends(get_router)) -> OrchestratorStatus:
    return router.get_status()


@app.post("/orchestrator/session/start", response_model=RoutingResult)
async def start_session(
    request: StartSessionRequest,
    http_request: Request,
    router: SpecialistRouter = Depends(get_router)
) -> RoutingResult:
    """Open a new session and route its first message."""
    logger.info(
        "Start session request",
        request_id=_request_id(http_request),
        message_preview=sanitize_for_logging(request.message, 50)
    )
    return await router.start_session(request.message)


@app.post("/orchestrator/query", response_model=RoutingResult)
async def orchestrate_query(
    request: QueryRequest,
    http_request: Request,
    router: SpecialistRouter = Depends(get_router)
) -> RoutingResult:
    """Route a message within an existing or caller-chosen session."""
    logger.info(
        "Query request",
        request_id=_request_id(http_request),
        session_id=request.session_id,
        message_preview=sanitize_for_logging(request.message, 50)
    )
    return await router.query(request.message, request.session_id)


@app.get("/orchestrator/session/{session_id}/stats", response_model=SessionStats)
async def session_stats(session_id: str, router: SpecialistRouter = Depends(get_router)) -> SessionStats:
    stats = await router.get_session_stats(session_id)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return stats


@app.delete("/orchestrator/session/{session_id}", response_model=ClearSessionResponse)
async def clear_session(session_id: str, router: SpecialistRouter = Depends(get_router)) -> ClearSessionResponse:
    cleared = await router.clear_session(session_id)
    return ClearSessionResponse(session_id=session_id, cleared=cleared)


@app.get("/orchestrator/preview/{agent_id}", response_model=PromptPreviewResponse)
async def preview_prompt(
    agent_id: str,
    query: str = Query(..., min_length=1, max_length=4000),
    router: SpecialistRouter = Depends(get_router)
) -> PromptPreviewResponse:
    """Show the prompt a specialist would receive for a query."""
    if agent_id not in router.registry:
        raise HTTPException(status_code=404, detail=f"Agent '{agent_id}' not found")
    return PromptPreviewResponse(
        agent_id=agent_id,
        query=query,
        prompt=router.preview_specialization_prompt(agent_id, query)
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
