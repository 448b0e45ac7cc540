"""
============================================================================
Paper Sandbox v1.0.0
FastAPI Application Entry Point
============================================================================

Reliability Level: L6 Critical
Input Constraints: JSON requests under /api/v1/sandbox
Side Effects: Mutates the in-memory simulated account only

SANDBOX MANDATE:
- No real orders are ever placed
- Zero tolerance for floating-point money math
- Every mutating request carries a correlation_id (X-Correlation-ID)

============================================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.api.sandbox import router as sandbox_router
from services.sim_config import get_sim_config, SimConfigurationError
from services.simulation_engine import get_simulation_engine

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# APPLICATION LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Validate configuration and build the engine before serving.

    A configuration error aborts startup (SIM-040).
    """
    logger.info(
        f"[SANDBOX] Startup | time={datetime.now(timezone.utc).isoformat()}"
    )

    try:
        config = get_sim_config()
    except SimConfigurationError as e:
        logger.critical(f"[{e.error_code}] Sandbox configuration invalid | error={e.message}")
        raise

    engine = get_simulation_engine()
    logger.info(
        f"[SANDBOX] Engine ready | "
        f"starting_balance=${config.starting_balance} | "
        f"parser_mode={config.parser_mode} | "
        f"healthy={engine.is_healthy()}"
    )

    yield

    logger.info("[SANDBOX] Shutdown complete")


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = FastAPI(
    title="Paper Sandbox",
    description=(
        "Simulated paper-trading account for crypto and prediction markets, "
        "with a plain-English strategy compiler and copy trading.\n\n"
        "**No real orders are placed.**"
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unhandled errors become a SIM-099 InternalError response."""
    logger.error(
        f"[SIM-099] Unhandled exception | path={request.url.path} | error={exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "error_kind": "InternalError",
            "error_code": "SIM-099",
        }
    )


# ============================================================================
# ROUTERS
# ============================================================================

app.include_router(
    sandbox_router,
    prefix="/api/v1/sandbox",
)


# ============================================================================
# SYSTEM ENDPOINTS
# ============================================================================

@app.get(
    "/health",
    summary="Health Check",
    description="Lightweight health check for load balancers and monitoring.",
    tags=["System"]
)
async def health_check():
    health = get_simulation_engine().check_health()
    if not health["healthy"]:
        return JSONResponse(status_code=503, content={"status": "unhealthy", **health})
    return {"status": "healthy", **health}


@app.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Exposes Prometheus metrics for observability.",
    tags=["Observability"]
)
async def metrics():
    """Prometheus metrics in text format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
