"""
Health Check Router

Endpoints:
    GET /healthz     - Kubernetes-style health check
    GET /health      - Alias for /healthz
    GET /health/logs - Tail of the system log
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Query

from libs.core.logging_config import get_log_files, tail_logs

logger = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> Dict[str, Any]:
    return {"status": "healthy", "service": "navigator"}


@router.get("/health")
async def health() -> Dict[str, Any]:
    """Health check endpoint (alias for /healthz)."""
    return await healthz()


@router.get("/health/logs")
async def health_logs(lines: int = Query(50, ge=1, le=1000)) -> Dict[str, Any]:
    """Last lines of the system log plus the log files on disk."""
    return {"tail": tail_logs(lines), "files": get_log_files()}
