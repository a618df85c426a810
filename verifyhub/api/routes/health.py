from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from verifyhub.config import settings
from verifyhub.services.verification.orchestrator import VerificationOrchestrator, get_orchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check(orchestrator: VerificationOrchestrator = Depends(get_orchestrator)):
    """Readiness check that reports which explorers have credentials."""
    enabled = orchestrator.registry.enabled()
    configured = [config.network.value for config in enabled if config.configured]

    if not configured:
        logger.warning("health.no_explorers_configured")
        raise HTTPException(status_code=503, detail="No explorer credentials configured")

    return {
        "status": "ready",
        "version": settings.app_version,
        "environment": settings.environment,
        "explorers": {config.network.value: config.configured for config in enabled},
    }
