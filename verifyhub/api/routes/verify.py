"""API endpoints for multi-explorer contract verification."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from verifyhub.models.verification import error_body
from verifyhub.services.verification.errors import VerificationError
from verifyhub.services.verification.orchestrator import VerificationOrchestrator, get_orchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def api_health():
    """Liveness probe used by the presentation layer."""
    return {"status": "ok", "message": "API is running."}


@router.get("/networks")
async def list_networks(orchestrator: VerificationOrchestrator = Depends(get_orchestrator)):
    """Enabled networks and whether their explorer credential is configured."""
    return [
        {
            "network": config.network.value,
            "explorer": config.display_name,
            "configured": config.configured,
        }
        for config in orchestrator.registry.enabled()
    ]


@router.post("/verify")
async def verify_contract(
    request: Request,
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Verify a contract on every requested network and return one outcome per network."""
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(["Request body must be valid JSON"]),
        )

    try:
        outcomes = await orchestrator.verify(payload)
    except VerificationError as exc:
        logger.error("verify.api_error", extra={"code": exc.code, "errors": exc.errors})
        return JSONResponse(status_code=_map_error_code(exc.code), content=error_body(exc.errors))
    except Exception:
        logger.exception("verify.unexpected_error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(["Unexpected error during verification"]),
        )

    return JSONResponse(status_code=status.HTTP_200_OK, content=[outcome.as_dict() for outcome in outcomes])


def _map_error_code(code: str) -> int:
    if code in ("400_INVALID_REQUEST", "400_COMPILATION_FAILED"):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR
