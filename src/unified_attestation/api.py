"""
Simulated decision and verification service.

Implements the ``/select-backend`` and ``/verify`` wire contract for local development
against the SimulationAttestationGateway. It only recognises simulation tokens.
WARNING: DO NOT USE IN PRODUCTION.
"""

import hashlib
import hmac
from typing import Optional, Sequence

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from unified_attestation.gateway.simulation import DEFAULT_BACKENDS, SIMULATION_SECRET, verify_simulation_token
from unified_attestation.schemas import SelectBackendRequest, SelectBackendResponse, VerifyRequest, VerifyResponse
from unified_attestation.utils.logger import logger

VERDICT_MEETS_INTEGRITY = "MEETS_DEVICE_INTEGRITY"
VERDICT_FAILED_INTEGRITY = "FAILED_INTEGRITY"


class HealthResponse(BaseModel):
    status: str
    simulation: bool


def create_app(
    preferred_backends: Sequence[str] = DEFAULT_BACKENDS,
    secret: bytes = SIMULATION_SECRET,
) -> FastAPI:
    """
    Build the simulated service.

    Args:
        preferred_backends (Sequence[str]): Backend preference order used by ``/select-backend``.
        secret (bytes): HMAC key shared with the simulation gateway.
    """
    app = FastAPI(title="Unified Attestation Simulated Decision Service")
    preference = tuple(preferred_backends)

    @app.get("/health", response_model=HealthResponse)  # type: ignore[misc]
    async def get_health() -> HealthResponse:
        return HealthResponse(status="ok", simulation=True)

    @app.post("/select-backend", response_model=SelectBackendResponse, response_model_by_alias=True)  # type: ignore[misc]
    async def select_backend(request: SelectBackendRequest) -> SelectBackendResponse:
        """
        Pick a backend from the offered set.

        The first backend in the preference order that was offered wins; otherwise the first
        offered backend.
        """
        if not request.backend_ids:
            raise HTTPException(status_code=422, detail="No backends offered")

        chosen: Optional[str] = next((b for b in preference if b in request.backend_ids), None)
        backend_id = chosen or request.backend_ids[0]
        logger.info(f"Selected backend {backend_id} for project {request.project_id}")
        return SelectBackendResponse(backend_id=backend_id)

    @app.post("/verify", response_model=VerifyResponse)  # type: ignore[misc]
    async def verify(request: VerifyRequest) -> VerifyResponse:
        """
        Check that the token was minted for this project and this canonical request.
        """
        claims = verify_simulation_token(request.token, secret)
        if claims is None:
            logger.warning(f"Rejected token with bad signature for project {request.project_id}")
            return VerifyResponse(verdict=VERDICT_FAILED_INTEGRITY)

        expected_hash = hashlib.sha256(request.canonical_request.encode("utf-8")).hexdigest()
        bound = hmac.compare_digest(str(claims.get("requestHash", "")), expected_hash)
        same_project = claims.get("projectId") == request.project_id
        if not (bound and same_project):
            logger.warning(f"Rejected token not bound to this request for project {request.project_id}")
            return VerifyResponse(verdict=VERDICT_FAILED_INTEGRITY)

        return VerifyResponse(verdict=VERDICT_MEETS_INTEGRITY)

    return app


app = create_app()
