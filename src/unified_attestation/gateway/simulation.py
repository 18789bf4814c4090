# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Simulation Attestation Gateway.

Implementation of AttestationGateway for development and testing environments where no
platform attestation client is available. Tokens are HMAC-signed with a well-known key.
WARNING: DO NOT USE IN PRODUCTION.
"""

import base64
import hashlib
import hmac
import json
import threading
import time
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence
from uuid import uuid4

import anyio

from unified_attestation.canonical import DIGEST_HEX_LENGTH
from unified_attestation.exceptions import ProviderDiscoveryError, TokenIssuanceError
from unified_attestation.gateway.interfaces import AttestationGateway, GatewayErrorCode
from unified_attestation.gateway.lifecycle import GatewayConnection
from unified_attestation.schemas import ProviderSet
from unified_attestation.utils.logger import logger

SIMULATION_SECRET = b"unified-attestation-simulation-key"
DEFAULT_BACKENDS = ("sim-hardware", "sim-software")

_HEX_DIGITS = frozenset("0123456789abcdef")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def mint_simulation_token(
    project_id: str,
    backend_id: str,
    request_hash: str,
    nonce: str,
    secret: bytes = SIMULATION_SECRET,
) -> str:
    """
    Create a simulated integrity token.

    Format: ``base64url(claims-json) "." hex(hmac-sha256(secret, base64url(claims-json)))``.
    """
    claims = {
        "backendId": backend_id,
        "iat": int(time.time()),
        "nonce": nonce,
        "projectId": project_id,
        "requestHash": request_hash,
    }
    payload = _b64url(json.dumps(claims, sort_keys=True, separators=(",", ":")).encode("utf-8"))
    signature = hmac.new(secret, payload.encode("ascii"), hashlib.sha256).hexdigest()
    return f"{payload}.{signature}"


def verify_simulation_token(token: str, secret: bytes = SIMULATION_SECRET) -> Optional[Dict[str, Any]]:
    """
    Check the signature of a simulated token.

    Returns:
        Optional[Dict[str, Any]]: The token claims, or None if the token is malformed or forged.
    """
    payload, sep, signature = token.partition(".")
    if not sep or not payload or not signature:
        return None
    expected = hmac.new(secret, payload.encode("ascii"), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature):
        return None
    try:
        claims = json.loads(_b64url_decode(payload))
    except ValueError:
        return None
    if not isinstance(claims, dict):
        return None
    return claims


class SimulationAttestationGateway(AttestationGateway):
    """
    Simulation gateway for development and testing.

    Serves a fixed provider catalogue and mints HMAC tokens locally.

    Args:
        catalogue (Optional[Mapping[str, Sequence[str]]]): Backends per project id.
        default_backends (Sequence[str]): Backends for projects not in the catalogue.
        unavailable_backends (Iterable[str]): Backends whose token requests fail as unreachable.
        latency (float): Artificial delay in seconds applied to every call.
        secret (bytes): HMAC key for minted tokens.
    """

    def __init__(
        self,
        catalogue: Optional[Mapping[str, Sequence[str]]] = None,
        default_backends: Sequence[str] = DEFAULT_BACKENDS,
        unavailable_backends: Iterable[str] = (),
        latency: float = 0.0,
        secret: bytes = SIMULATION_SECRET,
    ) -> None:
        self.catalogue = {k: tuple(v) for k, v in (catalogue or {}).items()}
        self.default_backends = tuple(default_backends)
        self.unavailable_backends = frozenset(unavailable_backends)
        self.latency = latency
        self._secret = secret
        self._connection = GatewayConnection("SimulationAttestationGateway")
        self._counter_lock = threading.Lock()
        self.tokens_issued = 0

    @property
    def connected(self) -> bool:
        return self._connection.connected

    async def connect(self) -> None:
        logger.warning("Connecting SIMULATION attestation gateway. SECURITY: NONE.")
        self._connection.open()

    async def disconnect(self) -> None:
        self._connection.close()

    def _backends_for(self, project_id: str) -> tuple:
        return self.catalogue.get(project_id, self.default_backends)

    async def discover_providers(self, project_id: str) -> ProviderSet:
        async with self._connection.call("discover_providers"):
            if self.latency:
                await anyio.sleep(self.latency)
            backends = self._backends_for(project_id)
            if not backends:
                raise ProviderDiscoveryError(
                    GatewayErrorCode.NO_PROVIDERS, f"No attestation backends available for {project_id}"
                )
            return ProviderSet(backend_ids=backends)

    async def issue_token(self, backend_id: str, project_id: str, request_digest: str) -> str:
        async with self._connection.call("issue_token"):
            if self.latency:
                await anyio.sleep(self.latency)
            if backend_id not in self._backends_for(project_id):
                raise TokenIssuanceError(
                    GatewayErrorCode.BACKEND_UNSUPPORTED, f"Backend '{backend_id}' is not offered for {project_id}"
                )
            if backend_id in self.unavailable_backends:
                raise TokenIssuanceError(GatewayErrorCode.BACKEND_UNAVAILABLE, f"Backend '{backend_id}' is unreachable")
            if len(request_digest) != DIGEST_HEX_LENGTH or not set(request_digest) <= _HEX_DIGITS:
                raise TokenIssuanceError(GatewayErrorCode.INVALID_REQUEST_HASH, "Request hash must be 64 lowercase hex")

            with self._counter_lock:
                self.tokens_issued += 1

            logger.warning(f"Minting SIMULATED token from {backend_id}. Do not use in production!")
            return mint_simulation_token(project_id, backend_id, request_digest, uuid4().hex, self._secret)
