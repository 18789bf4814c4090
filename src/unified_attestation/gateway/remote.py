# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Remote Attestation Gateway.

Adapter for an out-of-process attestation agent (the platform attestation client running as
a local daemon or sidecar) reached over HTTP.

Agent contract:
    GET  /providers?projectId=...                      -> {"backendIds": [...]}
    POST /token {"backendId", "projectId", "requestHash"} -> {"token": "..."}
    Errors (non-2xx)                                    -> {"code": int, "message": str}
"""

from typing import Any, Optional, Type

import httpx
from pydantic import ValidationError

from unified_attestation.exceptions import GatewayError, ProviderDiscoveryError, TokenIssuanceError
from unified_attestation.gateway.interfaces import AttestationGateway, GatewayErrorCode
from unified_attestation.gateway.lifecycle import GatewayConnection
from unified_attestation.schemas import ProviderSet
from unified_attestation.utils.logger import logger


class RemoteAttestationGateway(AttestationGateway):
    """
    Gateway backed by an HTTP attestation agent.

    Args:
        base_url (str): Root URL of the agent.
        timeout (float): Per-request timeout in seconds.
        client (Optional[httpx.AsyncClient]): External HTTP client for connection pooling.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._internal_client = client is None
        self._client = client
        self._connection = GatewayConnection("RemoteAttestationGateway")

    @property
    def connected(self) -> bool:
        return self._connection.connected

    async def connect(self) -> None:
        if self._connection.connected:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        self._connection.open()
        logger.info(f"Attestation agent at {self.base_url}")

    async def disconnect(self) -> None:
        self._connection.close()
        if self._internal_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        error_cls: Type[GatewayError],
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        if self._client is None:
            raise RuntimeError("RemoteAttestationGateway has no HTTP client; call connect() first")
        try:
            response = await self._client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise error_cls(GatewayErrorCode.SERVICE_UNAVAILABLE, f"Attestation agent unreachable: {e}") from e

        if not response.is_success:
            code, message = self._parse_error(response)
            raise error_cls(code, message)

        try:
            return response.json()
        except ValueError as e:
            raise error_cls(GatewayErrorCode.INVALID_RESPONSE, "Attestation agent returned invalid JSON") from e

    @staticmethod
    def _parse_error(response: httpx.Response) -> tuple:
        try:
            payload = response.json()
            return int(payload["code"]), str(payload["message"])
        except (ValueError, KeyError, TypeError):
            if response.status_code == 429:
                return GatewayErrorCode.QUOTA_EXCEEDED, f"HTTP 429: {response.text}"
            return GatewayErrorCode.SERVICE_UNAVAILABLE, f"HTTP {response.status_code}: {response.text}"

    async def discover_providers(self, project_id: str) -> ProviderSet:
        async with self._connection.call("discover_providers"):
            payload = await self._request(
                ProviderDiscoveryError, "GET", "/providers", params={"projectId": project_id}
            )
            backend_ids = payload.get("backendIds") if isinstance(payload, dict) else None
            if not isinstance(backend_ids, list) or not backend_ids:
                raise ProviderDiscoveryError(GatewayErrorCode.NO_PROVIDERS, "Agent returned no backendIds")
            try:
                return ProviderSet(backend_ids=tuple(backend_ids))
            except ValidationError as e:
                raise ProviderDiscoveryError(GatewayErrorCode.INVALID_RESPONSE, f"Invalid provider set: {e}") from e

    async def issue_token(self, backend_id: str, project_id: str, request_digest: str) -> str:
        async with self._connection.call("issue_token"):
            payload = await self._request(
                TokenIssuanceError,
                "POST",
                "/token",
                json={"backendId": backend_id, "projectId": project_id, "requestHash": request_digest},
            )
            token = payload.get("token") if isinstance(payload, dict) else None
            if not isinstance(token, str) or not token:
                raise TokenIssuanceError(GatewayErrorCode.INVALID_RESPONSE, "Agent response lacks a token")
            return token
