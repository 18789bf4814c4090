# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
HTTP clients for the decision and verification service.

Both endpoints take a JSON object and answer with a JSON object carrying one string field.
Neither client retries; failures are raised to the orchestrator.
"""

from typing import Any, Dict, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from unified_attestation.exceptions import MalformedResponseError, RemoteCallError
from unified_attestation.schemas import (
    ProviderSet,
    SelectBackendRequest,
    SelectBackendResponse,
    VerifyRequest,
    VerifyResponse,
)
from unified_attestation.utils.logger import logger

SELECT_BACKEND_PATH = "/select-backend"
VERIFY_PATH = "/verify"

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class ServiceClient:
    """
    Base JSON-over-HTTP client.

    Args:
        base_url (str): Root URL of the service (single endpoint root).
        client (httpx.AsyncClient): HTTP client owned by the caller.
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def _post_json(self, path: str, body: Dict[str, Any], response_model: Type[ResponseT]) -> ResponseT:
        """
        POST ``body`` and parse the response into ``response_model``.

        Raises:
            RemoteCallError: Non-2xx status, or no response at all (status None).
            MalformedResponseError: 2xx body is not JSON or lacks the expected field.
        """
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.post(url, json=body)
        except httpx.HTTPError as e:
            logger.error(f"POST {url} failed: {e}")
            raise RemoteCallError(None, str(e)) from e

        if not response.is_success:
            logger.error(f"POST {url} returned HTTP {response.status_code}")
            raise RemoteCallError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{path}: response is not valid JSON") from e

        try:
            return response_model.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponseError(f"{path}: unexpected response shape: {e.errors()}") from e


class BackendSelectorClient(ServiceClient):
    """Asks the decision service which of the offered backends to use."""

    async def select_backend(self, project_id: str, canonical_request: str, provider_ids: ProviderSet) -> str:
        request = SelectBackendRequest(
            project_id=project_id,
            canonical_request=canonical_request,
            backend_ids=list(provider_ids.backend_ids),
        )
        response = await self._post_json(SELECT_BACKEND_PATH, request.model_dump(by_alias=True), SelectBackendResponse)
        return response.backend_id


class VerificationClient(ServiceClient):
    """Submits an integrity token for server-side verification."""

    async def verify(self, project_id: str, canonical_request: str, token: str) -> str:
        request = VerifyRequest(project_id=project_id, canonical_request=canonical_request, token=token)
        response = await self._post_json(VERIFY_PATH, request.model_dump(by_alias=True), VerifyResponse)
        return response.verdict
