# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Gateway Interfaces.

Defines the contract for Attestation Provider Gateways: the component that discovers which
attestation backends are available for a project and obtains integrity tokens from them.
"""

from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any

from unified_attestation.schemas import ProviderSet


class GatewayErrorCode(IntEnum):
    """Error codes carried by ProviderDiscoveryError / TokenIssuanceError."""

    SERVICE_UNAVAILABLE = 1
    QUOTA_EXCEEDED = 2
    NO_PROVIDERS = 3
    BACKEND_UNSUPPORTED = 4
    BACKEND_UNAVAILABLE = 5
    INVALID_REQUEST_HASH = 6
    INVALID_RESPONSE = 7


class AttestationGateway(ABC):
    """
    Abstract Base Class for attestation provider gateways.

    A gateway has an explicit lifecycle: ``connect()`` before any flow starts and
    ``disconnect()`` once no further flows will be issued. Disconnecting makes in-flight
    calls fail fast with GatewayCancelledError. Implementations must tolerate concurrent
    calls from several flows.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Establish the connection. Calling it twice is a no-op."""
        pass  # pragma: no cover

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear down the connection and cancel in-flight calls."""
        pass  # pragma: no cover

    @abstractmethod
    async def discover_providers(self, project_id: str) -> ProviderSet:
        """
        Discover the attestation backends available for a project.

        Raises:
            ProviderDiscoveryError: On platform/service failure.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def issue_token(self, backend_id: str, project_id: str, request_digest: str) -> str:
        """
        Obtain an integrity token from ``backend_id`` bound to ``request_digest``.

        Raises:
            TokenIssuanceError: If the backend is unreachable, unsupported or refuses.
        """
        pass  # pragma: no cover

    async def __aenter__(self) -> "AttestationGateway":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
