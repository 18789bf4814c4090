# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Error taxonomy for the attestation flow.

Every failure a flow can end in is one of these classes. The orchestrator records the
class name as the failure ``kind``.
"""

from typing import Optional


class AttestationError(Exception):
    """Base class for all attestation flow errors."""

    pass


class FatalHashError(AttestationError):
    """Raised when the SHA-256 primitive is unavailable. Not retryable."""

    pass


class GatewayError(AttestationError):
    """
    Error reported by the Attestation Provider Gateway.

    Attributes:
        code (int): Provider-defined error code.
        message (str): Human readable description.
    """

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class ProviderDiscoveryError(GatewayError):
    """Provider set could not be obtained (service unavailable, quota exceeded, ...)."""

    pass


class TokenIssuanceError(GatewayError):
    """Chosen backend is unreachable, unsupported or rejected the token request."""

    pass


class GatewayCancelledError(GatewayError):
    """An in-flight gateway call was aborted because the gateway disconnected."""

    CODE = -1

    def __init__(self, message: str = "Gateway disconnected while call was in flight") -> None:
        super().__init__(self.CODE, message)


class GatewayNotConnectedError(GatewayError):
    """A gateway call was made before connect() or after disconnect()."""

    CODE = -2

    def __init__(self, message: str = "Gateway is not connected") -> None:
        super().__init__(self.CODE, message)


class RemoteCallError(AttestationError):
    """
    Non-success response (or transport failure) from the decision/verification service.

    Attributes:
        status (Optional[int]): HTTP status code, or None when no response was received.
        body (str): Raw response body, or the transport error description.
    """

    def __init__(self, status: Optional[int], body: str) -> None:
        label = f"HTTP {status}" if status is not None else "Transport error"
        super().__init__(f"{label}: {body}")
        self.status = status
        self.body = body


class MalformedResponseError(AttestationError):
    """A 2xx response did not carry the expected field."""

    pass


class BackendNotOfferedError(MalformedResponseError):
    """The decision service chose a backend that was not in the submitted provider set."""

    def __init__(self, backend_id: str, offered: tuple) -> None:
        super().__init__(f"Selected backend '{backend_id}' is not one of the offered backends {list(offered)}")
        self.backend_id = backend_id
        self.offered = offered


class FlowError(AttestationError):
    """
    Raised by ``attest_or_raise`` when a flow ends in FAILED.

    The originating error is attached as ``__cause__`` and as ``error``.
    """

    def __init__(self, error: AttestationError) -> None:
        super().__init__(str(error))
        self.error = error
