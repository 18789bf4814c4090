# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Data schemas for the attestation flow.

Defines the request context being attested, the provider set, the HTTP wire models for the
decision and verification endpoints, and the events/results reported by the orchestrator.
"""

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

FieldValue = Union[str, int, bool]


class RequestContext(BaseModel):
    """
    Immutable set of key-value fields describing what is being attested.

    ``fields`` is a read-only mapping; in-place mutation raises ``TypeError``.

    Attributes:
        fields (Mapping[str, FieldValue]): e.g. ``{"action": "login", "sessionId": "123456", "ts": 1700000000}``.
    """

    model_config = ConfigDict(frozen=True)

    fields: Mapping[str, FieldValue] = Field(..., description="Fields bound into the canonical request")

    @classmethod
    def of(cls, **fields: FieldValue) -> "RequestContext":
        """Build a context from keyword arguments."""
        return cls(fields=fields)

    @field_validator("fields", mode="before")
    @classmethod
    def validate_field_types(cls, v: Any) -> Any:
        """Reject empty contexts, empty keys and non-scalar values before coercion."""
        if not isinstance(v, Mapping):
            raise ValueError("fields must be a mapping")
        if not v:
            raise ValueError("fields cannot be empty")
        for key, value in v.items():
            if not isinstance(key, str) or not key:
                raise ValueError("field keys must be non-empty strings")
            # bool is a subclass of int, float is not accepted
            if not isinstance(value, (str, int)) or isinstance(value, float):
                raise ValueError(f"field '{key}' must be a str, int or bool, got {type(value).__name__}")
        return dict(v)

    @field_validator("fields")
    @classmethod
    def freeze_fields(cls, v: Mapping[str, FieldValue]) -> Mapping[str, FieldValue]:
        return MappingProxyType(dict(v))

    @field_serializer("fields")
    def serialize_fields(self, v: Mapping[str, FieldValue]) -> Dict[str, FieldValue]:
        return dict(v)


class ProviderSet(BaseModel):
    """
    Ordered, duplicate-free sequence of backend identifiers offered for a project.
    """

    model_config = ConfigDict(frozen=True)

    backend_ids: Tuple[str, ...]

    @field_validator("backend_ids")
    @classmethod
    def validate_backend_ids(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Validate that identifiers are non-empty and unique."""
        if any(not b or not b.strip() for b in v):
            raise ValueError("backend ids cannot be empty")
        if len(v) != len(set(v)):
            raise ValueError("backend ids must be unique")
        return v

    def __contains__(self, backend_id: object) -> bool:
        return backend_id in self.backend_ids

    def __len__(self) -> int:
        return len(self.backend_ids)


# --- Wire models (HTTP + JSON) ---


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SelectBackendRequest(_WireModel):
    project_id: str = Field(..., alias="projectId")
    canonical_request: str = Field(..., alias="canonicalRequest")
    backend_ids: List[str] = Field(..., alias="backendIds")


class SelectBackendResponse(_WireModel):
    backend_id: str = Field(..., alias="backendId", min_length=1)


class VerifyRequest(_WireModel):
    project_id: str = Field(..., alias="projectId")
    canonical_request: str = Field(..., alias="canonicalRequest")
    token: str


class VerifyResponse(_WireModel):
    verdict: str


# --- Flow reporting ---


class FlowState(str, Enum):
    """
    States of a single attestation flow.

    Attributes:
        IDLE: Session created, nothing done yet.
        HASHING_REQUEST: Canonicalizing the context and computing its digest.
        DISCOVERING_PROVIDERS: Asking the gateway for the provider set.
        SELECTING_BACKEND: Asking the decision service to pick a backend.
        ISSUING_TOKEN: Asking the gateway for an integrity token.
        VERIFYING: Submitting the token to the verification service.
        COMPLETED: Terminal, a verdict was produced.
        FAILED: Terminal, a step failed.
    """

    IDLE = "IDLE"
    HASHING_REQUEST = "HASHING_REQUEST"
    DISCOVERING_PROVIDERS = "DISCOVERING_PROVIDERS"
    SELECTING_BACKEND = "SELECTING_BACKEND"
    ISSUING_TOKEN = "ISSUING_TOKEN"
    VERIFYING = "VERIFYING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowState.COMPLETED, FlowState.FAILED)


class FlowFailure(BaseModel):
    """
    Description of the error that ended a flow.

    Attributes:
        kind (str): Error class name, e.g. ``RemoteCallError``.
        message (str): Error message.
        code (Optional[int]): Gateway error code, when the gateway failed.
        status (Optional[int]): HTTP status, when a remote call failed.
        state (FlowState): The state whose step failed.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    message: str
    code: Optional[int] = None
    status: Optional[int] = None
    state: FlowState


class FlowEvent(BaseModel):
    """
    Progress or terminal event emitted by the orchestrator.

    Only the detail field relevant to ``state`` is set.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    sequence: int
    state: FlowState
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_hash: Optional[str] = None
    backend_ids: Optional[Tuple[str, ...]] = None
    backend_id: Optional[str] = None
    verdict: Optional[str] = None
    failure: Optional[FlowFailure] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class FlowResult(BaseModel):
    """
    Terminal outcome of a flow: either a verdict or a failure, never both.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    state: FlowState
    verdict: Optional[str] = None
    failure: Optional[FlowFailure] = None

    @model_validator(mode="after")
    def validate_exclusive_outcome(self) -> "FlowResult":
        """Validate that COMPLETED carries a verdict and FAILED carries a failure."""
        if self.state == FlowState.COMPLETED:
            if self.verdict is None or self.failure is not None:
                raise ValueError("COMPLETED result must carry a verdict and no failure")
        elif self.state == FlowState.FAILED:
            if self.failure is None or self.verdict is not None:
                raise ValueError("FAILED result must carry a failure and no verdict")
        else:
            raise ValueError(f"FlowResult state must be terminal, got {self.state.value}")
        return self

    @property
    def succeeded(self) -> bool:
        return self.state == FlowState.COMPLETED
