import json
from typing import Any, Dict, List, Tuple, Union
from unittest.mock import AsyncMock

import httpx
import pytest

from unified_attestation.gateway.interfaces import AttestationGateway
from unified_attestation.schemas import ProviderSet, RequestContext

PROJECT_ID = "com.unifiedattestation.example"
LOGIN_CANONICAL = "action=login&sessionId=123456&ts=1700000000"
LOGIN_DIGEST = "dcddf9ccb10df690ca941940830546d2fe34a140ea37b0230248baef572aafd9"
SERVER_URL = "http://decision.test"

Payload = Union[Dict[str, Any], str]


class DecisionServiceStub:
    """
    Stand-in for the remote decision/verification service, served through httpx.MockTransport.

    Records every request as (path, json-body).
    """

    def __init__(
        self,
        select_response: Tuple[int, Payload] = (200, {"backendId": "backendB"}),
        verify_response: Tuple[int, Payload] = (200, {"verdict": "MEETS_DEVICE_INTEGRITY"}),
    ) -> None:
        self.select_response = select_response
        self.verify_response = verify_response
        self.requests: List[Tuple[str, Dict[str, Any]]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))
        if request.url.path == "/select-backend":
            status, payload = self.select_response
        elif request.url.path == "/verify":
            status, payload = self.verify_response
        else:
            return httpx.Response(404, text="not found")

        if isinstance(payload, str):
            return httpx.Response(status, text=payload)
        return httpx.Response(status, json=payload)

    def paths(self) -> List[str]:
        return [path for path, _ in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def login_context() -> RequestContext:
    return RequestContext.of(action="login", sessionId="123456", ts=1700000000)


@pytest.fixture
def decision_stub() -> DecisionServiceStub:
    return DecisionServiceStub()


@pytest.fixture
def mock_gateway() -> AsyncMock:
    gateway = AsyncMock(spec=AttestationGateway)
    gateway.discover_providers.return_value = ProviderSet(backend_ids=("backendA", "backendB"))
    gateway.issue_token.return_value = "opaque-integrity-token"
    return gateway
