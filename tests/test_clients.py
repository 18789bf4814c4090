# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import httpx
import pytest
from conftest import LOGIN_CANONICAL, PROJECT_ID, SERVER_URL, DecisionServiceStub

from unified_attestation.clients import BackendSelectorClient, VerificationClient
from unified_attestation.exceptions import MalformedResponseError, RemoteCallError
from unified_attestation.schemas import ProviderSet

PROVIDERS = ProviderSet(backend_ids=("backendA", "backendB"))


@pytest.mark.asyncio
class TestBackendSelectorClient:
    async def test_select_backend_success(self, decision_stub: DecisionServiceStub) -> None:
        async with decision_stub.client() as http:
            selector = BackendSelectorClient(SERVER_URL, http)
            backend_id = await selector.select_backend(PROJECT_ID, LOGIN_CANONICAL, PROVIDERS)

        assert backend_id == "backendB"
        assert decision_stub.requests == [
            (
                "/select-backend",
                {"projectId": PROJECT_ID, "canonicalRequest": LOGIN_CANONICAL, "backendIds": ["backendA", "backendB"]},
            )
        ]

    async def test_trailing_slash_in_base_url(self, decision_stub: DecisionServiceStub) -> None:
        async with decision_stub.client() as http:
            selector = BackendSelectorClient(SERVER_URL + "/", http)
            await selector.select_backend(PROJECT_ID, LOGIN_CANONICAL, PROVIDERS)
        assert decision_stub.paths() == ["/select-backend"]

    async def test_non_2xx_is_remote_call_error(self) -> None:
        stub = DecisionServiceStub(select_response=(503, "overloaded"))
        async with stub.client() as http:
            selector = BackendSelectorClient(SERVER_URL, http)
            with pytest.raises(RemoteCallError) as excinfo:
                await selector.select_backend(PROJECT_ID, LOGIN_CANONICAL, PROVIDERS)

        assert excinfo.value.status == 503
        assert excinfo.value.body == "overloaded"

    async def test_missing_backend_id_is_malformed(self) -> None:
        stub = DecisionServiceStub(select_response=(200, {"chosen": "backendB"}))
        async with stub.client() as http:
            selector = BackendSelectorClient(SERVER_URL, http)
            with pytest.raises(MalformedResponseError):
                await selector.select_backend(PROJECT_ID, LOGIN_CANONICAL, PROVIDERS)

    async def test_non_string_backend_id_is_malformed(self) -> None:
        stub = DecisionServiceStub(select_response=(200, {"backendId": 7}))
        async with stub.client() as http:
            selector = BackendSelectorClient(SERVER_URL, http)
            with pytest.raises(MalformedResponseError):
                await selector.select_backend(PROJECT_ID, LOGIN_CANONICAL, PROVIDERS)

    async def test_invalid_json_is_malformed(self) -> None:
        stub = DecisionServiceStub(select_response=(200, "<html>oops</html>"))
        async with stub.client() as http:
            selector = BackendSelectorClient(SERVER_URL, http)
            with pytest.raises(MalformedResponseError, match="not valid JSON"):
                await selector.select_backend(PROJECT_ID, LOGIN_CANONICAL, PROVIDERS)

    async def test_transport_failure_has_no_status(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as http:
            selector = BackendSelectorClient(SERVER_URL, http)
            with pytest.raises(RemoteCallError) as excinfo:
                await selector.select_backend(PROJECT_ID, LOGIN_CANONICAL, PROVIDERS)

        assert excinfo.value.status is None
        assert "Connection refused" in excinfo.value.body


@pytest.mark.asyncio
class TestVerificationClient:
    async def test_verify_success(self, decision_stub: DecisionServiceStub) -> None:
        async with decision_stub.client() as http:
            verifier = VerificationClient(SERVER_URL, http)
            verdict = await verifier.verify(PROJECT_ID, LOGIN_CANONICAL, "tok")

        assert verdict == "MEETS_DEVICE_INTEGRITY"
        assert decision_stub.requests == [
            ("/verify", {"projectId": PROJECT_ID, "canonicalRequest": LOGIN_CANONICAL, "token": "tok"})
        ]

    async def test_verify_500(self) -> None:
        stub = DecisionServiceStub(verify_response=(500, {"error": "internal"}))
        async with stub.client() as http:
            verifier = VerificationClient(SERVER_URL, http)
            with pytest.raises(RemoteCallError) as excinfo:
                await verifier.verify(PROJECT_ID, LOGIN_CANONICAL, "tok")

        assert excinfo.value.status == 500
        assert "internal" in excinfo.value.body

    async def test_verify_missing_verdict(self) -> None:
        stub = DecisionServiceStub(verify_response=(200, {}))
        async with stub.client() as http:
            verifier = VerificationClient(SERVER_URL, http)
            with pytest.raises(MalformedResponseError):
                await verifier.verify(PROJECT_ID, LOGIN_CANONICAL, "tok")
