# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from conftest import PROJECT_ID

from unified_attestation.api import VERDICT_MEETS_INTEGRITY, create_app
from unified_attestation.config import AttestationSettings
from unified_attestation.exceptions import FlowError
from unified_attestation.gateway.simulation import SimulationAttestationGateway
from unified_attestation.schemas import FlowEvent, FlowResult, FlowState, RequestContext
from unified_attestation.services import AttestationService, AttestationServiceAsync

SETTINGS = AttestationSettings(server_base_url="http://testserver", simulation=True)


def simulated_client() -> httpx.AsyncClient:
    """HTTP client wired in-process to the simulated decision service."""
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app(preferred_backends=("backendB",))))


def simulated_gateway() -> SimulationAttestationGateway:
    return SimulationAttestationGateway(catalogue={PROJECT_ID: ["backendA", "backendB"]})


@pytest.mark.asyncio
class TestAttestationServiceAsync:
    async def test_lifecycle_connects_and_disconnects_gateway(self) -> None:
        gateway = simulated_gateway()
        async with AttestationServiceAsync(settings=SETTINGS, gateway=gateway, client=simulated_client()) as svc:
            assert gateway.connected
            assert svc.orchestrator.gateway is gateway
        assert not gateway.connected

    async def test_internal_client_closed_on_exit(self) -> None:
        svc = AttestationServiceAsync(settings=SETTINGS, gateway=simulated_gateway())
        async with svc:
            pass
        assert svc._client.is_closed

    async def test_end_to_end_attest(self, login_context: RequestContext) -> None:
        async with AttestationServiceAsync(
            settings=SETTINGS, gateway=simulated_gateway(), client=simulated_client()
        ) as svc:
            events: List[FlowEvent] = []
            result = await svc.attest(PROJECT_ID, login_context, observer=events.append)

        assert result.state == FlowState.COMPLETED
        assert result.verdict == VERDICT_MEETS_INTEGRITY
        issuing = next(e for e in events if e.state == FlowState.ISSUING_TOKEN)
        assert issuing.backend_id == "backendB"

    async def test_run_attestation_flow_stream(self, login_context: RequestContext) -> None:
        async with AttestationServiceAsync(
            settings=SETTINGS, gateway=simulated_gateway(), client=simulated_client()
        ) as svc:
            states = [e.state async for e in svc.run_attestation_flow(PROJECT_ID, login_context)]

        assert states[-1] == FlowState.COMPLETED

    async def test_attest_or_raise_on_unavailable_backend(self, login_context: RequestContext) -> None:
        gateway = SimulationAttestationGateway(
            catalogue={PROJECT_ID: ["backendA", "backendB"]}, unavailable_backends=["backendB"]
        )
        async with AttestationServiceAsync(settings=SETTINGS, gateway=gateway, client=simulated_client()) as svc:
            with pytest.raises(FlowError, match="unreachable"):
                await svc.attest_or_raise(PROJECT_ID, login_context)

    async def test_attest_many_shares_gateway(self) -> None:
        gateway = simulated_gateway()
        contexts = [RequestContext.of(action="login", sessionId=str(i)) for i in range(3)]
        async with AttestationServiceAsync(settings=SETTINGS, gateway=gateway, client=simulated_client()) as svc:
            results = await svc.attest_many(PROJECT_ID, contexts)

        assert [r.state for r in results] == [FlowState.COMPLETED] * 3
        assert gateway.tokens_issued == 3

    async def test_gateway_built_from_settings(self) -> None:
        svc = AttestationServiceAsync(settings=SETTINGS, client=simulated_client())
        assert isinstance(svc.gateway, SimulationAttestationGateway)

    async def test_no_gateway_configured(self) -> None:
        with patch("unified_attestation.services.httpx.AsyncClient") as MockClient:
            with pytest.raises(RuntimeError, match="No attestation gateway configured"):
                AttestationServiceAsync(settings=AttestationSettings(simulation=False, gateway_url=None))

        MockClient.assert_not_called()


class TestAttestationService:
    def test_sync_facade_end_to_end(self, login_context: RequestContext) -> None:
        events: List[FlowEvent] = []
        with AttestationService(settings=SETTINGS, gateway=simulated_gateway(), client=simulated_client()) as svc:
            result = svc.attest(PROJECT_ID, login_context, observer=events.append)
            verdict = svc.attest_or_raise(PROJECT_ID, login_context)

        assert result.succeeded
        assert verdict == VERDICT_MEETS_INTEGRITY
        assert [e.state for e in events][-1] == FlowState.COMPLETED

    def test_sync_facade_delegates(self, login_context: RequestContext) -> None:
        with patch("unified_attestation.services.AttestationServiceAsync") as MockAsyncService:
            completed = FlowResult(session_id="s", state=FlowState.COMPLETED, verdict="ok")
            mock_async_instance = MockAsyncService.return_value
            mock_async_instance.__aenter__ = AsyncMock(return_value=mock_async_instance)
            mock_async_instance.__aexit__ = AsyncMock(return_value=None)
            mock_async_instance.attest = AsyncMock(return_value=completed)
            mock_async_instance.attest_or_raise = AsyncMock(return_value="ok")
            mock_async_instance.attest_many = AsyncMock(return_value=[completed])

            with AttestationService() as service:
                assert service.attest(PROJECT_ID, login_context) == completed
                assert service.attest_or_raise(PROJECT_ID, login_context) == "ok"
                assert service.attest_many(PROJECT_ID, [login_context]) == [completed]

            mock_async_instance.__aexit__.assert_awaited_once()

    def test_service_outside_context(self, login_context: RequestContext) -> None:
        """Test that using service outside context manager raises RuntimeError."""
        service = AttestationService(settings=SETTINGS, gateway=MagicMock())
        with pytest.raises(RuntimeError, match="Service used outside of context manager"):
            service.attest(PROJECT_ID, login_context)

        with pytest.raises(RuntimeError, match="Service used outside of context manager"):
            service.attest_or_raise(PROJECT_ID, login_context)

        with pytest.raises(RuntimeError, match="Service used outside of context manager"):
            service.attest_many(PROJECT_ID, [login_context])
