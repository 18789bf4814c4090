"""
Unified Attestation Services.

This module provides the Async-Native and Sync-Facade service classes used by applications
to run attestation flows.
"""

from typing import Any, AsyncIterator, List, Optional

import anyio
import anyio.from_thread
import httpx

from unified_attestation.clients import BackendSelectorClient, VerificationClient
from unified_attestation.config import AttestationSettings
from unified_attestation.gateway.factory import get_attestation_gateway
from unified_attestation.gateway.interfaces import AttestationGateway
from unified_attestation.orchestrator import AttestationOrchestrator, EventObserver
from unified_attestation.schemas import FlowEvent, FlowResult, RequestContext
from unified_attestation.utils.logger import logger


class AttestationServiceAsync:
    """
    Async-Native Attestation Service.

    Owns the lifecycle of the gateway connection and the HTTP client, and runs flows
    through an AttestationOrchestrator.
    """

    def __init__(
        self,
        settings: Optional[AttestationSettings] = None,
        gateway: Optional[AttestationGateway] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Async Service.

        Args:
            settings (Optional[AttestationSettings]): Configuration; read from the environment if omitted.
            gateway (Optional[AttestationGateway]): Gateway to use; built from settings if omitted.
            client (Optional[httpx.AsyncClient]): External HTTP client for connection pooling.
        """
        self.settings = settings or AttestationSettings()
        # The factory may raise, so it runs before the client is opened.
        self.gateway = gateway or get_attestation_gateway(self.settings)

        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.settings.request_timeout)
        self.orchestrator = AttestationOrchestrator(
            gateway=self.gateway,
            selector=BackendSelectorClient(self.settings.server_base_url, self._client),
            verifier=VerificationClient(self.settings.server_base_url, self._client),
            enforce_backend_membership=self.settings.enforce_backend_membership,
        )

    async def __aenter__(self) -> "AttestationServiceAsync":
        await self.gateway.connect()
        logger.info(f"Attestation service ready (server={self.settings.server_base_url})")
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            await self.gateway.disconnect()
        finally:
            if self._internal_client:
                await self._client.aclose()

    def run_attestation_flow(self, project_id: str, context: RequestContext) -> AsyncIterator[FlowEvent]:
        """Stream the events of one flow. The last event is terminal."""
        return self.orchestrator.run_attestation_flow(project_id, context)

    async def attest(
        self,
        project_id: str,
        context: RequestContext,
        observer: Optional[EventObserver] = None,
    ) -> FlowResult:
        """Run one flow and return its terminal result."""
        return await self.orchestrator.execute(project_id, context, observer=observer)

    async def attest_or_raise(self, project_id: str, context: RequestContext) -> str:
        """Run one flow and return the verdict, raising FlowError on failure."""
        return await self.orchestrator.attest_or_raise(project_id, context)

    async def attest_many(self, project_id: str, contexts: List[RequestContext]) -> List[FlowResult]:
        """
        Run several independent flows concurrently over the shared gateway.

        Results are returned in the order of ``contexts``.
        """
        results: List[Optional[FlowResult]] = [None] * len(contexts)

        async def run_one(index: int, context: RequestContext) -> None:
            results[index] = await self.orchestrator.execute(project_id, context)

        async with anyio.create_task_group() as tg:
            for index, context in enumerate(contexts):
                tg.start_soon(run_one, index, context)

        return [r for r in results if r is not None]


class AttestationService:
    """
    Sync Facade for the Attestation Service.

    Wraps AttestationServiceAsync to provide a synchronous interface for callers without an
    event loop (UI threads, scripts). Flows run on the portal's worker thread; observers are
    invoked there too, so callers marshal events onto their own thread if they need to.
    """

    def __init__(
        self,
        settings: Optional[AttestationSettings] = None,
        gateway: Optional[AttestationGateway] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._async = AttestationServiceAsync(settings=settings, gateway=gateway, client=client)
        self._portal: Optional[anyio.from_thread.BlockingPortal] = None
        self._portal_cm: Any = None

    def __enter__(self) -> "AttestationService":
        # Start a persistent event loop (portal) for the context
        self._portal_cm = anyio.from_thread.start_blocking_portal()
        self._portal = self._portal_cm.__enter__()
        try:
            self._portal.call(self._async.__aenter__)
        except BaseException:
            self._portal_cm.__exit__(None, None, None)
            self._portal = None
            self._portal_cm = None
            raise
        return self

    def __exit__(self, *args: Any) -> None:
        if self._portal:
            try:
                self._portal.call(self._async.__aexit__, *args)
            finally:
                if self._portal_cm:
                    self._portal_cm.__exit__(None, None, None)
                self._portal = None
                self._portal_cm = None

    def attest(
        self,
        project_id: str,
        context: RequestContext,
        observer: Optional[EventObserver] = None,
    ) -> FlowResult:
        if not self._portal:
            raise RuntimeError("Service used outside of context manager")
        return self._portal.call(self._async.attest, project_id, context, observer)  # type: ignore[no-any-return]

    def attest_or_raise(self, project_id: str, context: RequestContext) -> str:
        if not self._portal:
            raise RuntimeError("Service used outside of context manager")
        return self._portal.call(self._async.attest_or_raise, project_id, context)  # type: ignore[no-any-return]

    def attest_many(self, project_id: str, contexts: List[RequestContext]) -> List[FlowResult]:
        if not self._portal:
            raise RuntimeError("Service used outside of context manager")
        return self._portal.call(self._async.attest_many, project_id, contexts)  # type: ignore[no-any-return]
