# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Attestation flow orchestrator.

Drives one attestation attempt through

    IDLE -> HASHING_REQUEST -> DISCOVERING_PROVIDERS -> SELECTING_BACKEND
         -> ISSUING_TOKEN -> VERIFYING -> COMPLETED

with FAILED reachable from every non-terminal state. Each step is attempted once; the
caller owns retry policy. The transition table is plain data evaluated by ``next_state``.
"""

import hashlib
import inspect
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, Type, TypeVar, Union
from uuid import uuid4

from anyio.streams.memory import MemoryObjectSendStream

from unified_attestation.canonical import canonicalize, digest
from unified_attestation.clients import BackendSelectorClient, VerificationClient
from unified_attestation.exceptions import (
    AttestationError,
    BackendNotOfferedError,
    FatalHashError,
    FlowError,
    GatewayError,
    MalformedResponseError,
    RemoteCallError,
)
from unified_attestation.gateway.interfaces import AttestationGateway
from unified_attestation.schemas import FlowEvent, FlowFailure, FlowResult, FlowState, ProviderSet, RequestContext
from unified_attestation.utils.logger import logger

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: AttestationError


Outcome = Union[Ok[Any], Err]

EventObserver = Callable[[FlowEvent], Union[None, Awaitable[None]]]

SUCCESS_TRANSITIONS: Dict[FlowState, FlowState] = {
    FlowState.IDLE: FlowState.HASHING_REQUEST,
    FlowState.HASHING_REQUEST: FlowState.DISCOVERING_PROVIDERS,
    FlowState.DISCOVERING_PROVIDERS: FlowState.SELECTING_BACKEND,
    FlowState.SELECTING_BACKEND: FlowState.ISSUING_TOKEN,
    FlowState.ISSUING_TOKEN: FlowState.VERIFYING,
    FlowState.VERIFYING: FlowState.COMPLETED,
}

# Errors each step turns into FAILED. Anything else is a bug and propagates.
STEP_ERRORS: Dict[FlowState, Tuple[Type[AttestationError], ...]] = {
    FlowState.HASHING_REQUEST: (FatalHashError,),
    FlowState.DISCOVERING_PROVIDERS: (GatewayError,),
    FlowState.SELECTING_BACKEND: (RemoteCallError, MalformedResponseError),
    FlowState.ISSUING_TOKEN: (GatewayError,),
    FlowState.VERIFYING: (RemoteCallError, MalformedResponseError),
}


def next_state(state: FlowState, outcome: Outcome) -> FlowState:
    """
    Evaluate the transition table.

    Args:
        state (FlowState): Current, non-terminal state.
        outcome (Outcome): Result of the step run in ``state`` (``Ok(None)`` for IDLE).

    Returns:
        FlowState: The unique next state.

    Raises:
        ValueError: If ``state`` is terminal.
    """
    if state.is_terminal:
        raise ValueError(f"No transition out of terminal state {state.value}")
    if isinstance(outcome, Err):
        return FlowState.FAILED
    return SUCCESS_TRANSITIONS[state]


def describe_failure(error: AttestationError, state: FlowState) -> FlowFailure:
    return FlowFailure(
        kind=type(error).__name__,
        message=str(error),
        code=getattr(error, "code", None),
        status=getattr(error, "status", None),
        state=state,
    )


@dataclass
class FlowSession:
    """
    Single-use state of one attestation attempt. Never shared between flows.
    """

    project_id: str
    context: RequestContext
    session_id: str = field(default_factory=lambda: str(uuid4()))
    state: FlowState = FlowState.IDLE
    sequence: int = 0
    history: List[FlowState] = field(default_factory=lambda: [FlowState.IDLE])
    canonical_request: Optional[str] = None
    request_digest: Optional[str] = None
    provider_set: Optional[ProviderSet] = None
    backend_id: Optional[str] = None
    token: Optional[str] = None
    verdict: Optional[str] = None
    error: Optional[AttestationError] = None
    failure: Optional[FlowFailure] = None

    def advance(self, new_state: FlowState) -> None:
        self.state = new_state
        self.history.append(new_state)
        self.sequence += 1

    def event(self) -> FlowEvent:
        detail: Dict[str, Any] = {}
        if self.state == FlowState.DISCOVERING_PROVIDERS:
            detail["request_hash"] = self.request_digest
        elif self.state == FlowState.SELECTING_BACKEND and self.provider_set is not None:
            detail["backend_ids"] = self.provider_set.backend_ids
        elif self.state == FlowState.ISSUING_TOKEN:
            detail["backend_id"] = self.backend_id
        elif self.state == FlowState.COMPLETED:
            detail["verdict"] = self.verdict
        elif self.state == FlowState.FAILED:
            detail["failure"] = self.failure
        return FlowEvent(session_id=self.session_id, sequence=self.sequence, state=self.state, **detail)

    def result(self) -> FlowResult:
        return FlowResult(session_id=self.session_id, state=self.state, verdict=self.verdict, failure=self.failure)


class AttestationOrchestrator:
    """
    Runs attestation flows against one gateway and one decision/verification service.

    The gateway is a resource owned by the caller; it must be connected before flows run.
    Concurrent flows on one orchestrator are independent: each gets its own FlowSession.

    Args:
        gateway (AttestationGateway): Provider discovery and token issuance.
        selector (BackendSelectorClient): Client for ``/select-backend``.
        verifier (VerificationClient): Client for ``/verify``.
        enforce_backend_membership (bool): Fail the flow if the selected backend was not offered.
    """

    def __init__(
        self,
        gateway: AttestationGateway,
        selector: BackendSelectorClient,
        verifier: VerificationClient,
        enforce_backend_membership: bool = True,
    ) -> None:
        self.gateway = gateway
        self.selector = selector
        self.verifier = verifier
        self.enforce_backend_membership = enforce_backend_membership

    # --- Steps ---

    async def _hash_request(self, session: FlowSession) -> None:
        session.canonical_request = canonicalize(session.context)
        session.request_digest = digest(session.canonical_request)

    async def _discover_providers(self, session: FlowSession) -> None:
        session.provider_set = await self.gateway.discover_providers(session.project_id)

    async def _select_backend(self, session: FlowSession) -> None:
        if session.canonical_request is None or session.provider_set is None:
            raise RuntimeError("Backend selection requires a canonical request and a provider set")
        backend_id = await self.selector.select_backend(
            session.project_id, session.canonical_request, session.provider_set
        )
        if self.enforce_backend_membership and backend_id not in session.provider_set:
            raise BackendNotOfferedError(backend_id, session.provider_set.backend_ids)
        session.backend_id = backend_id

    async def _issue_token(self, session: FlowSession) -> None:
        if session.backend_id is None or session.request_digest is None:
            raise RuntimeError("Token issuance requires a selected backend and a request digest")
        session.token = await self.gateway.issue_token(session.backend_id, session.project_id, session.request_digest)

    async def _verify(self, session: FlowSession) -> None:
        if session.canonical_request is None or session.token is None:
            raise RuntimeError("Verification requires a canonical request and a token")
        session.verdict = await self.verifier.verify(session.project_id, session.canonical_request, session.token)

    async def _run_step(self, session: FlowSession) -> Outcome:
        steps = {
            FlowState.HASHING_REQUEST: self._hash_request,
            FlowState.DISCOVERING_PROVIDERS: self._discover_providers,
            FlowState.SELECTING_BACKEND: self._select_backend,
            FlowState.ISSUING_TOKEN: self._issue_token,
            FlowState.VERIFYING: self._verify,
        }
        try:
            await steps[session.state](session)
        except STEP_ERRORS[session.state] as e:
            return Err(e)
        return Ok(None)

    # --- Driving ---

    async def _drive(self, session: FlowSession) -> AsyncIterator[FlowEvent]:
        log = logger.bind(session_id=session.session_id, project_id=session.project_id)
        log.info("Attestation flow started")

        outcome: Outcome = Ok(None)
        while True:
            failed_in = session.state
            session.advance(next_state(session.state, outcome))

            if isinstance(outcome, Err):
                session.error = outcome.error
                session.failure = describe_failure(outcome.error, failed_in)
                log.error(f"Attestation flow failed in {failed_in.value}: {session.failure.kind}: {outcome.error}")
                yield session.event()
                return

            if session.state == FlowState.COMPLETED:
                log.info(f"Attestation flow completed with verdict {session.verdict}")
                yield session.event()
                return

            log.debug(f"Entering {session.state.value}")
            yield session.event()

            outcome = await self._run_step(session)
            if session.state == FlowState.ISSUING_TOKEN and isinstance(outcome, Ok) and session.token:
                token_ref = hashlib.sha256(session.token.encode("utf-8")).hexdigest()[:8]
                log.info(f"Token received from {session.backend_id} (sha256 {token_ref}...)")

    def run_attestation_flow(self, project_id: str, context: RequestContext) -> AsyncIterator[FlowEvent]:
        """
        Run one flow, yielding a progress event at entry to each state.

        The final event is terminal: COMPLETED carrying the verdict or FAILED carrying the failure.
        """
        return self._drive(FlowSession(project_id=project_id, context=context))

    async def execute(
        self,
        project_id: str,
        context: RequestContext,
        observer: Optional[EventObserver] = None,
    ) -> FlowResult:
        """
        Run one flow to completion.

        Args:
            project_id (str): Project/app identifier.
            context (RequestContext): What is being attested.
            observer (Optional[EventObserver]): Called (or awaited) with every event.

        Returns:
            FlowResult: The terminal outcome.
        """
        session = FlowSession(project_id=project_id, context=context)
        await self._consume(session, observer)
        return session.result()

    async def attest_or_raise(self, project_id: str, context: RequestContext) -> str:
        """
        Run one flow and return its verdict.

        Raises:
            FlowError: Wrapping the error that failed the flow.
        """
        session = FlowSession(project_id=project_id, context=context)
        await self._consume(session, None)
        if session.error is not None:
            raise FlowError(session.error) from session.error
        if session.verdict is None:
            raise RuntimeError(f"Flow {session.session_id} ended in {session.state.value} without a verdict")
        return session.verdict

    async def publish(
        self,
        project_id: str,
        context: RequestContext,
        send_stream: MemoryObjectSendStream[FlowEvent],
    ) -> FlowResult:
        """
        Run one flow, sending every event into ``send_stream`` and closing it afterwards.

        The receiving side decides which thread or task handles the events.
        """
        async with send_stream:
            return await self.execute(project_id, context, observer=send_stream.send)

    async def _consume(self, session: FlowSession, observer: Optional[EventObserver]) -> None:
        async for event in self._drive(session):
            if observer is not None:
                maybe_awaitable = observer(event)
                if inspect.isawaitable(maybe_awaitable):
                    await maybe_awaitable
