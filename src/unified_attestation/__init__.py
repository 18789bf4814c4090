"""
Unified Attestation Package.

Exposes the orchestrator, the Service classes and the request canonicalizer.
"""

from unified_attestation.canonical import canonicalize, digest
from unified_attestation.orchestrator import AttestationOrchestrator
from unified_attestation.schemas import FlowEvent, FlowResult, FlowState, RequestContext
from unified_attestation.services import AttestationService, AttestationServiceAsync

__all__ = [
    "AttestationOrchestrator",
    "AttestationService",
    "AttestationServiceAsync",
    "FlowEvent",
    "FlowResult",
    "FlowState",
    "RequestContext",
    "canonicalize",
    "digest",
]
