# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Gateway Factory.

Provides the factory method to instantiate the correct AttestationGateway based on
configuration (Simulation vs. Remote agent).
"""

from typing import Optional

from unified_attestation.config import AttestationSettings
from unified_attestation.gateway.interfaces import AttestationGateway
from unified_attestation.gateway.remote import RemoteAttestationGateway
from unified_attestation.gateway.simulation import SimulationAttestationGateway
from unified_attestation.utils.logger import logger


def get_attestation_gateway(settings: Optional[AttestationSettings] = None) -> AttestationGateway:
    """
    Factory to return the appropriate AttestationGateway.

    Controlled by 'UNIFIED_ATTESTATION_SIMULATION' and 'UNIFIED_ATTESTATION_GATEWAY_URL'.
    Simulation wins when enabled; otherwise a gateway URL is required.

    Returns:
        AttestationGateway: A SimulationAttestationGateway or RemoteAttestationGateway.

    Raises:
        RuntimeError: If neither simulation nor a gateway URL is configured.
    """
    settings = settings or AttestationSettings()

    if settings.simulation:
        logger.info("Initializing Simulation Attestation Gateway.")
        return SimulationAttestationGateway()

    if settings.gateway_url:
        logger.info("Initializing Remote Attestation Gateway.")
        return RemoteAttestationGateway(settings.gateway_url, timeout=settings.request_timeout)

    error_msg = (
        "No attestation gateway configured! "
        "Set UNIFIED_ATTESTATION_GATEWAY_URL to the attestation agent "
        "or use UNIFIED_ATTESTATION_SIMULATION=true."
    )
    logger.critical(error_msg)
    raise RuntimeError(error_msg)
