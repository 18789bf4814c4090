# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

from unified_attestation.gateway.factory import get_attestation_gateway
from unified_attestation.gateway.interfaces import AttestationGateway, GatewayErrorCode
from unified_attestation.gateway.remote import RemoteAttestationGateway
from unified_attestation.gateway.simulation import SimulationAttestationGateway

__all__ = [
    "AttestationGateway",
    "GatewayErrorCode",
    "RemoteAttestationGateway",
    "SimulationAttestationGateway",
    "get_attestation_gateway",
]
