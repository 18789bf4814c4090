# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Runtime configuration.

Settings are read from ``UNIFIED_ATTESTATION_*`` environment variables.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SIMULATION_ENV_VAR = "UNIFIED_ATTESTATION_SIMULATION"


class AttestationSettings(BaseSettings):
    """
    Configuration for the attestation client.

    Attributes:
        server_base_url (str): Root URL of the decision/verification service.
        request_timeout (float): Timeout in seconds for each HTTP call.
        simulation (bool): Use the in-process simulation gateway.
        gateway_url (Optional[str]): Root URL of an out-of-process attestation agent.
        enforce_backend_membership (bool): Reject a selected backend that was not offered.
    """

    model_config = SettingsConfigDict(env_prefix="UNIFIED_ATTESTATION_", case_sensitive=False)

    server_base_url: str = Field(default="http://127.0.0.1:4000", description="Decision service root URL")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    simulation: bool = Field(default=False, description="Use the simulation gateway")
    gateway_url: Optional[str] = Field(default=None, description="Attestation agent root URL")
    enforce_backend_membership: bool = Field(default=True, description="Reject unoffered backends")

    @field_validator("server_base_url")
    @classmethod
    def validate_server_base_url(cls, v: str) -> str:
        """Validate the URL scheme and strip any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("server_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: float) -> float:
        """Validate that request_timeout is positive."""
        if v <= 0:
            raise ValueError("request_timeout must be positive")
        return v
