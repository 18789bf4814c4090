# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Gateway connection lifecycle.

Tracks whether a gateway is connected and which calls are in flight, so that
``disconnect()`` can abort those calls instead of leaving them hanging.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Set

import anyio

from unified_attestation.exceptions import GatewayCancelledError, GatewayNotConnectedError
from unified_attestation.utils.logger import logger


class GatewayConnection:
    """
    Connection state shared by every flow using one gateway.

    Each in-flight call runs inside its own cancel scope; closing the connection cancels
    all of them and they surface as GatewayCancelledError.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._connected = False
        self._in_flight: Set[anyio.CancelScope] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def open(self) -> None:
        if self._connected:
            return
        self._connected = True
        logger.info(f"{self.name}: connected")

    def close(self) -> int:
        """
        Mark the connection closed and cancel every in-flight call.

        Returns:
            int: Number of calls that were cancelled.
        """
        self._connected = False
        scopes = list(self._in_flight)
        for scope in scopes:
            scope.cancel()
        if scopes:
            logger.warning(f"{self.name}: disconnected with {len(scopes)} call(s) in flight, cancelling")
        else:
            logger.info(f"{self.name}: disconnected")
        return len(scopes)

    @asynccontextmanager
    async def call(self, operation: str) -> AsyncIterator[None]:
        """
        Guard a single gateway call.

        Raises:
            GatewayNotConnectedError: If the connection is not open.
            GatewayCancelledError: If the connection is closed while the call runs.
        """
        if not self._connected:
            raise GatewayNotConnectedError(f"{self.name}: {operation} called while not connected")

        scope = anyio.CancelScope()
        self._in_flight.add(scope)
        try:
            with scope:
                yield
        finally:
            self._in_flight.discard(scope)

        if scope.cancelled_caught:
            raise GatewayCancelledError(f"{self.name}: {operation} aborted by disconnect")
