# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Entry point for the Unified Attestation CLI.

Runs a single attestation flow against the configured decision service, or serves the
simulated decision service for local development.
"""

import argparse
import os
import sys
from typing import Dict, List, Optional

import uvicorn

from unified_attestation.config import SIMULATION_ENV_VAR, AttestationSettings
from unified_attestation.schemas import FieldValue, FlowEvent, FlowState, RequestContext
from unified_attestation.services import AttestationService
from unified_attestation.utils.logger import logger


def apply_security_policy(simulation_flag: bool, insecure_flag: bool) -> None:
    """
    Configure the security mode for the CLI.

    Strictly enforces the presence of the --insecure or --simulation flag for simulation mode,
    so a real attestation run cannot silently fall back to the simulation gateway.

    Args:
        simulation_flag (bool): True if --simulation was passed in CLI.
        insecure_flag (bool): True if --insecure was passed in CLI.

    Raises:
        RuntimeError: If simulation mode is requested via environment but the required CLI flag is missing.
    """
    env_simulation = os.environ.get(SIMULATION_ENV_VAR, "false").lower() == "true"
    requested_simulation = simulation_flag or insecure_flag

    if requested_simulation:
        logger.warning("!!! RUNNING WITH THE SIMULATION ATTESTATION GATEWAY !!!")
        logger.warning("Integrity tokens are minted locally via --simulation/--insecure flag.")
        os.environ[SIMULATION_ENV_VAR] = "true"
    else:
        if env_simulation:
            error_msg = (
                f"Security Violation: {SIMULATION_ENV_VAR}=true is set in the environment, "
                "but the required '--insecure' or '--simulation' CLI flag is missing. "
                "Refusing to attest in insecure mode without explicit CLI override."
            )
            logger.critical(error_msg)
            raise RuntimeError(error_msg)

        os.environ[SIMULATION_ENV_VAR] = "false"
        logger.info("Running with the configured attestation gateway.")


def parse_fields(pairs: List[str]) -> Dict[str, FieldValue]:
    """
    Parse ``key=value`` arguments.

    ASCII decimal integers in their plain form become ints and ``true``/``false`` become
    bools, so ``ts=1700000000`` is attested as a number. Anything whose int rendering would
    differ from the input (``007``, ``-0``, non-ASCII digits) stays a string.
    """
    fields: Dict[str, FieldValue] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid field '{pair}', expected key=value")
        value: FieldValue = raw
        digits = raw[1:] if raw.startswith("-") else raw
        if raw in ("true", "false"):
            value = raw == "true"
        elif raw.isascii() and digits.isdigit() and str(int(raw)) == raw:
            value = int(raw)
        fields[key] = value
    return fields


def log_event(event: FlowEvent) -> None:
    if event.state == FlowState.DISCOVERING_PROVIDERS:
        logger.info(f"RequestHash: {event.request_hash}")
    elif event.state == FlowState.SELECTING_BACKEND:
        logger.info(f"Providers: {list(event.backend_ids or ())}")
    elif event.state == FlowState.ISSUING_TOKEN:
        logger.info(f"Selected backend: {event.backend_id}")
    elif event.state == FlowState.VERIFYING:
        logger.info("Token received, verifying...")
    elif event.state == FlowState.COMPLETED:
        logger.info(f"Verdict: {event.verdict}")
    elif event.state == FlowState.FAILED and event.failure is not None:
        logger.error(f"{event.failure.state.value} failed: {event.failure.kind}: {event.failure.message}")


def run_attest(parsed_args: argparse.Namespace) -> int:
    apply_security_policy(simulation_flag=parsed_args.simulation, insecure_flag=parsed_args.insecure)

    overrides = {}
    if parsed_args.server_url:
        overrides["server_base_url"] = parsed_args.server_url
    if parsed_args.gateway_url:
        overrides["gateway_url"] = parsed_args.gateway_url
    settings = AttestationSettings(**overrides)

    context = RequestContext(fields=parse_fields(parsed_args.field))

    with AttestationService(settings=settings) as service:
        result = service.attest(parsed_args.project_id, context, observer=log_event)

    if result.succeeded:
        print(result.verdict)
        return 0
    return 1


def run_simulation_server(parsed_args: argparse.Namespace) -> int:
    """Run the simulated decision service."""
    from unified_attestation.api import app as api_app

    logger.warning("Starting SIMULATED decision service. Do not use in production!")
    logger.info(f"Listening on {parsed_args.host}:{parsed_args.port}")
    uvicorn.run(api_app, host=parsed_args.host, port=parsed_args.port, log_level="info")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="unified-attest", description="Unified Attestation client")
    sub = parser.add_subparsers(dest="command", required=True)

    attest = sub.add_parser("attest", help="Run one attestation flow")
    attest.add_argument("--project-id", "-p", type=str, required=True, help="Project/app identifier")
    attest.add_argument(
        "--field",
        "-f",
        action="append",
        required=True,
        help="Request context field as key=value (repeatable)",
    )
    attest.add_argument("--server-url", type=str, default=None, help="Decision/verification service root URL")
    attest.add_argument("--gateway-url", type=str, default=None, help="Attestation agent root URL")
    attest.add_argument("--simulation", action="store_true", help="Use the simulation attestation gateway")
    attest.add_argument("--insecure", action="store_true", help="Alias for --simulation")
    attest.set_defaults(handler=run_attest)

    serve = sub.add_parser("serve-simulation", help="Serve the simulated decision service")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", type=int, default=4000, help="Bind port")
    serve.set_defaults(handler=run_simulation_server)

    return parser


def main(args: Optional[List[str]] = None) -> None:
    """
    Entry point for the Unified Attestation CLI.

    Args:
        args (Optional[List[str]]): Command line arguments. Defaults to sys.argv[1:].
    """
    parser = build_parser()
    parsed_args = parser.parse_args(args)

    try:
        exit_code = parsed_args.handler(parsed_args)
    except Exception as e:
        logger.exception(f"Attestation CLI failed: {e}")
        sys.exit(1)
        return

    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()  # pragma: no cover
