# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import importlib
import shutil
import sys
from pathlib import Path

from unified_attestation.utils.logger import logger


def test_logger_initialization() -> None:
    """Test that the logger is initialized correctly and creates the log directory."""
    log_path = Path("logs")
    assert log_path.exists()
    assert log_path.is_dir()


def test_logger_exports() -> None:
    assert logger is not None


def test_logger_directory_creation() -> None:
    """Test that the logger module creates the logs directory if it doesn't exist."""
    log_path = Path("logs")
    if log_path.exists():
        shutil.rmtree(log_path)

    assert not log_path.exists()

    module = sys.modules["unified_attestation.utils.logger"]
    importlib.reload(module)

    assert log_path.exists()
    assert log_path.is_dir()


def test_bound_context_is_logged() -> None:
    records = []
    handler_id = logger.add(records.append, format="{message}")
    try:
        logger.bind(session_id="abc").info("bound message")
    finally:
        logger.remove(handler_id)

    assert records
    assert records[-1].record["extra"]["session_id"] == "abc"
