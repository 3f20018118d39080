"""
Core module for Sonix Flasher.

This module provides the single source of truth for:
- Flash gating / confirmation (safety.py)
- Numeric option parsing (parsing.py)
- Result objects (results.py)
- Validate and flash workflows (actions.py)

Front ends should call into this module rather than implementing their
own logic.
"""

from .safety import (
    SafetyContext,
    require_write_permission,
    WritePermissionError,
    CONFIRMATION_TOKEN,
)
from .parsing import parse_int
from .results import OperationResult
from .actions import validate_firmware_file, flash_firmware

__all__ = [
    # Safety
    "SafetyContext",
    "require_write_permission",
    "WritePermissionError",
    "CONFIRMATION_TOKEN",
    # Parsing
    "parse_int",
    # Results
    "OperationResult",
    # Actions
    "validate_firmware_file",
    "flash_firmware",
]
