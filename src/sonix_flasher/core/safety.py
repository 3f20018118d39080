"""
Safety context and write gating for flash operations.

Centralizes all confirmation rules so every front end enforces the same
checks before a bootloader is erased and rewritten.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Callable

# Confirmation token required for non-interactive flashing
CONFIRMATION_TOKEN = "FLASH"


class WritePermissionError(Exception):
    """
    Raised when a flash operation is not permitted.

    Attributes:
        reason: Human-readable explanation of why the write was denied
        details: Additional context (device, size, etc.)
    """
    def __init__(self, reason: str, details: Optional[dict] = None):
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)


@dataclass
class SafetyContext:
    """
    Safety context for flash operations.

    Attributes:
        write_enabled: Whether the --write flag was provided
        confirmation_token: For non-interactive mode, must match CONFIRMATION_TOKEN
        interactive: Whether the front end can prompt for confirmation
        device: Target device description
        simulate: Whether this is a simulation/dry-run
        warnings: Warning messages accumulated during the operation
    """
    write_enabled: bool = False
    confirmation_token: Optional[str] = None
    interactive: bool = True
    device: str = ""
    simulate: bool = False
    warnings: List[str] = field(default_factory=list)

    # Set by the CLI to its prompt functions
    prompt_confirmation: Optional[Callable[[str], str]] = None
    show_details: Optional[Callable[[dict], None]] = None

    def to_details_dict(self, bytes_length: int = 0, offset: Optional[int] = None) -> dict:
        """Create a details dictionary for display."""
        details = {
            "device": self.device or "Unknown",
            "bytes_length": bytes_length,
        }
        if offset is not None:
            details["offset"] = f"0x{offset:04X}"
        if self.warnings:
            details["warnings"] = self.warnings
        return details


def require_write_permission(
    ctx: SafetyContext,
    bytes_length: int = 0,
    offset: Optional[int] = None,
) -> None:
    """
    Enforce flash permission rules.

    Rules enforced:
    1. If simulate mode: always allowed (no device is touched)
    2. If write not enabled: raise with instructions
    3. If device unknown: deny
    4. If confirmation token present: must match exactly
    5. If interactive: prompt user for confirmation

    Raises:
        WritePermissionError: If the flash is not permitted
    """
    details = ctx.to_details_dict(bytes_length, offset)

    if ctx.simulate:
        return

    if not ctx.write_enabled:
        raise WritePermissionError(
            "Flash operation requires explicit permission. CLI: use --write flag.",
            details=details,
        )

    if not ctx.device:
        raise WritePermissionError(
            "Cannot flash an unknown device.",
            details=details,
        )

    if ctx.confirmation_token is not None:
        if ctx.confirmation_token.strip().upper() != CONFIRMATION_TOKEN:
            raise WritePermissionError(
                f"Confirmation token mismatch. Expected '{CONFIRMATION_TOKEN}'.",
                details=details,
            )
        return

    if not ctx.interactive:
        raise WritePermissionError(
            "Non-interactive mode requires confirmation_token.",
            details=details,
        )

    if ctx.prompt_confirmation is None:
        raise WritePermissionError(
            "Interactive confirmation required but no prompt handler set. "
            "Provide confirmation_token for non-interactive mode.",
            details=details,
        )

    if ctx.show_details:
        ctx.show_details(details)

    user_input = ctx.prompt_confirmation(
        f"Type '{CONFIRMATION_TOKEN}' to proceed, or anything else to abort"
    )
    if user_input.strip().upper() != CONFIRMATION_TOKEN:
        raise WritePermissionError(
            "Confirmation failed. Flash aborted by user.",
            details=details,
        )

