"""
Result objects for core operations.

Provides a unified result structure the CLI (and any other front end)
uses to display operation outcomes consistently.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any

@dataclass
class OperationResult:
    """
    Unified result object for all core operations.

    Attributes:
        ok: Whether the operation completed successfully
        operation: Name of the operation (e.g., "flash_firmware")
        device: Target device description
        bytes_len: Number of firmware bytes processed
        hashes: Dict of hash values (sha256 of the image)
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure
        metadata: Additional operation-specific data
        logs: Captured log lines from the operation
    """
    ok: bool
    operation: str
    device: str = ""
    bytes_len: int = 0
    hashes: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        """Add an error message and mark result as failed."""
        self.errors.append(message)
        self.ok = False

    def to_summary(self) -> str:
        """Generate a human-readable summary string."""
        status = "SUCCESS" if self.ok else "FAILED"
        lines = [f"[{status}] {self.operation}"]

        if self.device:
            lines.append(f"  Device: {self.device}")
        if self.bytes_len:
            lines.append(f"  Bytes: {self.bytes_len:,}")

        for name, value in self.hashes.items():
            lines.append(f"  {name}: {value[:16]}...")

        if self.warnings:
            lines.append("  Warnings:")
            for warn in self.warnings:
                lines.append(f"    - {warn}")

        if self.errors:
            lines.append("  Errors:")
            for err in self.errors:
                lines.append(f"    - {err}")

        return "\n".join(lines)

    @classmethod
    def success(
        cls,
        operation: str,
        device: str = "",
        bytes_len: int = 0,
        **kwargs,
    ) -> "OperationResult":
        """Create a successful result."""
        return cls(ok=True, operation=operation, device=device, bytes_len=bytes_len, **kwargs)

    @classmethod
    def failure(
        cls,
        operation: str,
        error: str,
        device: str = "",
        **kwargs,
    ) -> "OperationResult":
        """Create a failed result."""
        result = cls(ok=False, operation=operation, device=device, **kwargs)
        result.errors.append(error)
        return result
