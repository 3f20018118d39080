"""
Core workflow actions for Sonix Flasher.

This module exposes the validate and flash workflows the CLI calls.
All flash operations go through the safety context for gating, and all
outcomes are reported as OperationResult objects.
"""

import hashlib
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional, Union

from sonix_flasher.firmware_tools import (
    ValidationError,
    describe_firmware,
    load_firmware,
    validate_firmware,
)
from sonix_flasher.models import DeviceDescriptor
from sonix_flasher.protocol import (
    HIDTransport,
    ProgressEvent,
    REBOOT_SETTLE_SECONDS,
    SimulatedDevice,
    SN32Updater,
)
from .results import OperationResult
from .safety import SafetyContext, require_write_permission, WritePermissionError

logger = logging.getLogger(__name__)

UNSAFE_STATE_WARNING = (
    "Flashing was interrupted after data was written. The keyboard firmware is "
    "incomplete; keep the device in bootloader mode and flash again."
)


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "sonix_flasher"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def validate_firmware_file(
    path: Union[str, Path],
    descriptor: DeviceDescriptor,
) -> OperationResult:
    """
    Load a firmware file and check it against a device.

    Returns:
        OperationResult with:
            - ok: True if the image passed every check
            - metadata["firmware"]: describe_firmware() output
            - metadata["firmware_bytes"]: the loaded image
            - hashes["sha256"]: hash of the image
    """
    with _capture_logs() as logs:
        try:
            firmware = load_firmware(path)
        except (FileNotFoundError, OSError) as e:
            return OperationResult.failure(
                operation="validate_firmware",
                error=str(e),
                device=descriptor.description,
                logs=logs,
            )

        info = describe_firmware(descriptor, firmware)
        result = OperationResult.success(
            operation="validate_firmware",
            device=descriptor.description,
            bytes_len=len(firmware),
            hashes={"sha256": info["sha256"]},
            metadata={"firmware": info, "firmware_bytes": firmware},
            logs=logs,
        )

        try:
            validate_firmware(descriptor, firmware)
        except ValidationError as e:
            result.add_error(str(e))
            result.metadata["error_type"] = type(e).__name__
            return result

        if len(firmware) % 64:
            result.add_warning(
                f"Image will be zero-padded from {len(firmware)} to {info['padded_size']} bytes"
            )
        return result


def flash_firmware(
    descriptor: DeviceDescriptor,
    firmware: bytes,
    safety_ctx: SafetyContext,
    transport: Optional[HIDTransport] = None,
    progress_cb: Optional[Callable[[ProgressEvent], None]] = None,
    settle_delay: float = REBOOT_SETTLE_SECONDS,
    cancel_event=None,
    sleep: Callable[[float], None] = time.sleep,
) -> OperationResult:
    """
    Complete flash workflow: validate -> gate -> update -> report.

    Args:
        descriptor: Target device
        firmware: Raw firmware image
        safety_ctx: Safety context for gating
        transport: Transport to use; if None one is created (simulated
            when safety_ctx.simulate is set) and closed afterwards
        progress_cb: Optional callback receiving every ProgressEvent
        settle_delay: Seconds to wait after REBOOT
        cancel_event: Optional cancellation flag checked between chunks
        sleep: Delay function, replaceable for tests

    Returns:
        OperationResult with complete operation status
    """
    operation = "flash_firmware"
    sha256 = hashlib.sha256(firmware).hexdigest()

    with _capture_logs() as logs:
        try:
            validate_firmware(descriptor, firmware)
        except ValidationError as e:
            return OperationResult.failure(
                operation=operation,
                error=f"Invalid firmware: {e}",
                device=descriptor.description,
                bytes_len=len(firmware),
                hashes={"sha256": sha256},
                logs=logs,
            )

        if not safety_ctx.device:
            safety_ctx.device = descriptor.description

        try:
            require_write_permission(
                safety_ctx,
                bytes_length=len(firmware),
                offset=descriptor.qmk_offset,
            )
        except WritePermissionError as e:
            return OperationResult.failure(
                operation=operation,
                error=str(e),
                device=descriptor.description,
                bytes_len=len(firmware),
                hashes={"sha256": sha256},
                metadata={"details": e.details},
                logs=logs,
            )

        owns_transport = transport is None
        if transport is None:
            if safety_ctx.simulate:
                transport = HIDTransport(
                    descriptor.vendor_id,
                    descriptor.product_id,
                    device=SimulatedDevice(flash_size=descriptor.size_limit),
                )
            else:
                transport = HIDTransport(descriptor.vendor_id, descriptor.product_id)

        updater = SN32Updater(
            transport,
            descriptor,
            firmware,
            settle_delay=settle_delay,
            cancel_event=cancel_event,
            sleep=sleep,
        )
        result = OperationResult.success(
            operation=operation,
            device=descriptor.description,
            bytes_len=len(firmware),
            hashes={"sha256": sha256},
            logs=logs,
        )
        result.warnings.extend(safety_ctx.warnings)
        if safety_ctx.simulate:
            result.add_warning("Simulation mode: no device was written")

        events = 0
        try:
            for event in updater.run():
                events += 1
                if progress_cb:
                    progress_cb(event)
        except Exception as e:
            logger.error(f"Flash failed: {e}")
            result.add_error(str(e))
            result.metadata["error_type"] = type(e).__name__
            if updater.flash_started:
                result.add_warning(UNSAFE_STATE_WARNING)
        except KeyboardInterrupt:
            logger.error("Flash interrupted by user")
            result.add_error("Flash interrupted by user")
            result.metadata["error_type"] = "KeyboardInterrupt"
            if updater.flash_started:
                result.add_warning(UNSAFE_STATE_WARNING)
        finally:
            if owns_transport:
                transport.close()

        result.metadata.update({
            "state": updater.state.value,
            "events": events,
            "bytes_sent": updater.bytes_sent,
            "padded_size": len(updater.padded),
            "load_offset": descriptor.qmk_offset,
        })
        return result
