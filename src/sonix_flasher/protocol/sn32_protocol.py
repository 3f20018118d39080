"""
SN32 Bootloader Update Protocol

Drives a Sonix SN32 bootloader through a firmware update over HID
feature reports.

Protocol sequence:
1. Send INIT (0x55AA01) -> expect echo + 0xFAFAFAFA
2. Send PREPARE (0x55AA05, load offset, padded length) -> expect echo + 0xFAFAFAFA
3. Send the padded image as raw 64-byte reports (not acknowledged)
4. Send REBOOT (0x55AA07) (no response), then wait for the device to reset

The update is exposed as a generator of ProgressEvent values. The caller
pulls events to advance the state machine; any error ends the generator.
There is no rollback: once chunks have been written the application area
of the device is undefined until a full update succeeds.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional

from sonix_flasher.errors import SonixFlasherError
from sonix_flasher.models import DeviceDescriptor
from .codec import (
    CHUNK_SIZE,
    CMD_INIT,
    CMD_PREPARE,
    CMD_REBOOT,
    COMMAND_NAMES,
    EXPECTED_STATUS,
    build_command,
    format_word,
    iter_chunks,
    pad,
    parse_response,
)
from .hid_transport import HIDTransport

logger = logging.getLogger(__name__)

# Time for the keyboard to reset and re-enumerate after REBOOT
REBOOT_SETTLE_SECONDS = 5.0


class ProgressStep(str, Enum):
    """Step names reported to the caller."""
    INITIALIZE = "initialize"
    PREPARE = "prepare"
    FLASH = "flash"
    REBOOT = "reboot"
    COMPLETE = "complete"


class UpdateState(Enum):
    """Internal state of an update run."""
    IDLE = "idle"
    INITIALIZING = "initializing"
    PREPARING = "preparing"
    FLASHING = "flashing"
    REBOOTING = "rebooting"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    """One progress report: current step and fraction done (0.0 - 1.0)."""
    step: ProgressStep
    progress: float


class ProtocolError(SonixFlasherError):
    """Errors raised by the update protocol."""


class ProtocolMismatch(ProtocolError):
    """
    Bootloader answered with an unexpected command echo or status.

    Attributes:
        phase: Verb of the failing phase ("initialize", "prepare")
        field: Which word mismatched ("cmd" or "status")
        expected: Expected 32-bit value
        actual: Value read from the device
    """

    def __init__(self, phase: str, field: str, expected: int, actual: int):
        self.phase = phase
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(phase, field, expected, actual)

    def __str__(self) -> str:
        return (
            f"Failed to {self.phase}: response {self.field} is "
            f"{format_word(self.actual)}, expected {format_word(self.expected)}"
        )


class FlashCancelled(ProtocolError):
    """Update stopped by the caller between chunks."""

    def __init__(self, bytes_sent: int, total: int):
        self.bytes_sent = bytes_sent
        self.total = total
        super().__init__(
            f"Flash cancelled after {bytes_sent}/{total} bytes; "
            f"device firmware is incomplete"
        )


class SN32Updater:
    """
    One firmware update run against one device.

    A run is single-use: ``run()`` may be iterated once. The transport is
    exclusively owned for the duration of the run and is never closed here.

    Example:
        updater = SN32Updater(transport, descriptor, firmware)
        for event in updater.run():
            print(event.step.value, event.progress)
    """

    def __init__(
        self,
        transport: HIDTransport,
        descriptor: DeviceDescriptor,
        firmware: bytes,
        settle_delay: float = REBOOT_SETTLE_SECONDS,
        cancel_event=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            transport: Transport for the target device (opened on demand)
            descriptor: Registry entry for the target device
            firmware: Raw image; padded to the chunk size before transfer
            settle_delay: Seconds to wait after REBOOT
            cancel_event: Optional object with ``is_set()`` (e.g.
                threading.Event), checked before every chunk
            sleep: Delay function, replaceable for tests
        """
        self.transport = transport
        self.descriptor = descriptor
        self.firmware = bytes(firmware)
        self.padded = pad(self.firmware, CHUNK_SIZE)
        self.settle_delay = settle_delay
        self.cancel_event = cancel_event
        self.sleep = sleep

        self.state = UpdateState.IDLE
        self.error: Optional[BaseException] = None
        self.bytes_sent = 0

    @property
    def flash_started(self) -> bool:
        """True once any firmware chunk has been written."""
        return self.bytes_sent > 0

    def run(self) -> Iterator[ProgressEvent]:
        """Execute the update, yielding progress as each step is reached."""
        if self.state is not UpdateState.IDLE:
            raise RuntimeError(f"Update already run (state={self.state.value})")

        try:
            self.state = UpdateState.INITIALIZING
            yield ProgressEvent(ProgressStep.INITIALIZE, 0.0)
            self._initialize()

            self.state = UpdateState.PREPARING
            yield ProgressEvent(ProgressStep.PREPARE, 0.0)
            self._prepare()

            self.state = UpdateState.FLASHING
            yield ProgressEvent(ProgressStep.FLASH, 0.0)
            yield from self._flash()

            self.state = UpdateState.REBOOTING
            yield ProgressEvent(ProgressStep.REBOOT, 1.0)
            self._reboot()

            self.state = UpdateState.COMPLETE
            logger.info("Update complete")
            yield ProgressEvent(ProgressStep.COMPLETE, 1.0)
        except BaseException as e:
            self.error = e
            self.state = UpdateState.FAILED
            if isinstance(e, GeneratorExit):
                logger.warning(f"Update abandoned after {self.bytes_sent} bytes")
            raise

    def _initialize(self) -> None:
        logger.info(f"Initializing {self.descriptor.description}")
        self.transport.open()
        self.transport.send_report(build_command(CMD_INIT))
        self._expect_response(CMD_INIT, "initialize")

    def _prepare(self) -> None:
        logger.info(
            f"Preparing flash: offset=0x{self.descriptor.qmk_offset:X} "
            f"length={len(self.padded)}"
        )
        self.transport.send_report(
            build_command(CMD_PREPARE, self.descriptor.qmk_offset, len(self.padded))
        )
        self._expect_response(CMD_PREPARE, "prepare")

    def _flash(self) -> Iterator[ProgressEvent]:
        total = len(self.padded)
        logger.info(f"Writing {total} bytes in {total // CHUNK_SIZE} chunks")

        for offset, chunk in iter_chunks(self.padded, CHUNK_SIZE):
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise FlashCancelled(self.bytes_sent, total)

            self.transport.send_report(chunk)
            self.bytes_sent = offset + len(chunk)
            yield ProgressEvent(ProgressStep.FLASH, self.bytes_sent / total)

    def _reboot(self) -> None:
        logger.info("Rebooting device")
        self.transport.send_report(build_command(CMD_REBOOT))
        self.sleep(self.settle_delay)

    def _expect_response(self, command: int, phase: str) -> None:
        """Read a response and check the echoed command and status words."""
        response = self.transport.receive_report()
        echoed, status = parse_response(response)

        if echoed != command:
            error = ProtocolMismatch(phase, "cmd", command, echoed)
            logger.error(str(error))
            raise error
        if status != EXPECTED_STATUS:
            error = ProtocolMismatch(phase, "status", EXPECTED_STATUS, status)
            logger.error(str(error))
            raise error

        logger.debug(f"{COMMAND_NAMES[command]} acknowledged")


def run_update(
    descriptor: DeviceDescriptor,
    transport: HIDTransport,
    firmware: bytes,
    settle_delay: float = REBOOT_SETTLE_SECONDS,
    cancel_event=None,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[ProgressEvent]:
    """
    Flash firmware to a device, yielding progress updates.

    Nothing touches the device until the first event is requested.

    Args:
        descriptor: Registry entry for the device
        transport: Transport for the device handle
        firmware: Raw image (validate with validate_firmware first)
        settle_delay: Seconds to wait after REBOOT
        cancel_event: Optional cancellation flag checked between chunks
        sleep: Delay function, replaceable for tests

    Returns:
        Generator of ProgressEvent; raises on the first failure
    """
    updater = SN32Updater(
        transport,
        descriptor,
        firmware,
        settle_delay=settle_delay,
        cancel_event=cancel_event,
        sleep=sleep,
    )
    return updater.run()
