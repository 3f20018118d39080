"""Bootloader protocol layer - wire codec, HID transport and update state machine."""

from .codec import (
    CHUNK_SIZE,
    REPORT_SIZE,
    REPORT_ID,
    CMD_INIT,
    CMD_PREPARE,
    CMD_REBOOT,
    EXPECTED_STATUS,
    pack,
    unpack,
    pad,
    build_command,
    format_word,
)
from .hid_transport import (
    HIDTransport,
    TransportError,
    OversizedReport,
    ShortRead,
    DeviceLost,
    DeviceOpenError,
)
from .sn32_protocol import (
    SN32Updater,
    ProgressEvent,
    ProgressStep,
    UpdateState,
    ProtocolError,
    ProtocolMismatch,
    FlashCancelled,
    REBOOT_SETTLE_SECONDS,
    run_update,
)
from .simulated import SimulatedDevice

__all__ = [
    # Codec
    "CHUNK_SIZE",
    "REPORT_SIZE",
    "REPORT_ID",
    "CMD_INIT",
    "CMD_PREPARE",
    "CMD_REBOOT",
    "EXPECTED_STATUS",
    "pack",
    "unpack",
    "pad",
    "build_command",
    "format_word",
    # Transport
    "HIDTransport",
    "TransportError",
    "OversizedReport",
    "ShortRead",
    "DeviceLost",
    "DeviceOpenError",
    # Update protocol
    "SN32Updater",
    "ProgressEvent",
    "ProgressStep",
    "UpdateState",
    "ProtocolError",
    "ProtocolMismatch",
    "FlashCancelled",
    "REBOOT_SETTLE_SECONDS",
    "run_update",
    # Simulation
    "SimulatedDevice",
]
