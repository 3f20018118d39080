"""
Sonix Flasher - Firmware updater for Sonix SN32 keyboards in bootloader mode

Validates firmware images and flashes them over HID feature reports.
"""

__version__ = "0.1.0"

from sonix_flasher.errors import SonixFlasherError
from sonix_flasher.models import DeviceDescriptor, SUPPORTED_DEVICES, lookup, get_device
from sonix_flasher.firmware_tools import (
    validate_firmware,
    load_firmware,
    ValidationError,
    ImageTooLarge,
    ImageTooSmall,
    CorruptImage,
)
from sonix_flasher.protocol import (
    HIDTransport,
    TransportError,
    OversizedReport,
    ShortRead,
    DeviceLost,
    ProgressEvent,
    ProgressStep,
    ProtocolError,
    ProtocolMismatch,
    FlashCancelled,
    run_update,
)

__all__ = [
    "SonixFlasherError",
    "DeviceDescriptor",
    "SUPPORTED_DEVICES",
    "lookup",
    "get_device",
    "validate_firmware",
    "load_firmware",
    "ValidationError",
    "ImageTooLarge",
    "ImageTooSmall",
    "CorruptImage",
    "HIDTransport",
    "TransportError",
    "OversizedReport",
    "ShortRead",
    "DeviceLost",
    "ProgressEvent",
    "ProgressStep",
    "ProtocolError",
    "ProtocolMismatch",
    "FlashCancelled",
    "run_update",
    "__version__",
]
