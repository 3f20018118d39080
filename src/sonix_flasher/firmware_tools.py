"""
Firmware image tools for SN32 keyboards.

Loads raw ``.bin`` images and checks them for structural plausibility
before anything is written to a device:

- The image plus the model's load offset must fit in flash
- The image must hold at least a full vector table region (256 bytes)
- The initial stack pointer must point into SRAM
- Reset, NMI and HardFault vectors must be Thumb addresses (bit 0 set)
"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

from sonix_flasher.errors import SonixFlasherError
from sonix_flasher.models import DeviceDescriptor
from sonix_flasher.protocol.codec import CHUNK_SIZE, pad, unpack

logger = logging.getLogger(__name__)

MIN_FIRMWARE_SIZE = 0x100
VECTOR_TABLE_BYTES = 16

# Valid initial stack pointer range (SN32 SRAM)
SRAM_START = 0x20000000
SRAM_STACK_TOP = 0x20000800


class ValidationError(SonixFlasherError):
    """Firmware image rejected before flashing."""


class ImageTooLarge(ValidationError):
    """Image plus load offset exceeds the device flash ceiling."""

    def __init__(self, got: int, max_allowed: int):
        self.got = got
        self.max_allowed = max_allowed
        super().__init__(
            f"Firmware is too large: 0x{got:X} max allowed is 0x{max_allowed:X}"
        )


class ImageTooSmall(ValidationError):
    """Image is shorter than the minimum plausible size."""

    def __init__(self, got: int, minimum: int = MIN_FIRMWARE_SIZE):
        self.got = got
        self.minimum = minimum
        super().__init__("Firmware is too small")


class CorruptImage(ValidationError):
    """Vector table does not look like a Cortex-M image."""

    def __init__(self, reason: str = ""):
        self.reason = reason
        message = "Firmware appears to be corrupted"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


@dataclass(frozen=True)
class VectorTable:
    """Leading words of a Cortex-M image."""
    stack_pointer: int
    reset: int
    nmi: int
    hard_fault: int

    @property
    def vectors(self):
        return (self.reset, self.nmi, self.hard_fault)

    @property
    def stack_pointer_valid(self) -> bool:
        return SRAM_START <= self.stack_pointer <= SRAM_STACK_TOP

    @property
    def thumb_bits_valid(self) -> bool:
        return all(v & 1 for v in self.vectors)


def parse_vector_table(image: bytes) -> VectorTable:
    """
    Decode the first 16 bytes of an image.

    Raises:
        ValueError: If the image is shorter than 16 bytes
    """
    if len(image) < VECTOR_TABLE_BYTES:
        raise ValueError(f"Image too short for a vector table: {len(image)} bytes")
    return VectorTable(*unpack(image[:VECTOR_TABLE_BYTES]))


def validate_firmware(descriptor: DeviceDescriptor, image: bytes) -> None:
    """
    Check an image against a device's constraints.

    Checks run in order and stop at the first failure. The size ceiling
    uses the unpadded length; padding only happens at transfer time.

    Args:
        descriptor: Target device
        image: Raw firmware bytes (not modified)

    Raises:
        ImageTooLarge: len(image) + qmk_offset > size_limit
        ImageTooSmall: len(image) < 256
        CorruptImage: Stack pointer outside SRAM or a vector without bit 0
    """
    if len(image) + descriptor.qmk_offset > descriptor.size_limit:
        raise ImageTooLarge(len(image), descriptor.max_firmware_size)

    if len(image) < MIN_FIRMWARE_SIZE:
        raise ImageTooSmall(len(image))

    table = parse_vector_table(image)

    if not table.stack_pointer_valid:
        raise CorruptImage(f"stack pointer 0x{table.stack_pointer:08x} outside SRAM")
    if not table.thumb_bits_valid:
        raise CorruptImage("exception vector missing Thumb bit")

    logger.debug(
        f"Firmware OK for {descriptor.description}: {len(image)} bytes, "
        f"SP=0x{table.stack_pointer:08x} reset=0x{table.reset:08x}"
    )


def load_firmware(path: Union[str, Path]) -> bytes:
    """
    Read a raw firmware image from disk.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Firmware file not found: {path}")
    data = path.read_bytes()
    logger.debug(f"Loaded {len(data)} bytes from {path.name}")
    return data


def describe_firmware(descriptor: DeviceDescriptor, image: bytes) -> Dict[str, Any]:
    """Summarize an image for display; does not validate it."""
    padded_len = len(pad(image, CHUNK_SIZE))
    info: Dict[str, Any] = {
        "device": descriptor.description,
        "size": len(image),
        "padded_size": padded_len,
        "chunks": padded_len // CHUNK_SIZE,
        "load_offset": descriptor.qmk_offset,
        "max_size": descriptor.max_firmware_size,
        "free": descriptor.max_firmware_size - len(image),
        "sha256": hashlib.sha256(image).hexdigest(),
    }
    if len(image) >= VECTOR_TABLE_BYTES:
        table = parse_vector_table(image)
        info["stack_pointer"] = f"0x{table.stack_pointer:08x}"
        info["vectors"] = [f"0x{v:08x}" for v in table.vectors]
    return info
