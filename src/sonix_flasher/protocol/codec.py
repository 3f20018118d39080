"""
SN32 Bootloader Wire Codec

Every exchange with the bootloader is a 64-byte HID feature report.
Command reports carry little-endian 32-bit words:

    [ command (u32) | arg0 (u32) | arg1 (u32) | ... | zero padding ]

Responses are read back as a full 64-byte report where word 0 echoes the
command and word 1 carries the status.
"""

import struct
from typing import List, Sequence, Tuple

# Report geometry
REPORT_ID = 0x00
REPORT_SIZE = 64
RESPONSE_LEN = 64
CHUNK_SIZE = 64

# Commands
CMD_BASE = 0x55AA00
CMD_INIT = CMD_BASE + 1
CMD_PREPARE = CMD_BASE + 5
CMD_REBOOT = CMD_BASE + 7

EXPECTED_STATUS = 0xFAFAFAFA

COMMAND_NAMES = {
    CMD_INIT: "INIT",
    CMD_PREPARE: "PREPARE",
    CMD_REBOOT: "REBOOT",
}

_WORD = struct.Struct("<I")


def format_word(value: int) -> str:
    """Render a 32-bit word as ``0x`` followed by 8 lowercase hex digits."""
    return f"0x{value:08x}"


def pack(*words: int) -> bytes:
    """
    Pack 32-bit words little-endian, without padding.

    Args:
        words: Unsigned 32-bit values

    Returns:
        ``4 * len(words)`` bytes

    Raises:
        ValueError: If a value does not fit in an unsigned 32-bit word
    """
    try:
        return struct.pack(f"<{len(words)}I", *words)
    except struct.error as e:
        raise ValueError(f"Cannot pack words {[hex(w) for w in words]}: {e}")


def unpack(data: bytes) -> List[int]:
    """
    Unpack little-endian 32-bit words.

    Raises:
        ValueError: If the length is not a multiple of 4
    """
    if len(data) % 4:
        raise ValueError(f"Cannot unpack {len(data)} bytes: length must be a multiple of 4")
    return [w for (w,) in _WORD.iter_unpack(bytes(data))]


def pad(data: bytes, chunk_size: int = CHUNK_SIZE) -> bytes:
    """Zero-pad data up to the next multiple of chunk_size. Never truncates."""
    remainder = len(data) % chunk_size
    if remainder == 0:
        return bytes(data)
    return bytes(data) + bytes(chunk_size - remainder)


def build_command(command: int, *args: int) -> bytes:
    """Build an unpadded command frame: command word followed by argument words."""
    return pack(command, *args)


def parse_response(data: bytes) -> Tuple[int, int]:
    """
    Split a response report into (echoed command, status).

    Raises:
        ValueError: If the report is too short to hold both words
    """
    if len(data) < 8:
        raise ValueError(f"Response too short: {len(data)} bytes")
    command, status = unpack(bytes(data[:8]))
    return command, status


def iter_chunks(data: bytes, chunk_size: int = CHUNK_SIZE):
    """Yield (offset, chunk) pairs over data in order."""
    for offset in range(0, len(data), chunk_size):
        yield offset, data[offset:offset + chunk_size]
