"""
Centralized parsing helpers for numeric CLI values.

The CLI must import these helpers rather than re-implement them.
"""

from typing import Optional


def parse_int(value: Optional[str]) -> Optional[int]:
    """
    Parse an integer from a string, supporting multiple formats.

    Accepts:
        - Decimal: "28736"
        - Hex with 0x prefix: "0x7040" or "0X7040"
        - Hex with h suffix: "7040h" or "7040H"
        - None or empty for "not given"

    Returns:
        Parsed integer, or None if value is None or empty.

    Raises:
        ValueError: If value cannot be parsed or is negative.
    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    try:
        if value.lower().startswith("0x"):
            result = int(value, 16)
        elif value.lower().endswith("h"):
            result = int(value[:-1], 16)
        else:
            result = int(value)
    except ValueError:
        raise ValueError(
            f"Invalid number '{value}'. Use decimal (28736), hex (0x7040), or suffix (7040h)."
        )

    if result < 0:
        raise ValueError(f"Invalid number '{value}'. Must not be negative.")
    return result
