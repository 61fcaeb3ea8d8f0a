"""
Identifier generation for chains, records and log entries.
"""

import secrets
import time

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_chain_id(prefix: str) -> str:
    """``<prefix>-<base36 ms timestamp>-<8 hex chars>``, e.g. ``CHAIN-lx2k9f0a-1f3c9a0b``."""
    stamp = to_base36(time.time_ns() // 1_000_000)
    return f"{prefix}-{stamp}-{secrets.token_hex(4)}"


def sequence_id(base: str, counter: int) -> str:
    """Zero-padded, lexicographically ordered sequence identifier."""
    return f"{base}-{counter:08d}"
