"""
Random code and token generators — pure, side-effect-free functions.

All generators use the ``secrets`` module.
"""

from __future__ import annotations

import secrets


def generate_otp_code(length: int = 6) -> str:
    """Generate a uniformly random numeric OTP without a leading zero.

    For the default length the result lies in 100000-999999 inclusive.

    Args:
        length: Number of digits (default 6).

    Returns:
        String of decimal digits.
    """
    low = 10 ** (length - 1)
    high = 10**length - 1
    return str(low + secrets.randbelow(high - low + 1))


def generate_token_id() -> str:
    """Return a random hex identifier for the JWT ``jti`` claim."""
    return secrets.token_hex(16)
