"""Public booking number generation."""

import secrets
from datetime import date

# 32 symbols, no 0, 1, I or O
ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
SUFFIX_LENGTH = 6


def generate_booking_number(day: date) -> str:
    """
    Generate a booking number for an appointment.

    Format is ``YYYYMMDD`` of the booking day followed by six random
    characters. Uniqueness is enforced by the database; callers retry on
    collision.

    Args:
        day: Date the booking is made (business timezone)

    Returns:
        Booking number such as ``20240601K7Q2MZ``
    """
    suffix = "".join(secrets.choice(ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{day:%Y%m%d}{suffix}"


def is_booking_number(value: str) -> bool:
    """Check that a string has the shape of a booking number."""
    if len(value) != 8 + SUFFIX_LENGTH:
        return False
    prefix, suffix = value[:8], value[8:]
    return prefix.isdigit() and all(ch in ALPHABET for ch in suffix)
