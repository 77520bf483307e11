import hashlib
import os

from .errors import ValidationError

# Size of the ticket and payout preimages, and of their SHA256 hashes
PREIMAGE_SIZE: int = 32


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def preimage_random() -> bytes:
    """Generates a fresh random preimage."""
    return os.urandom(PREIMAGE_SIZE)


def preimage_from_hex(s: str) -> bytes:
    """Parses a hex-encoded preimage, which must decode to exactly PREIMAGE_SIZE bytes."""
    try:
        preimage = bytes.fromhex(s)
    except ValueError as e:
        raise ValidationError(f"Invalid hex preimage: {e}") from e

    if len(preimage) != PREIMAGE_SIZE:
        raise ValidationError(f"Preimage must be {PREIMAGE_SIZE} bytes, got {len(preimage)}")
    return preimage


def check_hash(h: bytes, name: str = "hash") -> bytes:
    if not isinstance(h, bytes) or len(h) != PREIMAGE_SIZE:
        raise ValidationError(f"{name} must be {PREIMAGE_SIZE} bytes")
    return h
