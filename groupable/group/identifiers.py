"""
Group identifier codec.

Group identifiers are 16 random bytes. They are stored and displayed as a
fixed prefix followed by the lowercase hex of the bytes, which also lets the
contact directory tell group keys apart from individual member identifiers.
"""

import binascii
import logging
import os
from typing import Callable, Optional

from groupable.group.errors import AllocationFailure, MalformedIdentifier

LOGGER = logging.getLogger(__name__)

GROUP_ID_LENGTH = 16
ENCODED_GROUP_PREFIX = "__textsecure_group__!"


def encode(raw: bytes) -> str:
    """
    Encode a raw group identifier for storage.

    Args:
        raw: The 16-byte group identifier

    Returns:
        The prefixed hex encoding of the identifier

    Raises:
        MalformedIdentifier: If raw is not exactly 16 bytes
    """
    if not isinstance(raw, (bytes, bytearray)) or len(raw) != GROUP_ID_LENGTH:
        raise MalformedIdentifier(f"Group id must be {GROUP_ID_LENGTH} bytes")
    return ENCODED_GROUP_PREFIX + bytes(raw).hex()


def decode(text: str) -> bytes:
    """
    Decode a stored group identifier back to its raw bytes.

    Args:
        text: An encoded group identifier

    Returns:
        The 16-byte group identifier

    Raises:
        MalformedIdentifier: If text is not a valid encoding of 16 bytes
    """
    if not is_encoded(text):
        raise MalformedIdentifier(f"Not an encoded group id: {text!r}")

    try:
        raw = binascii.unhexlify(text[len(ENCODED_GROUP_PREFIX):])
    except (binascii.Error, ValueError) as e:
        raise MalformedIdentifier(f"Invalid group id encoding {text!r}: {e}") from e

    if len(raw) != GROUP_ID_LENGTH:
        raise MalformedIdentifier(f"Decoded group id is {len(raw)} bytes, expected {GROUP_ID_LENGTH}")
    return raw


def is_encoded(text: Optional[str]) -> bool:
    return isinstance(text, str) and text.startswith(ENCODED_GROUP_PREFIX)


def allocate(random_source: Optional[Callable[[int], bytes]] = None) -> bytes:
    """
    Allocate a new group identifier from a secure random source.

    Args:
        random_source: Callable returning n random bytes, defaults to os.urandom

    Returns:
        A fresh 16-byte group identifier

    Raises:
        AllocationFailure: If the random source is unavailable or misbehaves
    """
    source = random_source or os.urandom
    try:
        group_id = source(GROUP_ID_LENGTH)
    except NotImplementedError as e:
        LOGGER.error(f"No secure random source available: {e}")
        raise AllocationFailure(f"No secure random source available: {e}") from e

    if not isinstance(group_id, (bytes, bytearray)) or len(group_id) != GROUP_ID_LENGTH:
        raise AllocationFailure(f"Random source did not return {GROUP_ID_LENGTH} bytes")
    return bytes(group_id)
