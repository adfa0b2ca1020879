"""Hermez address codec.

Wire formats:

- layer-2 (Baby JubJub) address: ``hez:`` + unpadded base64url of the 32-byte
  compressed point followed by a one-byte checksum (44 characters);
- layer-1 (Ethereum) address: ``hez:0x`` + 40 hex characters;
- account index: ``hez:SYMBOL:N``.
"""

import base64
import binascii
import re

from eth_utils import is_checksum_address, to_checksum_address

from hermez_wallet.exceptions import ChecksumError, FormatError

HEZ_PREFIX = "hez:"

BJJ_COMP_LEN = 32
L2_DECODED_LEN = BJJ_COMP_LEN + 1
L2_ENCODED_LEN = 44
ETH_ADDR_LEN = 20

_BASE64URL_RE = re.compile(r"[A-Za-z0-9_-]+")
_ETH_ADDR_RE = re.compile(r"0x[0-9a-fA-F]{40}")


def _strip_prefix(s: str) -> str:
    return s[len(HEZ_PREFIX) :] if s.startswith(HEZ_PREFIX) else s


def checksum(point: bytes) -> int:
    """Return the 8-bit wraparound sum of the point bytes."""
    return sum(point) & 0xFF


def encode_l2_address(point: bytes) -> str:
    """Encode a compressed Baby JubJub point as a ``hez:`` address.

    Raises:
        FormatError: If the point is not 32 bytes.
    """
    if len(point) != BJJ_COMP_LEN:
        raise FormatError(f"Compressed point must be {BJJ_COMP_LEN} bytes, got {len(point)}")
    payload = bytes(point) + bytes([checksum(point)])
    return HEZ_PREFIX + base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode_l2_address(s: str) -> bytes:
    """Decode a ``hez:`` layer-2 address into its 32-byte compressed point.

    The ``hez:`` prefix is optional.

    Raises:
        FormatError: If the string is not 44 base64url characters decoding
            to 33 bytes.
        ChecksumError: If the trailing checksum byte does not match.
    """
    encoded = _strip_prefix(s)
    if len(encoded) != L2_ENCODED_LEN or not _BASE64URL_RE.fullmatch(encoded):
        raise FormatError(f"Invalid BJJ address format, expected ^hez:[A-Za-z0-9_-]{{44}}$: {s!r}")

    try:
        # 44 chars are eleven full quanta, no padding involved
        decoded = base64.urlsafe_b64decode(encoded)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Invalid base64url in BJJ address: {s!r}") from e

    if len(decoded) != L2_DECODED_LEN:
        raise FormatError(f"BJJ address must decode to {L2_DECODED_LEN} bytes, got {len(decoded)}")

    point = decoded[:BJJ_COMP_LEN]
    if decoded[BJJ_COMP_LEN] != checksum(point):
        raise ChecksumError(f"Checksum verification failed for BJJ address: {s!r}")
    return point


def encode_l1_address(address: bytes) -> str:
    """Encode a 20-byte Ethereum address as ``hez:0x...`` (EIP-55 checksummed).

    Raises:
        FormatError: If the address is not 20 bytes.
    """
    if len(address) != ETH_ADDR_LEN:
        raise FormatError(f"Ethereum address must be {ETH_ADDR_LEN} bytes, got {len(address)}")
    return HEZ_PREFIX + to_checksum_address(address)


def decode_l1_address(s: str) -> bytes:
    """Decode ``hez:0x...`` (prefix optional) into 20 address bytes.

    Raises:
        FormatError: If the string is not 0x followed by 40 hex characters.
        ChecksumError: If the string is mixed case and fails EIP-55.
    """
    hex_addr = _strip_prefix(s)
    if not _ETH_ADDR_RE.fullmatch(hex_addr):
        raise FormatError(f"Invalid Ethereum address format: {s!r}")

    body = hex_addr[2:]
    mixed_case = body != body.lower() and body != body.upper()
    if mixed_case and not is_checksum_address(hex_addr):
        raise ChecksumError(f"EIP-55 checksum verification failed: {s!r}")
    return bytes.fromhex(body)


def encode_account_index(symbol: str, index: int) -> str:
    """Format a token-scoped account index as ``hez:SYMBOL:N``."""
    return f"{HEZ_PREFIX}{symbol}:{index}"


def decode_account_index(s: str) -> tuple[str, int]:
    """Parse ``hez:SYMBOL:N`` into ``(symbol, index)``.

    The symbol is returned as-is and not checked against any token list.

    Raises:
        FormatError: If there are not exactly two segments or N is not a
            non-negative integer.
    """
    segments = _strip_prefix(s).split(":")
    if len(segments) != 2:
        raise FormatError(f"Account index must be hez:SYMBOL:N: {s!r}")

    symbol, raw_index = segments
    if not raw_index.isdigit() or not raw_index.isascii():
        raise FormatError(f"Account index is not a non-negative integer: {s!r}")
    return symbol, int(raw_index)
