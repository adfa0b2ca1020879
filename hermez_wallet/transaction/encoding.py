"""Canonical byte encodings of a layer-2 transaction.

Transaction id::

    0x02 || keccak256(from_idx[6] | token_id[4] | amount_f40[5] | nonce[5] | fee[1])

Hash to sign::

    poseidon(compressed_data, amount_f40[5] | to_eth_addr[20], to_bjj_y, 0, 0, 0)

where ``compressed_data`` packs 29 bytes:
``to_bjj_sign[1] | fee[1] | nonce[5] | token_id[4] | to_idx[6] | from_idx[6] |
chain_id[2] | signature_constant[4]``. The three trailing zeros are the
request-transaction fields, which this wallet never sets.
"""

from eth_utils import keccak

from hermez_wallet.exceptions import FieldRangeError, InvalidAmountError
from hermez_wallet.primitives import poseidon
from hermez_wallet.transaction.models import (
    MAX_FEE,
    MAX_IDX,
    MAX_NONCE,
    MAX_TOKEN_ID,
    PoolL2Tx,
)

TX_ID_PREFIX_L2 = 0x02
TX_ID_LEN = 33
SIGNATURE_CONSTANT = 3322668559

FLOAT40_THRESHOLD = 1 << 35
FLOAT40_MAX_EXP = 31

IDX_BYTES = 6
TOKEN_ID_BYTES = 4
NONCE_BYTES = 5
FLOAT40_BYTES = 5
CHAIN_ID_BYTES = 2


# =============================================================================
# Float40
# =============================================================================


def float40_encode(amount: int) -> int:
    """Encode ``amount`` as ``mantissa + exponent * 2^35`` (value = m * 10^e).

    Raises:
        InvalidAmountError: If the amount is negative or has more than 35
            bits of significant mantissa.
    """
    if amount < 0:
        raise InvalidAmountError(f"Amount must be non-negative, got {amount}")

    mantissa, exponent = amount, 0
    while mantissa % 10 == 0 and mantissa >= FLOAT40_THRESHOLD:
        mantissa //= 10
        exponent += 1

    if exponent > FLOAT40_MAX_EXP:
        raise InvalidAmountError(f"Amount {amount} exceeds the Float40 exponent range")
    if mantissa >= FLOAT40_THRESHOLD:
        raise InvalidAmountError(f"Amount {amount} has not enough precision for Float40")
    return mantissa + exponent * FLOAT40_THRESHOLD


def float40_decode(value: int) -> int:
    """Return the integer amount encoded by a Float40 value."""
    mantissa = value & (FLOAT40_THRESHOLD - 1)
    exponent = value >> 35
    return mantissa * 10**exponent


# =============================================================================
# Fixed-width fields
# =============================================================================


def _uint_bytes(name: str, value: int, size: int, maximum: int) -> bytes:
    if not 0 <= value <= maximum:
        raise FieldRangeError(f"{name} must be in [0, {maximum}], got {value}")
    return value.to_bytes(size, "big")


def idx_bytes(idx: int) -> bytes:
    return _uint_bytes("Account index", idx, IDX_BYTES, MAX_IDX)


def token_id_bytes(token_id: int) -> bytes:
    return _uint_bytes("Token id", token_id, TOKEN_ID_BYTES, MAX_TOKEN_ID)


def nonce_bytes(nonce: int) -> bytes:
    return _uint_bytes("Nonce", nonce, NONCE_BYTES, MAX_NONCE)


def fee_byte(fee: int) -> bytes:
    return _uint_bytes("Fee selector", fee, 1, MAX_FEE)


def amount_bytes(amount: int) -> bytes:
    return float40_encode(amount).to_bytes(FLOAT40_BYTES, "big")


def unpack_sign_y(bjj_comp: bytes) -> tuple[bool, int]:
    """Split a compressed point into (x sign, y) without decompressing."""
    sign = bool(bjj_comp[31] & 0x80)
    buf = bytearray(bjj_comp)
    buf[31] &= 0x7F
    return sign, int.from_bytes(buf, "little")


# =============================================================================
# Transaction id and hash to sign
# =============================================================================


def compute_tx_id(from_idx: int, token_id: int, amount: int, nonce: int, fee: int) -> bytes:
    """Compute the 33-byte layer-2 transaction id."""
    payload = (
        idx_bytes(from_idx)
        + token_id_bytes(token_id)
        + amount_bytes(amount)
        + nonce_bytes(nonce)
        + fee_byte(fee)
    )
    return bytes([TX_ID_PREFIX_L2]) + keccak(payload)


def tx_compressed_data(tx: PoolL2Tx, chain_id: int) -> int:
    """Pack the fixed-width fields of ``tx`` into one field element."""
    to_bjj_sign, _ = unpack_sign_y(tx.to_bjj)
    data = (
        bytes([1 if to_bjj_sign else 0])
        + fee_byte(tx.fee)
        + nonce_bytes(tx.nonce)
        + token_id_bytes(tx.token_id)
        + idx_bytes(tx.to_idx)
        + idx_bytes(tx.from_idx)
        + _uint_bytes("Chain id", chain_id, CHAIN_ID_BYTES, 2**16 - 1)
        + SIGNATURE_CONSTANT.to_bytes(4, "big")
    )
    return int.from_bytes(data, "big")


def hash_to_sign(tx: PoolL2Tx, chain_id: int) -> int:
    """Compute the Poseidon digest the sender signs."""
    compressed = tx_compressed_data(tx, chain_id)
    e1 = int.from_bytes(amount_bytes(tx.amount) + tx.to_eth_addr, "big")
    _, to_bjj_y = unpack_sign_y(tx.to_bjj)
    return poseidon([compressed, e1, to_bjj_y, 0, 0, 0])
