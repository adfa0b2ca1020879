"""Layer-2 transaction models."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

# Reserved account indexes
EXIT_IDX = 1
USER_IDX_THRESHOLD = 256

# Destination sentinels
EMPTY_ETH_ADDR = bytes(20)
FF_ETH_ADDR = b"\xff" * 20
EMPTY_BJJ_COMP = bytes(32)

# Wire widths
MAX_IDX = 2**48 - 1
MAX_TOKEN_ID = 2**32 - 1
MAX_NONCE = 2**40 - 1
MAX_FEE = 255


class TxType(str, Enum):
    """Layer-2 transaction type tag."""

    TRANSFER = "Transfer"
    TRANSFER_TO_BJJ = "TransferToBJJ"
    TRANSFER_TO_ETH_ADDR = "TransferToEthAddr"
    EXIT = "Exit"


# =============================================================================
# Destinations
# =============================================================================
#
# Exactly one destination kind is active per transaction. They are flattened
# to the (to_idx, to_eth_addr, to_bjj) sentinel encoding only when the
# transaction is assembled.


@dataclass(frozen=True)
class ToIndex:
    """Transfer to an existing rollup account."""

    idx: int

    tx_type = TxType.TRANSFER

    def flatten(self) -> tuple[int, bytes, bytes]:
        return self.idx, EMPTY_ETH_ADDR, EMPTY_BJJ_COMP


@dataclass(frozen=True)
class ToL2Address:
    """Transfer to a Baby JubJub public key."""

    public_key: bytes

    tx_type = TxType.TRANSFER_TO_BJJ

    def flatten(self) -> tuple[int, bytes, bytes]:
        return 0, FF_ETH_ADDR, self.public_key


@dataclass(frozen=True)
class ToL1Address:
    """Transfer to an Ethereum address."""

    address: bytes

    tx_type = TxType.TRANSFER_TO_ETH_ADDR

    def flatten(self) -> tuple[int, bytes, bytes]:
        return 0, self.address, EMPTY_BJJ_COMP


@dataclass(frozen=True)
class ToExit:
    """Move funds to the exit tree (layer-2 to layer-1)."""

    tx_type = TxType.EXIT

    def flatten(self) -> tuple[int, bytes, bytes]:
        return EXIT_IDX, FF_ETH_ADDR, EMPTY_BJJ_COMP


Destination = ToIndex | ToL2Address | ToL1Address | ToExit


def infer_tx_type(to_idx: int, to_eth_addr: bytes, to_bjj: bytes) -> TxType | None:
    """Return the type a receiving node infers from the destination fields.

    Returns None for field combinations no variant produces.
    """
    if to_idx >= USER_IDX_THRESHOLD:
        return TxType.TRANSFER
    if to_idx == EXIT_IDX:
        return TxType.EXIT
    if to_idx == 0:
        if to_bjj != EMPTY_BJJ_COMP and to_eth_addr == FF_ETH_ADDR:
            return TxType.TRANSFER_TO_BJJ
        if to_eth_addr not in (FF_ETH_ADDR, EMPTY_ETH_ADDR):
            return TxType.TRANSFER_TO_ETH_ADDR
    return None


# =============================================================================
# Pool Transaction
# =============================================================================


class PoolL2Tx(BaseModel):
    """Layer-2 transaction as submitted to the coordinator pool.

    Immutable once built; the signature is attached by copying.
    """

    model_config = {"frozen": True}

    tx_id: bytes = Field(..., min_length=33, max_length=33, description="Transaction ID")
    type: TxType = Field(..., description="Transaction type tag")
    from_idx: int = Field(..., ge=USER_IDX_THRESHOLD, le=MAX_IDX)
    to_idx: int = Field(..., ge=0, le=MAX_IDX)
    to_eth_addr: bytes = Field(..., min_length=20, max_length=20)
    to_bjj: bytes = Field(..., min_length=32, max_length=32)
    token_id: int = Field(..., ge=0, le=MAX_TOKEN_ID)
    amount: int = Field(..., description="Amount in the token's smallest unit")
    fee: int = Field(..., ge=0, le=MAX_FEE, description="Fee selector")
    nonce: int = Field(..., ge=0, le=MAX_NONCE)
    signature: bytes | None = Field(default=None, description="Compressed EdDSA signature")

    @property
    def tx_id_hex(self) -> str:
        return f"0x{self.tx_id.hex()}"

    @property
    def signature_hex(self) -> str | None:
        if self.signature is None:
            return None
        return self.signature.hex()

    @property
    def is_signed(self) -> bool:
        return self.signature is not None
