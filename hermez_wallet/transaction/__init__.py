"""Layer-2 transaction construction and signing."""

from hermez_wallet.transaction.builder import ETH_TOKEN_ID, TransactionBuilder
from hermez_wallet.transaction.encoding import (
    compute_tx_id,
    float40_decode,
    float40_encode,
    hash_to_sign,
)
from hermez_wallet.transaction.models import (
    EMPTY_BJJ_COMP,
    EMPTY_ETH_ADDR,
    EXIT_IDX,
    FF_ETH_ADDR,
    Destination,
    PoolL2Tx,
    ToExit,
    ToIndex,
    ToL1Address,
    ToL2Address,
    TxType,
)
from hermez_wallet.transaction.signer import (
    sign_hash,
    sign_transaction,
    verify_hash,
    verify_transaction,
)

__all__ = [
    "EMPTY_BJJ_COMP",
    "EMPTY_ETH_ADDR",
    "ETH_TOKEN_ID",
    "EXIT_IDX",
    "FF_ETH_ADDR",
    "Destination",
    "PoolL2Tx",
    "ToExit",
    "ToIndex",
    "ToL1Address",
    "ToL2Address",
    "TransactionBuilder",
    "TxType",
    "compute_tx_id",
    "float40_decode",
    "float40_encode",
    "hash_to_sign",
    "sign_hash",
    "sign_transaction",
    "verify_hash",
    "verify_transaction",
]
