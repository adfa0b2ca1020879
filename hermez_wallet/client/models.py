"""Node API models for the Hermez REST interface."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from hermez_wallet.codec import (
    encode_account_index,
    encode_l1_address,
    encode_l2_address,
    decode_account_index,
)
from hermez_wallet.transaction.models import (
    EMPTY_BJJ_COMP,
    EMPTY_ETH_ADDR,
    PoolL2Tx,
    TxType,
)

_API_MODEL_CONFIG = {"frozen": True, "populate_by_name": True}


class Token(BaseModel):
    """Token registered on the rollup."""

    model_config = _API_MODEL_CONFIG

    token_id: int = Field(..., alias="id", ge=0)
    name: str = Field(..., description="Token name")
    symbol: str = Field(..., description="Token symbol (display only)")
    decimals: int = Field(..., ge=0)
    eth_addr: str = Field(..., alias="ethereumAddress")
    eth_block_num: int = Field(default=0, alias="ethereumBlockNum")
    usd: float | None = Field(default=None, alias="USD")

    def to_decimal(self, amount: int) -> Decimal:
        """Convert an amount in the smallest unit to whole tokens."""
        return Decimal(amount).scaleb(-self.decimals)


ETH_TOKEN = Token(
    token_id=0,
    name="Ether",
    symbol="ETH",
    decimals=18,
    eth_addr="0x0000000000000000000000000000000000000000",
    eth_block_num=0,
)


def wei_to_ether(wei: int) -> Decimal:
    """Convert a wei amount to ether."""
    return ETH_TOKEN.to_decimal(wei)


class Account(BaseModel):
    """Rollup account as returned by ``GET /v1/accounts``."""

    model_config = _API_MODEL_CONFIG

    account_index: str = Field(..., alias="accountIndex", description="hez:SYMBOL:N")
    bjj: str = Field(..., description="Owner layer-2 address")
    hez_eth_address: str = Field(..., alias="hezEthereumAddress")
    nonce: int = Field(..., ge=0)
    balance: int = Field(..., ge=0)
    token: Token

    @property
    def idx(self) -> int:
        """Numeric account index parsed from ``account_index``."""
        _, idx = decode_account_index(self.account_index)
        return idx


class AccountList(BaseModel):
    model_config = _API_MODEL_CONFIG

    accounts: list[Account] = Field(default_factory=list)
    pending_items: int = Field(default=0, alias="pendingItems")

    def for_token(self, token_id: int) -> Account | None:
        """Return the first account holding ``token_id``."""
        for account in self.accounts:
            if account.token.token_id == token_id:
                return account
        return None


class Batch(BaseModel):
    """Forged batch summary."""

    model_config = _API_MODEL_CONFIG

    batch_num: int = Field(..., alias="batchNum")
    eth_block_num: int = Field(..., alias="ethereumBlockNum")
    eth_block_hash: str = Field(default="", alias="ethereumBlockHash")
    timestamp: datetime
    forger_addr: str = Field(default="", alias="forgerAddr")
    collected_fees: dict[str, str] = Field(default_factory=dict, alias="collectedFees")
    total_fees_usd: float | None = Field(default=None, alias="historicTotalCollectedFeesUSD")
    state_root: str = Field(default="", alias="stateRoot")
    num_accounts: int = Field(default=0, alias="numAccounts")
    exit_root: str = Field(default="", alias="exitRoot")
    forge_l1_txs_num: int | None = Field(default=None, alias="forgeL1TransactionsNum")
    slot_num: int = Field(default=0, alias="slotNum")
    forged_txs: int = Field(default=0, alias="forgedTransactions")


class BatchList(BaseModel):
    model_config = _API_MODEL_CONFIG

    batches: list[Batch] = Field(default_factory=list)
    pending_items: int = Field(default=0, alias="pendingItems")


class TxHistory(BaseModel):
    """Transaction from the history or the pool endpoints."""

    model_config = _API_MODEL_CONFIG

    tx_id: str = Field(..., alias="id")
    type: str = Field(..., description="Transaction type as reported by the node")
    batch_num: int | None = Field(default=None, alias="batchNum")
    from_account_index: str | None = Field(default=None, alias="fromAccountIndex")
    from_bjj: str | None = Field(default=None, alias="fromBJJ")
    from_hez_eth_address: str | None = Field(default=None, alias="fromHezEthereumAddress")
    to_account_index: str | None = Field(default=None, alias="toAccountIndex")
    to_bjj: str | None = Field(default=None, alias="toBJJ")
    to_hez_eth_address: str | None = Field(default=None, alias="toHezEthereumAddress")
    amount: int = Field(default=0, ge=0)
    token: Token | None = None
    timestamp: datetime | None = None


class TxHistoryList(BaseModel):
    model_config = _API_MODEL_CONFIG

    transactions: list[TxHistory] = Field(default_factory=list)
    pending_items: int = Field(default=0, alias="pendingItems")


class TxRequest(BaseModel):
    """Payload for ``POST /v1/transactions-pool``."""

    model_config = _API_MODEL_CONFIG

    tx_id: str = Field(..., alias="id")
    type: TxType
    token_id: int = Field(..., alias="tokenId")
    from_account_index: str = Field(..., alias="fromAccountIndex")
    to_account_index: str | None = Field(default=None, alias="toAccountIndex")
    to_hez_eth_address: str | None = Field(default=None, alias="toHezEthereumAddress")
    to_bjj: str | None = Field(default=None, alias="toBjj")
    amount: str = Field(..., description="Decimal string")
    fee: int
    nonce: int
    signature: str

    @classmethod
    def from_transaction(cls, tx: PoolL2Tx, token: Token) -> "TxRequest":
        """Flatten a signed transaction into the submission payload.

        Unused destination fields are sent as null.

        Raises:
            ValueError: If the transaction is unsigned or for another token.
        """
        if tx.signature is None:
            raise ValueError(f"Transaction {tx.tx_id_hex} is not signed")
        if tx.token_id != token.token_id:
            raise ValueError(
                f"Transaction token {tx.token_id} does not match {token.symbol} ({token.token_id})"
            )

        return cls(
            tx_id=tx.tx_id_hex,
            type=tx.type,
            token_id=tx.token_id,
            from_account_index=encode_account_index(token.symbol, tx.from_idx),
            to_account_index=(
                encode_account_index(token.symbol, tx.to_idx) if tx.to_idx != 0 else None
            ),
            to_hez_eth_address=(
                encode_l1_address(tx.to_eth_addr) if tx.to_eth_addr != EMPTY_ETH_ADDR else None
            ),
            to_bjj=encode_l2_address(tx.to_bjj) if tx.to_bjj != EMPTY_BJJ_COMP else None,
            amount=str(tx.amount),
            fee=tx.fee,
            nonce=tx.nonce,
            signature=tx.signature.hex(),
        )

    def to_payload(self) -> dict[str, object]:
        """Return the JSON body with API field names."""
        return self.model_dump(by_alias=True, mode="json")
