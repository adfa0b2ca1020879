"""Hermez node API client."""

from hermez_wallet.client.client import HermezClient
from hermez_wallet.client.models import (
    ETH_TOKEN,
    Account,
    AccountList,
    Batch,
    Token,
    TxHistory,
    TxRequest,
    wei_to_ether,
)

__all__ = [
    "ETH_TOKEN",
    "Account",
    "AccountList",
    "Batch",
    "HermezClient",
    "Token",
    "TxHistory",
    "TxRequest",
    "wei_to_ether",
]
