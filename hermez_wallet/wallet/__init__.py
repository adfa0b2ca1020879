"""Wallet derivation module.

Derives Hermez layer-2 identities from Ethereum mnemonics.
"""

from hermez_wallet.wallet.deriver import (
    Identity,
    KeyPair,
    WalletDeriver,
    derive_identity,
)

__all__ = ["Identity", "KeyPair", "WalletDeriver", "derive_identity"]
