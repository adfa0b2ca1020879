"""Cryptographic primitives used by the Hermez layer-2 identity.

Provides BLAKE-512, the Poseidon hash and Baby JubJub EdDSA-Poseidon.
"""

from hermez_wallet.primitives.babyjub import (
    B8,
    SUB_ORDER,
    Point,
    PrivateKey,
    Signature,
    verify_poseidon,
)
from hermez_wallet.primitives.blake512 import blake512
from hermez_wallet.primitives.poseidon import FIELD_PRIME, poseidon

__all__ = [
    "B8",
    "FIELD_PRIME",
    "SUB_ORDER",
    "Point",
    "PrivateKey",
    "Signature",
    "blake512",
    "poseidon",
    "verify_poseidon",
]
