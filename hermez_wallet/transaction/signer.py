"""EdDSA-Poseidon signing of layer-2 transactions."""

from hermez_wallet.exceptions import SigningError, TransactionError
from hermez_wallet.primitives import Point, PrivateKey, Signature, verify_poseidon
from hermez_wallet.transaction.encoding import compute_tx_id, hash_to_sign
from hermez_wallet.transaction.models import PoolL2Tx, infer_tx_type


def sign_hash(private_key: bytes, msg: int) -> bytes:
    """Sign a field element and return the 64-byte compressed signature.

    Raises:
        SigningError: If the key or message is invalid.
    """
    try:
        return PrivateKey(private_key).sign_poseidon(msg).compress()
    except ValueError as e:
        raise SigningError(f"Cannot sign hash: {e}") from e


def verify_hash(public_key: bytes, msg: int, signature: bytes) -> bool:
    """Verify a compressed signature against a compressed public key."""
    try:
        point = Point.decompress(public_key)
        sig = Signature.decompress(signature)
    except ValueError:
        return False
    return verify_poseidon(point, msg, sig)


def sign_transaction(tx: PoolL2Tx, private_key: bytes, chain_id: int) -> PoolL2Tx:
    """Return a copy of ``tx`` carrying the sender's signature.

    Raises:
        SigningError: If the hash to sign or the signature cannot be computed.
    """
    try:
        msg = hash_to_sign(tx, chain_id)
    except (TransactionError, ValueError) as e:
        raise SigningError(f"Cannot compute hash to sign: {e}") from e
    return tx.model_copy(update={"signature": sign_hash(private_key, msg)})


def verify_transaction(tx: PoolL2Tx, public_key: bytes, chain_id: int) -> bool:
    """Check that ``tx`` is consistent and signed by ``public_key``.

    The id and type are recomputed from the current field values, so any
    edit after signing fails verification.
    """
    if tx.signature is None:
        return False
    if infer_tx_type(tx.to_idx, tx.to_eth_addr, tx.to_bjj) != tx.type:
        return False

    try:
        if compute_tx_id(tx.from_idx, tx.token_id, tx.amount, tx.nonce, tx.fee) != tx.tx_id:
            return False
        msg = hash_to_sign(tx, chain_id)
    except (TransactionError, ValueError):
        return False
    return verify_hash(public_key, msg, tx.signature)
