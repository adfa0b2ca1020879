"""Layer-2 transaction construction."""

from loguru import logger

from hermez_wallet.codec import (
    BJJ_COMP_LEN,
    ETH_ADDR_LEN,
    decode_l1_address,
    decode_l2_address,
)
from hermez_wallet.exceptions import FieldRangeError, FormatError, SigningError
from hermez_wallet.transaction.encoding import TX_ID_LEN, compute_tx_id, float40_encode
from hermez_wallet.transaction.models import (
    EMPTY_ETH_ADDR,
    FF_ETH_ADDR,
    MAX_FEE,
    MAX_IDX,
    MAX_NONCE,
    MAX_TOKEN_ID,
    USER_IDX_THRESHOLD,
    Destination,
    PoolL2Tx,
    ToExit,
    ToIndex,
    ToL1Address,
    ToL2Address,
)
from hermez_wallet.transaction.signer import sign_transaction
from hermez_wallet.wallet import KeyPair

ETH_TOKEN_ID = 0


class TransactionBuilder:
    """Builds and signs layer-2 transactions for one network.

    Usage:
        builder = TransactionBuilder(chain_id=5)
        tx = builder.exit(identity.key_pair, from_idx=1276,
                          amount=6_000_000_000_000_000, fee=126, nonce=0)

    The builder does not check balances or nonces; callers supply them from
    the node API.
    """

    def __init__(self, chain_id: int) -> None:
        """Initialize the builder.

        Args:
            chain_id: Ethereum chain id, bound into every signature.
        """
        if not 0 <= chain_id < 2**16:
            raise ValueError(f"Chain id must fit in 16 bits, got {chain_id}")
        self._chain_id = chain_id

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def transfer(
        self,
        key_pair: KeyPair,
        from_idx: int,
        to_idx: int,
        amount: int,
        fee: int,
        nonce: int,
        token_id: int = ETH_TOKEN_ID,
    ) -> PoolL2Tx:
        """Build a Transfer to an existing account index."""
        return self.build(key_pair, from_idx, ToIndex(to_idx), amount, fee, nonce, token_id)

    def transfer_to_l2_address(
        self,
        key_pair: KeyPair,
        from_idx: int,
        to: str,
        amount: int,
        fee: int,
        nonce: int,
        token_id: int = ETH_TOKEN_ID,
    ) -> PoolL2Tx:
        """Build a TransferToBJJ to a ``hez:`` layer-2 address.

        Raises:
            FormatError: If ``to`` is malformed.
            ChecksumError: If ``to`` fails its checksum.
        """
        destination = ToL2Address(decode_l2_address(to))
        return self.build(key_pair, from_idx, destination, amount, fee, nonce, token_id)

    def transfer_to_l1_address(
        self,
        key_pair: KeyPair,
        from_idx: int,
        to: str,
        amount: int,
        fee: int,
        nonce: int,
        token_id: int = ETH_TOKEN_ID,
    ) -> PoolL2Tx:
        """Build a TransferToEthAddr to a ``hez:0x...`` (or bare 0x) address.

        Raises:
            FormatError: If ``to`` is malformed.
            ChecksumError: If ``to`` fails EIP-55.
        """
        destination = ToL1Address(decode_l1_address(to))
        return self.build(key_pair, from_idx, destination, amount, fee, nonce, token_id)

    def exit(
        self,
        key_pair: KeyPair,
        from_idx: int,
        amount: int,
        fee: int,
        nonce: int,
        token_id: int = ETH_TOKEN_ID,
    ) -> PoolL2Tx:
        """Build an Exit moving funds to the exit tree."""
        return self.build(key_pair, from_idx, ToExit(), amount, fee, nonce, token_id)

    def build(
        self,
        key_pair: KeyPair,
        from_idx: int,
        destination: Destination,
        amount: int,
        fee: int,
        nonce: int,
        token_id: int = ETH_TOKEN_ID,
    ) -> PoolL2Tx:
        """Assemble, identify and sign a transaction.

        Args:
            key_pair: Sender's layer-2 key pair.
            from_idx: Sender's account index.
            destination: Resolved destination variant.
            amount: Amount in the token's smallest unit.
            fee: Fee selector (opaque index into the network fee table).
            nonce: Sender's next nonce.
            token_id: Token being moved.

        Returns:
            The signed PoolL2Tx.

        Raises:
            FormatError: If the destination is a reserved or malformed value.
            FieldRangeError: If a numeric field exceeds its wire width.
            InvalidAmountError: If the amount is negative or not Float40.
            SigningError: If the id, hash or signature cannot be computed.
        """
        self._validate_destination(destination)
        self._validate_fields(from_idx, token_id, fee, nonce)
        float40_encode(amount)

        to_idx, to_eth_addr, to_bjj = destination.flatten()

        try:
            unsigned = PoolL2Tx(
                tx_id=bytes(TX_ID_LEN),
                type=destination.tx_type,
                from_idx=from_idx,
                to_idx=to_idx,
                to_eth_addr=to_eth_addr,
                to_bjj=to_bjj,
                token_id=token_id,
                amount=amount,
                fee=fee,
                nonce=nonce,
            )
            # The id covers the populated fields, not the caller's arguments
            tx_id = compute_tx_id(
                unsigned.from_idx, unsigned.token_id, unsigned.amount, unsigned.nonce, unsigned.fee
            )
            unsigned = unsigned.model_copy(update={"tx_id": tx_id})
        except Exception as e:
            raise SigningError(f"Cannot assemble transaction: {e}") from e

        tx = sign_transaction(unsigned, key_pair.private_key, self._chain_id)

        logger.debug(
            "Built {} tx {} from_idx={} token_id={} amount={} fee={} nonce={}",
            tx.type.value,
            tx.tx_id_hex,
            from_idx,
            token_id,
            amount,
            fee,
            nonce,
        )
        return tx

    @staticmethod
    def _validate_destination(destination: Destination) -> None:
        if isinstance(destination, ToIndex):
            if not USER_IDX_THRESHOLD <= destination.idx <= MAX_IDX:
                raise FormatError(
                    f"Destination index must be in [{USER_IDX_THRESHOLD}, {MAX_IDX}], "
                    f"got {destination.idx}"
                )
        elif isinstance(destination, ToL2Address):
            if len(destination.public_key) != BJJ_COMP_LEN:
                raise FormatError(f"Destination public key must be {BJJ_COMP_LEN} bytes")
        elif isinstance(destination, ToL1Address):
            if len(destination.address) != ETH_ADDR_LEN:
                raise FormatError(f"Destination address must be {ETH_ADDR_LEN} bytes")
            if destination.address in (EMPTY_ETH_ADDR, FF_ETH_ADDR):
                raise FormatError("Destination address is a reserved sentinel")

    @staticmethod
    def _validate_fields(from_idx: int, token_id: int, fee: int, nonce: int) -> None:
        if not USER_IDX_THRESHOLD <= from_idx <= MAX_IDX:
            raise FieldRangeError(
                f"Sender index must be in [{USER_IDX_THRESHOLD}, {MAX_IDX}], got {from_idx}"
            )
        if not 0 <= token_id <= MAX_TOKEN_ID:
            raise FieldRangeError(f"Token id must be in [0, {MAX_TOKEN_ID}], got {token_id}")
        if not 0 <= fee <= MAX_FEE:
            raise FieldRangeError(f"Fee selector must be in [0, {MAX_FEE}], got {fee}")
        if not 0 <= nonce <= MAX_NONCE:
            raise FieldRangeError(f"Nonce must be in [0, {MAX_NONCE}], got {nonce}")
