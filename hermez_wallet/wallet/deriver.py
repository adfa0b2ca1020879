"""Layer-2 identity derivation from an Ethereum mnemonic.

The Baby JubJub key is derived from an Ethereum signature:

1. derive the Ethereum account at ``m/44'/60'/0'/0/{index}``;
2. sign ``ACCESS_MESSAGE`` as a personal message (recovery byte 27/28);
3. keccak256 the *text* ``"0x" + hex(signature)``;
4. use the 32-byte digest as the Baby JubJub private key.

Every byte of this recipe is part of the account contract: any other
encoding of the signature yields a different, unrecoverable wallet.
"""

from dataclasses import dataclass, field
from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_utils import keccak, to_checksum_address
from loguru import logger

from hermez_wallet.codec import encode_l1_address, encode_l2_address
from hermez_wallet.exceptions import DerivationError, SigningError
from hermez_wallet.primitives import PrivateKey

ACCESS_MESSAGE = (
    "Hermez Network account access.\n\n"
    "Sign this message if you are in a trusted application only."
)
ETH_DERIVATION_PATH = "m/44'/60'/0'/0/{index}"

EIP712_PROVIDER = "Hermez Network"
EIP712_VERSION = "1"
ACCOUNT_CREATION_AUTH_MSG = "Account creation"

Account.enable_unaudited_hdwallet_features()


@dataclass(frozen=True)
class KeyPair:
    """Baby JubJub key pair. Key material is never persisted."""

    private_key: bytes = field(repr=False)
    public_key: bytes  # 32-byte compressed point

    @property
    def private_key_hex(self) -> str:
        """Return the private key as a 0x-prefixed hex string."""
        return f"0x{self.private_key.hex()}"


@dataclass(frozen=True)
class Identity:
    """Derived layer-2 identity for one (mnemonic, index) pair."""

    index: int
    key_pair: KeyPair
    l2_address: str  # hez:<base64url>
    l1_address: str  # hez:0x...
    auth_signature: str | None = None

    @property
    def eth_address(self) -> str:
        """Return the checksummed Ethereum address without the hez: prefix."""
        return self.l1_address.removeprefix("hez:")

    @property
    def short_address(self) -> str:
        """Return shortened layer-2 address for display (hez:abcd...wxyz)."""
        return f"{self.l2_address[:8]}...{self.l2_address[-4:]}"


def _normalize_signature(r: int, s: int, v: int) -> bytes:
    """Pack (r, s, v) as 65 bytes with the recovery byte in 27/28 form."""
    if v < 27:
        v += 27
    return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v])


def _signature_hex(signed: Any) -> str:
    return "0x" + _normalize_signature(signed.r, signed.s, signed.v).hex()


def account_creation_typed_data(
    eth_address: str,
    public_key: bytes,
    chain_id: int,
    rollup_contract: str,
) -> dict[str, Any]:
    """Build the EIP-712 record authorising ``public_key`` for ``eth_address``.

    The key is carried big-endian, the reverse of its compressed form.
    """
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Authorise": [
                {"name": "Provider", "type": "string"},
                {"name": "Authorisation", "type": "string"},
                {"name": "BJJKey", "type": "bytes32"},
            ],
        },
        "primaryType": "Authorise",
        "domain": {
            "name": EIP712_PROVIDER,
            "version": EIP712_VERSION,
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(rollup_contract),
        },
        "message": {
            "Provider": EIP712_PROVIDER,
            "Authorisation": ACCOUNT_CREATION_AUTH_MSG,
            "BJJKey": bytes(reversed(public_key)),
        },
    }


class WalletDeriver:
    """Derives Hermez layer-2 identities bound to one network.

    Usage:
        deriver = WalletDeriver(chain_id=5, rollup_contract="0x...")
        identity = deriver.derive(mnemonic, index=0)
        print(identity.l2_address)

    Instances hold no key material and may be shared between threads.
    """

    def __init__(self, chain_id: int, rollup_contract: str | None = None) -> None:
        """Initialize the deriver.

        Args:
            chain_id: Ethereum chain id the rollup lives on.
            rollup_contract: Rollup contract address. Required to produce
                account creation authorisations.
        """
        if not 0 <= chain_id < 2**16:
            raise ValueError(f"Chain id must fit in 16 bits, got {chain_id}")
        self._chain_id = chain_id
        self._rollup_contract = rollup_contract

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def derive(self, mnemonic: str, index: int, authorize: bool = True) -> Identity:
        """Derive the layer-2 identity for ``mnemonic`` at ``index``.

        Args:
            mnemonic: BIP-39 mnemonic phrase.
            index: Account index in the Ethereum derivation path.
            authorize: Also produce the account creation authorisation
                (only needed before the account is registered).

        Returns:
            The derived Identity.

        Raises:
            DerivationError: If the mnemonic or path is invalid, or the
                access message cannot be signed.
            SigningError: If the authorisation cannot be produced or fails
                self-verification.
        """
        eth_account = self._derive_eth_account(mnemonic, index)

        try:
            access_sig = eth_account.sign_message(encode_defunct(text=ACCESS_MESSAGE))
        except Exception as e:
            raise DerivationError(f"Signing access message failed: {e}") from e

        seed = keccak(text=_signature_hex(access_sig))
        public_key = PrivateKey(seed).public().compress()
        key_pair = KeyPair(private_key=seed, public_key=public_key)

        auth_signature = None
        if authorize:
            auth_signature = self.authorize(eth_account, public_key)

        identity = Identity(
            index=index,
            key_pair=key_pair,
            l2_address=encode_l2_address(public_key),
            l1_address=encode_l1_address(bytes.fromhex(eth_account.address[2:])),
            auth_signature=auth_signature,
        )

        logger.info(
            "Derived wallet index={} l1={} l2={}",
            index,
            identity.l1_address,
            identity.l2_address,
        )
        return identity

    def authorize(self, eth_account: LocalAccount, public_key: bytes) -> str:
        """Sign the account creation authorisation for ``public_key``.

        Returns:
            0x-prefixed 65-byte signature with recovery byte 27/28.

        Raises:
            SigningError: If no rollup contract is configured, signing fails,
                or the signature does not recover to ``eth_account``.
        """
        if not self._rollup_contract:
            raise SigningError("Rollup contract address is required for authorisation")

        try:
            signable = encode_typed_data(
                full_message=account_creation_typed_data(
                    eth_account.address,
                    public_key,
                    self._chain_id,
                    self._rollup_contract,
                )
            )
            signed = eth_account.sign_message(signable)
            signature = _signature_hex(signed)
            recovered = Account.recover_message(signable, signature=signature)
        except Exception as e:
            raise SigningError(f"Account creation authorisation failed: {e}") from e

        if recovered != eth_account.address:
            raise SigningError(
                f"Authorisation recovers to {recovered}, expected {eth_account.address}"
            )
        return signature

    @staticmethod
    def _derive_eth_account(mnemonic: str, index: int) -> LocalAccount:
        if index < 0:
            raise DerivationError(f"Account index must be non-negative, got {index}")

        path = ETH_DERIVATION_PATH.format(index=index)
        try:
            return Account.from_mnemonic(mnemonic, account_path=path)
        except Exception as e:
            raise DerivationError(f"Cannot derive {path} from mnemonic: {e}") from e


def derive_identity(
    mnemonic: str,
    index: int,
    chain_id: int,
    rollup_contract: str | None = None,
    authorize: bool = True,
) -> Identity:
    """Derive an Identity in one call. See WalletDeriver.derive."""
    deriver = WalletDeriver(chain_id, rollup_contract)
    return deriver.derive(mnemonic, index, authorize=authorize and bool(rollup_contract))
