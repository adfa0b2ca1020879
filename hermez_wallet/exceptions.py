"""Custom exceptions for the hermez-wallet toolkit."""


# =============================================================================
# Address Codec Exceptions
# =============================================================================


class AddressError(Exception):
    """Base exception for address encoding/decoding errors."""

    pass


class FormatError(AddressError):
    """Raised when a textual address or index is malformed.

    Covers wrong length, bad character set, and wrong segment count.
    """

    pass


class ChecksumError(AddressError):
    """Raised when an address is well-formed but its checksum does not match."""

    pass


# =============================================================================
# Wallet Exceptions
# =============================================================================


class WalletError(Exception):
    """Base exception for wallet derivation and signing errors."""

    pass


class DerivationError(WalletError):
    """Raised when the mnemonic or derivation path cannot produce a key."""

    pass


class SigningError(WalletError):
    """Raised when a signature cannot be computed or fails self-verification."""

    pass


# =============================================================================
# Transaction Exceptions
# =============================================================================


class TransactionError(Exception):
    """Base exception for transaction construction errors."""

    pass


class InvalidAmountError(TransactionError):
    """Raised when an amount is negative or cannot be encoded as Float40."""

    pass


class FieldRangeError(TransactionError):
    """Raised when an index, token id, nonce or fee exceeds its wire width."""

    pass


# =============================================================================
# Node API Exceptions
# =============================================================================


class NodeAPIError(Exception):
    """Base exception for Hermez node API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NodeRateLimitError(NodeAPIError):
    """Raised when the node returns 429 (rate limited).

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by the node).
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class NodeServerError(NodeAPIError):
    """Raised when the node returns a 5xx server error."""

    def __init__(
        self,
        message: str = "Server error",
        status_code: int = 500,
    ) -> None:
        super().__init__(message, status_code=status_code)


class AccountNotFoundError(NodeAPIError):
    """Raised when no rollup account matches the query."""

    def __init__(self, message: str = "Account not registered") -> None:
        super().__init__(message, status_code=404)
