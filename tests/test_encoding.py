"""Tests for Float40 and the transaction byte encodings."""

import pytest

from hermez_wallet.exceptions import FieldRangeError, InvalidAmountError
from hermez_wallet.transaction.encoding import (
    FLOAT40_THRESHOLD,
    compute_tx_id,
    float40_decode,
    float40_encode,
    idx_bytes,
    nonce_bytes,
    unpack_sign_y,
)


class TestFloat40:
    """Tests for Float40 amounts."""

    def test_known_value(self) -> None:
        """Test 0.006 ETH encodes with the smallest exponent that fits."""
        assert float40_encode(6_000_000_000_000_000) == 212158430208
        assert float40_decode(212158430208) == 6_000_000_000_000_000

    @pytest.mark.parametrize("amount", [0, 1, 10, 123456789, FLOAT40_THRESHOLD - 1, 10**40])
    def test_exact_amounts(self, amount: int) -> None:
        """Test representable amounts decode to themselves."""
        assert float40_decode(float40_encode(amount)) == amount

    def test_small_values_have_zero_exponent(self) -> None:
        """Test amounts below 2^35 are stored as-is."""
        assert float40_encode(1000) == 1000

    def test_negative(self) -> None:
        """Test negative amounts are rejected."""
        with pytest.raises(InvalidAmountError):
            float40_encode(-1)

    def test_too_precise(self) -> None:
        """Test amounts needing more than 35 mantissa bits are rejected."""
        with pytest.raises(InvalidAmountError):
            float40_encode(FLOAT40_THRESHOLD * 10 + 1)

    def test_exponent_overflow(self) -> None:
        """Test amounts beyond 10^31 scaling are rejected."""
        with pytest.raises(InvalidAmountError):
            float40_encode(FLOAT40_THRESHOLD * 10**32)


class TestFieldEncoding:
    """Tests for fixed-width fields."""

    def test_idx_width(self) -> None:
        """Test indexes are six big-endian bytes."""
        assert idx_bytes(1276) == (1276).to_bytes(6, "big")

    def test_idx_overflow(self) -> None:
        """Test indexes beyond 48 bits raise FieldRangeError."""
        with pytest.raises(FieldRangeError):
            idx_bytes(2**48)

    def test_nonce_overflow(self) -> None:
        """Test nonces beyond 40 bits raise FieldRangeError."""
        with pytest.raises(FieldRangeError):
            nonce_bytes(2**40)

    def test_unpack_sign_y(self) -> None:
        """Test the sign bit is split off the top byte."""
        sign, y = unpack_sign_y(bytes([5]) + bytes(30) + b"\x80")
        assert sign is True
        assert y == 5


class TestTxId:
    """Tests for compute_tx_id()."""

    def test_shape(self) -> None:
        """Test ids are 33 bytes with the layer-2 prefix."""
        tx_id = compute_tx_id(1276, 0, 6_000_000_000_000_000, 0, 126)
        assert len(tx_id) == 33
        assert tx_id[0] == 0x02

    def test_depends_on_every_field(self) -> None:
        """Test changing any identifying field changes the id."""
        base = compute_tx_id(1276, 0, 1000, 0, 126)
        assert compute_tx_id(1277, 0, 1000, 0, 126) != base
        assert compute_tx_id(1276, 1, 1000, 0, 126) != base
        assert compute_tx_id(1276, 0, 1001, 0, 126) != base
        assert compute_tx_id(1276, 0, 1000, 1, 126) != base
        assert compute_tx_id(1276, 0, 1000, 0, 127) != base
