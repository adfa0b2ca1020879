"""Tests for the Hermez node client and API models."""

import asyncio
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from pydantic import ValidationError

from hermez_wallet.client import (
    ETH_TOKEN,
    Account,
    HermezClient,
    Token,
    TxRequest,
    wei_to_ether,
)
from hermez_wallet.codec import encode_l2_address
from hermez_wallet.exceptions import (
    AccountNotFoundError,
    NodeAPIError,
    NodeRateLimitError,
    NodeServerError,
)
from hermez_wallet.primitives import PrivateKey
from hermez_wallet.transaction import TransactionBuilder
from hermez_wallet.wallet import KeyPair

NODE_URL = "https://api.testnet.hermez.io"

TOKEN_JSON: dict[str, Any] = {
    "USD": 1592.32,
    "decimals": 18,
    "ethereumAddress": "0x0000000000000000000000000000000000000000",
    "ethereumBlockNum": 0,
    "fiatUpdate": "2021-03-23T10:55:20.984541Z",
    "id": 0,
    "itemId": 1,
    "name": "Ether",
    "symbol": "ETH",
}

ACCOUNTS_JSON: dict[str, Any] = {
    "accounts": [
        {
            "accountIndex": "hez:ETH:1276",
            "balance": "949407923216206876",
            "bjj": "hez:0xfddace21457376b0952ccd19ce66b854fdd7c6e45905b0a0a75747c87d41719a",
            "hezEthereumAddress": "hez:0x9aC7Fdc4930e7798f9a4e014AAc0544e19b8AcE0",
            "itemId": 1045,
            "nonce": 1,
            "token": TOKEN_JSON,
        }
    ],
    "pendingItems": 0,
}

BATCHES_JSON: dict[str, Any] = {
    "batches": [
        {
            "itemId": 645,
            "batchNum": 625,
            "ethereumBlockNum": 8291847,
            "ethereumBlockHash": "0xb08f7d5badb05fddaa296ef6e17b89fac58146deea14ed99cdd071870e782ba7",
            "timestamp": "2021-03-24T18:38:23Z",
            "forgerAddr": "0x4fc28cd8d35b6fd644e5c1822d67609c11e137f2",
            "collectedFees": {"0": "781250000000000"},
            "historicTotalCollectedFeesUSD": 1.3165781250000002,
            "stateRoot": "16766552327640891364576382590404178978951105042545584100646269436653682377639",
            "numAccounts": 6,
            "exitRoot": "0",
            "forgeL1TransactionsNum": 624,
            "slotNum": 896,
            "forgedTransactions": 7,
        }
    ],
    "pendingItems": 624,
}


def history_tx(
    tx_id: str,
    batch_num: int | None = 625,
    to_bjj: str | None = None,
    to_eth: str | None = None,
) -> dict[str, Any]:
    return {
        "id": tx_id,
        "type": "Transfer",
        "batchNum": batch_num,
        "fromAccountIndex": "hez:ETH:1418",
        "toAccountIndex": "hez:ETH:1419",
        "toBJJ": to_bjj,
        "toHezEthereumAddress": to_eth,
        "amount": "1000000000000000000",
        "token": TOKEN_JSON,
        "timestamp": "2021-03-24T18:21:23Z",
    }


class MockResponse:
    """Mock aiohttp response for testing."""

    def __init__(
        self,
        status: int,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status = status
        self._json_data = {} if json_data is None else json_data
        self.headers = headers or {}

    async def json(self) -> Any:
        return self._json_data

    async def text(self) -> str:
        return str(self._json_data)

    async def __aenter__(self) -> "MockResponse":
        return self

    async def __aexit__(self, *args: object) -> None:
        pass


def fast_client(max_retries: int = 2) -> HermezClient:
    client = HermezClient(NODE_URL, max_retries=max_retries)
    client.INITIAL_BACKOFF = 0.01
    client.MAX_BACKOFF = 0.05
    client.MIN_REQUEST_INTERVAL = 0.0
    return client


# =============================================================================
# Models
# =============================================================================


class TestModels:
    """Tests for API models."""

    def test_account_parsing(self) -> None:
        """Test string balances and account indexes are parsed."""
        account = Account.model_validate(ACCOUNTS_JSON["accounts"][0])
        assert account.idx == 1276
        assert account.balance == 949407923216206876
        assert account.nonce == 1
        assert account.token.symbol == "ETH"

    def test_token_is_frozen(self) -> None:
        """Test models are immutable."""
        token = Token.model_validate(TOKEN_JSON)
        with pytest.raises(ValidationError):
            token.decimals = 6  # type: ignore[misc]

    def test_wei_to_ether(self) -> None:
        """Test wei conversion is exact."""
        assert wei_to_ether(6_000_000_000_000_000) == Decimal("0.006")
        assert wei_to_ether(10**18) == Decimal(1)

    def test_eth_token(self) -> None:
        """Test the built-in ETH token."""
        assert ETH_TOKEN.token_id == 0
        assert ETH_TOKEN.decimals == 18


class TestTxRequest:
    """Tests for the submission payload."""

    @pytest.fixture(scope="class")
    def key_pair(self) -> KeyPair:
        private = b"\x07" * 32
        return KeyPair(private_key=private, public_key=PrivateKey(private).public().compress())

    def test_exit_payload(self, key_pair: KeyPair) -> None:
        """Test an exit serializes with API field names."""
        tx = TransactionBuilder(4).exit(key_pair, 1276, 6_000_000_000_000_000, 126, 0)
        payload = TxRequest.from_transaction(tx, ETH_TOKEN).to_payload()

        assert payload["id"] == tx.tx_id_hex
        assert payload["type"] == "Exit"
        assert payload["tokenId"] == 0
        assert payload["fromAccountIndex"] == "hez:ETH:1276"
        assert payload["toAccountIndex"] == "hez:ETH:1"
        assert payload["amount"] == "6000000000000000"
        assert payload["fee"] == 126
        assert payload["nonce"] == 0
        assert payload["toBjj"] is None
        assert payload["signature"] == tx.signature_hex
        assert len(payload["signature"]) == 128

    def test_transfer_to_l2_payload(self, key_pair: KeyPair) -> None:
        """Test a TransferToBJJ carries the destination address and no index."""
        to = encode_l2_address(key_pair.public_key)
        tx = TransactionBuilder(4).transfer_to_l2_address(key_pair, 1276, to, 1000, 0, 2)
        payload = TxRequest.from_transaction(tx, ETH_TOKEN).to_payload()

        assert payload["type"] == "TransferToBJJ"
        assert payload["toAccountIndex"] is None
        assert payload["toBjj"] == to

    def test_transfer_payload(self, key_pair: KeyPair) -> None:
        """Test a Transfer leaves both address fields null."""
        tx = TransactionBuilder(4).transfer(key_pair, 1276, 1300, 1000, 0, 2)
        payload = TxRequest.from_transaction(tx, ETH_TOKEN).to_payload()

        assert payload["toAccountIndex"] == "hez:ETH:1300"
        assert payload["toHezEthereumAddress"] is None
        assert payload["toBjj"] is None

    def test_unsigned_rejected(self, key_pair: KeyPair) -> None:
        """Test unsigned transactions cannot be submitted."""
        tx = TransactionBuilder(4).exit(key_pair, 1276, 1000, 0, 0)
        with pytest.raises(ValueError):
            TxRequest.from_transaction(tx.model_copy(update={"signature": None}), ETH_TOKEN)

    def test_token_mismatch_rejected(self, key_pair: KeyPair) -> None:
        """Test the token must match the transaction's token id."""
        tx = TransactionBuilder(4).exit(key_pair, 1276, 1000, 0, 0, token_id=1)
        with pytest.raises(ValueError):
            TxRequest.from_transaction(tx, ETH_TOKEN)


# =============================================================================
# HermezClient
# =============================================================================


class TestHermezClient:
    """Tests for HermezClient endpoints with mocked HTTP."""

    @pytest.mark.asyncio
    async def test_get_account_info(self) -> None:
        """Test account lookup returns index and nonce."""
        calls: list[tuple[str, str, dict[str, str] | None]] = []

        def mock_request(method: str, url: str, **kwargs: Any) -> MockResponse:
            calls.append((method, url, kwargs.get("params")))
            return MockResponse(200, ACCOUNTS_JSON)

        async with fast_client() as client:
            with patch.object(client._session, "request", side_effect=mock_request):
                idx, nonce = await client.get_account_info(bjj="hez:abc", token_id=0)

        assert (idx, nonce) == (1276, 1)
        method, url, params = calls[0]
        assert method == "GET"
        assert url == f"{NODE_URL}/v1/accounts"
        assert params == {"BJJ": "hez:abc", "tokenIds": "0"}

    @pytest.mark.asyncio
    async def test_empty_accounts(self) -> None:
        """Test no accounts raises AccountNotFoundError."""
        async with fast_client() as client:
            with patch.object(
                client._session, "request", return_value=MockResponse(200, {"accounts": []})
            ):
                with pytest.raises(AccountNotFoundError):
                    await client.get_accounts(bjj="hez:abc")

    @pytest.mark.asyncio
    async def test_accounts_404(self) -> None:
        """Test a 404 from the accounts endpoint raises AccountNotFoundError."""
        async with fast_client() as client:
            with patch.object(client._session, "request", return_value=MockResponse(404)):
                with pytest.raises(AccountNotFoundError):
                    await client.get_accounts(hez_eth_address="hez:0xabc")

    @pytest.mark.asyncio
    async def test_get_token(self) -> None:
        """Test token lookup by symbol."""
        async with fast_client() as client:
            with patch.object(
                client._session, "request", return_value=MockResponse(200, {"tokens": [TOKEN_JSON]})
            ):
                token = await client.get_token("ETH")
                with pytest.raises(NodeAPIError):
                    await client.get_token("DAI")

        assert token.name == "Ether"

    @pytest.mark.asyncio
    async def test_get_last_batch(self) -> None:
        """Test the last batch is parsed."""
        async with fast_client() as client:
            with patch.object(client._session, "request", return_value=MockResponse(200, BATCHES_JSON)):
                batch = await client.get_last_batch()

        assert batch is not None
        assert batch.batch_num == 625
        assert batch.forged_txs == 7

    @pytest.mark.asyncio
    async def test_get_pool_tx_missing(self) -> None:
        """Test a 404 for a pool tx returns None."""
        async with fast_client() as client:
            with patch.object(client._session, "request", return_value=MockResponse(404)):
                assert await client.get_pool_tx("0x02aa") is None

    @pytest.mark.asyncio
    async def test_send_transaction(self) -> None:
        """Test submission posts the payload and returns the echoed id."""
        private = b"\x07" * 32
        key_pair = KeyPair(private_key=private, public_key=PrivateKey(private).public().compress())
        tx = TransactionBuilder(4).exit(key_pair, 1276, 1000, 0, 0)
        captured: dict[str, Any] = {}

        def mock_request(method: str, url: str, **kwargs: Any) -> MockResponse:
            captured.update(method=method, url=url, json=kwargs.get("json"))
            return MockResponse(200, tx.tx_id_hex)

        async with fast_client() as client:
            with patch.object(client._session, "request", side_effect=mock_request):
                tx_id = await client.send_transaction(tx, ETH_TOKEN)

        assert tx_id == tx.tx_id_hex
        assert captured["method"] == "POST"
        assert captured["url"] == f"{NODE_URL}/v1/transactions-pool"
        assert captured["json"]["type"] == "Exit"


class TestHermezClientErrorHandling:
    """Tests for error handling and retries."""

    @pytest.mark.asyncio
    async def test_rate_limit_error(self) -> None:
        """Test 429 response raises NodeRateLimitError."""
        mock_response = MockResponse(status=429, headers={"Retry-After": "0.01"})

        async with fast_client(max_retries=1) as client:
            with patch.object(client._session, "request", return_value=mock_response):
                with pytest.raises(NodeRateLimitError) as exc_info:
                    await client.get_tokens()

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 0.01

    @pytest.mark.asyncio
    async def test_server_error_retries(self) -> None:
        """Test 500 response triggers retry then raises."""
        call_count = 0

        def mock_request(*args: Any, **kwargs: Any) -> MockResponse:
            nonlocal call_count
            call_count += 1
            return MockResponse(status=500)

        async with fast_client(max_retries=2) as client:
            with patch.object(client._session, "request", side_effect=mock_request):
                with pytest.raises(NodeServerError):
                    await client.get_tokens()

        assert call_count == 2

    @pytest.mark.asyncio
    async def test_recovers_after_server_error(self) -> None:
        """Test a transient 503 is retried to success."""
        responses = [MockResponse(503), MockResponse(200, {"tokens": [TOKEN_JSON]})]

        async with fast_client(max_retries=3) as client:
            with patch.object(client._session, "request", side_effect=responses):
                tokens = await client.get_tokens()

        assert [t.symbol for t in tokens] == ["ETH"]

    @pytest.mark.asyncio
    async def test_client_error_no_retry(self) -> None:
        """Test 4xx (non-429) errors don't retry."""
        call_count = 0

        def mock_request(*args: Any, **kwargs: Any) -> MockResponse:
            nonlocal call_count
            call_count += 1
            return MockResponse(status=400, json_data={"message": "invalid signature"})

        async with fast_client(max_retries=3) as client:
            with patch.object(client._session, "request", side_effect=mock_request):
                with pytest.raises(NodeAPIError) as exc_info:
                    await client.get_tokens()

        assert call_count == 1
        assert exc_info.value.status_code == 400

    def test_backoff_is_capped(self) -> None:
        """Test exponential backoff respects MAX_BACKOFF."""
        client = HermezClient(NODE_URL)
        assert client._calculate_backoff(0) == 1.0
        assert client._calculate_backoff(1) == 2.0
        assert client._calculate_backoff(10) == 60.0

    @pytest.mark.asyncio
    async def test_connection_error_retries(self) -> None:
        """Test a dropped connection is retried to success."""
        responses = [
            aiohttp.ClientConnectionError("connection reset"),
            MockResponse(200, {"tokens": [TOKEN_JSON]}),
        ]

        async with fast_client(max_retries=2) as client:
            with patch.object(client._session, "request", side_effect=responses):
                tokens = await client.get_tokens()

        assert [t.symbol for t in tokens] == ["ETH"]

    @pytest.mark.asyncio
    async def test_timeout_exhausts_retries(self) -> None:
        """Test repeated timeouts surface as NodeAPIError."""
        async with fast_client(max_retries=2) as client:
            with patch.object(
                client._session, "request", side_effect=asyncio.TimeoutError()
            ) as mock_request:
                with pytest.raises(NodeAPIError, match="timeout"):
                    await client.get_tokens()

        assert mock_request.call_count == 2

    @pytest.mark.asyncio
    async def test_no_sleep_after_last_attempt(self) -> None:
        """Test backoff is only slept between attempts."""
        async with fast_client(max_retries=3) as client:
            with patch.object(
                client._session, "request", side_effect=lambda *a, **k: MockResponse(502)
            ):
                with patch(
                    "hermez_wallet.client.client.asyncio.sleep", new_callable=AsyncMock
                ) as sleep:
                    with pytest.raises(NodeServerError):
                        await client.get_tokens()

        assert sleep.await_count == 2
        assert [c.args[0] for c in sleep.await_args_list] == [0.01, 0.02]
