"""Hermez node REST API client."""

import asyncio
from time import time
from typing import Any

import aiohttp
from loguru import logger

from hermez_wallet.client.models import (
    Account,
    AccountList,
    Batch,
    BatchList,
    Token,
    TxHistory,
    TxHistoryList,
    TxRequest,
)
from hermez_wallet.exceptions import (
    AccountNotFoundError,
    NodeAPIError,
    NodeRateLimitError,
    NodeServerError,
)
from hermez_wallet.transaction.models import PoolL2Tx


class HermezClient:
    """Async HTTP client for a Hermez coordinator node.

    Handles:
    - Rate limit handling with exponential backoff
    - Server error and connection retries
    - Configurable timeouts

    Usage:
        async with HermezClient("https://api.testnet.hermez.io") as client:
            idx, nonce = await client.get_account_info(bjj=identity.l2_address)
            tx_id = await client.send_transaction(tx, token)
    """

    ACCOUNTS_ENDPOINT = "/v1/accounts"
    TOKENS_ENDPOINT = "/v1/tokens"
    BATCHES_ENDPOINT = "/v1/batches"
    HISTORY_ENDPOINT = "/v1/transactions-history"
    POOL_ENDPOINT = "/v1/transactions-pool"

    # Backoff Configuration
    INITIAL_BACKOFF: float = 1.0
    MAX_BACKOFF: float = 60.0
    BACKOFF_MULTIPLIER: float = 2.0
    MAX_RETRIES: int = 5

    # Rate Limiting
    MIN_REQUEST_INTERVAL: float = 0.1  # 100ms between requests

    DEFAULT_TIMEOUT: float = 30.0

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        """Initialize the node client.

        Args:
            base_url: Node root URL, without the ``/v1`` suffix.
            timeout: Request timeout in seconds.
            max_retries: Maximum retry attempts for transient errors.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_retries = max_retries
        self._session: aiohttp.ClientSession | None = None
        self._last_request_time: float = 0.0

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "HermezClient":
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _rate_limit(self) -> None:
        """Enforce minimum request interval."""
        elapsed = time() - self._last_request_time
        if elapsed < self.MIN_REQUEST_INTERVAL:
            await asyncio.sleep(self.MIN_REQUEST_INTERVAL - elapsed)
        self._last_request_time = time()

    def _calculate_backoff(self, attempt: int) -> float:
        return min(
            self.INITIAL_BACKOFF * (self.BACKOFF_MULTIPLIER**attempt),
            self.MAX_BACKOFF,
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Make an HTTP request with exponential backoff retry.

        Args:
            method: HTTP method.
            path: Endpoint path, appended to the base URL.
            params: Query parameters.
            json: JSON body.

        Returns:
            Parsed JSON response.

        Raises:
            NodeRateLimitError: If rate limited after all retries.
            NodeServerError: If server error after all retries.
            NodeAPIError: For client errors and exhausted connection retries.
        """
        session = await self._ensure_session()
        url = f"{self._base_url}{path}"
        last_exception: NodeAPIError | None = None

        for attempt in range(self._max_retries):
            await self._rate_limit()
            delay = self._calculate_backoff(attempt)

            try:
                async with session.request(method, url, params=params, json=json) as response:
                    if 200 <= response.status < 300:
                        return await response.json()

                    if response.status == 429:
                        retry_after = response.headers.get("Retry-After")
                        if retry_after:
                            delay = float(retry_after)
                        last_exception = NodeRateLimitError(retry_after=delay)
                    elif response.status >= 500:
                        last_exception = NodeServerError(
                            message=f"Server returned {response.status}",
                            status_code=response.status,
                        )
                    else:
                        # 4xx other than 429 will not change on retry
                        text = await response.text()
                        raise NodeAPIError(
                            f"API error {response.status} on {method} {path}: {text[:200]}",
                            status_code=response.status,
                        )

            except aiohttp.ClientError as e:
                last_exception = NodeAPIError(f"Connection error: {e}")

            except asyncio.TimeoutError:
                last_exception = NodeAPIError("Request timeout")

            if attempt + 1 == self._max_retries:
                break
            logger.warning(
                "{} on {} {}, retry {} after {:.1f}s",
                last_exception,
                method,
                path,
                attempt + 1,
                delay,
            )
            await asyncio.sleep(delay)

        if last_exception is not None:
            raise last_exception
        raise NodeAPIError("Unknown error after retries")

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        return await self._request_with_retry("GET", path, params=params)

    # -------------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------------

    async def get_tokens(self) -> list[Token]:
        """List the tokens registered on the rollup."""
        data = await self._get(self.TOKENS_ENDPOINT)
        return [Token.model_validate(item) for item in data.get("tokens", [])]

    async def get_token(self, symbol: str) -> Token:
        """Look up a registered token by symbol.

        Raises:
            NodeAPIError: If no token has that symbol.
        """
        for token in await self.get_tokens():
            if token.symbol == symbol:
                return token
        raise NodeAPIError(f"Token {symbol} is not registered", status_code=404)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def get_accounts(
        self,
        bjj: str | None = None,
        hez_eth_address: str | None = None,
        token_id: int | None = None,
    ) -> list[Account]:
        """List rollup accounts owned by a layer-2 or layer-1 address.

        Raises:
            AccountNotFoundError: If the node knows no matching account.
        """
        params: dict[str, str] = {}
        if bjj is not None:
            params["BJJ"] = bjj
        if hez_eth_address is not None:
            params["hezEthereumAddress"] = hez_eth_address
        if token_id is not None:
            params["tokenIds"] = str(token_id)

        try:
            data = await self._get(self.ACCOUNTS_ENDPOINT, params=params)
        except NodeAPIError as e:
            if e.status_code == 404:
                raise AccountNotFoundError(f"No account for {params}") from e
            raise

        accounts = AccountList.model_validate(data).accounts
        if not accounts:
            raise AccountNotFoundError(f"No account for {params}")
        return accounts

    async def get_account_info(
        self,
        bjj: str | None = None,
        hez_eth_address: str | None = None,
        token_id: int = 0,
    ) -> tuple[int, int]:
        """Return ``(account index, next nonce)`` for the owner's token account."""
        accounts = await self.get_accounts(bjj, hez_eth_address, token_id)
        account = AccountList(accounts=accounts).for_token(token_id)
        if account is None:
            raise AccountNotFoundError(f"No account holds token {token_id}")
        return account.idx, account.nonce

    # -------------------------------------------------------------------------
    # Batches and history
    # -------------------------------------------------------------------------

    async def get_last_batch(self) -> Batch | None:
        """Return the most recently forged batch, or None before the first one."""
        data = await self._get(self.BATCHES_ENDPOINT, params={"limit": "1", "order": "DESC"})
        batches = BatchList.model_validate(data).batches
        return batches[0] if batches else None

    async def get_batch_txs(self, batch_num: int) -> list[TxHistory]:
        """List the transactions forged in ``batch_num``."""
        data = await self._get(
            self.HISTORY_ENDPOINT,
            params={"batchNum": str(batch_num), "order": "ASC"},
        )
        return TxHistoryList.model_validate(data).transactions

    async def get_tx(self, tx_id: str) -> TxHistory | None:
        """Fetch a forged transaction; None when it is not in history yet."""
        return await self._get_optional(f"{self.HISTORY_ENDPOINT}/{tx_id}")

    async def get_pool_tx(self, tx_id: str) -> TxHistory | None:
        """Fetch a pending transaction; None when it is not in the pool."""
        return await self._get_optional(f"{self.POOL_ENDPOINT}/{tx_id}")

    async def _get_optional(self, path: str) -> TxHistory | None:
        try:
            data = await self._get(path)
        except NodeAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return TxHistory.model_validate(data)

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def send_transaction(self, tx: PoolL2Tx, token: Token) -> str:
        """Submit a signed transaction to the pool.

        Returns:
            The transaction id echoed by the node.
        """
        payload = TxRequest.from_transaction(tx, token).to_payload()
        result = await self._request_with_retry("POST", self.POOL_ENDPOINT, json=payload)
        tx_id = str(result)
        logger.info("Submitted {} tx {} to {}", tx.type.value, tx_id, self._base_url)
        return tx_id
