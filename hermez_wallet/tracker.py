"""Polling trackers for incoming deposits and submitted transactions."""

import asyncio
from collections.abc import Callable, Iterable

from loguru import logger

from hermez_wallet.client import HermezClient, TxHistory
from hermez_wallet.codec import HEZ_PREFIX

DepositCallback = Callable[[TxHistory], None]


def _normalize_eth(address: str) -> str:
    return address.removeprefix(HEZ_PREFIX).lower()


async def scan_batch(
    client: HermezClient,
    batch_num: int,
    l1_addresses: Iterable[str],
    l2_addresses: Iterable[str],
) -> list[TxHistory]:
    """Return the transactions of ``batch_num`` paying a watched address.

    Layer-1 addresses match with or without the ``hez:`` prefix and in any
    case; layer-2 addresses match exactly.
    """
    watched_eth = {_normalize_eth(a) for a in l1_addresses}
    watched_bjj = set(l2_addresses)

    txs = await client.get_batch_txs(batch_num)
    logger.info("Batch {} has {} txs", batch_num, len(txs))

    found: list[TxHistory] = []
    for tx in txs:
        if tx.to_hez_eth_address and _normalize_eth(tx.to_hez_eth_address) in watched_eth:
            logger.info(
                "New tx found batch={} tx={} eth_addr={}",
                batch_num,
                tx.tx_id,
                tx.to_hez_eth_address,
            )
            found.append(tx)
        elif tx.to_bjj and tx.to_bjj in watched_bjj:
            logger.info("New tx found batch={} tx={} bjj={}", batch_num, tx.tx_id, tx.to_bjj)
            found.append(tx)
    return found


async def watch_deposits(
    client: HermezClient,
    l1_addresses: Iterable[str],
    l2_addresses: Iterable[str],
    interval: float,
    stop: asyncio.Event,
    on_deposit: DepositCallback | None = None,
) -> None:
    """Poll the latest batch until ``stop`` is set.

    Each batch is scanned once even if it stays the latest across polls.
    Node errors propagate and end the watch.
    """
    l1 = list(l1_addresses)
    l2 = list(l2_addresses)
    last_seen: int | None = None

    logger.info("Watching {} L1 and {} L2 addresses", len(l1), len(l2))
    while not stop.is_set():
        batch = await client.get_last_batch()
        if batch is None:
            logger.debug("No batch forged yet")
        elif batch.batch_num != last_seen:
            last_seen = batch.batch_num
            for tx in await scan_batch(client, batch.batch_num, l1, l2):
                if on_deposit is not None:
                    on_deposit(tx)

        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass


async def watch_transactions(
    client: HermezClient,
    tx_ids: Iterable[str],
    interval: float,
) -> list[TxHistory]:
    """Wait until every transaction has been forged.

    Returns:
        The forged transactions, in the order they were seen.
    """
    pending = list(tx_ids)
    forged: list[TxHistory] = []

    while pending:
        for tx_id in list(pending):
            pool_tx = await client.get_pool_tx(tx_id)
            if pool_tx is not None and pool_tx.batch_num is None:
                logger.info("Tx {} still in pool", tx_id)
                continue

            tx = await client.get_tx(tx_id)
            if tx is not None and tx.tx_id == tx_id:
                logger.info("Tx {} forged in batch {}", tx_id, tx.batch_num)
                forged.append(tx)
                pending.remove(tx_id)

        if pending:
            await asyncio.sleep(interval)

    return forged
