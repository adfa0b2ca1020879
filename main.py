"""Command-line entry point for hermez-wallet."""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from loguru import logger

from hermez_wallet.client import ETH_TOKEN, HermezClient, Token, TxHistory, wei_to_ether
from hermez_wallet.codec import HEZ_PREFIX
from hermez_wallet.config import get_settings
from hermez_wallet.exceptions import AddressError, NodeAPIError, TransactionError, WalletError
from hermez_wallet.tracker import watch_deposits, watch_transactions
from hermez_wallet.transaction import PoolL2Tx, TransactionBuilder
from hermez_wallet.wallet import Identity, WalletDeriver

SEND_KINDS = ("transfer", "to-l2", "to-l1", "exit")


def setup_logging() -> None:
    """Configure loguru logging."""
    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level="INFO",
    )
    logger.add(
        "logs/hermez_wallet_{time}.log",
        rotation="100 MB",
        retention="7 days",
        level="DEBUG",
    )


def _mnemonic() -> str:
    mnemonic = get_settings().wallet.mnemonic.get_secret_value()
    if not mnemonic:
        raise WalletError("WALLET_MNEMONIC is not set")
    return mnemonic


def _deriver() -> WalletDeriver:
    network = get_settings().network
    return WalletDeriver(network.chain_id, network.rollup_contract or None)


def derive_wallets(start: int, count: int) -> list[Identity]:
    """Derive ``count`` identities starting at ``start`` and log them."""
    deriver = _deriver()
    mnemonic = _mnemonic()
    authorize = bool(get_settings().network.rollup_contract)

    identities = []
    for index in range(start, start + count):
        identity = deriver.derive(mnemonic, index, authorize=authorize)
        print(f"{index}\t{identity.l1_address}\t{identity.l2_address}")
        identities.append(identity)
    return identities


async def _resolve_token(client: HermezClient, symbol: str) -> Token:
    if symbol == ETH_TOKEN.symbol:
        return ETH_TOKEN
    return await client.get_token(symbol)


async def _build_send(
    client: HermezClient,
    builder: TransactionBuilder,
    identity: Identity,
    token: Token,
    args: argparse.Namespace,
) -> PoolL2Tx:
    from_idx, nonce = await client.get_account_info(
        bjj=identity.l2_address, token_id=token.token_id
    )
    logger.info("Sender account idx={} nonce={}", from_idx, nonce)
    common = {
        "key_pair": identity.key_pair,
        "from_idx": from_idx,
        "amount": args.amount,
        "fee": args.fee,
        "nonce": nonce,
        "token_id": token.token_id,
    }

    if args.kind == "exit":
        return builder.exit(**common)
    if args.kind == "to-l2":
        return builder.transfer_to_l2_address(to=args.to, **common)
    if args.kind == "to-l1":
        return builder.transfer_to_l1_address(to=args.to, **common)

    # transfer: numeric index, or an L1 address resolved to its account
    if args.to.isdigit():
        to_idx = int(args.to)
    else:
        address = args.to if args.to.startswith(HEZ_PREFIX) else HEZ_PREFIX + args.to
        to_idx, _ = await client.get_account_info(
            hez_eth_address=address, token_id=token.token_id
        )
    return builder.transfer(to_idx=to_idx, **common)


async def send(args: argparse.Namespace) -> str | None:
    """Build, sign and optionally submit one transaction."""
    settings = get_settings()
    identity = _deriver().derive(_mnemonic(), settings.wallet.index, authorize=False)
    builder = TransactionBuilder(settings.network.chain_id)

    async with HermezClient(
        settings.network.node_url,
        timeout=settings.client.timeout_seconds,
        max_retries=settings.client.max_retries,
    ) as client:
        token = await _resolve_token(client, args.token)
        tx = await _build_send(client, builder, identity, token, args)
        logger.info(
            "Signed {} tx {} amount={} {}",
            tx.type.value,
            tx.tx_id_hex,
            token.to_decimal(tx.amount),
            token.symbol,
        )

        if args.dry_run:
            logger.info("Dry run, not submitting")
            return None

        tx_id = await client.send_transaction(tx, token)
        if args.wait:
            await watch_transactions(client, [tx_id], settings.client.poll_interval)
        return tx_id


async def watch(args: argparse.Namespace) -> None:
    """Watch the latest batches for deposits into derived wallets."""
    settings = get_settings()
    deriver = _deriver()
    mnemonic = _mnemonic()
    identities = [
        deriver.derive(mnemonic, i, authorize=False) for i in range(args.start, args.start + args.count)
    ]

    stop = asyncio.Event()

    def shutdown_handler(sig: signal.Signals) -> None:
        logger.info("Received signal {}, initiating shutdown...", sig.name)
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_handler, sig)

    def on_deposit(tx: TxHistory) -> None:
        amount = tx.token.to_decimal(tx.amount) if tx.token else wei_to_ether(tx.amount)
        logger.info("Deposit {} of {} in batch {}", tx.tx_id, amount, tx.batch_num)

    async with HermezClient(
        settings.network.node_url,
        timeout=settings.client.timeout_seconds,
        max_retries=settings.client.max_retries,
    ) as client:
        await watch_deposits(
            client,
            [identity.l1_address for identity in identities],
            [identity.l2_address for identity in identities],
            settings.client.poll_interval,
            stop,
            on_deposit=on_deposit,
        )
    logger.info("Shutdown complete")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Hermez layer-2 wallet toolkit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    derive = sub.add_parser("derive", help="Print L1/L2 addresses for a range of indexes")
    derive.add_argument("--start", type=int, default=0)
    derive.add_argument("--count", type=int, default=1)

    send_p = sub.add_parser("send", help="Sign and submit a layer-2 transaction")
    send_p.add_argument("--kind", choices=SEND_KINDS, required=True)
    send_p.add_argument("--to", help="Destination index or address (unused for exit)")
    send_p.add_argument("--amount", type=int, required=True, help="Amount in the smallest unit")
    send_p.add_argument("--fee", type=int, required=True, help="Fee selector (0-255)")
    send_p.add_argument("--token", default=ETH_TOKEN.symbol, help="Token symbol")
    send_p.add_argument("--dry-run", action="store_true", help="Sign only, do not submit")
    send_p.add_argument("--wait", action="store_true", help="Wait until the tx is forged")

    watch_p = sub.add_parser("watch", help="Watch batches for deposits to derived wallets")
    watch_p.add_argument("--start", type=int, default=0)
    watch_p.add_argument("--count", type=int, default=10)

    args = parser.parse_args(argv)
    if args.command == "send" and args.kind != "exit" and not args.to:
        parser.error("--to is required unless --kind exit")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging()

    try:
        if args.command == "derive":
            derive_wallets(args.start, args.count)
        elif args.command == "send":
            tx_id = asyncio.run(send(args))
            if tx_id is not None:
                print(tx_id)
        else:
            asyncio.run(watch(args))
    except (AddressError, WalletError, TransactionError, NodeAPIError) as e:
        logger.error("{}: {}", type(e).__name__, str(e))
        return 1
    return 0


if __name__ == "__main__":
    # Create logs directory if it doesn't exist
    Path("logs").mkdir(exist_ok=True)
    sys.exit(main())
