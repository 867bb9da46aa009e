"""
chanfund CLI - fund, publish and release channel funding transactions.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from loguru import logger

from chanfund.config import Settings
from chanfund.errors import FundingError, IncompleteSignatureError, OutputNotFoundError
from chanfund.models import MakeFundingTxResult, Transaction, sats_to_btc
from chanfund.wallet import FundingWallet

T = TypeVar("T")

app = typer.Typer(
    name="chanfund",
    help="Channel funding transactions via a Bitcoin Core wallet",
    add_completion=False,
)

RpcUrlOption = typer.Option(None, "--rpc-url", help="Bitcoin Core RPC URL")
RpcUserOption = typer.Option(None, "--rpc-user")
RpcPasswordOption = typer.Option(None, "--rpc-password")
LogLevelOption = typer.Option(None, "--log-level", "-l")


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def load_settings(**overrides: Any) -> Settings:
    """Settings from environment/.env, with CLI values taking precedence."""
    settings = Settings(**{key: value for key, value in overrides.items() if value is not None})
    setup_logging(settings.log_level)
    return settings


def run_with_wallet(settings: Settings, operation: Callable[[FundingWallet], Awaitable[T]]) -> T:
    async def _run() -> T:
        wallet = FundingWallet.from_settings(settings)
        try:
            return await operation(wallet)
        finally:
            await wallet.close()

    try:
        return asyncio.run(_run())
    except FundingError as e:
        logger.error(f"{type(e).__name__}: {e}")
        raise typer.Exit(1)


def parse_tx(tx_hex: str) -> Transaction:
    try:
        return Transaction.from_hex(tx_hex.strip())
    except FundingError as e:
        logger.error(f"Invalid transaction: {e}")
        raise typer.Exit(1)


@app.command()
def balance(
    rpc_url: str | None = RpcUrlOption,
    rpc_user: str | None = RpcUserOption,
    rpc_password: str | None = RpcPasswordOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Show the wallet's spendable balance."""
    settings = load_settings(
        rpc_url=rpc_url, rpc_user=rpc_user, rpc_password=rpc_password, log_level=log_level
    )
    sats = run_with_wallet(settings, lambda wallet: wallet.get_balance())
    print(f"{sats:,} sats ({sats_to_btc(sats)} BTC)")


@app.command()
def new_address(
    rpc_url: str | None = RpcUrlOption,
    rpc_user: str | None = RpcUserOption,
    rpc_password: str | None = RpcPasswordOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Get a fresh address from the wallet."""
    settings = load_settings(
        rpc_url=rpc_url, rpc_user=rpc_user, rpc_password=rpc_password, log_level=log_level
    )
    print(run_with_wallet(settings, lambda wallet: wallet.get_final_address()))


@app.command()
def fund(
    script_hex: str = typer.Argument(..., help="scriptPubKey of the funding output (hex)"),
    amount: int = typer.Argument(..., min=1, help="Amount in sats"),
    fee_rate_per_kw: int = typer.Option(
        253, "--fee-rate-per-kw", min=0, help="Fee rate in sat per 1000 weight units"
    ),
    forward_fee_rate: bool | None = typer.Option(
        None, "--forward-fee-rate/--node-fee-rate", help="Pass the fee rate to the node"
    ),
    rpc_url: str | None = RpcUrlOption,
    rpc_user: str | None = RpcUserOption,
    rpc_password: str | None = RpcPasswordOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Build, fund and sign a transaction. Its inputs stay locked until rollback."""
    settings = load_settings(
        rpc_url=rpc_url,
        rpc_user=rpc_user,
        rpc_password=rpc_password,
        log_level=log_level,
        forward_fee_rate=forward_fee_rate,
    )
    try:
        script = bytes.fromhex(script_hex)
    except ValueError:
        logger.error(f"Invalid script hex: {script_hex}")
        raise typer.Exit(1)

    async def _fund(wallet: FundingWallet) -> MakeFundingTxResult:
        try:
            return await wallet.make_funding_tx(script, amount, fee_rate_per_kw)
        except (IncompleteSignatureError, OutputNotFoundError) as e:
            # inputs were locked by fundrawtransaction; only this hex can release them
            print(f"txid: {e.tx.txid}")
            print(f"hex: {e.tx.to_hex()}")
            print("Inputs are locked. Release them with: chanfund rollback <hex>")
            raise

    result = run_with_wallet(settings, _fund)
    print(f"txid: {result.tx.txid}")
    print(f"output_index: {result.output_index}")
    print(f"hex: {result.tx.to_hex()}")


@app.command()
def commit(
    tx_hex: str = typer.Argument(..., help="Signed transaction (hex)"),
    rpc_url: str | None = RpcUrlOption,
    rpc_user: str | None = RpcUserOption,
    rpc_password: str | None = RpcPasswordOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Publish a transaction. Exits 1 if it was rejected and is unknown to the node."""
    settings = load_settings(
        rpc_url=rpc_url, rpc_user=rpc_user, rpc_password=rpc_password, log_level=log_level
    )
    tx = parse_tx(tx_hex)
    committed = run_with_wallet(settings, lambda wallet: wallet.commit(tx))
    print(f"{tx.txid} committed: {committed}")
    if not committed:
        raise typer.Exit(1)


@app.command()
def rollback(
    tx_hex: str = typer.Argument(..., help="Abandoned transaction (hex)"),
    rpc_url: str | None = RpcUrlOption,
    rpc_user: str | None = RpcUserOption,
    rpc_password: str | None = RpcPasswordOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Unlock the inputs of an abandoned transaction."""
    settings = load_settings(
        rpc_url=rpc_url, rpc_user=rpc_user, rpc_password=rpc_password, log_level=log_level
    )
    tx = parse_tx(tx_hex)
    unlocked = run_with_wallet(settings, lambda wallet: wallet.rollback(tx))
    print(f"{tx.txid} unlocked: {unlocked}")
    if not unlocked:
        raise typer.Exit(1)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
