"""
Wallet gateway: the narrow interface to the UTXO-owning wallet service.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from loguru import logger

from chanfund.errors import DecodeError, GatewayError, NotFoundError
from chanfund.models import (
    FundingResult,
    OutPoint,
    SigningResult,
    Transaction,
    btc_to_sats,
    sats_to_btc,
)
from chanfund.rpc import DEFAULT_RPC_TIMEOUT, BitcoinRPCClient

# RPC_INVALID_ADDRESS_OR_KEY, returned by getrawtransaction for unknown txids
RPC_INVALID_ADDRESS_OR_KEY = -5

# Environment variable to enable sensitive logging (raw transaction hex)
SENSITIVE_LOGGING = os.environ.get("SENSITIVE_LOGGING", "").lower() in ("1", "true", "yes")


class WalletGateway(ABC):
    """
    Request/response operations against an external wallet service.
    Amounts are always integer satoshis on this side of the interface.
    """

    @abstractmethod
    async def fund_transaction(
        self, tx: Transaction, lock_unspents: bool, fee_rate_per_kw: int | None = None
    ) -> FundingResult:
        """Add inputs and change to cover the outputs plus fee"""

    @abstractmethod
    async def sign_transaction(self, tx: Transaction) -> SigningResult:
        """Sign every input the wallet controls"""

    @abstractmethod
    async def publish_transaction(self, tx: Transaction) -> str:
        """Broadcast transaction, returns txid"""

    @abstractmethod
    async def get_transaction(self, txid: str) -> Transaction:
        """Get transaction by txid, raises NotFoundError if unknown"""

    @abstractmethod
    async def unlock_outpoints(self, outpoints: Sequence[OutPoint]) -> bool:
        """Release reserved outpoints"""

    @abstractmethod
    async def get_balance(self) -> int:
        """Get spendable balance in satoshis"""

    @abstractmethod
    async def get_new_address(self) -> str:
        """Get a fresh receiving address"""

    async def close(self) -> None:
        """Close gateway connection"""
        pass


def fee_rate_per_kw_to_btc_per_kvb(fee_rate_per_kw: int) -> str:
    """Convert sat per 1000 weight units to the BTC/kvB string fundrawtransaction takes."""
    return f"{sats_to_btc(fee_rate_per_kw * 4):.8f}"


def _field(result: Any, key: str, kind: type | tuple[type, ...], method: str) -> Any:
    if not isinstance(result, dict) or key not in result:
        raise DecodeError(f"{method} result is missing '{key}'")
    value = result[key]
    # bool is an int subclass; reject it where a number is expected
    if not isinstance(value, kind) or (isinstance(value, bool) and kind is not bool):
        raise DecodeError(f"{method} result has invalid '{key}': {value!r}")
    return value


class BitcoinCoreGateway(WalletGateway):
    """
    Wallet gateway backed by a Bitcoin Core wallet over JSON-RPC.
    Input selection, change, signing and coin locking are all done by the node.
    """

    def __init__(
        self,
        rpc_url: str = "http://127.0.0.1:8332",
        rpc_user: str = "rpcuser",
        rpc_password: str = "rpcpassword",
        timeout: float = DEFAULT_RPC_TIMEOUT,
        rpc_client: BitcoinRPCClient | None = None,
    ):
        self.rpc = rpc_client or BitcoinRPCClient(
            rpc_url=rpc_url, rpc_user=rpc_user, rpc_password=rpc_password, timeout=timeout
        )

    def _log_tx(self, label: str, tx: Transaction) -> None:
        if SENSITIVE_LOGGING:
            logger.debug(f"{label} txid={tx.txid} hex={tx.to_hex()}")

    async def fund_transaction(
        self, tx: Transaction, lock_unspents: bool, fee_rate_per_kw: int | None = None
    ) -> FundingResult:
        options: dict[str, Any] = {"lockUnspents": lock_unspents}
        if fee_rate_per_kw is not None:
            options["feeRate"] = fee_rate_per_kw_to_btc_per_kvb(fee_rate_per_kw)

        self._log_tx("Funding", tx)
        result = await self.rpc.call("fundrawtransaction", [tx.to_hex(), options])

        funded = Transaction.from_hex(_field(result, "hex", str, "fundrawtransaction"))
        changepos = _field(result, "changepos", int, "fundrawtransaction")
        fee = btc_to_sats(_field(result, "fee", (Decimal, int), "fundrawtransaction"))

        logger.debug(
            f"Funded tx {funded.txid}: {len(funded.inputs)} input(s), "
            f"changepos={changepos}, fee={fee} sats"
        )
        return FundingResult(
            tx=funded, change_position=None if changepos < 0 else changepos, fee=fee
        )

    async def sign_transaction(self, tx: Transaction) -> SigningResult:
        result = await self.rpc.call("signrawtransactionwithwallet", [tx.to_hex()])

        signed = Transaction.from_hex(_field(result, "hex", str, "signrawtransactionwithwallet"))
        complete = _field(result, "complete", bool, "signrawtransactionwithwallet")

        if not complete:
            logger.warning(f"Wallet could not sign all inputs of {signed.txid}")
        self._log_tx("Signed", signed)
        return SigningResult(tx=signed, complete=complete)

    async def publish_transaction(self, tx: Transaction) -> str:
        self._log_tx("Broadcasting", tx)
        txid = await self.rpc.call("sendrawtransaction", [tx.to_hex()])
        if not isinstance(txid, str):
            raise DecodeError(f"sendrawtransaction returned {txid!r}")
        logger.info(f"Broadcast transaction: {txid}")
        return txid

    async def get_transaction(self, txid: str) -> Transaction:
        try:
            tx_hex = await self.rpc.call("getrawtransaction", [txid])
        except GatewayError as e:
            if e.code == RPC_INVALID_ADDRESS_OR_KEY:
                raise NotFoundError(e.code, e.message, e.method) from e
            raise

        if tx_hex is None:
            raise NotFoundError(None, f"No transaction {txid}", "getrawtransaction")
        if not isinstance(tx_hex, str):
            raise DecodeError(f"getrawtransaction returned {tx_hex!r}")
        return Transaction.from_hex(tx_hex)

    async def unlock_outpoints(self, outpoints: Sequence[OutPoint]) -> bool:
        utxos = [{"txid": outpoint.txid, "vout": outpoint.vout} for outpoint in outpoints]
        result = await self.rpc.call("lockunspent", [True, utxos])
        if not isinstance(result, bool):
            raise DecodeError(f"lockunspent returned {result!r}")
        logger.debug(f"Unlocked {len(utxos)} outpoint(s): {result}")
        return result

    async def get_balance(self) -> int:
        balance = await self.rpc.call("getbalance")
        if not isinstance(balance, (Decimal, int)) or isinstance(balance, bool):
            raise DecodeError(f"getbalance returned {balance!r}")
        sats = btc_to_sats(balance)
        logger.debug(f"Wallet balance: {sats} sats")
        return sats

    async def get_new_address(self) -> str:
        address = await self.rpc.call("getnewaddress")
        if not isinstance(address, str):
            raise DecodeError(f"getnewaddress returned {address!r}")
        return address

    async def close(self) -> None:
        await self.rpc.close()
