"""
Funding transaction lifecycle on top of a wallet gateway.

A funding transaction is built and signed by make_funding_tx with its inputs
locked in the wallet. The caller then either commits it (publishes) or rolls
it back (unlocks the inputs).
"""

from __future__ import annotations

from loguru import logger

from chanfund.config import Settings
from chanfund.errors import GatewayError, IncompleteSignatureError
from chanfund.gateway import BitcoinCoreGateway, WalletGateway
from chanfund.models import (
    MakeFundingTxResult,
    Transaction,
    TxOut,
    find_script_index,
)


class FundingWallet:
    """
    Funding orchestrator, publish reconciler and reservation manager.
    Holds no state besides the gateway; concurrent calls are independent.
    """

    def __init__(self, gateway: WalletGateway, forward_fee_rate: bool = False):
        self.gateway = gateway
        self.forward_fee_rate = forward_fee_rate

    @classmethod
    def from_settings(cls, settings: Settings) -> FundingWallet:
        gateway = BitcoinCoreGateway(
            rpc_url=settings.rpc_url,
            rpc_user=settings.rpc_user,
            rpc_password=settings.rpc_password,
            timeout=settings.rpc_timeout,
        )
        return cls(gateway, forward_fee_rate=settings.forward_fee_rate)

    async def get_balance(self) -> int:
        return await self.gateway.get_balance()

    async def get_final_address(self) -> str:
        return await self.gateway.get_new_address()

    async def make_funding_tx(
        self, pubkey_script: bytes, amount: int, fee_rate_per_kw: int
    ) -> MakeFundingTxResult:
        """
        Build, fund and sign a transaction paying `amount` sats to `pubkey_script`.

        Inputs chosen by the wallet stay locked until the transaction is
        committed and confirmed, or released with rollback(). Nothing is
        unlocked automatically if a step fails; errors raised after funding
        carry the transaction as `tx` so its inputs can still be rolled back.

        Raises:
            IncompleteSignatureError: The wallet could not sign every input
            OutputNotFoundError: The signed transaction does not pay the script
            GatewayError, TransportError, DecodeError: From the gateway
        """
        partial_tx = Transaction(
            version=2,
            inputs=(),
            outputs=(TxOut(amount, pubkey_script),),
            locktime=0,
        )

        funded = await self.gateway.fund_transaction(
            partial_tx,
            lock_unspents=True,
            fee_rate_per_kw=fee_rate_per_kw if self.forward_fee_rate else None,
        )

        signed = await self.gateway.sign_transaction(funded.tx)
        if not signed.complete:
            raise IncompleteSignatureError(signed.tx)

        # there will probably be a change output, so ours is located by script
        output_index = find_script_index(signed.tx, pubkey_script)
        logger.debug(
            f"created funding txid={signed.tx.txid} outputIndex={output_index} fee={funded.fee}"
        )
        return MakeFundingTxResult(tx=signed.tx, output_index=output_index)

    async def commit(self, tx: Transaction) -> bool:
        """
        Publish `tx` and decide whether it should be considered sent.

        Returns False only when the node rejected the transaction with an RPC
        error and does not know it afterwards. Any other failure is treated as
        a possible broadcast, so the inputs are never reported free to reuse
        when they might already be spent.
        """
        try:
            await self.gateway.publish_transaction(tx)
            return True
        except GatewayError as e:
            logger.warning(f"txid={tx.txid} error={e}")
        except Exception as e:
            logger.warning(f"txid={tx.txid} unknown publish outcome, assuming sent: {e}")
            return True

        try:
            await self.gateway.get_transaction(tx.txid)
        except Exception as e:
            logger.info(f"txid={tx.txid} not in mempool or chain, not published: {e}")
            return False
        logger.info(f"txid={tx.txid} already known to the node")
        return True

    async def rollback(self, tx: Transaction) -> bool:
        """Unlock every outpoint spent by `tx`. Returns the wallet's answer."""
        outpoints = tx.spent_outpoints()
        if not outpoints:
            # lockunspent with an empty list would unlock every locked coin
            logger.debug(f"txid={tx.txid} has no inputs, nothing to unlock")
            return True
        return await self.gateway.unlock_outpoints(outpoints)

    async def close(self) -> None:
        await self.gateway.close()
