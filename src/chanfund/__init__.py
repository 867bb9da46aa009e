"""
chanfund - funding transaction lifecycle for payment channels, backed by a
Bitcoin Core wallet.
"""

from chanfund.errors import (
    DecodeError,
    FundingError,
    GatewayError,
    IncompleteSignatureError,
    NotFoundError,
    OutputNotFoundError,
    TransportError,
)
from chanfund.gateway import BitcoinCoreGateway, WalletGateway
from chanfund.models import (
    FundingResult,
    MakeFundingTxResult,
    OutPoint,
    SigningResult,
    Transaction,
    TxIn,
    TxOut,
    btc_to_sats,
    sats_to_btc,
)
from chanfund.wallet import FundingWallet

__version__ = "0.1.0"

__all__ = [
    "BitcoinCoreGateway",
    "DecodeError",
    "FundingError",
    "FundingResult",
    "FundingWallet",
    "GatewayError",
    "IncompleteSignatureError",
    "MakeFundingTxResult",
    "NotFoundError",
    "OutPoint",
    "OutputNotFoundError",
    "SigningResult",
    "Transaction",
    "TransportError",
    "TxIn",
    "TxOut",
    "WalletGateway",
    "btc_to_sats",
    "sats_to_btc",
]
