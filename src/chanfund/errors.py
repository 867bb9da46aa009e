"""
Exception hierarchy for funding transaction handling.

GatewayError and TransportError are deliberately distinct types: the first is
a structured rejection returned by the node, the second means the outcome of
the request is unknown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chanfund.models import Transaction


class FundingError(Exception):
    """Base class for all errors raised by chanfund."""


class DecodeError(FundingError):
    """A serialized transaction or RPC result could not be decoded."""


class GatewayError(FundingError):
    """Structured error object returned by the wallet node."""

    def __init__(self, code: int | None, message: str, method: str = ""):
        self.code = code
        self.message = message
        self.method = method
        super().__init__(f"RPC error {code} in {method or 'request'}: {message}")


class NotFoundError(GatewayError):
    """The node has no record of the requested transaction."""


class TransportError(FundingError):
    """The node could not be reached or answered with something unparseable."""

    def __init__(self, method: str, cause: BaseException | str):
        self.method = method
        self.cause = cause
        super().__init__(f"Transport failure in {method}: {cause}")


class IncompleteSignatureError(FundingError):
    """The node could not sign every input of the funding transaction."""

    def __init__(self, tx: Transaction):
        self.tx = tx
        super().__init__(f"Transaction {tx.txid} is not fully signed")


class OutputNotFoundError(FundingError):
    """No output of the transaction pays the requested script."""

    def __init__(self, script: bytes, tx: Transaction):
        self.script = script
        self.tx = tx
        super().__init__(f"No output with script {script.hex()} in transaction {tx.txid}")
