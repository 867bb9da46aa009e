"""
Test configuration for chanfund tests.
"""

from __future__ import annotations

import pytest

from chanfund.models import OutPoint, Transaction, TxIn, TxOut

# P2WSH 2-of-2 style funding script (OP_0 <32-byte hash>)
FUNDING_SCRIPT = bytes.fromhex("0020" + "aa" * 32)

# P2WPKH change script (OP_0 <20-byte hash>)
CHANGE_SCRIPT = bytes.fromhex("0014" + "bb" * 20)

FUNDING_AMOUNT = 1_000_000


@pytest.fixture
def funding_script() -> bytes:
    return FUNDING_SCRIPT


@pytest.fixture
def funding_amount() -> int:
    return FUNDING_AMOUNT


@pytest.fixture
def change_script() -> bytes:
    return CHANGE_SCRIPT


@pytest.fixture
def unsigned_funded_tx() -> Transaction:
    """Funded transaction with the change output placed before the funding output."""
    return Transaction(
        version=2,
        inputs=(
            TxIn(OutPoint("11" * 32, 0), sequence=0xFFFFFFFD),
            TxIn(OutPoint("22" * 32, 3), sequence=0xFFFFFFFD),
        ),
        outputs=(
            TxOut(48_590, CHANGE_SCRIPT),
            TxOut(FUNDING_AMOUNT, FUNDING_SCRIPT),
        ),
        locktime=0,
    )


@pytest.fixture
def signed_funded_tx(unsigned_funded_tx: Transaction) -> Transaction:
    witness = (bytes.fromhex("30" * 71), bytes.fromhex("02" + "cc" * 32))
    return Transaction(
        version=unsigned_funded_tx.version,
        inputs=tuple(
            TxIn(inp.outpoint, inp.script_sig, inp.sequence, witness)
            for inp in unsigned_funded_tx.inputs
        ),
        outputs=unsigned_funded_tx.outputs,
        locktime=unsigned_funded_tx.locktime,
    )
