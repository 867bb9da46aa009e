"""
Tests for CLI commands.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from chanfund.cli import app
from chanfund.errors import IncompleteSignatureError, OutputNotFoundError, TransportError
from chanfund.models import MakeFundingTxResult

runner = CliRunner()


@pytest.fixture
def mock_wallet():
    wallet = MagicMock()
    wallet.get_balance = AsyncMock(return_value=150_000_000)
    wallet.get_final_address = AsyncMock(return_value="bcrt1qtest")
    wallet.make_funding_tx = AsyncMock()
    wallet.commit = AsyncMock(return_value=True)
    wallet.rollback = AsyncMock(return_value=True)
    wallet.close = AsyncMock()
    with patch("chanfund.cli.FundingWallet.from_settings", return_value=wallet):
        yield wallet


def test_balance(mock_wallet):
    result = runner.invoke(app, ["balance", "--rpc-url", "http://127.0.0.1:18443"])

    assert result.exit_code == 0
    assert "150,000,000 sats" in result.output
    assert "1.50000000 BTC" in result.output
    mock_wallet.close.assert_awaited_once()


def test_new_address(mock_wallet):
    result = runner.invoke(app, ["new-address"])

    assert result.exit_code == 0
    assert "bcrt1qtest" in result.output


def test_fund(mock_wallet, funding_script, signed_funded_tx):
    mock_wallet.make_funding_tx.return_value = MakeFundingTxResult(
        tx=signed_funded_tx, output_index=1
    )

    result = runner.invoke(
        app, ["fund", funding_script.hex(), "1000000", "--fee-rate-per-kw", "2500"]
    )

    assert result.exit_code == 0
    mock_wallet.make_funding_tx.assert_awaited_once_with(funding_script, 1_000_000, 2500)
    assert f"txid: {signed_funded_tx.txid}" in result.output
    assert "output_index: 1" in result.output
    assert signed_funded_tx.to_hex() in result.output


def test_fund_invalid_script(mock_wallet):
    result = runner.invoke(app, ["fund", "not-hex", "1000000"])

    assert result.exit_code == 1
    mock_wallet.make_funding_tx.assert_not_awaited()


def test_fund_error_exits_nonzero(mock_wallet, funding_script):
    mock_wallet.make_funding_tx.side_effect = TransportError("fundrawtransaction", "refused")

    result = runner.invoke(app, ["fund", funding_script.hex(), "1000000"])

    assert result.exit_code == 1
    mock_wallet.close.assert_awaited_once()


def test_fund_incomplete_signature_prints_locked_tx(
    mock_wallet, funding_script, unsigned_funded_tx
):
    mock_wallet.make_funding_tx.side_effect = IncompleteSignatureError(unsigned_funded_tx)

    result = runner.invoke(app, ["fund", funding_script.hex(), "1000000"])

    assert result.exit_code == 1
    assert f"hex: {unsigned_funded_tx.to_hex()}" in result.output
    assert "chanfund rollback" in result.output
    mock_wallet.close.assert_awaited_once()


def test_fund_missing_output_prints_locked_tx(mock_wallet, funding_script, signed_funded_tx):
    mock_wallet.make_funding_tx.side_effect = OutputNotFoundError(funding_script, signed_funded_tx)

    result = runner.invoke(app, ["fund", funding_script.hex(), "1000000"])

    assert result.exit_code == 1
    assert f"hex: {signed_funded_tx.to_hex()}" in result.output
    assert "chanfund rollback" in result.output


def test_fund_hex_can_be_rolled_back(mock_wallet, funding_script, unsigned_funded_tx):
    mock_wallet.make_funding_tx.side_effect = IncompleteSignatureError(unsigned_funded_tx)
    failed = runner.invoke(app, ["fund", funding_script.hex(), "1000000"])
    printed_hex = next(
        line.removeprefix("hex: ")
        for line in failed.output.splitlines()
        if line.startswith("hex: ")
    )

    result = runner.invoke(app, ["rollback", printed_hex])

    assert result.exit_code == 0
    mock_wallet.rollback.assert_awaited_once_with(unsigned_funded_tx)


def test_commit(mock_wallet, signed_funded_tx):
    result = runner.invoke(app, ["commit", signed_funded_tx.to_hex()])

    assert result.exit_code == 0
    mock_wallet.commit.assert_awaited_once_with(signed_funded_tx)
    assert "committed: True" in result.output


def test_commit_not_published(mock_wallet, signed_funded_tx):
    mock_wallet.commit.return_value = False

    result = runner.invoke(app, ["commit", signed_funded_tx.to_hex()])

    assert result.exit_code == 1


def test_commit_invalid_hex(mock_wallet):
    result = runner.invoke(app, ["commit", "0200"])

    assert result.exit_code == 1
    mock_wallet.commit.assert_not_awaited()


def test_rollback(mock_wallet, signed_funded_tx):
    result = runner.invoke(app, ["rollback", signed_funded_tx.to_hex()])

    assert result.exit_code == 0
    mock_wallet.rollback.assert_awaited_once_with(signed_funded_tx)
    assert "unlocked: True" in result.output
