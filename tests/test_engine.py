import sys
import os
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from config import EngineConfig
from errors import EngineFault, InputFileError
from ledger_engine import LedgerEngine
from models import ProcessingResult, Transaction, TransactionType


def tx(kind, client_id, transaction_id, amount=None):
    return Transaction(TransactionType(kind), client_id, transaction_id, None if amount is None else Decimal(amount))


def summaries_by_client(summaries):
    return {summary.client_id: summary for summary in summaries}


class TestLedgerEngineApply:
    def run(self, *transactions):
        engine = LedgerEngine()
        engine.apply_all(transactions)
        return summaries_by_client(engine.snapshot())

    def test_order_matters(self):
        forward = self.run(tx("deposit", 1, 1, "5.0"), tx("withdrawal", 1, 2, "3.0"))
        assert forward[1].available == Decimal("2.0")
        assert forward[1].held == Decimal("0")
        assert forward[1].total == Decimal("2.0")
        assert forward[1].locked is False

        reverse = self.run(tx("withdrawal", 1, 2, "3.0"), tx("deposit", 1, 1, "5.0"))
        assert reverse[1].available == Decimal("5.0")
        assert reverse[1].total == Decimal("5.0")

    def test_dispute_flow(self):
        accounts = self.run(tx("deposit", 1, 1, "5.0"), tx("dispute", 1, 1))
        assert accounts[1].available == Decimal("0")
        assert accounts[1].held == Decimal("5.0")
        assert accounts[1].total == Decimal("5.0")
        assert accounts[1].locked is False

    def test_resolve_flow(self):
        accounts = self.run(tx("deposit", 1, 1, "5.0"), tx("dispute", 1, 1), tx("resolve", 1, 1))
        assert accounts[1].available == Decimal("5.0")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("5.0")
        assert accounts[1].locked is False

    def test_chargeback_flow(self):
        accounts = self.run(
            tx("deposit", 1, 1, "5.0"),
            tx("dispute", 1, 1),
            tx("chargeback", 1, 1),
            tx("deposit", 1, 2, "1.0"),
        )
        assert accounts[1].available == Decimal("0")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("0")
        assert accounts[1].locked is True

    def test_unknown_reference(self):
        accounts = self.run(tx("deposit", 1, 1, "2.0"), tx("dispute", 1, 99))
        assert accounts[1].available == Decimal("2.0")
        assert accounts[1].held == Decimal("0")

    def test_insufficient_funds(self):
        accounts = self.run(tx("deposit", 1, 1, "1.0"), tx("withdrawal", 1, 2, "5.0"))
        assert accounts[1].available == Decimal("1.0")

    def test_replayed_resolve_and_chargeback_are_no_ops(self):
        engine = LedgerEngine()
        engine.apply_all([tx("deposit", 1, 1, "5.0"), tx("deposit", 1, 2, "3.0"), tx("dispute", 1, 1), tx("resolve", 1, 1)])
        before = engine.snapshot()
        assert engine.apply(tx("resolve", 1, 1)) == ProcessingResult.INVALID_DISPUTE_STATE
        assert engine.apply(tx("chargeback", 1, 1)) == ProcessingResult.INVALID_DISPUTE_STATE
        assert engine.snapshot() == before

    def test_total_invariant_holds_after_every_step(self):
        engine = LedgerEngine()
        transactions = [
            tx("deposit", 1, 1, "10.1234"),
            tx("deposit", 2, 2, "3.0001"),
            tx("withdrawal", 1, 3, "4.5"),
            tx("dispute", 1, 1),
            tx("dispute", 2, 2),
            tx("resolve", 2, 2),
            tx("chargeback", 1, 1),
            tx("deposit", 1, 4, "1"),
            tx("withdrawal", 2, 5, "0.0001"),
        ]
        for transaction in transactions:
            engine.apply(transaction)
            for summary in engine.snapshot():
                assert summary.total == summary.available + summary.held

    def test_locked_account_is_frozen(self):
        engine = LedgerEngine()
        engine.apply_all([tx("deposit", 1, 1, "5.0"), tx("deposit", 1, 2, "2.0"), tx("dispute", 1, 1), tx("chargeback", 1, 1)])
        frozen = engine.snapshot()

        for transaction in (tx("deposit", 1, 3, "9"), tx("withdrawal", 1, 4, "1"), tx("dispute", 1, 2), tx("resolve", 1, 1)):
            assert engine.apply(transaction) == ProcessingResult.ACCOUNT_LOCKED

        assert engine.snapshot() == frozen

    def test_stats(self):
        engine = LedgerEngine()
        stats = engine.apply_all([tx("deposit", 1, 1, "5"), tx("withdrawal", 1, 2, "50"), tx("dispute", 1, 1)])
        assert stats.applied == 2
        assert stats.ignored == 1
        assert stats.results[ProcessingResult.INSUFFICIENT_FUNDS] == 1

    def test_snapshot_sorted_and_includes_referenced_clients(self):
        engine = LedgerEngine()
        engine.apply_all([tx("deposit", 3, 1, "1"), tx("dispute", 2, 1), tx("deposit", 1, 2, "1")])
        summaries = engine.snapshot()

        assert [summary.client_id for summary in summaries] == [1, 2, 3]
        assert summaries[1].as_row() == ["2", "0.0000", "0.0000", "0.0000", "false"]

    def test_snapshot_does_not_mutate(self):
        engine = LedgerEngine()
        engine.apply(tx("deposit", 1, 1, "1"))
        assert engine.snapshot() == engine.snapshot()

    def test_many_small_amounts_sum_exactly(self):
        engine = LedgerEngine()
        engine.apply_all(tx("deposit", 1, i, "0.0001") for i in range(1, 10001))
        assert engine.snapshot()[0].as_row()[1] == "1.0000"

    def test_overflow_is_engine_fault(self):
        engine = LedgerEngine()
        huge = "9" * 34 + ".9999"
        engine.apply(tx("deposit", 1, 1, huge))
        with pytest.raises(EngineFault):
            engine.apply(tx("deposit", 1, 2, huge))


class TestLedgerEngineProcessFile:
    def test_basic_transactions(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 1.0",
            "deposit, 2, 2, 2.0",
            "deposit, 1, 3, 2.0",
            "withdrawal, 1, 4, 1.5",
            "withdrawal, 2, 5, 3.0",
        ]))

        engine = LedgerEngine()
        accounts = summaries_by_client(engine.process_file(str(csv_file)))

        assert accounts[1].as_row() == ["1", "1.5000", "0.0000", "1.5000", "false"]
        assert accounts[2].as_row() == ["2", "2.0000", "0.0000", "2.0000", "false"]

    def test_dispute_resolve(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 1, 1,",
            "resolve, 1, 1,",
        ]))

        accounts = summaries_by_client(LedgerEngine().process_file(str(csv_file)))

        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].locked is False

    def test_chargeback(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 1, 1,",
            "chargeback, 1, 1,",
        ]))

        accounts = summaries_by_client(LedgerEngine().process_file(str(csv_file)))

        assert accounts[1].available == Decimal("0")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("0")
        assert accounts[1].locked is True

    def test_dispute_before_deposit_ignored(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "dispute, 1, 1,",
            "deposit, 1, 1, 100.0",
        ]))

        accounts = summaries_by_client(LedgerEngine().process_file(str(csv_file)))

        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("100")

    def test_decimal_precision(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 1.2345",
            "deposit, 1, 2, 0.0001",
            "withdrawal, 1, 3, 0.2346",
        ]))

        accounts = summaries_by_client(LedgerEngine().process_file(str(csv_file)))

        # 1.2345 + 0.0001 - 0.2346 = 1.0000
        assert accounts[1].as_row()[1] == "1.0000"

    def test_dispute_withdrawal_ignored(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "withdrawal, 1, 2, 50.0",
            "dispute, 1, 2,",
        ]))

        accounts = summaries_by_client(LedgerEngine().process_file(str(csv_file)))

        assert accounts[1].available == Decimal("50")
        assert accounts[1].held == Decimal("0")

    def test_multiple_disputes_same_client(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "deposit, 1, 2, 50.0",
            "dispute, 1, 1,",
            "dispute, 1, 2,",
            "resolve, 1, 1,",
            "chargeback, 1, 2,",
        ]))

        accounts = summaries_by_client(LedgerEngine().process_file(str(csv_file)))

        # After resolve tx1: available=100, held=50
        # After chargeback tx2: available=100, held=0, total=100, locked=True
        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].total == Decimal("100")
        assert accounts[1].locked is True

    def test_redispute_after_resolve_ignored(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "dispute, 1, 1,",
            "resolve, 1, 1,",
            "dispute, 1, 1,",
            "chargeback, 1, 1,",
        ]))

        accounts = summaries_by_client(LedgerEngine().process_file(str(csv_file)))

        assert accounts[1].available == Decimal("100")
        assert accounts[1].held == Decimal("0")
        assert accounts[1].locked is False

    def test_malformed_rows_skipped(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, -100.0",
            "transfer, 1, 2, 5.0",
            "deposit, x, 3, 5.0",
            "deposit, 1, 4, 1.00001",
            "deposit, 1, 5, 50.0",
            "withdrawal, 1, 6,",
        ]))

        engine = LedgerEngine()
        accounts = summaries_by_client(engine.process_file(str(csv_file)))

        assert accounts[1].available == Decimal("50")
        assert engine.stats.malformed == 5
        assert engine.stats.applied == 1

    def test_zero_deposit_accepted(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 0",
            "deposit, 1, 2, 100.0",
        ]))

        engine = LedgerEngine()
        accounts = summaries_by_client(engine.process_file(str(csv_file)))

        assert accounts[1].available == Decimal("100")
        assert engine.stats.applied == 2

    def test_duplicate_deposit_ignored(self, tmp_path):
        csv_file = tmp_path / "test.csv"
        csv_file.write_text('\n'.join([
            "type, client, tx, amount",
            "deposit, 1, 1, 100.0",
            "deposit, 1, 1, 100.0",
            "deposit, 2, 1, 100.0",
        ]))

        accounts = summaries_by_client(LedgerEngine().process_file(str(csv_file)))

        assert accounts[1].available == Decimal("100")
        assert accounts[2].available == Decimal("0")

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputFileError):
            LedgerEngine().process_file(str(tmp_path / "missing.csv"))

    def test_file_over_size_limit(self, tmp_path):
        csv_file = tmp_path / "big.csv"
        csv_file.write_text("type, client, tx, amount\n" + "deposit, 1, 1, 1.0\n" * 60000)

        engine = LedgerEngine(EngineConfig().with_overrides(max_input_mb=1))
        with pytest.raises(InputFileError, match="exceeds the input limit"):
            engine.process_file(str(csv_file))

    def test_file_under_size_limit(self, tmp_path):
        csv_file = tmp_path / "small.csv"
        csv_file.write_text("type, client, tx, amount\ndeposit, 1, 1, 1.0\n")

        engine = LedgerEngine(EngineConfig().with_overrides(max_input_mb=1))
        assert engine.process_file(str(csv_file))[0].available == Decimal("1")
