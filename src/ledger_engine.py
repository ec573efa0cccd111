import logging
import os
from decimal import DecimalException, localcontext
from typing import Iterable, List, Optional

from config import EngineConfig
from csv_io import read_transactions
from errors import EngineFault, InputFileError
from ledger_state import LedgerState
from models import LEDGER_CONTEXT, AccountSummary, ProcessingResult, ProcessingStats, Transaction
from transaction_processor import TransactionProcessor

logger = logging.getLogger(__name__)


class LedgerEngine:
    """
    Applies an ordered batch of transactions to client accounts.

    One engine per batch: it exclusively owns the account and deposit maps,
    applies transactions strictly in the order given, and exposes the final
    balances through snapshot(). Not thread-safe.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config = config or EngineConfig()
        self._state = LedgerState()
        self._processor = TransactionProcessor(self._state)
        self._stats = ProcessingStats()

    @property
    def stats(self) -> ProcessingStats:
        return self._stats

    def apply(self, transaction: Transaction) -> ProcessingResult:
        """
        Apply one transaction. Inapplicable transactions are ignored and reported
        through the returned result; only EngineFault is ever raised.
        """
        try:
            with localcontext(LEDGER_CONTEXT):
                result = self._processor.process_transaction(transaction)
        except DecimalException as e:
            raise EngineFault(f"arithmetic fault while applying {transaction}: {e!r}") from e

        self._stats.record_result(result)
        logger.debug(f"{transaction}: {result.value}")
        return result

    def apply_all(self, transactions: Iterable[Transaction]) -> ProcessingStats:
        """Fold apply() over transactions in order."""
        for transaction in transactions:
            self.apply(transaction)

        logger.info(str(self._stats))
        return self._stats

    def snapshot(self) -> List[AccountSummary]:
        """Final state of every account ever referenced, ordered by client id."""
        return [account.to_summary() for account in self._state.get_all_accounts()]

    def process_file(self, filepath: str) -> List[AccountSummary]:
        """Process CSV file and return final account summaries."""
        self._check_input_file(filepath)

        logger.info(f"Processing transactions from {filepath}")
        try:
            with open(filepath, "r", newline="") as f:
                self.apply_all(read_transactions(f, self._stats))
        except (OSError, UnicodeDecodeError) as e:
            raise InputFileError(f"Error reading transaction file {filepath}: {e}") from e

        return self.snapshot()

    def _check_input_file(self, filepath: str) -> None:
        if not os.path.isfile(filepath):
            raise InputFileError(f"Transaction file {filepath} does not exist or is not a file")

        size = os.path.getsize(filepath)
        limit = self._config.max_input_bytes
        if limit is not None and size > limit:
            raise InputFileError(
                f"Transaction file {filepath} is {size} bytes which exceeds the input limit of {limit} bytes"
            )
