import logging

from errors import EngineFault
from models import ClientAccount, DisputableTransaction, DisputeState, ProcessingResult, Transaction, TransactionType
from ledger_state import LedgerState

logger = logging.getLogger(__name__)


class TransactionProcessor:
    """
    Applies transactions against ledger state.
    Returns ProcessingResult to indicate whether the transaction was applied or why it was ignored.
    Caller is responsible for running inside the ledger decimal context.
    """

    def __init__(self, state: LedgerState):
        self._state = state

    def process_transaction(self, transaction: Transaction) -> ProcessingResult:
        """
        Apply a single transaction.

        Returns:
            APPLIED: Account state changed
            anything else: Transaction ignored, state untouched
        """
        account_existed = self._state.has_account(transaction.client_id)
        account = self._state.get_or_create_account(transaction.client_id)

        if transaction.transaction_type.carries_amount:
            # Deposit and withdrawal ids are consumed on first sight, even when the row is then ignored.
            if self._state.is_transaction_seen(transaction.transaction_id):
                logger.info(f"{transaction}: duplicate transaction id, ignoring")
                return ProcessingResult.DUPLICATE_TRANSACTION
            self._state.mark_transaction_seen(transaction.transaction_id)

        if account.locked:
            logger.info(f"{transaction}: account {account.client_id} is locked, ignoring")
            return ProcessingResult.ACCOUNT_LOCKED

        match transaction.transaction_type:
            case TransactionType.DEPOSIT:
                return self._handle_deposit(account, transaction)
            case TransactionType.WITHDRAWAL:
                return self._handle_withdrawal(account, transaction, account_existed)
            case TransactionType.DISPUTE:
                return self._handle_dispute(account, transaction)
            case TransactionType.RESOLVE:
                return self._handle_resolve(account, transaction)
            case TransactionType.CHARGEBACK:
                return self._handle_chargeback(account, transaction)
            case _:
                raise EngineFault(f"unhandled transaction type {transaction.transaction_type!r}")

    def _handle_deposit(self, account: ClientAccount, transaction: Transaction) -> ProcessingResult:
        account.credit(transaction.amount)
        self._state.store_disputable_transaction(
            DisputableTransaction(
                transaction_id=transaction.transaction_id,
                client_id=transaction.client_id,
                amount=transaction.amount,
            )
        )
        return ProcessingResult.APPLIED

    def _handle_withdrawal(self, account: ClientAccount, transaction: Transaction, account_existed: bool) -> ProcessingResult:
        if not account_existed:
            logger.info(f"Withdrawal tx {transaction.transaction_id}: client {transaction.client_id} has no prior balance, ignoring")
            return ProcessingResult.UNKNOWN_ACCOUNT

        if account.available < transaction.amount:
            logger.info(f"Withdrawal tx {transaction.transaction_id}: insufficient funds ({account.available} < {transaction.amount})")
            return ProcessingResult.INSUFFICIENT_FUNDS

        account.debit(transaction.amount)
        return ProcessingResult.APPLIED

    def _find_disputed(self, transaction: Transaction, expected: DisputeState):
        """Look up the referenced deposit; returns (record, None) or (None, reason it cannot be used)."""
        original = self._state.get_disputable_transaction(transaction.transaction_id)

        if original is None:
            # Withdrawals are never stored here, so disputing one lands in this branch too.
            logger.info(f"{transaction.transaction_type.value.capitalize()} for tx {transaction.transaction_id}: no disputable deposit with this id")
            return None, ProcessingResult.UNKNOWN_TRANSACTION

        if original.client_id != transaction.client_id:
            logger.warning(f"{transaction.transaction_type.value.capitalize()} for tx {transaction.transaction_id}: client mismatch (expected {original.client_id}, got {transaction.client_id})")
            return None, ProcessingResult.CLIENT_MISMATCH

        if original.state is not expected:
            logger.info(f"{transaction.transaction_type.value.capitalize()} for tx {transaction.transaction_id}: transaction is {original.state.value}, expected {expected.value}")
            return None, ProcessingResult.INVALID_DISPUTE_STATE

        return original, None

    def _handle_dispute(self, account: ClientAccount, transaction: Transaction) -> ProcessingResult:
        original, rejection = self._find_disputed(transaction, DisputeState.NONE)
        if rejection is not None:
            return rejection

        # May drive available negative when the deposited funds were already withdrawn.
        account.hold(original.amount)
        original.state = DisputeState.DISPUTED
        return ProcessingResult.APPLIED

    def _handle_resolve(self, account: ClientAccount, transaction: Transaction) -> ProcessingResult:
        original, rejection = self._find_disputed(transaction, DisputeState.DISPUTED)
        if rejection is not None:
            return rejection

        self._check_held(account, original)
        account.release_hold(original.amount)
        original.state = DisputeState.RESOLVED
        return ProcessingResult.APPLIED

    def _handle_chargeback(self, account: ClientAccount, transaction: Transaction) -> ProcessingResult:
        original, rejection = self._find_disputed(transaction, DisputeState.DISPUTED)
        if rejection is not None:
            return rejection

        self._check_held(account, original)
        account.remove_held(original.amount)
        account.lock()
        original.state = DisputeState.CHARGED_BACK
        logger.warning(f"Chargeback for tx {transaction.transaction_id}: account {account.client_id} locked")
        return ProcessingResult.APPLIED

    @staticmethod
    def _check_held(account: ClientAccount, original: DisputableTransaction) -> None:
        if account.held < original.amount:
            raise EngineFault(
                f"account {account.client_id} holds {account.held}, less than disputed tx {original.transaction_id} amount {original.amount}"
            )
