from typing import Dict, List, Optional, Set

from models import ClientAccount, DisputableTransaction


class LedgerState:
    """
    Ledger state for one batch run.
    Stores client accounts, the ids of every applied deposit and withdrawal,
    and the deposit history used for dispute lookups.

    Not thread-safe: callers must apply transactions one at a time.
    """

    def __init__(self):
        self._accounts: Dict[int, ClientAccount] = {}
        self._disputable_transactions: Dict[int, DisputableTransaction] = {}
        self._seen_transaction_ids: Set[int] = set()

    def has_account(self, client_id: int) -> bool:
        return client_id in self._accounts

    def get_or_create_account(self, client_id: int) -> ClientAccount:
        """Get existing account or create new one."""
        if client_id not in self._accounts:
            self._accounts[client_id] = ClientAccount(client_id=client_id)
        return self._accounts[client_id]

    def is_transaction_seen(self, transaction_id: int) -> bool:
        """Check if a deposit or withdrawal with this id has already been applied."""
        return transaction_id in self._seen_transaction_ids

    def mark_transaction_seen(self, transaction_id: int) -> None:
        self._seen_transaction_ids.add(transaction_id)

    def store_disputable_transaction(self, record: DisputableTransaction) -> None:
        """Store deposit for future dispute lookups."""
        self._disputable_transactions[record.transaction_id] = record

    def get_disputable_transaction(self, transaction_id: int) -> Optional[DisputableTransaction]:
        """Retrieve stored deposit by ID."""
        return self._disputable_transactions.get(transaction_id)

    def get_all_accounts(self) -> List[ClientAccount]:
        """Return all accounts ordered by client id (for final output)."""
        return [self._accounts[client_id] for client_id in sorted(self._accounts)]
