"""Generate random, well-formed transaction CSV files for manual and load testing."""

import argparse
import random
import sys
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Sequence

from csv_io import write_transactions
from models import Transaction, TransactionType

# Relative frequency of each kind. Dispute-lifecycle rows only reference earlier
# deposits of the same client, so the generated batch always exercises real disputes.
TYPE_WEIGHTS = {
    TransactionType.DEPOSIT: 0.45,
    TransactionType.WITHDRAWAL: 0.35,
    TransactionType.DISPUTE: 0.10,
    TransactionType.RESOLVE: 0.05,
    TransactionType.CHARGEBACK: 0.05,
}

MAX_AMOUNT_UNITS = 10_000 * 10_000  # 10000.0000


def _random_amount(rng: random.Random) -> Decimal:
    return Decimal(rng.randint(1, MAX_AMOUNT_UNITS)).scaleb(-4)


def generate_transactions(count: int, rng: Optional[random.Random] = None, max_client_id: int = 30) -> Iterator[Transaction]:
    """Yield count transactions with unique ids for deposits and withdrawals."""
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    if max_client_id < 1:
        raise ValueError(f"max_client_id must be at least 1, got {max_client_id}")

    rng = rng or random.Random()
    kinds = list(TYPE_WEIGHTS)
    weights = list(TYPE_WEIGHTS.values())

    next_transaction_id = 1
    deposits: Dict[int, List[int]] = {}
    disputed: Dict[int, List[int]] = {}

    generated = 0
    while generated < count:
        client_id = rng.randint(1, max_client_id)
        kind = rng.choices(kinds, weights=weights)[0]

        if kind.carries_amount:
            transaction = Transaction(kind, client_id, next_transaction_id, _random_amount(rng))
            if kind is TransactionType.DEPOSIT:
                deposits.setdefault(client_id, []).append(next_transaction_id)
            next_transaction_id += 1
        elif kind is TransactionType.DISPUTE:
            candidates = deposits.get(client_id)
            if not candidates:
                continue
            transaction_id = candidates.pop(rng.randrange(len(candidates)))
            disputed.setdefault(client_id, []).append(transaction_id)
            transaction = Transaction(kind, client_id, transaction_id)
        else:
            candidates = disputed.get(client_id)
            if not candidates:
                continue
            transaction_id = candidates.pop(rng.randrange(len(candidates)))
            transaction = Transaction(kind, client_id, transaction_id)

        generated += 1
        yield transaction


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Generates a CSV file with random transaction records")
    parser.add_argument("count", type=int, help="Number of records to generate")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible output")
    parser.add_argument("--clients", type=int, default=30, help="Number of distinct clients (default: 30)")
    args = parser.parse_args(argv)

    if args.count < 1:
        parser.error("count must be at least 1")
    if args.clients < 1:
        parser.error("--clients must be at least 1")

    write_transactions(generate_transactions(args.count, random.Random(args.seed), args.clients), sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
