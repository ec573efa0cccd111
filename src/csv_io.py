import csv
import logging
from typing import Iterable, Iterator, Optional, TextIO

from errors import MalformedRecord
from models import AccountSummary, ProcessingStats, Transaction

logger = logging.getLogger(__name__)

INPUT_HEADER = ["type", "client", "tx", "amount"]
OUTPUT_HEADER = ["client", "available", "held", "total", "locked"]


def read_transactions(stream: TextIO, stats: Optional[ProcessingStats] = None) -> Iterator[Transaction]:
    """
    Lazily parse CSV rows into transactions, in input order.
    Malformed or unreadable rows are logged and skipped; they never abort the batch.
    """
    reader = csv.DictReader(stream, skipinitialspace=True)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            # The csv reader drops the offending line and resumes on the next one.
            logger.warning(f"Skipping unreadable row {reader.line_num}: {e}")
            if stats is not None:
                stats.record_malformed()
            continue

        if not any(value and value.strip() for value in row.values() if isinstance(value, str)):
            continue
        try:
            yield Transaction.from_csv_row(row)
        except MalformedRecord as e:
            logger.warning(f"Skipping malformed row {reader.line_num}: {e}")
            if stats is not None:
                stats.record_malformed()


def write_transactions(rows: Iterable[Transaction], stream: TextIO) -> None:
    """Write transactions in the input CSV format."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(INPUT_HEADER)
    for transaction in rows:
        amount = "" if transaction.amount is None else f"{transaction.amount:f}"
        writer.writerow([transaction.transaction_type.value, transaction.client_id, transaction.transaction_id, amount])


def write_accounts(summaries: Iterable[AccountSummary], stream: TextIO) -> None:
    """Write account summaries as CSV, one row per account."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(OUTPUT_HEADER)
    for summary in summaries:
        writer.writerow(summary.as_row())
