import re
from collections import Counter
from dataclasses import dataclass
from decimal import Context, Decimal, DecimalException, Inexact, InvalidOperation, Overflow, DivisionByZero, ROUND_HALF_EVEN, localcontext
from enum import Enum
from typing import List, Mapping, Optional, Union

from errors import MalformedRecord

MAX_CLIENT_ID = 2**16 - 1
MAX_TRANSACTION_ID = 2**32 - 1

AMOUNT_QUANTUM = Decimal("0.0001")

# ASCII digits with an optional sign, fraction and exponent; no underscores, NaN or Infinity.
AMOUNT_PATTERN = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\Z", re.ASCII)

# Any arithmetic that would round, overflow or produce NaN raises instead of silently
# losing precision. The ledger engine runs every state transition inside this context.
LEDGER_CONTEXT = Context(
    prec=38,
    rounding=ROUND_HALF_EVEN,
    traps=[Inexact, Overflow, InvalidOperation, DivisionByZero],
)


class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"

    @property
    def carries_amount(self) -> bool:
        return self in (TransactionType.DEPOSIT, TransactionType.WITHDRAWAL)


class DisputeState(Enum):
    NONE = "none"
    DISPUTED = "disputed"
    RESOLVED = "resolved"
    CHARGED_BACK = "charged_back"


class ProcessingResult(Enum):
    """Outcome of applying one transaction. Everything except APPLIED is a no-op."""

    APPLIED = "applied"
    ACCOUNT_LOCKED = "account_locked"
    UNKNOWN_ACCOUNT = "unknown_account"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    UNKNOWN_TRANSACTION = "unknown_transaction"
    CLIENT_MISMATCH = "client_mismatch"
    INVALID_DISPUTE_STATE = "invalid_dispute_state"

    @property
    def applied(self) -> bool:
        return self is ProcessingResult.APPLIED


def to_amount(value: Union[Decimal, int, str]) -> Decimal:
    """
    Convert value to a non-negative Decimal with exactly 4 fractional digits.
    Raises MalformedRecord if it is not a number, negative, or not representable exactly.
    """
    if isinstance(value, str) and not AMOUNT_PATTERN.match(value.strip()):
        raise MalformedRecord(f"invalid amount {value!r}: not a plain decimal number")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(value)
    except (DecimalException, TypeError, ValueError) as e:
        raise MalformedRecord(f"invalid amount {value!r}: {e!r}") from e

    if not amount.is_finite():
        raise MalformedRecord(f"invalid amount {value!r}: not a finite number")
    if amount < 0:
        raise MalformedRecord(f"invalid amount {value!r}: negative")

    try:
        return amount.copy_abs().quantize(AMOUNT_QUANTUM, context=LEDGER_CONTEXT)
    except Inexact as e:
        raise MalformedRecord(f"invalid amount {value!r}: more than 4 decimal places") from e
    except DecimalException as e:
        raise MalformedRecord(f"invalid amount {value!r}: out of range") from e


def _check_identifier(name: str, value: int, upper_bound: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRecord(f"invalid {name} id {value!r}: not an integer")
    if not 0 <= value <= upper_bound:
        raise MalformedRecord(f"invalid {name} id {value}: out of range 0..{upper_bound}")


def _parse_identifier(name: str, raw: str, upper_bound: int) -> int:
    # int() would also take "+5", "1_0" and non-ASCII digits
    if not (raw.isascii() and raw.isdigit()):
        raise MalformedRecord(f"invalid {name} id {raw!r}: not a non-negative integer")
    try:
        value = int(raw)
    except ValueError as e:
        raise MalformedRecord(f"invalid {name} id {raw!r}") from e
    _check_identifier(name, value, upper_bound)
    return value


@dataclass(frozen=True)
class Transaction:
    transaction_type: TransactionType
    client_id: int
    transaction_id: int
    amount: Optional[Decimal] = None

    def __post_init__(self) -> None:
        if not isinstance(self.transaction_type, TransactionType):
            raise MalformedRecord(f"invalid transaction type {self.transaction_type!r}")
        _check_identifier("client", self.client_id, MAX_CLIENT_ID)
        _check_identifier("tx", self.transaction_id, MAX_TRANSACTION_ID)

        if self.transaction_type.carries_amount:
            if self.amount is None:
                raise MalformedRecord(f"{self.transaction_type.value} tx {self.transaction_id}: amount missing")
            object.__setattr__(self, "amount", to_amount(self.amount))
        else:
            # Dispute, resolve and chargeback reference an earlier amount; a supplied one is ignored.
            object.__setattr__(self, "amount", None)

    @classmethod
    def from_csv_row(cls, row: Mapping[Optional[str], Optional[str]]) -> "Transaction":
        """
        Build a Transaction from a csv.DictReader row (header -> raw value).

        Header names and values are whitespace-trimmed and the type is case-insensitive.
        Raises MalformedRecord for anything that does not describe a valid transaction.
        """
        normalized = {
            key.strip(): value.strip()
            for key, value in row.items()
            if key is not None and isinstance(value, str)
        }

        raw_type = normalized.get("type", "").lower()
        try:
            transaction_type = TransactionType(raw_type)
        except ValueError as e:
            raise MalformedRecord(f"unknown transaction type {raw_type!r}") from e

        client_id = _parse_identifier("client", normalized.get("client", ""), MAX_CLIENT_ID)
        transaction_id = _parse_identifier("tx", normalized.get("tx", ""), MAX_TRANSACTION_ID)

        amount = None
        if transaction_type.carries_amount:
            raw_amount = normalized.get("amount", "")
            if not raw_amount:
                raise MalformedRecord(f"{transaction_type.value} tx {transaction_id}: amount missing")
            amount = to_amount(raw_amount)

        return cls(
            transaction_type=transaction_type,
            client_id=client_id,
            transaction_id=transaction_id,
            amount=amount,
        )

    def __repr__(self) -> str:
        return f"Transaction({self.transaction_type.value}, client={self.client_id}, tx={self.transaction_id}, amount={self.amount})"


@dataclass
class DisputableTransaction:
    """A deposit kept on record so later dispute, resolve and chargeback rows can find it."""

    transaction_id: int
    client_id: int
    amount: Decimal
    state: DisputeState = DisputeState.NONE


def format_amount(value: Decimal) -> str:
    """Render an amount with exactly 4 decimal places."""
    with localcontext(LEDGER_CONTEXT):
        return f"{value.quantize(AMOUNT_QUANTUM):f}"


@dataclass(frozen=True)
class AccountSummary:
    client_id: int
    available: Decimal
    held: Decimal
    total: Decimal
    locked: bool

    def as_row(self) -> List[str]:
        return [
            str(self.client_id),
            format_amount(self.available),
            format_amount(self.held),
            format_amount(self.total),
            str(self.locked).lower(),
        ]


@dataclass
class ClientAccount:
    client_id: int
    available: Decimal = Decimal("0.0000")
    held: Decimal = Decimal("0.0000")
    locked: bool = False

    @property
    def total(self) -> Decimal:
        return self.available + self.held

    def credit(self, amount: Decimal) -> None:
        self.available += amount

    def debit(self, amount: Decimal) -> None:
        self.available -= amount

    def hold(self, amount: Decimal) -> None:
        self.available -= amount
        self.held += amount

    def release_hold(self, amount: Decimal) -> None:
        self.held -= amount
        self.available += amount

    def remove_held(self, amount: Decimal) -> None:
        self.held -= amount

    def lock(self) -> None:
        self.locked = True

    def to_summary(self) -> AccountSummary:
        with localcontext(LEDGER_CONTEXT):
            return AccountSummary(
                client_id=self.client_id,
                available=self.available.quantize(AMOUNT_QUANTUM),
                held=self.held.quantize(AMOUNT_QUANTUM),
                total=self.total.quantize(AMOUNT_QUANTUM),
                locked=self.locked,
            )


class ProcessingStats:
    """Counters for applied, ignored and malformed records in one batch."""

    def __init__(self):
        self.results: Counter = Counter()
        self.malformed = 0

    def record_result(self, result: ProcessingResult) -> None:
        self.results[result] += 1

    def record_malformed(self) -> None:
        self.malformed += 1

    @property
    def applied(self) -> int:
        return self.results[ProcessingResult.APPLIED]

    @property
    def ignored(self) -> int:
        return sum(count for result, count in self.results.items() if not result.applied)

    def __str__(self) -> str:
        return f"Applied: {self.applied}, Ignored: {self.ignored}, Malformed: {self.malformed}"
