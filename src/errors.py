class PaymentsError(Exception):
    """Base class for all errors raised by the payments ledger."""


class MalformedRecord(PaymentsError, ValueError):
    """An input row cannot be turned into a valid Transaction."""


class EngineFault(PaymentsError):
    """
    Non-recoverable ledger fault (numeric overflow, inexact arithmetic, corrupted state).
    Aborts the batch; never raised for business-level rejections.
    """


class InputFileError(PaymentsError):
    """Input file is missing, unreadable, or larger than the configured limit."""
