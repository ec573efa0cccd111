import argparse
import logging
import sys
from typing import Optional, Sequence

from config import LOG_LEVELS, EngineConfig
from csv_io import write_accounts
from errors import EngineFault, InputFileError
from ledger_engine import LedgerEngine

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_ENGINE_FAULT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payments-ledger",
        description="Apply a CSV batch of client transactions and print the final account balances",
    )
    parser.add_argument("transaction_file", help="Path of input file in CSV format")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None, help="Diagnostics verbosity on stderr")
    parser.add_argument("--max-input-mb", type=int, default=None, help="Reject input files larger than this many megabytes")
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = EngineConfig.from_env().with_overrides(log_level=args.log_level, max_input_mb=args.max_input_mb)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(config.log_level)

    engine = LedgerEngine(config)
    try:
        summaries = engine.process_file(args.transaction_file)
    except InputFileError as e:
        logger.error(str(e))
        return EXIT_INPUT_ERROR
    except EngineFault as e:
        logger.critical(f"Aborting batch: {e}")
        return EXIT_ENGINE_FAULT

    write_accounts(summaries, sys.stdout)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
