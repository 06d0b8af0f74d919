"""
cashflow-settle - plan channel-aware settlement transfers for a group.

Usage:
  cashflow-settle group.txt                      # token-stream input, table output
  cashflow-settle group.json --output json       # JSON in, JSON out
  cashflow-settle https://host/group.json       # fetch the input over http(s)
  cat group.txt | cashflow-settle --balances     # show net balances before the plan

Environment:
  CASHFLOW_SELF_DEBT_POLICY - tolerate | reject (default: tolerate)
  CASHFLOW_OUTPUT_FORMAT    - table | json (default: table)
  CASHFLOW_LOG_LEVEL        - log level on stderr (default: WARNING)
  CASHFLOW_TREASURER_LABEL  - role label for participant 0 (default: Treasurer)
  CASHFLOW_HTTP_TIMEOUT     - seconds to wait for http(s) input (default: 30)
"""

import argparse
import logging
import sys
from typing import List, Optional

from cashflow.config import SettleConfig
from cashflow.errors import CashflowError
from cashflow.ingest import VALID_INPUT_FORMATS, load_input
from cashflow.netting import NettingEngine
from cashflow.report import render
from cashflow.settle import settle

logger = logging.getLogger("cashflow-settle")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cashflow-settle",
        description="Settle group debts with the fewest channel-compatible transfers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Token-stream input (Treasurer first, whitespace separated):
  3
  Treasurer 1 upi-a
  Asha 2 upi-a upi-b
  Ravi 1 upi-b
  1
  Ravi Asha 10

Examples:
  %(prog)s group.txt
  %(prog)s group.json --output json
  %(prog)s - --self-debts reject < group.txt
""",
    )
    parser.add_argument("input", nargs="?", default="-",
                        help="Input file or http(s) URL (default: stdin)")
    parser.add_argument("--format", dest="input_format", default="auto",
                        choices=sorted(VALID_INPUT_FORMATS),
                        help="Input format (default: auto-detect)")
    parser.add_argument("--output", dest="output_format", choices=["table", "json"],
                        help="Output format (default: CASHFLOW_OUTPUT_FORMAT or table)")
    parser.add_argument("--self-debts", dest="self_debt_policy", choices=["tolerate", "reject"],
                        help="How to treat debts a participant owes to themselves")
    parser.add_argument("--balances", action="store_true",
                        help="Show participants and net balances before the plan")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = SettleConfig.from_env().with_overrides(
            output_format=args.output_format,
            self_debt_policy=args.self_debt_policy,
        )
    except CashflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level_value,
        format="%(asctime)s [%(levelname)s] %(message)s",
        stream=sys.stderr,
    )

    try:
        registry, ledger = load_input(args.input, args.input_format, config)
        balances = NettingEngine.compute_net_balances(ledger.matrix)
        plan = settle(registry, ledger)
    except CashflowError as e:
        logger.debug(f"settlement aborted: {type(e).__name__}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(render(
        plan,
        registry,
        output_format=config.output_format,
        balances=balances if args.balances else (),
        treasurer_label=config.treasurer_label,
    ))
    return 0


if __name__ == "__main__":
    sys.exit(main())
