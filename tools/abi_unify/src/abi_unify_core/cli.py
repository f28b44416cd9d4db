from __future__ import annotations

import argparse
import sys

from .core import AbiUnifyError
from .commands import (
    command_diff,
    command_list_families,
    command_plan,
    command_unify,
)

def add_common_input_args(parser: argparse.ArgumentParser, config_required: bool = False) -> None:
    parser.add_argument(
        "--repo-root",
        default=".",
        help="Repository root used to resolve relative config paths (default: current directory).",
    )
    parser.add_argument("--config", required=config_required, help="Path to unification config JSON.")
    parser.add_argument(
        "--input",
        action="append",
        help="Declaration set JSON file, directory or glob (repeatable; default: config inputs).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="abi_unify",
        description="Unify versioned native API declarations into one module (structs/interfaces/bridges).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    unify = sub.add_parser("unify", help="Run the unification pipeline and write the unified module.")
    add_common_input_args(unify, config_required=True)
    unify.add_argument("--output", help="Write unified module JSON to path.")
    unify.add_argument("--report", help="Write unification report JSON to path.")
    unify.add_argument("--markdown-report", help="Write unification report as Markdown.")
    unify.add_argument("--sarif-report", help="Write unification report as SARIF (for CI/code scanning).")
    unify.add_argument("--jobs", type=int, help="Worker threads for per-unit analysis (overrides config).")
    unify.add_argument(
        "--allow-partial",
        action="store_true",
        help="Write the module even when some structs or interface families failed.",
    )
    unify.set_defaults(func=command_unify)

    diff = sub.add_parser("diff", help="Print method diffs between adjacent versions of one interface family.")
    add_common_input_args(diff)
    diff.add_argument("--family", required=True, help="Interface family base name (for example IVROverlay).")
    diff.add_argument("--output", help="Write diffs JSON to path.")
    diff.set_defaults(func=command_diff)

    plan = sub.add_parser("plan", help="Print the implementation plan of one interface family.")
    add_common_input_args(plan)
    plan.add_argument("--family", required=True, help="Interface family base name (for example IVROverlay).")
    plan.add_argument("--output", help="Write plan JSON to path.")
    plan.set_defaults(func=command_plan)

    list_families = sub.add_parser("list-families", help="List interface families and structs with their versions.")
    add_common_input_args(list_families)
    list_families.set_defaults(func=command_list_families)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return int(args.func(args))
    except AbiUnifyError as exc:
        print(f"abi_unify error: {exc}", file=sys.stderr)
        return 2



if __name__ == "__main__":
    raise SystemExit(main())
