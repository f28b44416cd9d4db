from __future__ import annotations

import argparse
import sys

from ..core import *  # noqa: F401,F403
from .common import load_config_for_args

def command_unify(args: argparse.Namespace) -> int:
    repo_root = Path(args.repo_root).resolve()
    config = load_config_for_args(args)
    options = build_unify_options(config, max_workers_override=args.jobs)
    paths = resolve_input_paths(repo_root, config, args.input)
    result = unify_files(paths, options, repo_root=repo_root)
    report = result.as_report()
    report["options"] = options.as_dict()

    if args.report:
        write_json(Path(args.report).resolve(), report)
    if args.markdown_report:
        write_markdown_report(Path(args.markdown_report).resolve(), report)
    if args.sarif_report:
        sarif_results = build_sarif_results(
            report=report,
            source_paths=[to_repo_relative(path, repo_root) for path in paths],
        )
        write_sarif_report(Path(args.sarif_report).resolve(), sarif_results)

    print_report(report)

    if result.module is None:
        for item in result.failures_of_kind(NAME_COLLISION):
            print(f"abi_unify error: {item.message}", file=sys.stderr)
        return 2
    if result.failures and not args.allow_partial:
        print(
            f"abi_unify: {len(result.failures)} unit(s) failed; module not written (use --allow-partial)",
            file=sys.stderr,
        )
        return 1

    if args.output:
        write_json(Path(args.output).resolve(), result.module.as_dict())
        print(f"Wrote unified module: {args.output}")
    return 0
