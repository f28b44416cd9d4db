from __future__ import annotations

import argparse

from ..core import *  # noqa: F401,F403
from .common import load_declaration_sets_for_args, resolve_family

def command_diff(args: argparse.Namespace) -> int:
    family = resolve_family(args)
    diffs = diff_family(family)
    if args.output:
        write_json(
            Path(args.output).resolve(),
            {"family": family.base_name, "diffs": [diff.as_dict() for diff in diffs]},
        )

    print(f"Interface family {family.base_name}: {len(family.members)} version(s)")
    for diff in diffs:
        print_method_diff(diff)
    return 0


def command_plan(args: argparse.Namespace) -> int:
    family = resolve_family(args)
    synthesis = synthesize_family(family)
    if args.output:
        write_json(
            Path(args.output).resolve(),
            {
                "family": synthesis.base_name,
                "implement": synthesis.newest.name,
                "supertraits": [edge.as_dict() for edge in synthesis.supertraits],
                "bridges": [bridge.as_dict() for bridge in synthesis.bridges],
                "targets": [entry.as_dict() for entry in synthesis.plan],
            },
        )

    print_family_plan(synthesis)
    for bridge in synthesis.bridges:
        print(f"  bridge {bridge.name}: {bridge.equivalence}")
        for method in bridge.methods:
            print(f"    {method.identity}")
    return 0


def command_list_families(args: argparse.Namespace) -> int:
    declaration_sets, failures, options = load_declaration_sets_for_args(args)
    print(f"Versions: {', '.join(item.version.label for item in declaration_sets)}")

    print("Interface families:")
    for base_name, decls in group_interface_decls(declaration_sets).items():
        marker = " (excluded)" if base_name in options.excluded_families else ""
        versions = sorted({decl.version for decl in decls})
        print(f"  {base_name}{marker}: {', '.join(version.label for version in versions)}")

    print("Structs:")
    for name, decls in group_struct_decls(declaration_sets).items():
        marker = " (ignored)" if name in options.ignored_structs else ""
        print(f"  {name}{marker}: {', '.join(decl.version.label for decl in decls)}")

    if failures:
        print("Errors:")
        for item in failures:
            print(f"  - [{item.kind}] {item.unit}: {item.message}")
        return 1
    return 0
