from __future__ import annotations

import argparse

from ..core import *  # noqa: F401,F403

def load_config_for_args(args: argparse.Namespace) -> dict[str, Any]:
    config_path = getattr(args, "config", None)
    if not config_path:
        return {}
    return load_config(Path(config_path).resolve())


def load_declaration_sets_for_args(
    args: argparse.Namespace,
) -> tuple[list[DeclarationSet], list[UnitFailure], UnifyOptions]:
    repo_root = Path(args.repo_root).resolve()
    config = load_config_for_args(args)
    options = build_unify_options(config, max_workers_override=getattr(args, "jobs", None))
    paths = resolve_input_paths(repo_root, config, args.input)
    labeled = [(to_repo_relative(path, repo_root), load_declaration_payload(path)) for path in paths]
    declaration_sets, failures = build_declaration_sets(labeled, options)
    return declaration_sets, failures, options


def resolve_family(args: argparse.Namespace) -> VersionFamily:
    declaration_sets, failures, options = load_declaration_sets_for_args(args)
    base_name = args.family
    unit = family_unit(base_name)
    unit_failures = [item for item in failures if item.unit == unit]
    if unit_failures:
        raise AbiUnifyError("; ".join(item.message for item in unit_failures))

    grouped = group_interface_decls(declaration_sets)
    if base_name not in grouped:
        known = ", ".join(grouped.keys())
        raise AbiUnifyError(f"Unknown interface family '{base_name}'. Known families: {known or '<none>'}")
    return build_version_family(base_name, grouped[base_name], options.versions_for(base_name))
