from __future__ import annotations

import concurrent.futures
import functools
from typing import Callable, TypeVar

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403
from ._core_structs import *  # noqa: F401,F403
from ._core_diff import *  # noqa: F401,F403
from ._core_synth import *  # noqa: F401,F403
from ._core_assemble import *  # noqa: F401,F403

UnitResult = TypeVar("UnitResult")


@dataclass(frozen=True)
class UnificationResult:
    module: UnifiedModule | None
    failures: tuple[UnitFailure, ...]
    warnings: tuple[str, ...]
    source_versions: tuple[VersionTag, ...] = ()

    @property
    def status(self) -> str:
        if self.module is None:
            return "fail"
        if self.failures:
            return "partial"
        return "pass"

    def failures_of_kind(self, kind: str) -> list[UnitFailure]:
        return [item for item in self.failures if item.kind == kind]

    def as_report(self) -> dict[str, Any]:
        module = self.module
        summary = {
            "struct_count": len(module.struct_analyses) if module else 0,
            "struct_group_count": len(module.struct_groups) if module else 0,
            "family_count": len(module.families) if module else 0,
            "interface_count": len(module.version_interfaces) if module else 0,
            "supertrait_count": len(module.supertraits) if module else 0,
            "bridge_count": len(module.bridges) if module else 0,
            "failure_count": len(self.failures),
            "warning_count": len(self.warnings),
        }
        return {
            "tool": {"name": "abi_unify", "version": TOOL_VERSION},
            "status": self.status,
            "source_versions": [version.label for version in self.source_versions],
            "summary": summary,
            "failures": [item.as_dict() for item in self.failures],
            "errors": [f"[{item.kind}] {item.unit}: {item.message}" for item in self.failures],
            "warnings": list(self.warnings),
            "fingerprint": module.fingerprint if module else None,
        }


def run_units(
    work: dict[str, Callable[[], UnitResult]],
    max_workers: int,
) -> dict[str, UnitResult | UnitFailure]:
    """Fork-join over independent units; results come back keyed and sorted by unit name.

    An AbiUnifyError raised by one unit becomes that unit's UnitFailure and does not
    affect its siblings. Any other exception propagates.
    """
    results: dict[str, UnitResult | UnitFailure] = {}
    names = sorted(work.keys())
    if max_workers <= 1 or len(names) <= 1:
        for name in names:
            try:
                results[name] = work[name]()
            except AbiUnifyError as exc:
                results[name] = UnitFailure.from_error(exc, name)
        return results

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {name: executor.submit(work[name]) for name in names}
        for name in names:
            try:
                results[name] = futures[name].result()
            except AbiUnifyError as exc:
                results[name] = UnitFailure.from_error(exc, name)
    return results


def load_declaration_payload(path: Path) -> dict[str, Any]:
    payload = load_json(path)
    if not isinstance(payload, dict):
        raise AbiUnifyError(f"Declaration set '{path}' root must be an object")
    validate_with_jsonschema("declarations", payload, f"declaration set '{path}'")
    return payload


def build_declaration_sets(
    labeled_payloads: list[tuple[str, dict[str, Any]]],
    options: UnifyOptions,
) -> tuple[list[DeclarationSet], list[UnitFailure]]:
    name_pattern = re.compile(options.interface_name_pattern)
    known_structs = collect_declared_struct_names([payload for _, payload in labeled_payloads])

    declaration_sets: list[DeclarationSet] = []
    failures: list[UnitFailure] = []
    seen_versions: dict[VersionTag, str] = {}
    for label, payload in labeled_payloads:
        declaration_set, set_failures = parse_declaration_set(payload, label, known_structs, name_pattern)
        previous = seen_versions.get(declaration_set.version)
        if previous is not None:
            raise AbiUnifyError(
                f"Declaration sets '{previous}' and '{label}' both describe version {declaration_set.version}"
            )
        seen_versions[declaration_set.version] = label
        declaration_sets.append(declaration_set)
        failures.extend(set_failures)
    declaration_sets.sort(key=lambda item: item.version)
    return declaration_sets, failures


def analyze_struct_groups(
    grouped: dict[str, list[StructDecl]],
    options: UnifyOptions,
) -> tuple[dict[str, StructAnalysis], list[UnitFailure]]:
    failures: list[UnitFailure] = []
    analyses: dict[str, StructAnalysis] = {}

    first_round = run_units(
        {
            struct_unit(name): functools.partial(analyze_struct, name, decls, options.primary_partition)
            for name, decls in grouped.items()
        },
        options.max_workers,
    )
    for outcome in first_round.values():
        if isinstance(outcome, UnitFailure):
            failures.append(outcome)
        else:
            analyses[outcome.name] = outcome

    if not options.propagate_nested_layouts:
        return analyses, failures

    healthy = {name: decls for name, decls in grouped.items() if name in analyses}
    # Each round can only split partitions further, so this converges.
    for _ in range(len(healthy) + 1):
        candidates = structs_needing_reanalysis(healthy, analyses)
        if not candidates:
            break
        lookup = build_partition_lookup(analyses)
        outcomes = run_units(
            {
                struct_unit(name): functools.partial(
                    analyze_struct, name, healthy[name], options.primary_partition, lookup
                )
                for name in candidates
            },
            options.max_workers,
        )
        changed = False
        for outcome in outcomes.values():
            if isinstance(outcome, UnitFailure):
                failures.append(outcome)
                continue
            if outcome.partition_signature() != analyses[outcome.name].partition_signature():
                changed = True
            analyses[outcome.name] = outcome
        if not changed:
            break

    return analyses, failures


def _synthesize_unit(
    base_name: str,
    declarations: list[InterfaceDecl],
    consumed_versions: tuple[str, ...] | None,
) -> FamilySynthesis:
    family = build_version_family(base_name, declarations, consumed_versions)
    return synthesize_family(family, diff_family(family))


def collect_warnings(
    struct_analyses: dict[str, StructAnalysis],
    families: dict[str, FamilySynthesis],
) -> list[str]:
    warnings: list[str] = []
    for name in sorted(struct_analyses.keys()):
        for partition in struct_analyses[name].partitions:
            for rename in partition.renamed_fields:
                warnings.append(
                    f"struct {partition.qualified_name}: field {rename.index} renamed "
                    f"'{rename.old_name}' -> '{rename.new_name}' in {rename.version}"
                )
    for base_name in sorted(families.keys()):
        for diff in families[base_name].diffs:
            if diff.reordered:
                warnings.append(f"interface {diff.newer.name}: unchanged methods changed order relative to {diff.older.name}")
            for rename in diff.possible_renames:
                warnings.append(
                    f"interface {diff.newer.name}: '{rename.old.name}' may have been renamed to '{rename.new.name}'"
                )
    return warnings


def unify_declaration_sets(
    declaration_sets: list[DeclarationSet],
    options: UnifyOptions | None = None,
    load_failures: list[UnitFailure] | None = None,
) -> UnificationResult:
    options = options or UnifyOptions()
    failures: list[UnitFailure] = list(load_failures or [])
    poisoned = {item.unit for item in failures}
    source_versions = sorted({item.version for item in declaration_sets})

    grouped_structs = {
        name: decls
        for name, decls in group_struct_decls(declaration_sets).items()
        if name not in options.ignored_structs and struct_unit(name) not in poisoned
    }
    grouped_interfaces = {
        base_name: decls
        for base_name, decls in group_interface_decls(declaration_sets).items()
        if base_name not in options.excluded_families and family_unit(base_name) not in poisoned
    }

    struct_analyses, struct_failures = analyze_struct_groups(grouped_structs, options)
    failures.extend(struct_failures)

    family_outcomes = run_units(
        {
            family_unit(base_name): functools.partial(
                _synthesize_unit, base_name, decls, options.versions_for(base_name)
            )
            for base_name, decls in grouped_interfaces.items()
        },
        options.max_workers,
    )
    families: dict[str, FamilySynthesis] = {}
    for outcome in family_outcomes.values():
        if isinstance(outcome, UnitFailure):
            failures.append(outcome)
        else:
            families[outcome.base_name] = outcome

    failures.sort(key=lambda item: (item.unit, item.kind, item.message))
    warnings = tuple(collect_warnings(struct_analyses, families))

    collisions = find_name_collisions(
        tuple(struct_analyses[name] for name in sorted(struct_analyses.keys())),
        tuple(families[name] for name in sorted(families.keys())),
    )
    if collisions:
        return UnificationResult(
            module=None,
            failures=tuple(failures + collisions),
            warnings=warnings,
            source_versions=tuple(source_versions),
        )

    module = assemble_module(source_versions, struct_analyses, families)
    return UnificationResult(
        module=module,
        failures=tuple(failures),
        warnings=warnings,
        source_versions=tuple(source_versions),
    )


def unify_payloads(
    labeled_payloads: list[tuple[str, dict[str, Any]]],
    options: UnifyOptions | None = None,
) -> UnificationResult:
    options = options or UnifyOptions()
    declaration_sets, load_failures = build_declaration_sets(labeled_payloads, options)
    return unify_declaration_sets(declaration_sets, options, load_failures)


def unify_files(
    paths: list[Path],
    options: UnifyOptions | None = None,
    repo_root: Path | None = None,
) -> UnificationResult:
    """Unify declaration set files; with ``repo_root`` messages name inputs relative to it."""
    if not paths:
        raise AbiUnifyError("No declaration set files were given.")
    labeled = [
        (to_repo_relative(path, repo_root) if repo_root is not None else str(path), load_declaration_payload(path))
        for path in paths
    ]
    return unify_payloads(labeled, options)


def resolve_input_paths(repo_root: Path, config: dict[str, Any], cli_inputs: list[str] | None) -> list[Path]:
    """CLI inputs resolve against the working directory, config inputs against the repo root."""
    if cli_inputs:
        entries = list(cli_inputs)
        paths = iter_files_from_entries(Path.cwd(), entries, ".json")
    else:
        entries = normalize_string_list(config.get("inputs"), "inputs")
        if not entries:
            raise AbiUnifyError("No inputs configured: pass --input or set 'inputs' in the config.")
        paths = iter_files_from_entries(repo_root, entries, ".json")
    if not paths:
        raise AbiUnifyError(f"No declaration set files matched: {', '.join(entries)}")
    return paths
