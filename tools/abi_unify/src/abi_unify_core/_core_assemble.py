from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403
from ._core_structs import *  # noqa: F401,F403
from ._core_synth import *  # noqa: F401,F403


@dataclass(frozen=True)
class ExportedName:
    name: str
    kind: str
    owner: str


def collect_exported_names(
    struct_analyses: tuple[StructAnalysis, ...],
    families: tuple[FamilySynthesis, ...],
) -> list[ExportedName]:
    exported: list[ExportedName] = []
    for analysis in struct_analyses:
        for partition in analysis.partitions:
            exported.append(
                ExportedName(
                    name=partition.qualified_name,
                    kind="struct",
                    owner=f"struct {analysis.name} from version {partition.start_version}",
                )
            )
    for synthesis in families:
        for interface in synthesis.interfaces:
            exported.append(
                ExportedName(
                    name=interface.name,
                    kind="interface",
                    owner=f"interface family {synthesis.base_name} version {interface.version}",
                )
            )
        for bridge in synthesis.bridges:
            exported.append(
                ExportedName(
                    name=bridge.name,
                    kind="bridge",
                    owner=f"bridge {bridge.older} -> {bridge.newer} of family {synthesis.base_name}",
                )
            )
    return exported


def find_name_collisions(
    struct_analyses: tuple[StructAnalysis, ...],
    families: tuple[FamilySynthesis, ...],
) -> list[UnitFailure]:
    owners: dict[str, list[ExportedName]] = {}
    for item in collect_exported_names(struct_analyses, families):
        owners.setdefault(item.name, []).append(item)

    failures: list[UnitFailure] = []
    for name in sorted(owners.keys()):
        claims = owners[name]
        if len(claims) < 2:
            continue
        described = "; ".join(f"{claim.kind} ({claim.owner})" for claim in claims)
        failures.append(
            UnitFailure(
                kind=NAME_COLLISION,
                unit=f"name:{name}",
                message=f"name '{name}' is produced by {len(claims)} entities: {described}",
            )
        )
    return failures


@dataclass(frozen=True)
class UnifiedModule:
    source_versions: tuple[VersionTag, ...]
    struct_analyses: tuple[StructAnalysis, ...]
    families: tuple[FamilySynthesis, ...]

    @property
    def struct_groups(self) -> tuple[StructPartition, ...]:
        return tuple(partition for analysis in self.struct_analyses for partition in analysis.partitions)

    @property
    def version_interfaces(self) -> tuple[VersionInterface, ...]:
        return tuple(interface for synthesis in self.families for interface in synthesis.interfaces)

    @property
    def supertraits(self) -> tuple[SupertraitEdge, ...]:
        return tuple(edge for synthesis in self.families for edge in synthesis.supertraits)

    @property
    def bridges(self) -> tuple[BridgeAbstraction, ...]:
        return tuple(bridge for synthesis in self.families for bridge in synthesis.bridges)

    def family(self, base_name: str) -> FamilySynthesis:
        for synthesis in self.families:
            if synthesis.base_name == base_name:
                return synthesis
        known = ", ".join(synthesis.base_name for synthesis in self.families)
        raise AbiUnifyError(f"Unknown interface family '{base_name}'. Known families: {known or '<none>'}")

    def struct(self, name: str) -> StructAnalysis:
        for analysis in self.struct_analyses:
            if analysis.name == name:
                return analysis
        raise AbiUnifyError(f"Unknown struct '{name}'")

    def _payload(self) -> dict[str, Any]:
        return {
            "tool": {"name": "abi_unify", "version": TOOL_VERSION},
            "module_schema_version": MODULE_SCHEMA_VERSION,
            "source_versions": [version.label for version in self.source_versions],
            "struct_groups": [partition.as_dict() for partition in self.struct_groups],
            "struct_verdicts": {
                analysis.name: [verdict.as_dict() for verdict in analysis.verdicts]
                for analysis in self.struct_analyses
            },
            "interfaces": [interface.as_dict() for interface in self.version_interfaces],
            "supertraits": [edge.as_dict() for edge in self.supertraits],
            "bridges": [bridge.as_dict() for bridge in self.bridges],
            "capability_closure": {
                name: list(satisfiers)
                for synthesis in self.families
                for name, satisfiers in synthesis.closure
            },
            "implementation_plans": {
                synthesis.base_name: {
                    "implement": synthesis.newest.name,
                    "targets": [entry.as_dict() for entry in synthesis.plan],
                }
                for synthesis in self.families
            },
        }

    @property
    def fingerprint(self) -> str:
        return stable_hash(self._payload())

    def as_dict(self) -> dict[str, Any]:
        payload = self._payload()
        payload["fingerprint"] = stable_hash(payload)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), indent=2, sort_keys=True) + "\n"


def assemble_module(
    source_versions: list[VersionTag],
    struct_analyses: dict[str, StructAnalysis],
    families: dict[str, FamilySynthesis],
) -> UnifiedModule:
    """Reduce the per-unit results into one module.

    Inputs are re-ordered by name here, so the caller may pass them in any order.
    Raises NameCollisionError when two entities would export the same name.
    """
    ordered_structs = tuple(struct_analyses[name] for name in sorted(struct_analyses.keys()))
    ordered_families = tuple(families[name] for name in sorted(families.keys()))
    collisions = find_name_collisions(ordered_structs, ordered_families)
    if collisions:
        raise NameCollisionError("; ".join(item.message for item in collisions), unit=collisions[0].unit)
    module = UnifiedModule(
        source_versions=tuple(sorted(set(source_versions))),
        struct_analyses=ordered_structs,
        families=ordered_families,
    )
    validate_with_jsonschema("module", module.as_dict(), "unified module")
    return module
