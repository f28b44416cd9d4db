from __future__ import annotations

from typing import Callable

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403

VERDICT_IDENTICAL = "identical"
VERDICT_ADDITIVE_PREFIX = "additive_prefix"
VERDICT_INCOMPATIBLE = "incompatible"

PartitionLookup = Callable[[str, VersionTag], "tuple[int, int] | None"]


@dataclass(frozen=True)
class PairVerdict:
    older: VersionTag
    newer: VersionTag
    verdict: str
    reason: str = ""

    @property
    def is_compatible(self) -> bool:
        return self.verdict != VERDICT_INCOMPATIBLE

    def as_dict(self) -> dict[str, Any]:
        return {
            "older": self.older.label,
            "newer": self.newer.label,
            "verdict": self.verdict,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class UnifiedField:
    name: str
    type: TypeDescriptor
    index: int
    min_version: VersionTag

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.render(),
            "descriptor": self.type.as_dict(),
            "index": self.index,
            "min_version": self.min_version.label,
        }


@dataclass(frozen=True)
class FieldRename:
    index: int
    old_name: str
    new_name: str
    version: VersionTag

    def as_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "old_name": self.old_name,
            "new_name": self.new_name,
            "version": self.version.label,
        }


@dataclass(frozen=True)
class StructPartition:
    struct_name: str
    namespace: str | None
    versions: tuple[VersionTag, ...]
    fields: tuple[UnifiedField, ...]
    field_count_by_version: tuple[tuple[VersionTag, int], ...]
    renamed_fields: tuple[FieldRename, ...] = ()

    @property
    def qualified_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}::{self.struct_name}"
        return self.struct_name

    @property
    def start_version(self) -> VersionTag:
        return self.versions[0]

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.qualified_name,
            "struct_name": self.struct_name,
            "namespace": self.namespace,
            "versions": [version.label for version in self.versions],
            "fields": [item.as_dict() for item in self.fields],
            "field_count_by_version": {version.label: count for version, count in self.field_count_by_version},
            "renamed_fields": [item.as_dict() for item in self.renamed_fields],
        }


@dataclass(frozen=True)
class StructAnalysis:
    name: str
    verdicts: tuple[PairVerdict, ...]
    partitions: tuple[StructPartition, ...]

    def partition_index(self, version: VersionTag) -> int | None:
        for idx, partition in enumerate(self.partitions):
            if version in partition.versions:
                return idx
        return None

    def partition_signature(self) -> tuple[tuple[str, ...], ...]:
        return tuple(tuple(version.label for version in partition.versions) for partition in self.partitions)


def _nested_layout_mismatch(
    descriptor: TypeDescriptor,
    older: VersionTag,
    newer: VersionTag,
    lookup: PartitionLookup | None,
) -> str | None:
    if lookup is None:
        return None
    embedded = descriptor.embedded_struct_refs()
    for ref in sorted(descriptor.struct_refs()):
        before = lookup(ref, older)
        after = lookup(ref, newer)
        if before is None or after is None:
            continue
        if before[0] != after[0]:
            return f"references struct '{ref}' whose layout changed"
        # Embedded by value, so a grown struct shifts every later field.
        if ref in embedded and before[1] != after[1]:
            return f"embeds struct '{ref}' whose size changed ({before[1]} -> {after[1]} fields)"
    return None


def _first_moved_field(older: StructDecl, newer: StructDecl) -> tuple[FieldDecl, FieldDecl] | None:
    old_index = {item.name: item.index for item in older.fields}
    for after in newer.fields:
        idx = old_index.get(after.name)
        if idx is not None and idx != after.index:
            return older.fields[idx], after
    return None


def compare_struct_pair(older: StructDecl, newer: StructDecl, lookup: PartitionLookup | None = None) -> PairVerdict:
    """Classify the layout relationship from ``older`` to ``newer``.

    Fields are compared positionally by type descriptor. A field name kept by both
    versions at a different index is a reorder and is incompatible even when the
    types line up; a name that disappears is treated as a rename.
    A field referencing another struct matches only if that struct keeps the same
    partition at both versions, and for structs embedded by value the same field count.
    """
    moved = _first_moved_field(older, newer)
    if moved is not None:
        before, after = moved
        return PairVerdict(
            older.version,
            newer.version,
            VERDICT_INCOMPATIBLE,
            f"fields reordered: '{after.name}' moved from index {before.index} to {after.index}",
        )

    common = min(len(older.fields), len(newer.fields))
    for idx in range(common):
        before = older.fields[idx]
        after = newer.fields[idx]
        if before.type != after.type:
            reason = (
                f"field {idx} changed from '{before.type.render()} {before.name}' "
                f"to '{after.type.render()} {after.name}'"
            )
            return PairVerdict(older.version, newer.version, VERDICT_INCOMPATIBLE, reason)
        nested = _nested_layout_mismatch(before.type, older.version, newer.version, lookup)
        if nested is not None:
            return PairVerdict(
                older.version,
                newer.version,
                VERDICT_INCOMPATIBLE,
                f"field {idx} '{after.name}' {nested}",
            )

    if len(newer.fields) < len(older.fields):
        removed = ", ".join(item.name for item in older.fields[common:])
        return PairVerdict(older.version, newer.version, VERDICT_INCOMPATIBLE, f"trailing fields removed: {removed}")
    if len(newer.fields) > len(older.fields):
        added = ", ".join(item.name for item in newer.fields[common:])
        return PairVerdict(older.version, newer.version, VERDICT_ADDITIVE_PREFIX, f"trailing fields added: {added}")
    return PairVerdict(older.version, newer.version, VERDICT_IDENTICAL)


def _build_partition(run: list[StructDecl], namespace: str | None) -> StructPartition:
    newest = run[-1]
    fields: list[UnifiedField] = []
    for idx, decl_field in enumerate(newest.fields):
        min_version = next(decl.version for decl in run if len(decl.fields) > idx)
        fields.append(UnifiedField(name=decl_field.name, type=decl_field.type, index=idx, min_version=min_version))

    renames: list[FieldRename] = []
    for older, newer in zip(run, run[1:]):
        for before, after in zip(older.fields, newer.fields):
            if before.name != after.name:
                renames.append(FieldRename(before.index, before.name, after.name, newer.version))

    return StructPartition(
        struct_name=newest.name,
        namespace=namespace,
        versions=tuple(decl.version for decl in run),
        fields=tuple(fields),
        field_count_by_version=tuple((decl.version, len(decl.fields)) for decl in run),
        renamed_fields=tuple(renames),
    )


def analyze_struct(
    name: str,
    decls: list[StructDecl],
    primary_partition: str = "oldest",
    lookup: PartitionLookup | None = None,
) -> StructAnalysis:
    if not decls:
        raise MalformedVersionSequenceError(f"struct '{name}' has no declarations", unit=struct_unit(name))
    if primary_partition not in PRIMARY_PARTITION_MODES:
        raise AbiUnifyError(f"Unknown primary partition mode: {primary_partition}")
    for decl in decls:
        if decl.name != name:
            raise MalformedVersionSequenceError(
                f"declaration of '{decl.name}' grouped under struct '{name}'",
                unit=struct_unit(name),
            )
    for older, newer in zip(decls, decls[1:]):
        if not older.version < newer.version:
            raise MalformedVersionSequenceError(
                f"versions of struct '{name}' are not strictly increasing: {older.version} then {newer.version}",
                unit=struct_unit(name),
            )

    verdicts: list[PairVerdict] = []
    runs: list[list[StructDecl]] = [[decls[0]]]
    for older, newer in zip(decls, decls[1:]):
        verdict = compare_struct_pair(older, newer, lookup)
        verdicts.append(verdict)
        if verdict.is_compatible:
            runs[-1].append(newer)
        else:
            runs.append([newer])

    primary_idx = 0 if primary_partition == "oldest" else len(runs) - 1
    partitions = tuple(
        _build_partition(run, None if idx == primary_idx else run[0].version.namespace)
        for idx, run in enumerate(runs)
    )
    return StructAnalysis(name=name, verdicts=tuple(verdicts), partitions=partitions)


def build_partition_lookup(analyses: dict[str, StructAnalysis]) -> PartitionLookup:
    index: dict[tuple[str, VersionTag], tuple[int, int]] = {}
    for name, analysis in analyses.items():
        for idx, partition in enumerate(analysis.partitions):
            for version, field_count in partition.field_count_by_version:
                index[(name, version)] = (idx, field_count)

    def lookup(struct_name: str, version: VersionTag) -> tuple[int, int] | None:
        return index.get((struct_name, version))

    return lookup


def _layout_varies(analysis: StructAnalysis) -> bool:
    if len(analysis.partitions) > 1:
        return True
    counts = {field_count for _, field_count in analysis.partitions[0].field_count_by_version}
    return len(counts) > 1


def structs_needing_reanalysis(
    grouped: dict[str, list[StructDecl]],
    analyses: dict[str, StructAnalysis],
) -> list[str]:
    varying = {name for name, analysis in analyses.items() if analysis.partitions and _layout_varies(analysis)}
    if not varying:
        return []
    out: list[str] = []
    for name, decls in grouped.items():
        refs: set[str] = set()
        for decl in decls:
            for decl_field in decl.fields:
                refs |= decl_field.type.struct_refs()
        if refs & varying:
            out.append(name)
    return out
