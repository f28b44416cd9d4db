from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403
from ._core_diff import *  # noqa: F401,F403


@dataclass(frozen=True)
class VersionInterface:
    name: str
    family: str
    version: VersionTag
    methods: tuple[MethodSignature, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "family": self.family,
            "version": self.version.label,
            "methods": [method.as_dict() for method in self.methods],
        }


@dataclass(frozen=True)
class SupertraitEdge:
    """``newer`` satisfies ``older`` with no extra implementation."""

    family: str
    older: str
    newer: str
    direct: bool = True

    def as_dict(self) -> dict[str, Any]:
        return {
            "family": self.family,
            "older": self.older,
            "newer": self.newer,
            "direct": self.direct,
        }


@dataclass(frozen=True)
class BridgeAbstraction:
    name: str
    family: str
    older: str
    newer: str
    methods: tuple[MethodSignature, ...]
    signature_changes: tuple[SignatureChange, ...] = ()

    @property
    def equivalence(self) -> str:
        return f"{self.newer} + {self.name} == {self.older}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "family": self.family,
            "older": self.older,
            "newer": self.newer,
            "methods": [method.as_dict() for method in self.methods],
            "signature_changed": [change.name for change in self.signature_changes],
            "equivalence": self.equivalence,
        }


@dataclass(frozen=True)
class PlanEntry:
    target: str
    version: VersionTag
    bridges: tuple[str, ...]
    implied: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "version": self.version.label,
            "bridges": list(self.bridges),
            "implied": self.implied,
        }


@dataclass(frozen=True)
class FamilySynthesis:
    base_name: str
    interfaces: tuple[VersionInterface, ...]
    diffs: tuple[MethodDiff, ...]
    supertraits: tuple[SupertraitEdge, ...]
    bridges: tuple[BridgeAbstraction, ...]
    closure: tuple[tuple[str, tuple[str, ...]], ...]
    plan: tuple[PlanEntry, ...]

    @property
    def newest(self) -> VersionInterface:
        return self.interfaces[-1]

    def satisfied_by(self, interface_name: str) -> tuple[str, ...]:
        for name, satisfiers in self.closure:
            if name == interface_name:
                return satisfiers
        raise AbiUnifyError(f"'{interface_name}' is not a version of interface family '{self.base_name}'")

    def implies(self, newer: str, older: str) -> bool:
        return newer == older or newer in self.satisfied_by(older)

    def plan_for(self, interface_name: str) -> PlanEntry:
        for entry in self.plan:
            if entry.target == interface_name:
                return entry
        raise AbiUnifyError(f"'{interface_name}' is not a version of interface family '{self.base_name}'")


def _label_token(version: VersionTag) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", version.label).strip("_")


def bridge_name(base_name: str, older: VersionTag, newer: VersionTag) -> str:
    return f"{base_name}{_label_token(older)}On{_label_token(newer)}"


def compute_capability_closure(
    interfaces: tuple[VersionInterface, ...],
    diffs: tuple[MethodDiff, ...],
) -> tuple[tuple[str, tuple[str, ...]], ...]:
    """For every version, all newer versions that satisfy it through additive steps only."""
    closure: list[tuple[str, tuple[str, ...]]] = []
    for idx, interface in enumerate(interfaces):
        satisfiers: list[str] = []
        for step in range(idx, len(diffs)):
            if not diffs[step].is_additive:
                break
            satisfiers.append(interfaces[step + 1].name)
        closure.append((interface.name, tuple(satisfiers)))
    return tuple(closure)


def compute_implementation_plan(
    interfaces: tuple[VersionInterface, ...],
    bridges_by_pair: dict[tuple[str, str], BridgeAbstraction],
    closure: tuple[tuple[str, tuple[str, ...]], ...],
) -> tuple[PlanEntry, ...]:
    newest = interfaces[-1].name
    satisfiers = dict(closure)
    entries: list[PlanEntry] = []
    for idx, interface in enumerate(interfaces):
        needed: list[str] = []
        # Walk from the newest version down so bridges are listed in application order.
        for step in range(len(interfaces) - 2, idx - 1, -1):
            bridge = bridges_by_pair.get((interfaces[step].name, interfaces[step + 1].name))
            if bridge is not None:
                needed.append(bridge.name)
        implied = interface.name == newest or newest in satisfiers.get(interface.name, ())
        entries.append(
            PlanEntry(target=interface.name, version=interface.version, bridges=tuple(needed), implied=implied)
        )
    return tuple(entries)


def synthesize_family(family: VersionFamily, diffs: tuple[MethodDiff, ...] | None = None) -> FamilySynthesis:
    if not family.members:
        raise MalformedVersionSequenceError(
            f"interface family '{family.base_name}' has no versions",
            unit=family_unit(family.base_name),
        )
    if diffs is None:
        diffs = diff_family(family)
    if len(diffs) != len(family.members) - 1:
        raise AbiUnifyError(f"interface family '{family.base_name}' diffs do not match its versions")

    interfaces = tuple(
        VersionInterface(name=member.name, family=family.base_name, version=member.version, methods=member.methods)
        for member in family.members
    )

    direct_edges: list[SupertraitEdge] = []
    bridges: list[BridgeAbstraction] = []
    bridges_by_pair: dict[tuple[str, str], BridgeAbstraction] = {}
    for diff in diffs:
        if diff.is_additive:
            direct_edges.append(SupertraitEdge(family=family.base_name, older=diff.older.name, newer=diff.newer.name))
            continue
        bridge = BridgeAbstraction(
            name=bridge_name(family.base_name, diff.older.version, diff.newer.version),
            family=family.base_name,
            older=diff.older.name,
            newer=diff.newer.name,
            methods=diff.bridge_methods(),
            signature_changes=diff.signature_changed,
        )
        bridges.append(bridge)
        bridges_by_pair[(diff.older.name, diff.newer.name)] = bridge

    closure = compute_capability_closure(interfaces, diffs)
    direct_pairs = {(edge.older, edge.newer) for edge in direct_edges}
    supertraits = list(direct_edges)
    for older_name, satisfiers in closure:
        for newer_name in satisfiers:
            if (older_name, newer_name) not in direct_pairs:
                supertraits.append(
                    SupertraitEdge(family=family.base_name, older=older_name, newer=newer_name, direct=False)
                )
    order = {interface.name: idx for idx, interface in enumerate(interfaces)}
    supertraits.sort(key=lambda edge: (order[edge.older], order[edge.newer]))

    return FamilySynthesis(
        base_name=family.base_name,
        interfaces=interfaces,
        diffs=diffs,
        supertraits=tuple(supertraits),
        bridges=tuple(bridges),
        closure=closure,
        plan=compute_implementation_plan(interfaces, bridges_by_pair, closure),
    )


def print_family_plan(synthesis: FamilySynthesis) -> None:
    newest = synthesis.newest.name
    print(f"Interface family {synthesis.base_name}: implement {newest}")
    for entry in reversed(synthesis.plan):
        if entry.target == newest:
            continue
        if entry.implied:
            print(f"  {entry.target}: implied by {newest}")
        elif entry.bridges:
            print(f"  {entry.target}: {newest} + {' + '.join(entry.bridges)}")
