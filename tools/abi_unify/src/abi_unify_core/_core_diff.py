from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403


@dataclass(frozen=True)
class SignatureChange:
    name: str
    old: MethodSignature
    new: MethodSignature

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "old": self.old.identity,
            "new": self.new.identity,
        }


@dataclass(frozen=True)
class MethodRename:
    old: MethodSignature
    new: MethodSignature

    def as_dict(self) -> dict[str, str]:
        return {"old": self.old.name, "new": self.new.name, "shape": self.old.shape}


@dataclass(frozen=True)
class MethodDiff:
    """Method-level delta between two adjacent versions of one interface family.

    ``unchanged``, ``removed`` and ``signature_changed`` partition the older method
    table; ``newer_unchanged``, ``added`` and the new halves of ``signature_changed``
    partition the newer one. Every partition keeps declaration order.
    """

    base_name: str
    older: InterfaceDecl
    newer: InterfaceDecl
    unchanged: tuple[MethodSignature, ...]
    removed: tuple[MethodSignature, ...]
    signature_changed: tuple[SignatureChange, ...]
    newer_unchanged: tuple[MethodSignature, ...]
    added: tuple[MethodSignature, ...]
    reordered: bool = False
    possible_renames: tuple[MethodRename, ...] = ()

    @property
    def is_additive(self) -> bool:
        return not self.removed and not self.signature_changed

    @property
    def classification(self) -> str:
        if not self.is_additive:
            return "breaking"
        if self.added:
            return "additive"
        return "none"

    def bridge_methods(self) -> tuple[MethodSignature, ...]:
        dropped = {method.identity for method in self.removed}
        dropped |= {change.old.identity for change in self.signature_changed}
        return tuple(method for method in self.older.methods if method.identity in dropped)

    def as_dict(self) -> dict[str, Any]:
        return {
            "family": self.base_name,
            "older": self.older.name,
            "newer": self.newer.name,
            "classification": self.classification,
            "unchanged": [method.identity for method in self.unchanged],
            "removed": [method.identity for method in self.removed],
            "signature_changed": [change.as_dict() for change in self.signature_changed],
            "added": [method.identity for method in self.added],
            "reordered": self.reordered,
            "possible_renames": [item.as_dict() for item in self.possible_renames],
        }


def ensure_unique_method_identities(decl: InterfaceDecl) -> None:
    seen: dict[str, int] = {}
    for idx, method in enumerate(decl.methods):
        first = seen.get(method.identity)
        if first is not None:
            raise AmbiguousMethodIdentityError(
                f"interface '{decl.name}' declares '{method.identity}' twice (slots {first} and {idx})",
                unit=family_unit(decl.base_name),
            )
        seen[method.identity] = idx


def _pair_signature_changes(
    old_unmatched: list[MethodSignature],
    new_unmatched: list[MethodSignature],
) -> tuple[list[SignatureChange], list[MethodSignature], list[MethodSignature]]:
    changes: list[SignatureChange] = []
    paired_old: set[str] = set()
    paired_new: set[str] = set()
    names = []
    for method in old_unmatched:
        if method.name not in names:
            names.append(method.name)
    for name in names:
        olds = [method for method in old_unmatched if method.name == name]
        news = [method for method in new_unmatched if method.name == name]
        # Overloads pair up in declaration order; the surplus stays removed or added.
        for old, new in zip(olds, news):
            changes.append(SignatureChange(name=name, old=old, new=new))
            paired_old.add(old.identity)
            paired_new.add(new.identity)
    removed = [method for method in old_unmatched if method.identity not in paired_old]
    added = [method for method in new_unmatched if method.identity not in paired_new]
    return changes, removed, added


def _find_possible_renames(removed: list[MethodSignature], added: list[MethodSignature]) -> list[MethodRename]:
    renames: list[MethodRename] = []
    taken: set[str] = set()
    for old in removed:
        for new in added:
            if new.identity in taken or new.name == old.name:
                continue
            if new.shape == old.shape:
                renames.append(MethodRename(old=old, new=new))
                taken.add(new.identity)
                break
    return renames


def diff_interfaces(older: InterfaceDecl, newer: InterfaceDecl) -> MethodDiff:
    if older.base_name != newer.base_name:
        raise AbiUnifyError(f"cannot diff '{older.name}' against '{newer.name}': different interface families")
    ensure_unique_method_identities(older)
    ensure_unique_method_identities(newer)

    old_ids = set(older.method_identities())
    new_ids = set(newer.method_identities())

    unchanged = [method for method in older.methods if method.identity in new_ids]
    newer_unchanged = [method for method in newer.methods if method.identity in old_ids]
    reordered = [method.identity for method in unchanged] != [method.identity for method in newer_unchanged]

    old_unmatched = [method for method in older.methods if method.identity not in new_ids]
    new_unmatched = [method for method in newer.methods if method.identity not in old_ids]
    changes, removed, added = _pair_signature_changes(old_unmatched, new_unmatched)

    return MethodDiff(
        base_name=older.base_name,
        older=older,
        newer=newer,
        unchanged=tuple(unchanged),
        removed=tuple(removed),
        signature_changed=tuple(changes),
        newer_unchanged=tuple(newer_unchanged),
        added=tuple(added),
        reordered=reordered,
        possible_renames=tuple(_find_possible_renames(removed, added)),
    )


def diff_family(family: VersionFamily) -> tuple[MethodDiff, ...]:
    for member in family.members:
        ensure_unique_method_identities(member)
    return tuple(diff_interfaces(older, newer) for older, newer in family.adjacent_pairs())


def print_method_diff(diff: MethodDiff) -> None:
    print(f"{diff.older.name} -> {diff.newer.name}: {diff.classification}")
    print(f"  unchanged: {len(diff.unchanged)}")
    for method in diff.removed:
        print(f"  - {method.identity}")
    for change in diff.signature_changed:
        print(f"  ~ {change.old.identity}")
        print(f"    => {change.new.identity}")
    for method in diff.added:
        print(f"  + {method.identity}")
    for rename in diff.possible_renames:
        print(f"  possible rename: {rename.old.name} -> {rename.new.name}")
    if diff.reordered:
        print("  warning: unchanged methods changed relative order")
