from __future__ import annotations

import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from abi_unify_core import core as unify_core  # noqa: E402


def method(name: str) -> unify_core.MethodSignature:
    return unify_core.MethodSignature(name=name, parameters=(), return_type=unify_core.parse_c_type("void"))


def make_family(base: str, versions: list[tuple[str, list[str]]]) -> unify_core.VersionFamily:
    members = []
    for version, names in versions:
        tag = unify_core.VersionTag.parse(version)
        members.append(
            unify_core.InterfaceDecl(
                name=f"{base}_{version}",
                base_name=base,
                version=tag,
                methods=tuple(method(name) for name in names),
                declared_in=tag,
            )
        )
    return unify_core.VersionFamily(base_name=base, members=tuple(members))


def edge_pairs(synthesis: unify_core.FamilySynthesis) -> list[tuple[str, str, bool]]:
    return [(edge.older, edge.newer, edge.direct) for edge in synthesis.supertraits]


class SynthesisTests(unittest.TestCase):
    def test_foo_three_version_scenario(self) -> None:
        family = make_family("Foo", [("1", ["a", "b"]), ("2", ["a", "b", "c"]), ("3", ["a", "c", "d"])])
        synthesis = unify_core.synthesize_family(family)

        self.assertEqual(edge_pairs(synthesis), [("Foo_1", "Foo_2", True)])
        self.assertEqual(len(synthesis.bridges), 1)
        bridge = synthesis.bridges[0]
        self.assertEqual(bridge.name, "Foo2On3")
        self.assertEqual((bridge.older, bridge.newer), ("Foo_2", "Foo_3"))
        self.assertEqual([item.name for item in bridge.methods], ["b"])
        self.assertEqual(bridge.equivalence, "Foo_3 + Foo2On3 == Foo_2")

        self.assertFalse(synthesis.implies("Foo_3", "Foo_2"))
        self.assertTrue(synthesis.implies("Foo_2", "Foo_1"))

        plan_v1 = synthesis.plan_for("Foo_1")
        self.assertEqual(plan_v1.bridges, ("Foo2On3",))
        self.assertFalse(plan_v1.implied)
        self.assertTrue(synthesis.plan_for("Foo_3").implied)
        self.assertEqual(synthesis.plan_for("Foo_3").bridges, ())

    def test_additive_chain_is_transitive(self) -> None:
        family = make_family("Foo", [("1", ["a"]), ("2", ["a", "b"]), ("3", ["a", "b", "c"])])
        synthesis = unify_core.synthesize_family(family)

        self.assertEqual(synthesis.bridges, ())
        self.assertEqual(
            edge_pairs(synthesis),
            [("Foo_1", "Foo_2", True), ("Foo_1", "Foo_3", False), ("Foo_2", "Foo_3", True)],
        )
        self.assertTrue(synthesis.implies("Foo_3", "Foo_1"))
        self.assertEqual(synthesis.satisfied_by("Foo_1"), ("Foo_2", "Foo_3"))
        self.assertTrue(all(entry.implied for entry in synthesis.plan))

    def test_bridges_chain_from_newest(self) -> None:
        family = make_family("Foo", [("1", ["a", "x"]), ("2", ["a", "y"]), ("3", ["a", "z"])])
        synthesis = unify_core.synthesize_family(family)
        self.assertEqual([bridge.name for bridge in synthesis.bridges], ["Foo1On2", "Foo2On3"])
        self.assertEqual(synthesis.plan_for("Foo_1").bridges, ("Foo2On3", "Foo1On2"))
        self.assertEqual(synthesis.plan_for("Foo_2").bridges, ("Foo2On3",))

    def test_single_version_family(self) -> None:
        synthesis = unify_core.synthesize_family(make_family("Foo", [("1", ["a"])]))
        self.assertEqual(synthesis.supertraits, ())
        self.assertEqual(synthesis.bridges, ())
        self.assertEqual(synthesis.newest.name, "Foo_1")
        self.assertTrue(synthesis.plan_for("Foo_1").implied)

    def test_bridge_name_keeps_version_labels(self) -> None:
        name = unify_core.bridge_name(
            "IVROverlay",
            unify_core.VersionTag.parse("025"),
            unify_core.VersionTag.parse("027"),
        )
        self.assertEqual(name, "IVROverlay025On027")

    def test_unknown_member_is_rejected(self) -> None:
        synthesis = unify_core.synthesize_family(make_family("Foo", [("1", ["a"])]))
        with self.assertRaises(unify_core.AbiUnifyError):
            synthesis.plan_for("Bar_1")

    def test_empty_family_is_malformed(self) -> None:
        with self.assertRaises(unify_core.MalformedVersionSequenceError):
            unify_core.synthesize_family(unify_core.VersionFamily(base_name="Foo", members=()))


if __name__ == "__main__":
    unittest.main()
