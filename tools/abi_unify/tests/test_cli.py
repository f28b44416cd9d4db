from __future__ import annotations

import argparse
import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from abi_unify_core import cli  # noqa: E402
from abi_unify_core.commands import command_unify  # noqa: E402


OVERLAY_V1 = {
    "version": "1.0.2",
    "structs": [
        {
            "name": "VREvent_t",
            "fields": [
                {"name": "eventType", "type": "uint32_t"},
                {"name": "trackedDeviceIndex", "type": "TrackedDeviceIndex_t"},
            ],
        }
    ],
    "interfaces": [
        {
            "name": "IVROverlay_025",
            "methods": [
                {"name": "FindOverlay", "return_type": "EVROverlayError", "parameters": ["const char*", "VROverlayHandle_t*"]},
                {"name": "SetOverlayRaw", "return_type": "EVROverlayError", "parameters": ["VROverlayHandle_t", "void*", "uint32_t", "uint32_t", "uint32_t"]},
            ],
        }
    ],
}

OVERLAY_V2 = {
    "version": "1.0.3",
    "structs": [
        {
            "name": "VREvent_t",
            "fields": [
                {"name": "eventType", "type": "uint32_t"},
                {"name": "trackedDeviceIndex", "type": "TrackedDeviceIndex_t"},
                {"name": "eventAgeSeconds", "type": "float"},
            ],
        }
    ],
    "interfaces": [
        {
            "name": "IVROverlay_027",
            "methods": [
                {"name": "FindOverlay", "return_type": "EVROverlayError", "parameters": ["const char*", "VROverlayHandle_t*"]},
                {"name": "SetOverlayRaw", "return_type": "EVROverlayError", "parameters": ["VROverlayHandle_t", "void*", "uint32_t", "uint32_t", "uint32_t"]},
                {"name": "CloseMessageOverlay", "return_type": "void", "parameters": []},
            ],
        }
    ],
}


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.repo_root = Path(self.temp_dir.name)
        decl_dir = self.repo_root / "abi" / "decls"
        decl_dir.mkdir(parents=True, exist_ok=True)
        (decl_dir / "1.0.2.json").write_text(json.dumps(OVERLAY_V1), encoding="utf-8")
        (decl_dir / "1.0.3.json").write_text(json.dumps(OVERLAY_V2), encoding="utf-8")
        self.config_path = self.repo_root / "abi" / "unify.json"
        self.config_path.write_text(
            json.dumps({"inputs": ["abi/decls"], "parallel": {"max_workers": 2}}),
            encoding="utf-8",
        )

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def run_cli(self, argv: list[str]) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            exit_code = cli.main(argv)
        return exit_code, stdout.getvalue(), stderr.getvalue()

    def test_unify_writes_module_and_reports(self) -> None:
        out_dir = self.repo_root / "out"
        exit_code, stdout, _ = self.run_cli(
            [
                "unify",
                "--repo-root",
                str(self.repo_root),
                "--config",
                str(self.config_path),
                "--output",
                str(out_dir / "module.json"),
                "--report",
                str(out_dir / "report.json"),
                "--markdown-report",
                str(out_dir / "report.md"),
                "--sarif-report",
                str(out_dir / "report.sarif"),
            ]
        )
        self.assertEqual(exit_code, 0)
        self.assertIn("Unification status: pass", stdout)

        module = json.loads((out_dir / "module.json").read_text(encoding="utf-8"))
        self.assertEqual(module["source_versions"], ["1.0.2", "1.0.3"])
        self.assertEqual(
            module["supertraits"],
            [{"direct": True, "family": "IVROverlay", "newer": "IVROverlay_027", "older": "IVROverlay_025"}],
        )
        self.assertEqual(module["bridges"], [])
        self.assertEqual(
            module["struct_groups"][0]["field_count_by_version"],
            {"1.0.2": 2, "1.0.3": 3},
        )

        report = json.loads((out_dir / "report.json").read_text(encoding="utf-8"))
        self.assertEqual(report["status"], "pass")
        self.assertEqual(report["fingerprint"], module["fingerprint"])
        self.assertIn("# Unification Report (pass)", (out_dir / "report.md").read_text(encoding="utf-8"))
        sarif = json.loads((out_dir / "report.sarif").read_text(encoding="utf-8"))
        self.assertEqual(sarif["version"], "2.1.0")
        self.assertEqual(sarif["runs"][0]["results"], [])

    def test_unify_is_byte_identical_across_job_counts(self) -> None:
        outputs = []
        for jobs in ["1", "4"]:
            output = self.repo_root / f"module-{jobs}.json"
            exit_code, _, _ = self.run_cli(
                [
                    "unify",
                    "--repo-root",
                    str(self.repo_root),
                    "--config",
                    str(self.config_path),
                    "--jobs",
                    jobs,
                    "--output",
                    str(output),
                ]
            )
            self.assertEqual(exit_code, 0)
            outputs.append(output.read_bytes())
        self.assertEqual(outputs[0], outputs[1])

    def _add_ambiguous_family(self) -> None:
        broken = {
            "version": "1.0.4",
            "interfaces": [
                {"name": "IVRDebug_001", "methods": [{"name": "Ping"}, {"name": "Ping"}]},
            ],
        }
        (self.repo_root / "abi" / "decls" / "1.0.4.json").write_text(json.dumps(broken), encoding="utf-8")

    def test_unit_failures_exit_one_unless_partial_allowed(self) -> None:
        self._add_ambiguous_family()
        output = self.repo_root / "module.json"
        exit_code, stdout, stderr = self.run_cli(
            ["unify", "--repo-root", str(self.repo_root), "--config", str(self.config_path), "--output", str(output)]
        )
        self.assertEqual(exit_code, 1)
        self.assertFalse(output.exists())
        self.assertIn("AmbiguousMethodIdentity", stdout)
        self.assertIn("--allow-partial", stderr)

        exit_code = command_unify(
            argparse.Namespace(
                repo_root=str(self.repo_root),
                config=str(self.config_path),
                input=None,
                output=str(output),
                report=None,
                markdown_report=None,
                sarif_report=str(self.repo_root / "partial.sarif"),
                jobs=1,
                allow_partial=True,
            )
        )
        self.assertEqual(exit_code, 0)
        module = json.loads(output.read_text(encoding="utf-8"))
        self.assertEqual([item["family"] for item in module["interfaces"]], ["IVROverlay", "IVROverlay"])
        sarif = json.loads((self.repo_root / "partial.sarif").read_text(encoding="utf-8"))
        self.assertEqual(sarif["runs"][0]["results"][0]["ruleId"], "UNI002")

    def test_failure_messages_name_inputs_relative_to_repo_root(self) -> None:
        malformed = {
            "version": "1.0.4",
            "structs": [{"name": "VREvent_t", "fields": [{"name": "eventType", "type": "uint32_t[0]"}]}],
        }
        (self.repo_root / "abi" / "decls" / "1.0.4.json").write_text(json.dumps(malformed), encoding="utf-8")
        report_path = self.repo_root / "out" / "report.json"
        sarif_path = self.repo_root / "out" / "report.sarif"
        exit_code, _, _ = self.run_cli(
            [
                "unify",
                "--repo-root",
                str(self.repo_root),
                "--config",
                str(self.config_path),
                "--allow-partial",
                "--report",
                str(report_path),
                "--sarif-report",
                str(sarif_path),
            ]
        )
        self.assertEqual(exit_code, 0)
        report = json.loads(report_path.read_text(encoding="utf-8"))
        self.assertEqual([item["unit"] for item in report["failures"]], ["struct:VREvent_t"])
        message = report["failures"][0]["message"]
        self.assertTrue(message.startswith("abi/decls/1.0.4.json.structs[0]"), message)

        sarif_text = sarif_path.read_text(encoding="utf-8")
        self.assertIn("abi/decls/1.0.4.json.structs[0]", sarif_text)
        self.assertNotIn(self.repo_root.resolve().as_posix(), sarif_text)
        self.assertNotIn(self.repo_root.resolve().as_posix(), report_path.read_text(encoding="utf-8"))

    def test_name_collision_exits_two(self) -> None:
        clash = {
            "version": "1.0.4",
            "structs": [{"name": "IVROverlay_027", "fields": [{"name": "x", "type": "int"}]}],
        }
        (self.repo_root / "abi" / "decls" / "1.0.4.json").write_text(json.dumps(clash), encoding="utf-8")
        output = self.repo_root / "module.json"
        exit_code, _, stderr = self.run_cli(
            [
                "unify",
                "--repo-root",
                str(self.repo_root),
                "--config",
                str(self.config_path),
                "--allow-partial",
                "--output",
                str(output),
            ]
        )
        self.assertEqual(exit_code, 2)
        self.assertFalse(output.exists())
        self.assertIn("abi_unify error: name 'IVROverlay_027'", stderr)

    def test_missing_config_is_reported(self) -> None:
        exit_code, _, stderr = self.run_cli(
            ["unify", "--repo-root", str(self.repo_root), "--config", str(self.repo_root / "nope.json")]
        )
        self.assertEqual(exit_code, 2)
        self.assertIn("abi_unify error:", stderr)

    def test_diff_and_plan_for_family(self) -> None:
        inputs = [
            "--input",
            str(self.repo_root / "abi" / "decls" / "1.0.2.json"),
            "--input",
            str(self.repo_root / "abi" / "decls" / "1.0.3.json"),
        ]
        exit_code, stdout, _ = self.run_cli(["diff", *inputs, "--family", "IVROverlay"])
        self.assertEqual(exit_code, 0)
        self.assertIn("IVROverlay_025 -> IVROverlay_027: additive", stdout)
        self.assertIn("+ CloseMessageOverlay/0() -> void", stdout)

        plan_path = self.repo_root / "plan.json"
        exit_code, stdout, _ = self.run_cli(["plan", *inputs, "--family", "IVROverlay", "--output", str(plan_path)])
        self.assertEqual(exit_code, 0)
        self.assertIn("IVROverlay_025: implied by IVROverlay_027", stdout)
        plan = json.loads(plan_path.read_text(encoding="utf-8"))
        self.assertEqual(plan["implement"], "IVROverlay_027")

        exit_code, _, stderr = self.run_cli(["plan", *inputs, "--family", "IVRSystem"])
        self.assertEqual(exit_code, 2)
        self.assertIn("Unknown interface family 'IVRSystem'", stderr)

    def test_list_families_uses_config_inputs(self) -> None:
        exit_code, stdout, _ = self.run_cli(
            ["list-families", "--repo-root", str(self.repo_root), "--config", str(self.config_path)]
        )
        self.assertEqual(exit_code, 0)
        self.assertIn("Versions: 1.0.2, 1.0.3", stdout)
        self.assertIn("  IVROverlay: 025, 027", stdout)
        self.assertIn("  VREvent_t: 1.0.2, 1.0.3", stdout)


if __name__ == "__main__":
    unittest.main()
