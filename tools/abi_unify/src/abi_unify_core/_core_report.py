from __future__ import annotations

from ._core_base import *  # noqa: F401,F403

SARIF_RULES = {
    MALFORMED_VERSION_SEQUENCE: ("UNI001", "Version sequence is malformed"),
    AMBIGUOUS_METHOD_IDENTITY: ("UNI002", "Method identity is ambiguous"),
    NAME_COLLISION: ("UNI003", "Generated name collides with another entity"),
}
SARIF_WARNING_RULE = ("UNI004", "Unification warning")


def get_message_list(report: dict[str, Any], key: str) -> list[str]:
    values = report.get(key)
    if not isinstance(values, list):
        return []
    return [str(item) for item in values]


def print_report(report: dict[str, Any]) -> None:
    status = report.get("status", "unknown")
    print(f"Unification status: {status}")

    summary = report.get("summary", {})
    print(f"Source versions: {', '.join(report.get('source_versions', [])) or '<none>'}")
    print(f"Structs: {summary.get('struct_count', 0)} ({summary.get('struct_group_count', 0)} layout groups)")
    print(f"Interface families: {summary.get('family_count', 0)}")
    print(f"Interfaces: {summary.get('interface_count', 0)}")
    print(f"Supertrait edges: {summary.get('supertrait_count', 0)}")
    print(f"Bridges: {summary.get('bridge_count', 0)}")
    fingerprint = report.get("fingerprint")
    if fingerprint:
        print(f"Module fingerprint: {fingerprint}")

    warnings = get_message_list(report, "warnings")
    errors = get_message_list(report, "errors")

    if warnings:
        print("Warnings:")
        for warning in warnings:
            print(f"  - {warning}")
    if errors:
        print("Errors:")
        for error in errors:
            print(f"  - {error}")


def write_markdown_report(path: Path, report: dict[str, Any]) -> None:
    summary = report.get("summary", {})
    lines: list[str] = []
    lines.append(f"# Unification Report ({report.get('status', 'unknown')})")
    lines.append("")
    lines.append(f"- Source versions: `{', '.join(report.get('source_versions', []))}`")
    lines.append(f"- Structs: `{summary.get('struct_count', 0)}`")
    lines.append(f"- Struct layout groups: `{summary.get('struct_group_count', 0)}`")
    lines.append(f"- Interface families: `{summary.get('family_count', 0)}`")
    lines.append(f"- Interfaces: `{summary.get('interface_count', 0)}`")
    lines.append(f"- Supertrait edges: `{summary.get('supertrait_count', 0)}`")
    lines.append(f"- Bridges: `{summary.get('bridge_count', 0)}`")
    lines.append(f"- Fingerprint: `{report.get('fingerprint')}`")
    lines.append("")

    failures = report.get("failures", [])
    warnings = get_message_list(report, "warnings")

    if failures:
        lines.append("## Failures")
        lines.append("")
        lines.append("| Kind | Unit | Message |")
        lines.append("| --- | --- | --- |")
        for item in failures:
            message = str(item.get("message", "")).replace("|", "\\|")
            lines.append(f"| {item.get('kind')} | `{item.get('unit')}` | {message} |")
        lines.append("")

    if warnings:
        lines.append("## Warnings")
        for warning in warnings:
            lines.append(f"- {warning}")
        lines.append("")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def build_sarif_results(report: dict[str, Any], source_paths: list[str]) -> list[dict[str, Any]]:
    results: list[dict[str, Any]] = []
    locations = [
        {
            "physicalLocation": {
                "artifactLocation": {
                    "uri": source_path,
                },
                "region": {
                    "startLine": 1,
                },
            }
        }
        for source_path in source_paths
    ]

    for item in report.get("failures", []):
        rule_id, _ = SARIF_RULES.get(str(item.get("kind")), SARIF_RULES[MALFORMED_VERSION_SEQUENCE])
        result: dict[str, Any] = {
            "ruleId": rule_id,
            "level": "error",
            "message": {
                "text": f"[{item.get('unit')}] {item.get('message')}",
            },
        }
        if locations:
            result["locations"] = locations
        results.append(result)

    for message in get_message_list(report, "warnings"):
        result = {
            "ruleId": SARIF_WARNING_RULE[0],
            "level": "warning",
            "message": {
                "text": message,
            },
        }
        if locations:
            result["locations"] = locations
        results.append(result)

    return results


def write_sarif_report(path: Path, results: list[dict[str, Any]]) -> None:
    rules: list[dict[str, Any]] = []
    for kind, (rule_id, text) in sorted(SARIF_RULES.items(), key=lambda item: item[1][0]):
        rules.append(
            {
                "id": rule_id,
                "name": kind,
                "shortDescription": {
                    "text": text,
                },
                "defaultConfiguration": {
                    "level": "error",
                },
            }
        )
    rules.append(
        {
            "id": SARIF_WARNING_RULE[0],
            "name": "UnificationWarning",
            "shortDescription": {
                "text": SARIF_WARNING_RULE[1],
            },
            "defaultConfiguration": {
                "level": "warning",
            },
        }
    )
    payload = {
        "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "abi_unify",
                        "version": TOOL_VERSION,
                        "rules": rules,
                    }
                },
                "results": results,
            }
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
