from __future__ import annotations

import glob
import hashlib
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

TOOL_VERSION = "1.0.0"
MODULE_SCHEMA_VERSION = 1
DEFAULT_INTERFACE_NAME_PATTERN = r"^(?P<base>[A-Za-z_][A-Za-z0-9_]*?)_?(?P<version>\d+)$"
PRIMARY_PARTITION_MODES = ("oldest", "newest")

MALFORMED_VERSION_SEQUENCE = "MalformedVersionSequence"
AMBIGUOUS_METHOD_IDENTITY = "AmbiguousMethodIdentity"
NAME_COLLISION = "NameCollision"


class AbiUnifyError(Exception):
    kind = "AbiUnifyError"

    def __init__(self, message: str, unit: str | None = None) -> None:
        super().__init__(message)
        self.unit = unit


class MalformedVersionSequenceError(AbiUnifyError):
    kind = MALFORMED_VERSION_SEQUENCE


class AmbiguousMethodIdentityError(AbiUnifyError):
    kind = AMBIGUOUS_METHOD_IDENTITY


class NameCollisionError(AbiUnifyError):
    kind = NAME_COLLISION


@dataclass(frozen=True)
class UnitFailure:
    kind: str
    unit: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind,
            "unit": self.unit,
            "message": self.message,
        }

    @classmethod
    def from_error(cls, exc: AbiUnifyError, unit: str) -> "UnitFailure":
        return cls(kind=exc.kind, unit=exc.unit or unit, message=str(exc))


def normalize_ws(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def is_identifier(value: str) -> bool:
    return bool(re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", value))


def load_json(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise AbiUnifyError(f"Unable to read JSON file '{path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise AbiUnifyError(f"Invalid JSON in '{path}': {exc}") from exc


def write_json(path: Path, value: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(value, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def stable_hash(value: Any) -> str:
    payload = json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def get_schema_path(kind: str) -> Path:
    base = Path(__file__).resolve().parent / "schemas"
    mapping = {
        "config": base / "config.schema.json",
        "declarations": base / "declarations.schema.json",
        "module": base / "unified_module.schema.json",
    }
    if kind not in mapping:
        raise AbiUnifyError(f"Unknown schema kind: {kind}")
    return mapping[kind]


def validate_with_jsonschema(kind: str, payload: dict[str, Any], label: str) -> None:
    schema_path = get_schema_path(kind)
    if not schema_path.exists():
        raise AbiUnifyError(f"schema file not found: {schema_path}")
    schema_payload = load_json(schema_path)
    try:
        jsonschema.validate(payload, schema_payload)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise AbiUnifyError(f"{label} failed JSON schema validation at {location}: {exc.message}") from exc


def normalize_string_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise AbiUnifyError(f"'{key}' must be an array")
    out: list[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str) or not item:
            raise AbiUnifyError(f"'{key}[{idx}]' must be a non-empty string")
        out.append(item)
    return out


def validate_config_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise AbiUnifyError("config root must be an object")

    normalize_string_list(payload.get("inputs"), "inputs")

    pattern = payload.get("interface_name_pattern")
    if pattern is not None:
        if not isinstance(pattern, str) or not pattern:
            raise AbiUnifyError("config.interface_name_pattern must be a non-empty string")
        try:
            compiled = re.compile(pattern)
        except re.error as exc:
            raise AbiUnifyError(f"config.interface_name_pattern is not a valid regex: {exc}") from exc
        if "base" not in compiled.groupindex or "version" not in compiled.groupindex:
            raise AbiUnifyError("config.interface_name_pattern must define 'base' and 'version' groups")

    families = payload.get("families")
    if families is not None:
        if not isinstance(families, dict):
            raise AbiUnifyError("config.families must be an object when specified")
        for base_name, family_cfg in families.items():
            if not isinstance(base_name, str) or not base_name:
                raise AbiUnifyError("config.families keys must be non-empty strings")
            if not isinstance(family_cfg, dict):
                raise AbiUnifyError(f"config.families['{base_name}'] must be an object")
            normalize_string_list(family_cfg.get("versions"), f"families.{base_name}.versions")
            exclude = family_cfg.get("exclude")
            if exclude is not None and not isinstance(exclude, bool):
                raise AbiUnifyError(f"config.families['{base_name}'].exclude must be boolean when specified")

    structs = payload.get("structs")
    if structs is not None:
        if not isinstance(structs, dict):
            raise AbiUnifyError("config.structs must be an object when specified")
        mode = structs.get("primary_partition")
        if mode is not None and mode not in PRIMARY_PARTITION_MODES:
            raise AbiUnifyError("config.structs.primary_partition must be oldest or newest")
        propagate = structs.get("propagate_nested_layouts")
        if propagate is not None and not isinstance(propagate, bool):
            raise AbiUnifyError("config.structs.propagate_nested_layouts must be boolean when specified")
        normalize_string_list(structs.get("ignore"), "structs.ignore")

    parallel = payload.get("parallel")
    if parallel is not None:
        if not isinstance(parallel, dict):
            raise AbiUnifyError("config.parallel must be an object when specified")
        workers = parallel.get("max_workers")
        if workers is not None and (not isinstance(workers, int) or isinstance(workers, bool) or workers < 1):
            raise AbiUnifyError("config.parallel.max_workers must be a positive integer")

    validate_with_jsonschema("config", payload, "config")


def load_config(path: Path) -> dict[str, Any]:
    config = load_json(path)
    validate_config_payload(config)
    return config


@dataclass(frozen=True)
class UnifyOptions:
    interface_name_pattern: str = DEFAULT_INTERFACE_NAME_PATTERN
    family_versions: tuple[tuple[str, tuple[str, ...]], ...] = ()
    excluded_families: tuple[str, ...] = ()
    ignored_structs: tuple[str, ...] = ()
    primary_partition: str = "oldest"
    propagate_nested_layouts: bool = True
    max_workers: int = 4

    def versions_for(self, base_name: str) -> tuple[str, ...] | None:
        for name, versions in self.family_versions:
            if name == base_name:
                return versions
        return None

    def as_dict(self) -> dict[str, Any]:
        return {
            "interface_name_pattern": self.interface_name_pattern,
            "family_versions": {name: list(versions) for name, versions in self.family_versions},
            "excluded_families": list(self.excluded_families),
            "ignored_structs": list(self.ignored_structs),
            "primary_partition": self.primary_partition,
            "propagate_nested_layouts": self.propagate_nested_layouts,
        }


def build_unify_options(config: dict[str, Any], max_workers_override: int | None = None) -> UnifyOptions:
    family_versions: list[tuple[str, tuple[str, ...]]] = []
    excluded: list[str] = []
    families = config.get("families")
    if isinstance(families, dict):
        for base_name in sorted(families.keys()):
            family_cfg = families[base_name]
            if not isinstance(family_cfg, dict):
                continue
            if bool(family_cfg.get("exclude", False)):
                excluded.append(base_name)
            versions = normalize_string_list(family_cfg.get("versions"), f"families.{base_name}.versions")
            if versions:
                family_versions.append((base_name, tuple(versions)))

    structs_cfg = config.get("structs")
    if not isinstance(structs_cfg, dict):
        structs_cfg = {}

    max_workers = 4
    parallel = config.get("parallel")
    if isinstance(parallel, dict) and isinstance(parallel.get("max_workers"), int):
        max_workers = int(parallel["max_workers"])
    if max_workers_override is not None:
        if max_workers_override < 1:
            raise AbiUnifyError("worker count must be a positive integer")
        max_workers = max_workers_override

    return UnifyOptions(
        interface_name_pattern=str(config.get("interface_name_pattern") or DEFAULT_INTERFACE_NAME_PATTERN),
        family_versions=tuple(family_versions),
        excluded_families=tuple(excluded),
        ignored_structs=tuple(sorted(normalize_string_list(structs_cfg.get("ignore"), "structs.ignore"))),
        primary_partition=str(structs_cfg.get("primary_partition") or "oldest"),
        propagate_nested_layouts=bool(structs_cfg.get("propagate_nested_layouts", True)),
        max_workers=max_workers,
    )


def ensure_relative_path(root: Path, value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return root / path


def to_repo_relative(path: Path, repo_root: Path) -> str:
    try:
        return path.resolve().relative_to(repo_root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def iter_files_from_entries(root: Path, entries: list[str], suffix: str) -> list[Path]:
    paths: list[Path] = []
    seen: set[Path] = set()

    for entry in entries:
        expanded: list[Path] = []
        entry_path = ensure_relative_path(root, entry)

        if any(ch in entry for ch in "*?[]"):
            for match in glob.glob(str(entry_path), recursive=True):
                expanded.append(Path(match))
        elif entry_path.is_dir():
            expanded.extend(entry_path.rglob(f"*{suffix}"))
        elif entry_path.is_file():
            expanded.append(entry_path)
        else:
            raise AbiUnifyError(f"Input path does not exist: {entry_path}")

        for candidate in expanded:
            if not candidate.is_file() or candidate.suffix.lower() != suffix:
                continue
            resolved = candidate.resolve()
            if resolved not in seen:
                seen.add(resolved)
                paths.append(resolved)

    return sorted(paths)
