from __future__ import annotations

from ._core_base import *  # noqa: F401,F403

TYPE_KINDS = ("scalar", "struct", "pointer", "array")


@dataclass(frozen=True, order=True)
class VersionTag:
    key: tuple[int, ...]
    label: str = field(compare=False)

    @classmethod
    def parse(cls, value: Any) -> "VersionTag":
        if isinstance(value, bool):
            raise AbiUnifyError(f"Invalid version tag: {value!r}")
        if isinstance(value, int):
            value = str(value)
        if not isinstance(value, str) or not value.strip():
            raise AbiUnifyError(f"Invalid version tag: {value!r}")
        label = value.strip()
        parts = [int(part) for part in re.findall(r"\d+", label)]
        if not parts:
            raise AbiUnifyError(f"Version tag '{label}' has no numeric component")
        # "1.0" and "1.0.0" name the same release.
        while len(parts) > 1 and parts[-1] == 0:
            parts.pop()
        return cls(key=tuple(parts), label=label)

    @property
    def namespace(self) -> str:
        text = re.sub(r"[^A-Za-z0-9]+", "_", self.label).strip("_")
        if not text or not text[0].isalpha():
            text = f"v{text}"
        return text

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class TypeDescriptor:
    kind: str
    name: str = ""
    inner: "TypeDescriptor | None" = None
    length: int | None = None
    const: bool = False

    @classmethod
    def scalar(cls, name: str) -> "TypeDescriptor":
        return cls(kind="scalar", name=name)

    @classmethod
    def struct_ref(cls, name: str) -> "TypeDescriptor":
        return cls(kind="struct", name=name)

    @classmethod
    def pointer(cls, pointee: "TypeDescriptor", const: bool = False) -> "TypeDescriptor":
        return cls(kind="pointer", inner=pointee, const=const)

    @classmethod
    def array(cls, element: "TypeDescriptor", length: int) -> "TypeDescriptor":
        return cls(kind="array", inner=element, length=length)

    def render(self) -> str:
        if self.kind == "scalar":
            return self.name
        if self.kind == "struct":
            return f"struct {self.name}"
        if self.inner is None:
            raise AbiUnifyError(f"Type descriptor of kind '{self.kind}' has no inner type")
        if self.kind == "pointer":
            inner_text = self.inner.render()
            if not self.const:
                return f"{inner_text}*"
            if self.inner.kind == "pointer":
                return f"{inner_text} const*"
            return f"const {inner_text}*"
        dims: list[int] = []
        node: TypeDescriptor = self
        while node.kind == "array" and node.inner is not None:
            dims.append(int(node.length or 0))
            node = node.inner
        return node.render() + "".join(f"[{dim}]" for dim in dims)

    def struct_refs(self) -> set[str]:
        if self.kind == "struct":
            return {self.name}
        if self.inner is not None:
            return self.inner.struct_refs()
        return set()

    def embedded_struct_refs(self) -> set[str]:
        """Structs laid out inline, directly or as array elements; pointees excluded."""
        if self.kind == "struct":
            return {self.name}
        if self.kind == "array" and self.inner is not None:
            return self.inner.embedded_struct_refs()
        return set()

    def resolve_structs(self, known_structs: frozenset[str]) -> "TypeDescriptor":
        if self.kind == "scalar" and self.name in known_structs:
            return TypeDescriptor.struct_ref(self.name)
        if self.inner is not None:
            resolved = self.inner.resolve_structs(known_structs)
            if resolved is not self.inner:
                return TypeDescriptor(kind=self.kind, name=self.name, inner=resolved, length=self.length, const=self.const)
        return self

    def as_dict(self) -> dict[str, Any]:
        if self.kind in {"scalar", "struct"}:
            return {"kind": self.kind, "name": self.name}
        if self.inner is None:
            raise AbiUnifyError(f"Type descriptor of kind '{self.kind}' has no inner type")
        if self.kind == "pointer":
            return {"kind": "pointer", "const": self.const, "pointee": self.inner.as_dict()}
        return {"kind": "array", "length": self.length, "element": self.inner.as_dict()}

    def __str__(self) -> str:
        return self.render()


def _parse_base_type(text: str) -> tuple[TypeDescriptor, bool]:
    tokens = [token for token in text.split(" ") if token and token != "volatile"]
    is_const = "const" in tokens
    tokens = [token for token in tokens if token != "const"]
    if not tokens:
        raise AbiUnifyError(f"Type '{text}' has no base type")
    if tokens[0] == "struct":
        if len(tokens) != 2 or not is_identifier(tokens[1]):
            raise AbiUnifyError(f"Malformed struct reference '{text}'")
        return TypeDescriptor.struct_ref(tokens[1]), is_const
    if tokens[0] == "enum" and len(tokens) == 2:
        return TypeDescriptor.scalar(tokens[1]), is_const
    return TypeDescriptor.scalar(" ".join(tokens)), is_const


def parse_c_type(value: str) -> TypeDescriptor:
    text = normalize_ws(value)
    if not text:
        raise AbiUnifyError("Empty C type")
    if "(" in text:
        # Function pointer types stay opaque; only their spelling takes part in identity.
        return TypeDescriptor.scalar(re.sub(r"\s*([(),*])\s*", r"\1", text))

    dims: list[int] = []
    array_match = re.match(r"^(?P<left>.*?)(?P<dims>(?:\s*\[\s*[^\]]*\])+)\s*$", text)
    if array_match:
        for raw_dim in re.findall(r"\[\s*([^\]]*)\]", array_match.group("dims")):
            if not raw_dim.strip().isdigit() or int(raw_dim) <= 0:
                raise AbiUnifyError(f"Array type '{text}' must use positive literal dimensions")
            dims.append(int(raw_dim))
        text = normalize_ws(array_match.group("left"))

    chunks = text.split("*")
    descriptor, pointee_const = _parse_base_type(normalize_ws(chunks[0]))
    for qualifiers in chunks[1:]:
        qualifier_tokens = normalize_ws(qualifiers).split(" ") if qualifiers.strip() else []
        if any(token not in {"const", "volatile"} for token in qualifier_tokens):
            raise AbiUnifyError(f"Unexpected tokens after '*' in type '{value}'")
        descriptor = TypeDescriptor.pointer(descriptor, const=pointee_const)
        pointee_const = "const" in qualifier_tokens

    for dim in reversed(dims):
        descriptor = TypeDescriptor.array(descriptor, dim)
    return descriptor


def parse_type_descriptor(value: Any, label: str) -> TypeDescriptor:
    if isinstance(value, str):
        try:
            return parse_c_type(value)
        except AbiUnifyError as exc:
            raise AbiUnifyError(f"{label}: {exc}") from exc
    if not isinstance(value, dict):
        raise AbiUnifyError(f"{label} must be a C type string or a descriptor object")

    kind = value.get("kind")
    if kind not in TYPE_KINDS:
        raise AbiUnifyError(f"{label}.kind must be one of {', '.join(TYPE_KINDS)}")
    if kind in {"scalar", "struct"}:
        name = value.get("name")
        if not isinstance(name, str) or not name.strip():
            raise AbiUnifyError(f"{label}.name must be a non-empty string")
        if kind == "struct" and not is_identifier(name):
            raise AbiUnifyError(f"{label}.name '{name}' is not a valid struct name")
        return TypeDescriptor(kind=kind, name=normalize_ws(name))
    if kind == "pointer":
        if "pointee" not in value:
            raise AbiUnifyError(f"{label} pointer is missing 'pointee'")
        const = value.get("const", False)
        if not isinstance(const, bool):
            raise AbiUnifyError(f"{label}.const must be boolean")
        return TypeDescriptor.pointer(parse_type_descriptor(value["pointee"], f"{label}.pointee"), const=const)
    length = value.get("length")
    if not isinstance(length, int) or isinstance(length, bool) or length <= 0:
        raise AbiUnifyError(f"{label}.length must be a positive integer")
    if "element" not in value:
        raise AbiUnifyError(f"{label} array is missing 'element'")
    return TypeDescriptor.array(parse_type_descriptor(value["element"], f"{label}.element"), length)


@dataclass(frozen=True)
class FieldDecl:
    name: str
    type: TypeDescriptor
    index: int

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type.render(), "index": self.index}


@dataclass(frozen=True)
class StructDecl:
    name: str
    fields: tuple[FieldDecl, ...]
    version: VersionTag


@dataclass(frozen=True)
class MethodSignature:
    name: str
    parameters: tuple[TypeDescriptor, ...]
    return_type: TypeDescriptor

    @property
    def shape(self) -> str:
        params = ", ".join(param.render() for param in self.parameters)
        return f"({params}) -> {self.return_type.render()}"

    @property
    def identity(self) -> str:
        return f"{self.name}/{len(self.parameters)}{self.shape}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "identity": self.identity,
            "parameters": [param.render() for param in self.parameters],
            "return_type": self.return_type.render(),
        }


@dataclass(frozen=True)
class InterfaceDecl:
    name: str
    base_name: str
    version: VersionTag
    methods: tuple[MethodSignature, ...]
    declared_in: VersionTag

    def method_identities(self) -> tuple[str, ...]:
        return tuple(method.identity for method in self.methods)


@dataclass(frozen=True)
class VersionFamily:
    base_name: str
    members: tuple[InterfaceDecl, ...]

    def adjacent_pairs(self) -> list[tuple[InterfaceDecl, InterfaceDecl]]:
        return list(zip(self.members, self.members[1:]))


@dataclass(frozen=True)
class DeclarationSet:
    version: VersionTag
    structs: tuple[StructDecl, ...]
    interfaces: tuple[InterfaceDecl, ...]
    source: str = ""


def struct_unit(name: str) -> str:
    return f"struct:{name}"


def family_unit(base_name: str) -> str:
    return f"interface:{base_name}"


def split_interface_name(name: str, pattern: re.Pattern[str]) -> tuple[str, str]:
    match = pattern.match(name)
    if not match:
        raise AbiUnifyError(f"Interface name '{name}' does not carry a version number")
    return match.group("base"), match.group("version")


def collect_declared_struct_names(payloads: list[dict[str, Any]]) -> frozenset[str]:
    names: set[str] = set()
    for payload in payloads:
        for item in payload.get("structs") or []:
            if isinstance(item, dict) and isinstance(item.get("name"), str):
                names.add(item["name"])
    return frozenset(names)


def _parse_struct_entry(
    item: dict[str, Any],
    version: VersionTag,
    known_structs: frozenset[str],
    label: str,
) -> StructDecl:
    name = str(item["name"])
    fields: list[FieldDecl] = []
    seen: set[str] = set()
    for idx, raw_field in enumerate(item.get("fields") or []):
        field_label = f"{label}.fields[{idx}]"
        field_name = str(raw_field.get("name") or f"__unnamed_{idx}")
        if field_name in seen:
            raise MalformedVersionSequenceError(f"{field_label} repeats field name '{field_name}'")
        seen.add(field_name)
        try:
            descriptor = parse_type_descriptor(raw_field.get("type"), f"{field_label}.type")
        except AbiUnifyError as exc:
            raise MalformedVersionSequenceError(str(exc)) from exc
        fields.append(FieldDecl(name=field_name, type=descriptor.resolve_structs(known_structs), index=idx))
    return StructDecl(name=name, fields=tuple(fields), version=version)


def _parse_method_entry(item: dict[str, Any], known_structs: frozenset[str], label: str) -> MethodSignature:
    parameters = tuple(
        parse_type_descriptor(raw, f"{label}.parameters[{idx}]").resolve_structs(known_structs)
        for idx, raw in enumerate(item.get("parameters") or [])
    )
    return_type = parse_type_descriptor(item.get("return_type", "void"), f"{label}.return_type")
    return MethodSignature(
        name=str(item["name"]),
        parameters=parameters,
        return_type=return_type.resolve_structs(known_structs),
    )


def _parse_interface_entry(
    item: dict[str, Any],
    version: VersionTag,
    known_structs: frozenset[str],
    name_pattern: re.Pattern[str],
    label: str,
) -> InterfaceDecl:
    name = str(item["name"])
    base_name = item.get("base_name")
    raw_version = item.get("version")
    if not isinstance(base_name, str) or raw_version is None:
        parsed_base, parsed_version = split_interface_name(name, name_pattern)
        base_name = base_name if isinstance(base_name, str) else parsed_base
        raw_version = parsed_version if raw_version is None else raw_version
    methods = tuple(
        _parse_method_entry(method, known_structs, f"{label}.methods[{idx}]")
        for idx, method in enumerate(item.get("methods") or [])
    )
    return InterfaceDecl(
        name=name,
        base_name=base_name,
        version=VersionTag.parse(raw_version),
        methods=methods,
        declared_in=version,
    )


def parse_declaration_set(
    payload: dict[str, Any],
    label: str,
    known_structs: frozenset[str],
    name_pattern: re.Pattern[str],
) -> tuple[DeclarationSet, list[UnitFailure]]:
    """Build one version's declaration model.

    Problems local to one struct or one interface are returned as failures for that unit
    and the offending declaration is left out; problems with the set itself raise.
    """
    version = VersionTag.parse(payload.get("version"))
    failures: list[UnitFailure] = []

    structs: list[StructDecl] = []
    struct_names: set[str] = set()
    for idx, item in enumerate(payload.get("structs") or []):
        name = str(item["name"])
        unit = struct_unit(name)
        if name in struct_names:
            failures.append(
                UnitFailure(MALFORMED_VERSION_SEQUENCE, unit, f"{label}: struct '{name}' is declared twice in version {version}")
            )
            continue
        struct_names.add(name)
        try:
            structs.append(_parse_struct_entry(item, version, known_structs, f"{label}.structs[{idx}]"))
        except AbiUnifyError as exc:
            failures.append(UnitFailure(MALFORMED_VERSION_SEQUENCE, unit, str(exc)))

    interfaces: list[InterfaceDecl] = []
    for idx, item in enumerate(payload.get("interfaces") or []):
        name = str(item["name"])
        try:
            interfaces.append(
                _parse_interface_entry(item, version, known_structs, name_pattern, f"{label}.interfaces[{idx}]")
            )
        except AbiUnifyError as exc:
            base = item.get("base_name")
            if not isinstance(base, str):
                match = name_pattern.match(name)
                base = match.group("base") if match else name
            failures.append(UnitFailure(MALFORMED_VERSION_SEQUENCE, family_unit(base), str(exc)))

    declaration_set = DeclarationSet(
        version=version,
        structs=tuple(structs),
        interfaces=tuple(interfaces),
        source=label,
    )
    return declaration_set, failures


def group_struct_decls(declaration_sets: list[DeclarationSet]) -> dict[str, list[StructDecl]]:
    grouped: dict[str, list[StructDecl]] = {}
    for declaration_set in sorted(declaration_sets, key=lambda item: item.version):
        for decl in declaration_set.structs:
            grouped.setdefault(decl.name, []).append(decl)
    return {name: grouped[name] for name in sorted(grouped.keys())}


def group_interface_decls(declaration_sets: list[DeclarationSet]) -> dict[str, list[InterfaceDecl]]:
    grouped: dict[str, list[InterfaceDecl]] = {}
    for declaration_set in sorted(declaration_sets, key=lambda item: item.version):
        for decl in declaration_set.interfaces:
            grouped.setdefault(decl.base_name, []).append(decl)
    return {name: grouped[name] for name in sorted(grouped.keys())}


def build_version_family(
    base_name: str,
    declarations: list[InterfaceDecl],
    consumed_versions: tuple[str, ...] | None = None,
) -> VersionFamily:
    """Merge repeated declarations of each interface version and order the family.

    The same numbered interface usually ships unchanged in several releases; every
    occurrence must agree. With ``consumed_versions`` only the listed versions are kept.
    """
    by_name: dict[str, InterfaceDecl] = {}
    for decl in declarations:
        first = by_name.get(decl.name)
        if first is None:
            by_name[decl.name] = decl
            continue
        if first.method_identities() != decl.method_identities():
            raise MalformedVersionSequenceError(
                f"interface '{decl.name}' differs between releases {first.declared_in} and {decl.declared_in}",
                unit=family_unit(base_name),
            )

    by_version: dict[VersionTag, InterfaceDecl] = {}
    for decl in by_name.values():
        clash = by_version.get(decl.version)
        if clash is not None:
            raise MalformedVersionSequenceError(
                f"interfaces '{clash.name}' and '{decl.name}' both claim version {decl.version} of '{base_name}'",
                unit=family_unit(base_name),
            )
        by_version[decl.version] = decl

    members = sorted(by_version.values(), key=lambda item: item.version)
    if consumed_versions is not None:
        wanted: list[VersionTag] = []
        for raw in consumed_versions:
            tag = VersionTag.parse(raw)
            if tag in wanted:
                raise MalformedVersionSequenceError(
                    f"consumed version {raw} of '{base_name}' is listed twice",
                    unit=family_unit(base_name),
                )
            wanted.append(tag)
        missing = [str(tag) for tag in wanted if tag not in by_version]
        if missing:
            raise MalformedVersionSequenceError(
                f"consumed versions of '{base_name}' are not declared: {', '.join(missing)}",
                unit=family_unit(base_name),
            )
        members = [member for member in members if member.version in wanted]

    for older, newer in zip(members, members[1:]):
        if not older.version < newer.version:
            raise MalformedVersionSequenceError(
                f"versions of '{base_name}' are not strictly increasing: {older.version} then {newer.version}",
                unit=family_unit(base_name),
            )
    return VersionFamily(base_name=base_name, members=tuple(members))
