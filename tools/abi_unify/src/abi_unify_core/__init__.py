from .core import (
    AbiUnifyError,
    AmbiguousMethodIdentityError,
    MalformedVersionSequenceError,
    NameCollisionError,
    UnificationResult,
    UnifiedModule,
    UnifyOptions,
    UnitFailure,
    build_unify_options,
    unify_declaration_sets,
    unify_files,
    unify_payloads,
)

__all__ = [
    "AbiUnifyError",
    "AmbiguousMethodIdentityError",
    "MalformedVersionSequenceError",
    "NameCollisionError",
    "UnificationResult",
    "UnifiedModule",
    "UnifyOptions",
    "UnitFailure",
    "build_unify_options",
    "unify_declaration_sets",
    "unify_files",
    "unify_payloads",
]
