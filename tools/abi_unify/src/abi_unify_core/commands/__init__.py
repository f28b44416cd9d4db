from .inspection import command_diff, command_list_families, command_plan
from .unification import command_unify

__all__ = [
    "command_diff",
    "command_list_families",
    "command_plan",
    "command_unify",
]
