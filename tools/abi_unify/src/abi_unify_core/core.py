from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403
from ._core_structs import *  # noqa: F401,F403
from ._core_diff import *  # noqa: F401,F403
from ._core_synth import *  # noqa: F401,F403
from ._core_assemble import *  # noqa: F401,F403
from ._core_orchestration import *  # noqa: F401,F403
from ._core_report import *  # noqa: F401,F403
