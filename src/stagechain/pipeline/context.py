"""Running state threaded through the pipeline for one file or chunk."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stagechain.sourcemap import Mapping


@dataclass(frozen=True)
class TransformUnit:
    """Code and accumulated mapping after zero or more invocations.

    Attributes:
        code: Current code
        mapping: Mapping from the original source to ``code``, or None if
            no invocation has produced one yet
    """

    code: str
    mapping: Mapping | None = None

    def advance(self, code: str, mapping: Mapping | None) -> TransformUnit:
        """Return the unit after one more invocation.

        A None ``mapping`` keeps the accumulated one.
        """
        return TransformUnit(code=code, mapping=mapping if mapping is not None else self.mapping)
