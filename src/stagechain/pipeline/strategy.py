"""Strategies for applying several matching stages to one id.

Both strategies turn a selection into an ordered list of invocations of the
transformer, so the pipeline folds over the same shape either way:

- CHAIN: one invocation per matched stage, each with its own options. The
  maps of successive invocations are composed.
- MERGED: a single invocation with every matched stage's options merged.

They differ observably when stages set conflicting low-level options, so a
plugin instance uses exactly one of them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stagechain.kinds import LanguageKind
    from stagechain.pipeline.selector import EffectiveOptions


class ChainStrategy(str, Enum):
    """How matched stages are applied."""

    CHAIN = "chain"
    MERGED = "merged"


@dataclass(frozen=True)
class StageInvocation:
    """Options for one call to the transformer.

    Attributes:
        kind: Language kind of the code handed to the transformer
        options: Transformer options for this call
        label: Stage label for logging
    """

    kind: LanguageKind | None
    options: dict[str, Any] = field(default_factory=dict)
    label: str = ""


def plan_chain(selection: EffectiveOptions) -> list[StageInvocation]:
    """One invocation per matched stage.

    The first invocation uses the selection's kind. A later stage that
    declares no kind of its own processes whatever the previous invocation
    emitted.
    """
    invocations: list[StageInvocation] = []
    kind = selection.kind

    for index, stage in enumerate(selection.stages):
        if index > 0:
            kind = stage.kind or (kind.output_kind if kind else None)
        invocations.append(StageInvocation(kind=kind, options=dict(stage.options), label=stage.describe()))

    return invocations


def plan_merged(selection: EffectiveOptions) -> list[StageInvocation]:
    """A single invocation with the merged options of every matched stage."""
    label = " + ".join(stage.describe() for stage in selection.stages)
    return [StageInvocation(kind=selection.kind, options=dict(selection.options), label=label)]


PLANNERS: dict[ChainStrategy, Callable[[EffectiveOptions], list[StageInvocation]]] = {
    ChainStrategy.CHAIN: plan_chain,
    ChainStrategy.MERGED: plan_merged,
}
