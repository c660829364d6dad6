"""Stage selection and the transform pipeline.

Formal Model:
    Stage sᵢ = (fᵢ, oᵢ) where:
        fᵢ: Id → Bool          (filter)
        oᵢ: options for the transformer

    run(id, code) = none                              if no fᵢ(id)
                  = foldl(step, (code, ∅), plan(id))  otherwise

    step((code, map), inv) = (code', map ∘ map')  with (code', map') = T(code, inv)
"""

from stagechain.pipeline.context import TransformUnit
from stagechain.pipeline.executor import TransformPipeline
from stagechain.pipeline.selector import EffectiveOptions, StageSelector, create_filter, merge_options
from stagechain.pipeline.strategy import ChainStrategy, StageInvocation

__all__ = [
    "TransformUnit",
    "TransformPipeline",
    "EffectiveOptions",
    "StageSelector",
    "create_filter",
    "merge_options",
    "ChainStrategy",
    "StageInvocation",
]
