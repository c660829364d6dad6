"""stagechain - ordered transform stages with end-to-end source maps."""

from stagechain.config import StageChainConfig, StageConfig
from stagechain.kinds import LanguageKind
from stagechain.plugin import OutputOptions, StageTransformPlugin, TransformResult
from stagechain.transformer import TransformError

__all__ = [
    "LanguageKind",
    "OutputOptions",
    "StageChainConfig",
    "StageConfig",
    "StageTransformPlugin",
    "TransformError",
    "TransformResult",
]
