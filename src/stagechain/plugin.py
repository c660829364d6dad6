"""Host-facing entry points.

A build host calls ``resolve_id`` while building its module graph,
``transform`` for every loaded file and ``render_chunk`` for every output
chunk. Each entry point is thin glue over the resolver and the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from stagechain.pipeline import ChainStrategy, TransformPipeline
from stagechain.resolver import NOT_APPLICABLE, FileSystem, ModuleResolver
from stagechain.transformer import EsbuildCliTransformer, Transformer

if TYPE_CHECKING:
    from stagechain.config import StageChainConfig, StageConfig
    from stagechain.pipeline import TransformUnit

logger = logging.getLogger(__name__)


class HostContext(Protocol):
    """What the plugin needs from the host during a call."""

    def warn(self, message: str) -> None: ...


class LoggingHost:
    """HostContext that reports warnings through logging."""

    def warn(self, message: str) -> None:
        logger.warning("%s", message)


@dataclass(frozen=True)
class TransformResult:
    """Transformed code and its Source Map v3 document (None if no map)."""

    code: str
    map: dict[str, Any] | None = None


@dataclass(frozen=True)
class OutputOptions:
    """Host output settings relevant to chunk rendering."""

    sourcemap: bool = False


def _to_result(unit: TransformUnit | None) -> TransformResult | None:
    if unit is None:
        return None
    return TransformResult(code=unit.code, map=unit.mapping.to_json() if unit.mapping else None)


class StageTransformPlugin:
    """Build plugin applying configured transform stages.

    Attributes:
        stages: Immutable stage configurations, with tsconfig files inlined
        resolver: Specifier resolver over the input stages
        pipeline: Transform pipeline over all stages
    """

    name = "stagechain"

    def __init__(
        self,
        stages: Sequence[StageConfig],
        transformer: Transformer | None = None,
        strategy: ChainStrategy = ChainStrategy.CHAIN,
        fs: FileSystem | None = None,
        base_dir: Path | None = None,
        config_dir: Path | None = None,
    ) -> None:
        """Initialize the plugin.

        Args:
            stages: Stage configurations in declared order
            transformer: Transformation service (esbuild CLI if None)
            strategy: How several matching stages are applied
            fs: Filesystem for resolution (local disk if None)
            base_dir: Directory relative include/exclude globs resolve against
            config_dir: Directory relative tsconfig paths resolve against

        Raises:
            ConfigFileError: If a typed-script stage's tsconfig cannot be read
        """
        self.stages = tuple(stage.with_tsconfig(config_dir) for stage in stages)
        self.resolver = ModuleResolver(self.stages, fs)
        self.pipeline = TransformPipeline(self.stages, transformer or EsbuildCliTransformer(), strategy, base_dir)

        logger.info(
            "Configured %d stage(s) (%s): %s",
            len(self.stages),
            strategy.value,
            ", ".join(stage.describe() for stage in self.stages) or "none",
        )

    @classmethod
    def from_config(cls, config: StageChainConfig, transformer: Transformer | None = None) -> StageTransformPlugin:
        """Build the plugin from loaded configuration."""
        return cls(
            config.stages,
            transformer=transformer or EsbuildCliTransformer(config.esbuild_binary),
            strategy=config.strategy,
            config_dir=config.config_dir,
        )

    async def resolve_id(self, specifier: str, importer: str | None = None) -> str | None:
        """Resolve an extension-less or directory specifier.

        Returns:
            Absolute path, or None to defer to the host's own resolution
        """
        resolved = await asyncio.to_thread(self.resolver.resolve, specifier, importer)
        if resolved is NOT_APPLICABLE:
            return None
        return resolved

    async def transform(self, code: str, id: str, host: HostContext | None = None) -> TransformResult | None:
        """Apply the input stages matching ``id``.

        Returns:
            TransformResult, or None to leave the file untouched
        """
        reporter = host or LoggingHost()
        unit = await self.pipeline.run(code, id, output=False, warn=reporter.warn)
        return _to_result(unit)

    async def render_chunk(
        self,
        code: str,
        chunk_id: str,
        output: OutputOptions | None = None,
        host: HostContext | None = None,
    ) -> TransformResult | None:
        """Apply the output stages matching ``chunk_id``.

        A source map is requested only when the host's output enables them.

        Returns:
            TransformResult, or None to leave the chunk untouched
        """
        output = output or OutputOptions()
        reporter = host or LoggingHost()
        unit = await self.pipeline.run(code, chunk_id, output=True, sourcemap=output.sourcemap, warn=reporter.warn)
        return _to_result(unit)
