"""Transform pipeline: applies the matching stages to one file or chunk.

The invocations planned for an id are folded over a ``TransformUnit``. Each
step sends the current code to the transformer, forwards its warnings to the
host and composes the step's source map onto the accumulated one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stagechain.kinds import LanguageKind
from stagechain.pipeline.context import TransformUnit
from stagechain.pipeline.selector import EffectiveOptions, StageSelector
from stagechain.pipeline.strategy import PLANNERS, ChainStrategy, StageInvocation
from stagechain.sourcemap import Mapping, merge
from stagechain.transformer import TransformRequest, format_message

if TYPE_CHECKING:
    from stagechain.config import StageConfig
    from stagechain.transformer import Transformer

logger = logging.getLogger(__name__)

WarnFn = Callable[[str], None]


def _log_warning(message: str) -> None:
    logger.warning("%s", message)


class TransformPipeline:
    """Runs the configured stages for one id at a time.

    Holds no per-invocation state, so concurrent ``run`` calls for different
    ids are safe.

    Attributes:
        selector: Stage selector over the configured stages
        transformer: External transformation service
        strategy: How several matching stages are applied
    """

    def __init__(
        self,
        stages: Sequence[StageConfig],
        transformer: Transformer,
        strategy: ChainStrategy = ChainStrategy.CHAIN,
        base_dir: Path | None = None,
    ) -> None:
        self.selector = StageSelector(stages, base_dir)
        self.transformer = transformer
        self.strategy = strategy
        self._plan = PLANNERS[strategy]

    def plan(self, identity: str, output: bool = False) -> list[StageInvocation]:
        """Invocations that ``run`` would make for ``identity`` (empty if none match)."""
        selection = self.selector.select(identity, output)
        if selection is None:
            return []
        return self._plan(selection)

    async def run(
        self,
        code: str,
        identity: str,
        output: bool = False,
        sourcemap: bool = True,
        warn: WarnFn | None = None,
    ) -> TransformUnit | None:
        """Apply the matching stages to ``code``.

        Args:
            code: Code as received from the host
            identity: File path or output chunk name
            output: Run output-chunk stages instead of input stages
            sourcemap: Whether to request source maps; the file phase always
                requests them, the output phase follows the host setting
            warn: Receives each formatted transformer warning

        Returns:
            Final TransformUnit, or None if no stage matched and the code
            must be left exactly as received

        Raises:
            TransformError: If the transformer rejects the code
        """
        selection: EffectiveOptions | None = self.selector.select(identity, output)
        if selection is None:
            logger.debug("No stage matches %s", identity)
            return None

        want_map = sourcemap if output else True
        report = warn or _log_warning
        unit = TransformUnit(code=code)

        for invocation in self._plan(selection):
            unit = await self._invoke(unit, identity, invocation, want_map, report)

        return unit

    async def _invoke(
        self,
        unit: TransformUnit,
        identity: str,
        invocation: StageInvocation,
        want_map: bool,
        warn: WarnFn,
    ) -> TransformUnit:
        """Run one invocation and fold its result into ``unit``."""
        options: dict[str, Any] = {}
        if invocation.kind is LanguageKind.DATA_OBJECT:
            options["format"] = "esm"
        options.update(invocation.options)

        request = TransformRequest(
            code=unit.code,
            kind=invocation.kind,
            sourcefile=options.pop("sourcefile", identity),
            sourcemap=bool(options.pop("sourcemap", want_map)),
            options=options,
        )

        logger.debug("Transforming %s with stage %s", identity, invocation.label or invocation.kind)
        result = await self.transformer.transform(request)

        for message in result.warnings:
            warn(format_message(message, "warning"))

        if not result.map:
            return unit.advance(result.code, None)

        mapping = Mapping.from_json(result.map)
        if unit.mapping is not None:
            mapping = merge(unit.mapping, mapping)
        return unit.advance(result.code, mapping)
