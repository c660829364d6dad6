"""Stage selection: which configured stages apply to an id.

Stages are tested in declared order. The language kind comes from the first
match only; every other option is merged key by key with later matches
overriding earlier ones. This lets one stage declare the language and others
add cross-cutting behavior (a banner, minification) to many kinds.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stagechain.config import PatternLike, PatternSpec, StageConfig
    from stagechain.kinds import LanguageKind

logger = logging.getLogger(__name__)

Filter = Callable[[str], bool]

DEFAULT_EXCLUDE = re.compile(r"node_modules")

_REGEX_LITERAL = re.compile(r"^/(.+)/([gimsuy]*)$")
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def default_include(kind: LanguageKind) -> re.Pattern[str]:
    """Pattern matching ids that end in ``.<kind>``."""
    return re.compile(rf"\.{re.escape(kind.value)}$")


def _posix(path: str) -> str:
    return path.replace(os.sep, "/") if os.sep != "/" else path


def _glob_to_regex(glob: str) -> re.Pattern[str]:
    """Translate a glob into an anchored regular expression.

    ``**`` crosses directories, ``*`` and ``?`` do not, ``{a,b}`` alternates.
    """
    out: list[str] = []
    i = 0
    depth = 0
    while i < len(glob):
        char = glob[i]
        if glob.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if glob.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "{":
            out.append("(?:")
            depth += 1
        elif char == "}" and depth:
            out.append(")")
            depth -= 1
        elif char == "," and depth:
            out.append("|")
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


def _compile_pattern(pattern: PatternLike, base_dir: str) -> re.Pattern[str]:
    if isinstance(pattern, re.Pattern):
        return pattern

    literal = _REGEX_LITERAL.match(pattern)
    if literal:
        flags = 0
        for flag in literal.group(2):
            flags |= _REGEX_FLAGS.get(flag, 0)
        return re.compile(literal.group(1), flags)

    glob = _posix(pattern)
    if not glob.startswith("**") and not PurePath(glob).is_absolute():
        glob = f"{base_dir.rstrip('/')}/{glob.removeprefix('./')}"
    return _glob_to_regex(glob)


def _compile_patterns(patterns: PatternSpec, base_dir: str) -> list[re.Pattern[str]]:
    if patterns is None:
        return []
    items = patterns if isinstance(patterns, list) else [patterns]
    return [_compile_pattern(item, base_dir) for item in items]


def create_filter(include: PatternSpec, exclude: PatternSpec, base_dir: Path | None = None) -> Filter:
    """Build an id predicate from include/exclude patterns.

    Exclusion wins over inclusion. With no include patterns every id that is
    not excluded passes. Ids holding a NUL byte belong to virtual modules and
    never pass.

    A string that starts and ends with ``/`` (optionally followed by flags)
    is always a regular expression, searched anywhere in the id. An absolute
    directory glob must therefore not end in ``/``: write ``/srv/lib/**``,
    not ``/srv/lib/``.

    Args:
        include: Pattern(s) an id must match
        exclude: Pattern(s) an id must not match
        base_dir: Directory relative globs are resolved against (cwd if None)

    Returns:
        Predicate over ids
    """
    base = _posix(str(base_dir or Path.cwd()))
    includes = _compile_patterns(include, base)
    excludes = _compile_patterns(exclude, base)

    def matches(identity: str) -> bool:
        if "\0" in identity:
            return False
        normalized = _posix(identity)
        if any(pattern.search(normalized) for pattern in excludes):
            return False
        if not includes:
            return True
        return any(pattern.search(normalized) for pattern in includes)

    return matches


def stage_filter(stage: StageConfig, base_dir: Path | None = None) -> Filter:
    """Build the filter for one stage, applying defaults.

    Input stages default to ids ending in their kind's extension and to
    excluding dependency directories. Output stages have no default and
    match nothing until an include is configured.
    """
    if stage.output:
        if stage.include is None:
            return lambda identity: False
        return create_filter(stage.include, stage.exclude, base_dir)

    include = stage.include
    if include is None and stage.kind is not None:
        include = default_include(stage.kind)
    exclude = stage.exclude if stage.exclude is not None else DEFAULT_EXCLUDE
    return create_filter(include, exclude, base_dir)


def merge_options(bags: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Shallow merge of option bags; later keys override earlier ones."""
    merged: dict[str, Any] = {}
    for bag in bags:
        merged.update(bag)
    return merged


@dataclass(frozen=True)
class EffectiveOptions:
    """Result of merging the stages that match one id.

    Attributes:
        kind: Language kind of the first matching stage
        options: Options of every matching stage, later ones winning
        stages: The matching stages in declared order
    """

    kind: LanguageKind | None
    options: dict[str, Any] = field(default_factory=dict)
    stages: tuple[StageConfig, ...] = ()


class StageSelector:
    """Selects and merges the configured stages that apply to an id.

    The stage list is read-only after construction, so one selector can be
    shared by concurrent invocations.
    """

    def __init__(self, stages: Sequence[StageConfig], base_dir: Path | None = None) -> None:
        self._stages = tuple(stages)
        self._filters = tuple(stage_filter(stage, base_dir) for stage in self._stages)

    @property
    def stages(self) -> tuple[StageConfig, ...]:
        return self._stages

    def matching(self, identity: str, output: bool = False) -> list[StageConfig]:
        """Stages of the given phase whose filter accepts ``identity``, in order."""
        return [
            stage
            for stage, accepts in zip(self._stages, self._filters, strict=True)
            if stage.output == output and accepts(identity)
        ]

    def select(self, identity: str, output: bool = False) -> EffectiveOptions | None:
        """Merge the matching stages for ``identity``.

        Args:
            identity: File path or output chunk name
            output: Select output-chunk stages instead of input stages

        Returns:
            EffectiveOptions, or None if no stage matched
        """
        matched = self.matching(identity, output)
        if not matched:
            return None

        return EffectiveOptions(
            kind=matched[0].kind,
            options=merge_options(stage.options for stage in matched),
            stages=tuple(matched),
        )
