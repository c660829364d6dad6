"""Resolution of import specifiers without extensions.

Relative or rooted specifiers are resolved against the importer's directory.
When the path names a directory, an ``index`` file with a configured script
extension is looked up inside it; when it names nothing, each configured
extension is appended in turn. Only the kinds configured as input stages are
tried, in declaration order.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Final, Literal, Protocol

if TYPE_CHECKING:
    from stagechain.config import StageConfig

logger = logging.getLogger(__name__)


class _NotApplicable(Enum):
    NOT_APPLICABLE = "not-applicable"

    def __repr__(self) -> str:
        return "NOT_APPLICABLE"


NOT_APPLICABLE: Final = _NotApplicable.NOT_APPLICABLE
"""Returned for bare specifiers, which are left to the host's resolution."""

Resolution = Literal[_NotApplicable.NOT_APPLICABLE] | str | None


class FileSystem(Protocol):
    """Read-only filesystem queries used by the resolver."""

    def exists(self, path: str) -> bool: ...

    def is_dir(self, path: str) -> bool: ...

    def is_file(self, path: str) -> bool: ...


class LocalFileSystem:
    """FileSystem backed by the real disk."""

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def is_dir(self, path: str) -> bool:
        return Path(path).is_dir()

    def is_file(self, path: str) -> bool:
        return Path(path).is_file()


class InMemoryFileSystem:
    """FileSystem holding a fixed set of files; directories are implied by their files."""

    def __init__(self, files: Iterable[str] = ()) -> None:
        self._files: set[str] = set()
        self._dirs: set[str] = set()
        for path in files:
            self.add(path)

    def add(self, path: str) -> None:
        path = os.path.normpath(path)
        self._files.add(path)
        parent = os.path.dirname(path)
        while parent and parent not in self._dirs:
            self._dirs.add(parent)
            if os.path.dirname(parent) == parent:
                break
            parent = os.path.dirname(parent)

    def exists(self, path: str) -> bool:
        return self.is_file(path) or self.is_dir(path)

    def is_dir(self, path: str) -> bool:
        return os.path.normpath(path) in self._dirs

    def is_file(self, path: str) -> bool:
        return os.path.normpath(path) in self._files


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def is_path_specifier(specifier: str) -> bool:
    """Whether ``specifier`` is relative or rooted rather than a bare package name."""
    return specifier.startswith((".", "/", os.sep))


class ModuleResolver:
    """Resolves extension-less and directory specifiers.

    Attributes:
        extensions: Extensions appended to a missing path, in trial order
        index_extensions: Extensions tried for a directory's index file
    """

    def __init__(self, stages: Sequence[StageConfig], fs: FileSystem | None = None) -> None:
        self.fs = fs or LocalFileSystem()
        kinds = [stage.kind for stage in stages if not stage.output and stage.kind is not None]
        self.extensions = _unique(ext for kind in kinds for ext in kind.extensions)
        self.index_extensions = _unique(ext for kind in kinds if kind.is_script for ext in kind.extensions)

    def _first_existing(self, base: str, extensions: Iterable[str]) -> str | None:
        for ext in extensions:
            candidate = f"{base}.{ext}"
            if self.fs.exists(candidate):
                return candidate
        return None

    def resolve(self, specifier: str, importer: str | None) -> Resolution:
        """Resolve ``specifier`` as imported from ``importer``.

        Args:
            specifier: Import specifier as written
            importer: Absolute path of the importing file (None for entry points)

        Returns:
            Absolute path of the resolved file, None if nothing matched, or
            NOT_APPLICABLE for specifiers this resolver does not handle
        """
        if importer is None or not is_path_specifier(specifier):
            return NOT_APPLICABLE

        candidate = os.path.normpath(os.path.join(os.path.dirname(importer), specifier))

        if self.fs.exists(candidate):
            if not self.fs.is_dir(candidate):
                return candidate
            resolved = self._first_existing(os.path.join(candidate, "index"), self.index_extensions)
        else:
            resolved = self._first_existing(candidate, self.extensions)

        if resolved is None:
            logger.debug("Could not resolve %s from %s", specifier, importer)
        else:
            logger.debug("Resolved %s from %s to %s", specifier, importer, resolved)
        return resolved
