"""Composition of two mappings into one end-to-end mapping.

Given an earlier mapping (original -> intermediate) and a later mapping
(intermediate -> final), ``merge`` produces original -> final. Each later
entry's original position is looked up in the earlier mapping. An entry the
earlier mapping does not cover carries no original position: it is kept as a
one-field unmapped marker so that a later lookup landing after it stops there
instead of falling back to an earlier, unrelated entry. Names are never
carried over.
"""

from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right

from stagechain.sourcemap.mapping import Mapping, MappingEntry

logger = logging.getLogger(__name__)


class MappingIndex:
    """Sorted lookup over a mapping's generated positions."""

    def __init__(self, mapping: Mapping) -> None:
        self._entries = sorted(mapping.entries, key=lambda e: (e.generated_line, e.generated_column))
        self._keys = [(e.generated_line, e.generated_column) for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def original_position_for(self, line: int, column: int) -> MappingEntry | None:
        """Find the original position covering a generated position.

        Uses the entry on the same line with the greatest column not after
        ``column``. When several entries share that position the first one
        wins.

        Args:
            line: 1-based generated line
            column: 0-based generated column

        Returns:
            The covering entry, or None if there is no coverage
        """
        index = bisect_right(self._keys, (line, column)) - 1
        if index < 0 or self._keys[index][0] != line:
            return None

        index = bisect_left(self._keys, self._keys[index])
        entry = self._entries[index]
        if not entry.is_mapped:
            return None
        return entry


def merge(earlier: Mapping, later: Mapping) -> Mapping:
    """Compose ``later`` on top of ``earlier``.

    Args:
        earlier: Mapping from the original sources to the intermediate code
        later: Mapping from the intermediate code to the final code

    Returns:
        Mapping from the original sources to the final code, with the source
        table, embedded contents and source root of ``earlier``. Entries of
        ``later`` without coverage become unmapped markers.
    """
    index = MappingIndex(earlier)
    entries: list[MappingEntry] = []
    unmapped = 0

    for entry in later.entries:
        original = None
        if entry.is_mapped:
            original = index.original_position_for(entry.original_line, entry.original_column)

        if original is None:
            unmapped += 1
            entries.append(MappingEntry(entry.generated_line, entry.generated_column))
            continue

        entries.append(
            MappingEntry(
                generated_line=entry.generated_line,
                generated_column=entry.generated_column,
                original_line=original.original_line,
                original_column=original.original_column,
                source=original.source,
            )
        )

    if unmapped:
        logger.debug("%d of %d entries have no coverage and are marked unmapped", unmapped, len(later.entries))

    return Mapping(
        sources=earlier.sources,
        sources_content=dict(earlier.sources_content),
        entries=tuple(entries),
        source_root=earlier.source_root,
    )
