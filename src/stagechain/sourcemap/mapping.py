"""Position mapping model and Source Map v3 serialization.

Lines are 1-based and columns are 0-based, the convention of the Source Map
tooling that produces and consumes these documents.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from stagechain.errors import MappingError
from stagechain.sourcemap.vlq import decode_vlq, encode_vlq

SOURCE_MAP_VERSION = 3


@dataclass(frozen=True)
class MappingEntry:
    """One generated position and the original position it came from.

    Attributes:
        generated_line: 1-based line in the generated output
        generated_column: 0-based column in the generated output
        original_line: 1-based line in the original source (0 if unmapped)
        original_column: 0-based column in the original source
        source: Source identifier, or None for a segment that marks
            generated text as having no original
    """

    generated_line: int
    generated_column: int
    original_line: int = 0
    original_column: int = 0
    source: str | None = None

    @property
    def is_mapped(self) -> bool:
        return self.source is not None


@dataclass(frozen=True)
class Mapping:
    """A position-correspondence document.

    Attributes:
        sources: Ordered source identifiers
        sources_content: Original text per source (None when not embedded)
        entries: Entries in generated-output order
        source_root: Optional prefix for all sources
        file: Optional name of the generated file
    """

    sources: tuple[str, ...] = ()
    sources_content: dict[str, str | None] = field(default_factory=dict)
    entries: tuple[MappingEntry, ...] = ()
    source_root: str | None = None
    file: str | None = None

    def __post_init__(self) -> None:
        known = set(self.sources)
        for entry in self.entries:
            if entry.source is not None and entry.source not in known:
                raise MappingError(f"Mapping entry refers to unknown source {entry.source!r}")

    def content_for(self, source: str) -> str | None:
        return self.sources_content.get(source)

    @classmethod
    def from_json(cls, raw: str | bytes | dict[str, Any]) -> Mapping:
        """Parse a Source Map v3 document.

        Args:
            raw: JSON text or an already decoded document

        Returns:
            Mapping with one entry per decoded segment

        Raises:
            MappingError: If the document is not a valid v3 source map
        """
        if isinstance(raw, (str, bytes)):
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                raise MappingError(f"Source map is not valid JSON: {e}") from e
        else:
            data = raw

        if not isinstance(data, dict):
            raise MappingError("Source map must be a JSON object")
        if "sections" in data:
            raise MappingError("Indexed source maps are not supported")
        version = data.get("version", SOURCE_MAP_VERSION)
        if version != SOURCE_MAP_VERSION:
            raise MappingError(f"Unsupported source map version: {version}")

        sources = tuple(s if s is not None else "" for s in data.get("sources", []))
        contents = data.get("sourcesContent") or []
        sources_content = {
            source: contents[index] if index < len(contents) else None for index, source in enumerate(sources)
        }

        return cls(
            sources=sources,
            sources_content=sources_content,
            entries=tuple(_decode_mappings(data.get("mappings", ""), sources)),
            source_root=data.get("sourceRoot") or None,
            file=data.get("file"),
        )

    def to_json(self) -> dict[str, Any]:
        """Serialize to a Source Map v3 document."""
        data: dict[str, Any] = {"version": SOURCE_MAP_VERSION}
        if self.file is not None:
            data["file"] = self.file
        if self.source_root is not None:
            data["sourceRoot"] = self.source_root
        data["sources"] = list(self.sources)
        if any(self.sources_content.get(source) is not None for source in self.sources):
            data["sourcesContent"] = [self.sources_content.get(source) for source in self.sources]
        data["names"] = []
        data["mappings"] = _encode_mappings(self.entries, self.sources)
        return data

    def dumps(self) -> str:
        return json.dumps(self.to_json())


def _decode_mappings(mappings: str, sources: tuple[str, ...]) -> list[MappingEntry]:
    entries: list[MappingEntry] = []
    source_index = 0
    original_line = 0
    original_column = 0

    for line_index, line in enumerate(mappings.split(";")):
        generated_column = 0
        for segment in line.split(","):
            if not segment:
                continue
            fields = decode_vlq(segment)
            if len(fields) not in (1, 4, 5):
                raise MappingError(f"Invalid segment {segment!r} with {len(fields)} fields")

            generated_column += fields[0]
            if len(fields) == 1:
                entries.append(MappingEntry(line_index + 1, generated_column))
                continue

            source_index += fields[1]
            original_line += fields[2]
            original_column += fields[3]
            if not 0 <= source_index < len(sources):
                raise MappingError(f"Segment {segment!r} refers to missing source index {source_index}")

            entries.append(
                MappingEntry(
                    generated_line=line_index + 1,
                    generated_column=generated_column,
                    original_line=original_line + 1,
                    original_column=original_column,
                    source=sources[source_index],
                )
            )

    return entries


def _encode_mappings(entries: tuple[MappingEntry, ...], sources: tuple[str, ...]) -> str:
    source_indexes = {source: index for index, source in enumerate(sources)}
    ordered = sorted(entries, key=lambda e: (e.generated_line, e.generated_column))

    lines: list[str] = []
    segments: list[str] = []
    current_line = 1
    previous_column = 0
    previous_source = 0
    previous_line = 0
    previous_original_column = 0

    for entry in ordered:
        while current_line < entry.generated_line:
            lines.append(",".join(segments))
            segments = []
            current_line += 1
            previous_column = 0

        values = [entry.generated_column - previous_column]
        previous_column = entry.generated_column
        if entry.source is not None:
            index = source_indexes[entry.source]
            values.extend(
                [
                    index - previous_source,
                    entry.original_line - 1 - previous_line,
                    entry.original_column - previous_original_column,
                ]
            )
            previous_source = index
            previous_line = entry.original_line - 1
            previous_original_column = entry.original_column
        segments.append(encode_vlq(values))

    lines.append(",".join(segments))
    return ";".join(lines)
