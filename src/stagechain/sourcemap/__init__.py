"""Source map model, VLQ codec and composition."""

from stagechain.sourcemap.compose import MappingIndex, merge
from stagechain.sourcemap.mapping import Mapping, MappingEntry

__all__ = [
    "Mapping",
    "MappingEntry",
    "MappingIndex",
    "merge",
]
