"""Exception types raised by stagechain.

Only hard failures are exceptions. Unmatched ids, unresolved specifiers and
transformer warnings are ordinary return values.
"""


class StageChainError(Exception):
    """Base class for stagechain errors."""


class MappingError(StageChainError, ValueError):
    """A source map document could not be decoded or violates its invariants."""


class ConfigFileError(StageChainError, OSError):
    """A configuration file referenced by a stage could not be read."""
