"""Language kinds a stage can process.

Values are the transformer's loader names, so ``.<value>`` is also the file
extension a kind owns by default.
"""

from __future__ import annotations

from enum import Enum


class LanguageKind(str, Enum):
    """Category of input content a stage is meant to process."""

    SCRIPT = "js"
    TYPED_SCRIPT = "ts"
    SCRIPT_JSX = "jsx"
    TYPED_SCRIPT_JSX = "tsx"
    STYLE = "css"
    DATA_OBJECT = "json"
    RAW = "text"
    BASE64 = "base64"
    BINARY = "binary"
    DATAURL = "dataurl"
    FILE = "file"
    COPY = "copy"
    EMPTY = "empty"

    def __str__(self) -> str:
        return self.value

    @property
    def is_script(self) -> bool:
        return self in SCRIPT_KINDS

    @property
    def is_typed(self) -> bool:
        return self in (LanguageKind.TYPED_SCRIPT, LanguageKind.TYPED_SCRIPT_JSX)

    @property
    def output_kind(self) -> LanguageKind:
        """Kind of the code a transform of this kind emits."""
        if self is LanguageKind.STYLE:
            return LanguageKind.STYLE
        return LanguageKind.SCRIPT

    @property
    def extensions(self) -> tuple[str, ...]:
        """File extensions tried for this kind when resolving specifiers.

        Script and typed-script also try their CommonJS and ES module
        flavored variants, in that order.
        """
        return _EXTENSION_VARIANTS.get(self, (self.value,))


SCRIPT_KINDS = (
    LanguageKind.TYPED_SCRIPT,
    LanguageKind.TYPED_SCRIPT_JSX,
    LanguageKind.SCRIPT,
    LanguageKind.SCRIPT_JSX,
)

_EXTENSION_VARIANTS = {
    LanguageKind.SCRIPT: ("js", "cjs", "mjs"),
    LanguageKind.TYPED_SCRIPT: ("ts", "cts", "mts"),
}
