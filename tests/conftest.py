"""Shared fixtures for stagechain tests."""

import re

import pytest

from stagechain.config import StageConfig, clear_config_instance
from stagechain.sourcemap import Mapping, MappingEntry
from stagechain.transformer import Location, Message, TransformError, TransformOutput, TransformRequest

TOKEN = re.compile(r"[A-Za-z_$][\w$]*|\d+(?:\.\d+)?|'[^']*'|\"[^\"]*\"|\S")


def _wordy(token: str) -> bool:
    return token[0].isalnum() or token[0] in "_$"


def tokenize(code: str, source: str, minify: bool) -> tuple[str, list[MappingEntry]]:
    """Re-emit code token by token with one mapping entry per token.

    Without ``minify`` the code is unchanged. With it every token is joined
    on one line, keeping a space only between two word-like tokens.
    """
    entries: list[MappingEntry] = []
    if not minify:
        for line_no, line in enumerate(code.splitlines(), start=1):
            for match in TOKEN.finditer(line):
                entries.append(MappingEntry(line_no, match.start(), line_no, match.start(), source))
        return code, entries

    parts: list[str] = []
    column = 0
    previous = None
    for line_no, line in enumerate(code.splitlines(), start=1):
        for match in TOKEN.finditer(line):
            token = match.group()
            if previous is not None and _wordy(previous) and _wordy(token):
                parts.append(" ")
                column += 1
            entries.append(MappingEntry(1, column, line_no, match.start(), source))
            parts.append(token)
            column += len(token)
            previous = token
    return "".join(parts) + "\n", entries


class FakeTransformer:
    """Deterministic stand-in for the external transformer.

    Understands a few options: ``minify``, ``banner``, ``format: esm`` and
    ``nomap`` (produce no map). Code containing ``debugger`` yields a
    warning and code containing ``@@syntax-error`` fails.
    """

    def __init__(self) -> None:
        self.requests: list[TransformRequest] = []

    async def transform(self, request: TransformRequest) -> TransformOutput:
        self.requests.append(request)
        options = request.options

        if "@@syntax-error" in request.code:
            error = Message("Unexpected token", Location(request.sourcefile, 1, 0, request.code.splitlines()[0]))
            raise TransformError(f"Transform of {request.sourcefile} failed", [error])

        code, entries = tokenize(request.code, request.sourcefile, bool(options.get("minify")))

        if options.get("format") == "esm" and request.kind is not None and request.kind.value == "json":
            prefix = "export default "
            code = prefix + code
            entries = [
                MappingEntry(e.generated_line, e.generated_column + (len(prefix) if e.generated_line == 1 else 0),
                             e.original_line, e.original_column, e.source)
                for e in entries
            ]

        banner = options.get("banner")
        if banner:
            shift = banner.count("\n") + 1
            code = f"{banner}\n{code}"
            entries = [
                MappingEntry(e.generated_line + shift, e.generated_column, e.original_line, e.original_column, e.source)
                for e in entries
            ]

        warnings = []
        if "debugger" in request.code:
            line_no = next(i for i, line in enumerate(request.code.splitlines(), start=1) if "debugger" in line)
            warnings.append(Message("Unexpected debugger statement", Location(request.sourcefile, line_no, 0)))

        raw_map = ""
        if request.sourcemap and not options.get("nomap"):
            raw_map = Mapping(
                sources=(request.sourcefile,),
                sources_content={request.sourcefile: request.code},
                entries=tuple(entries),
            ).dumps()

        return TransformOutput(code=code, map=raw_map, warnings=warnings)


@pytest.fixture
def fake_transformer() -> FakeTransformer:
    return FakeTransformer()


@pytest.fixture
def script_stage() -> StageConfig:
    return StageConfig(kind="js")


@pytest.fixture
def minify_stage() -> StageConfig:
    return StageConfig.model_validate({"include": r"/\.m?[jt]sx?$/", "minify": True})


@pytest.fixture(autouse=True)
def cleanup():
    """Clean up global config between tests."""
    yield
    clear_config_instance()
