"""Interface to the external code transformer.

The pipeline treats the transformer as an opaque service: it sends code and
per-stage options and gets back code, an optional source map and a list of
warnings. ``EsbuildCliTransformer`` implements the service on top of the
esbuild command line tool.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from stagechain.errors import StageChainError
from stagechain.kinds import LanguageKind

logger = logging.getLogger(__name__)

MessageKind = Literal["warning", "error"]


@dataclass(frozen=True)
class Location:
    """Where in the input a message points."""

    file: str
    line: int
    column: int
    line_text: str = ""


@dataclass(frozen=True)
class Message:
    """A diagnostic reported by the transformer.

    Attributes:
        text: Message text
        location: Position in the input, if known
        id: Transformer specific message id
        notes: Additional explanatory lines
    """

    text: str
    location: Location | None = None
    id: str = ""
    notes: tuple[str, ...] = ()


def format_message(message: Message, kind: MessageKind = "warning") -> str:
    """Render a message the way a compiler reports it.

    Example:
        src/app.ts:3:6: warning: Comparison with -0 using "===" [equals-negative-zero]
            3 | if (x === -0) {}
    """
    text = f"{kind}: {message.text}"
    if message.id:
        text += f" [{message.id}]"

    lines: list[str] = []
    loc = message.location
    if loc is not None:
        lines.append(f"{loc.file}:{loc.line}:{loc.column}: {text}")
        if loc.line_text:
            lines.append(f"    {loc.line} | {loc.line_text}")
    else:
        lines.append(text)
    lines.extend(f"  note: {note}" for note in message.notes)
    return "\n".join(lines)


class TransformError(StageChainError):
    """The transformer rejected its input.

    Attributes:
        errors: Diagnostics explaining the failure
    """

    def __init__(self, message: str, errors: list[Message] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


@dataclass(frozen=True)
class TransformRequest:
    """One call to the transformer.

    Attributes:
        code: Input code
        kind: Language kind of ``code`` (None lets the transformer decide)
        sourcefile: Name of the input used in messages and source maps
        sourcemap: Whether a source map should be produced
        options: Transformer options, forwarded verbatim
    """

    code: str
    kind: LanguageKind | None
    sourcefile: str
    sourcemap: bool = True
    options: dict[str, Any] = field(default_factory=dict)

    def as_options(self) -> dict[str, Any]:
        """Flat option mapping for transformers that take one."""
        options: dict[str, Any] = {}
        if self.kind is not None:
            options["loader"] = self.kind.value
        options["sourcefile"] = self.sourcefile
        options["sourcemap"] = self.sourcemap
        options.update(self.options)
        return options


@dataclass(frozen=True)
class TransformOutput:
    """Transformer response.

    Attributes:
        code: Transformed code
        map: Source map JSON, or an empty string when none was produced
        warnings: Non-fatal diagnostics
    """

    code: str
    map: str = ""
    warnings: list[Message] = field(default_factory=list)


class Transformer(Protocol):
    """The external transformation service."""

    async def transform(self, request: TransformRequest) -> TransformOutput: ...


_INLINE_MAP = re.compile(
    r"\n?(?://# sourceMappingURL=data:application/json;base64,(?P<js>[A-Za-z0-9+/=]+)"
    r"|/\*# sourceMappingURL=data:application/json;base64,(?P<css>[A-Za-z0-9+/=]+) \*/)\s*$"
)
_HEADER = re.compile(r"^\S+ \[(?P<kind>WARNING|ERROR)\] (?P<text>.*?)(?: \[(?P<id>[\w-]+)\])?$")
_LOCATION = re.compile(r"^\s+(?P<file>.+):(?P<line>\d+):(?P<column>\d+):$")
_LINE_TEXT = re.compile(r"^\s+\d+ │ (?P<text>.*)$")

_HANDLED_OPTIONS = frozenset({"loader", "sourcefile", "sourcemap"})


def _flag_name(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "-", key).lower()


def _flag_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def build_arguments(request: TransformRequest) -> list[str]:
    """Translate a request into esbuild command line arguments.

    camelCase option names become kebab-case flags. ``True`` becomes a bare
    flag, lists are comma separated and mappings become ``--name:key=value``.
    A string banner or footer applies to the request's output kind.
    """
    args: list[str] = []
    if request.kind is not None:
        args.append(f"--loader={request.kind.value}")
    args.append(f"--sourcefile={request.sourcefile}")
    if request.sourcemap:
        args.append("--sourcemap=inline")

    output_kind = request.kind.output_kind if request.kind else LanguageKind.SCRIPT
    for key, value in request.options.items():
        if key in _HANDLED_OPTIONS or value is None:
            continue
        name = _flag_name(key)

        if key in ("banner", "footer") and isinstance(value, str):
            args.append(f"--{name}:{output_kind.value}={value}")
        elif key == "tsconfigRaw":
            raw = value if isinstance(value, str) else json.dumps(value)
            args.append(f"--{name}={raw}")
        elif value is True:
            args.append(f"--{name}")
        elif isinstance(value, dict):
            args.extend(f"--{name}:{k}={_flag_value(v)}" for k, v in value.items())
        else:
            args.append(f"--{name}={_flag_value(value)}")

    args.extend(["--log-level=warning", "--color=false"])
    return args


def split_inline_map(output: str) -> tuple[str, str]:
    """Strip a trailing inline source map comment.

    Returns:
        Tuple of (code, map JSON or "")
    """
    match = _INLINE_MAP.search(output)
    if match is None:
        return output, ""
    encoded = match.group("js") or match.group("css")
    code = output[: match.start()]
    if output.endswith("\n") and not code.endswith("\n"):
        code += "\n"
    return code, base64.b64decode(encoded).decode("utf-8")


def parse_messages(stderr: str) -> tuple[list[Message], list[Message]]:
    """Parse esbuild's plain text log output.

    Returns:
        Tuple of (warnings, errors)
    """
    warnings: list[Message] = []
    errors: list[Message] = []
    current: dict[str, Any] | None = None

    def flush() -> None:
        if current is None:
            return
        message = Message(
            text=current["text"],
            location=current["location"],
            id=current["id"] or "",
            notes=tuple(current["notes"]),
        )
        (errors if current["kind"] == "ERROR" else warnings).append(message)

    for line in stderr.splitlines():
        header = _HEADER.match(line)
        if header:
            flush()
            current = {**header.groupdict(), "location": None, "notes": []}
            continue
        if current is None or not line.strip():
            continue

        location = _LOCATION.match(line)
        if location and current["location"] is None:
            current["location"] = Location(
                file=location.group("file"),
                line=int(location.group("line")),
                column=int(location.group("column")),
            )
            continue

        line_text = _LINE_TEXT.match(line)
        if line_text and current["location"] is not None and not current["location"].line_text:
            loc = current["location"]
            current["location"] = Location(loc.file, loc.line, loc.column, line_text.group("text"))
            continue

        # caret underlines and excerpts of note locations
        if line.strip().startswith(("│", "╵", "~", "^")) or _LINE_TEXT.match(line) or location:
            continue
        current["notes"].append(line.strip())

    flush()
    return warnings, errors


class EsbuildCliTransformer:
    """Transformer backed by the esbuild executable.

    Each request runs one esbuild process with the code on stdin.
    """

    def __init__(self, binary: str = "esbuild") -> None:
        self.binary = binary

    async def transform(self, request: TransformRequest) -> TransformOutput:
        """Run esbuild on one request.

        Raises:
            TransformError: If esbuild is missing or rejects the input
        """
        args = build_arguments(request)
        logger.debug("Running %s %s", self.binary, " ".join(args))

        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TransformError(f"esbuild executable not found: {self.binary}") from e
        except OSError as e:
            raise TransformError(f"Cannot run esbuild executable {self.binary}: {e}") from e

        stdout, stderr = await process.communicate(request.code.encode("utf-8"))
        warnings, errors = parse_messages(stderr.decode("utf-8", errors="replace"))

        if process.returncode != 0:
            detail = "\n".join(format_message(e, "error") for e in errors) or stderr.decode(errors="replace").strip()
            raise TransformError(
                f"Transform of {request.sourcefile} failed with exit code {process.returncode}:\n{detail}",
                errors,
            )

        code, raw_map = split_inline_map(stdout.decode("utf-8"))
        return TransformOutput(code=code, map=raw_map if request.sourcemap else "", warnings=warnings)
