"""Regex tools — pattern matching, extraction, replacement, and redaction.

Patterns and flags use the JavaScript ``RegExp`` vocabulary that MCP
clients commonly send.  :func:`compile_pattern` maps flag letters onto
:mod:`re` and rewrites the few syntax differences (named groups, ``$``
anchoring); matching itself is plain :mod:`re`.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from pydantic import Field

from mcptools.protocol.models import ToolResult
from mcptools.tools.base import ToolArgs, ToolsetSpec

regex_toolset = ToolsetSpec(
    domain="regex",
    server_name="regex-tools-server",
    version="1.0.0",
    default_port=3001,
)

_FLAG_ORDER = "dgimsuy"
_RE_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}

DEFAULT_TOKEN_PATTERN = r"\s+|[^\w\s]+|_+"

_JSON_CANDIDATES = re.compile(
    r"\{(?:[^{}]|\{(?:[^{}]|\{[^{}]*\})*\})*\}"
    r"|\[(?:[^\[\]]|\[(?:[^\[\]]|\[[^\[\]]*\])*\])*\]"
)
_REPLACEMENT_TOKEN = re.compile(r"\$(?:(\$)|(&)|(`)|(')|(\d{1,2})|<([^>]*)>)")


class RegexError(ValueError):
    """A pattern or flag string could not be compiled."""


# ---------------------------------------------------------------------------
# Pattern compilation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledPattern:
    source: str
    flags: str
    regex: re.Pattern[str]

    @property
    def is_global(self) -> bool:
        return "g" in self.flags

    @property
    def sticky(self) -> bool:
        return "y" in self.flags

    def finditer(self, text: str) -> Iterator[re.Match[str]]:
        """Yield matches the way a global (or sticky) ``RegExp`` walks *text*.

        Without ``g`` at most one match is produced.
        """
        if not self.sticky:
            for match in self.regex.finditer(text):
                yield match
                if not self.is_global:
                    return
            return
        pos = 0
        while pos <= len(text):
            match = self.regex.match(text, pos)
            if match is None:
                return
            yield match
            if not self.is_global:
                return
            pos = match.end() if match.end() > match.start() else match.end() + 1

    def search(self, text: str) -> re.Match[str] | None:
        if self.sticky:
            return self.regex.match(text)
        return self.regex.search(text)

    def sub(self, replacement: str, text: str) -> tuple[str, int]:
        """Replace matches using ``$&``/``$1``/``$<name>``/``$$`` templates."""
        pieces: list[str] = []
        last = 0
        count = 0
        for match in self.finditer(text):
            pieces.append(text[last : match.start()])
            pieces.append(expand_replacement(replacement, match))
            last = match.end()
            count += 1
        pieces.append(text[last:])
        return "".join(pieces), count

    def split(self, text: str) -> list[str | None]:
        """Split like ``String.prototype.split``: captures included, empty edges dropped."""
        if not text:
            return [] if self.regex.match(text) else [text]
        parts: list[str | None] = []
        start = 0
        pos = 0
        while pos < len(text):
            match = self.regex.match(text, pos)
            if match is None or match.end() == start:
                pos += 1
                continue
            parts.append(text[start:pos])
            parts.extend(match.groups())
            start = match.end()
            pos = start
        parts.append(text[start:])
        return parts


def compile_pattern(pattern: str, flags: str = "") -> CompiledPattern:
    """Compile a JavaScript-style *pattern* with *flags*.

    Raises
    ------
    RegexError
        On unknown or repeated flag letters, or when :mod:`re` rejects the
        pattern.
    """
    if any(flag not in _FLAG_ORDER for flag in flags) or len(set(flags)) != len(flags):
        msg = f"Invalid flags supplied to RegExp constructor '{flags}'"
        raise RegexError(msg)

    re_flags = 0
    for flag in flags:
        re_flags |= _RE_FLAGS.get(flag, 0)
    try:
        regex = re.compile(_translate(pattern, multiline="m" in flags), re_flags)
    except re.error as exc:
        msg = f"Invalid regular expression: /{pattern}/{flags}: {exc.msg}"
        raise RegexError(msg) from exc

    canonical = "".join(flag for flag in _FLAG_ORDER if flag in flags)
    return CompiledPattern(source=_source_of(pattern), flags=canonical, regex=regex)


def _translate(pattern: str, *, multiline: bool) -> str:
    """Rewrite JavaScript-only syntax into its :mod:`re` spelling."""
    out: list[str] = []
    i = 0
    in_class = False
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            nxt = pattern[i + 1]
            if nxt == "k" and not in_class and pattern.startswith("<", i + 2):
                end = pattern.find(">", i + 3)
                if end != -1:
                    out.append(f"(?P={pattern[i + 3 : end]})")
                    i = end + 1
                    continue
            if nxt == "d" and not in_class:
                out.append("[0-9]")
            else:
                out.append(pattern[i : i + 2])
            i += 2
            continue
        if in_class:
            if char == "]":
                in_class = False
            out.append("\\[" if char == "[" else char)
        elif pattern.startswith("[]", i):
            out.append("(?!)")
            i += 2
            continue
        elif pattern.startswith("[^]", i):
            out.append(r"[\s\S]")
            i += 3
            continue
        elif char == "[":
            in_class = True
            out.append(char)
            if pattern.startswith("^", i + 1):
                out.append("^")
                i += 1
        elif pattern.startswith("(?<", i) and pattern[i + 3 : i + 4] not in ("=", "!"):
            out.append("(?P<")
            i += 3
            continue
        elif char == "$" and not multiline:
            out.append(r"\Z")
        else:
            out.append(char)
        i += 1
    return "".join(out)


def _source_of(pattern: str) -> str:
    if not pattern:
        return "(?:)"
    return re.sub(r"(?<!\\)((?:\\\\)*)/", r"\1\\/", pattern).replace("\n", "\\n")


def expand_replacement(template: str, match: re.Match[str]) -> str:
    groups = match.re.groups
    named = match.re.groupindex

    def _token(token: re.Match[str]) -> str:
        dollar, whole, before, after, digits, name = token.groups()
        if dollar:
            return "$"
        if whole:
            return match.group(0)
        if before:
            return match.string[: match.start()]
        if after:
            return match.string[match.end() :]
        if digits is not None:
            number = int(digits)
            if 1 <= number <= groups:
                return match.group(number) or ""
            if len(digits) == 2 and 1 <= int(digits[0]) <= groups:
                return (match.group(int(digits[0])) or "") + digits[1]
            return token.group(0)
        if not named:
            return token.group(0)
        return (match.group(name) if name in named else None) or ""

    return _REPLACEMENT_TOKEN.sub(_token, template)


def _invalid(exc: RegexError) -> ToolResult:
    return ToolResult.fail(f"Invalid regex pattern: {exc}")


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class PatternArgs(ToolArgs):
    text: str = Field(description="The text to search in")
    pattern: str = Field(description="The regex pattern to search for")
    flags: str = Field(default="g", description='Regex flags (e.g., "gi" for global case-insensitive)')


class MatchArgs(ToolArgs):
    text: str = Field(description="The text to test")
    pattern: str = Field(description="The regex pattern to test against")
    flags: str = Field(default="", description="Regex flags")


@regex_toolset.tool("regex_match_count", "Count the number of matches for a regex pattern in text")
def match_count(args: PatternArgs) -> ToolResult:
    try:
        compiled = compile_pattern(args.pattern, args.flags)
    except RegexError as exc:
        return _invalid(exc)
    count = sum(1 for _ in compiled.finditer(args.text))
    return ToolResult.ok(
        count,
        metadata={"pattern": args.pattern, "flags": args.flags, "textLength": len(args.text)},
    )


@regex_toolset.tool("regex_match", "Test if text matches a regex pattern and get first match details")
def match(args: MatchArgs) -> ToolResult:
    try:
        compiled = compile_pattern(args.pattern, args.flags)
    except RegexError as exc:
        return _invalid(exc)
    found = compiled.search(args.text)
    return ToolResult.ok(
        {
            "isMatch": found is not None,
            "firstMatch": found.group(0) if found else None,
            "index": found.start() if found else -1,
        },
        metadata={"pattern": args.pattern, "flags": args.flags, "textLength": len(args.text)},
    )


@regex_toolset.tool("regex_extract", "Extract all matches from text with detailed information")
def extract(args: PatternArgs) -> ToolResult:
    try:
        compiled = compile_pattern(args.pattern, args.flags)
    except RegexError as exc:
        return _invalid(exc)
    results = [
        {
            "match": found.group(0),
            "index": found.start(),
            "groups": list(found.groups()),
            "namedGroups": found.groupdict(),
        }
        for found in compiled.finditer(args.text)
    ]
    return ToolResult.ok(
        results,
        metadata={
            "pattern": args.pattern,
            "flags": args.flags,
            "totalMatches": len(results),
            "textLength": len(args.text),
        },
    )


class ReplaceArgs(ToolArgs):
    text: str = Field(description="The text to perform replacements on")
    pattern: str = Field(description="The regex pattern to match")
    replacement: str = Field(description="The replacement string")
    flags: str = Field(default="g", description="Regex flags")


@regex_toolset.tool("regex_replace", "Replace matches in text with replacement string")
def replace(args: ReplaceArgs) -> ToolResult:
    try:
        compiled = compile_pattern(args.pattern, args.flags)
    except RegexError as exc:
        return _invalid(exc)
    new_text, count = compiled.sub(args.replacement, args.text)
    return ToolResult.ok(
        {
            "originalText": args.text,
            "newText": new_text,
            "changeCount": count,
            "hasChanges": new_text != args.text,
        },
        metadata={
            "pattern": args.pattern,
            "replacement": args.replacement,
            "flags": args.flags,
            "originalLength": len(args.text),
            "newLength": len(new_text),
        },
    )


class SplitArgs(ToolArgs):
    text: str = Field(description="The text to split")
    pattern: str = Field(description="The regex pattern to split by")
    flags: str = Field(default="", description="Regex flags")
    limit: int | None = Field(default=None, description="Maximum number of splits")


@regex_toolset.tool("regex_split", "Split text by regex pattern")
def split(args: SplitArgs) -> ToolResult:
    try:
        compiled = compile_pattern(args.pattern, args.flags)
    except RegexError as exc:
        return _invalid(exc)

    parts: list[str | None]
    if args.limit is None:
        parts = compiled.split(args.text)
    else:
        parts = []
        last = 0
        for found in compiled.regex.finditer(args.text):
            if len(parts) >= args.limit - 1:
                break
            parts.append(args.text[last : found.start()])
            last = found.end()
        parts.append(args.text[last:])

    return ToolResult.ok(
        {"parts": parts, "count": len(parts)},
        metadata={
            "pattern": args.pattern,
            "flags": args.flags,
            "limit": args.limit if args.limit else "unlimited",
            "originalLength": len(args.text),
        },
    )


class ExtractJsonArgs(ToolArgs):
    text: str = Field(description="The text to extract JSON from")


@regex_toolset.tool("regex_extract_json", "Extract and parse JSON objects from text")
def extract_json(args: ExtractJsonArgs) -> ToolResult:
    valid: list[dict[str, Any]] = []
    invalid: list[dict[str, Any]] = []
    found = list(_JSON_CANDIDATES.finditer(args.text))
    for candidate in found:
        raw = candidate.group(0)
        try:
            parsed = json.loads(raw)
        except ValueError:
            invalid.append({"raw": raw, "index": candidate.start(), "error": "Invalid JSON syntax"})
        else:
            valid.append({"raw": raw, "parsed": parsed, "index": candidate.start()})
    return ToolResult.ok(
        {
            "validJson": valid,
            "invalidJson": invalid,
            "totalFound": len(found),
            "validCount": len(valid),
            "invalidCount": len(invalid),
        },
        metadata={"textLength": len(args.text)},
    )


class FindGroupsArgs(ToolArgs):
    text: str = Field(description="The text to search in")
    pattern: str = Field(description="The regex pattern with capture groups")
    flags: str = Field(default="g", description="Regex flags")


@regex_toolset.tool("regex_find_groups", "Find capture groups from regex matches")
def find_groups(args: FindGroupsArgs) -> ToolResult:
    try:
        compiled = compile_pattern(args.pattern, args.flags)
    except RegexError as exc:
        return _invalid(exc)
    groups = [
        {
            "matchIndex": position,
            "fullMatch": found.group(0),
            "index": found.start(),
            "captureGroups": list(found.groups()),
            "namedGroups": found.groupdict(),
        }
        for position, found in enumerate(compiled.finditer(args.text))
    ]
    return ToolResult.ok(
        {
            "groups": groups,
            "totalMatches": len(groups),
            "hasNamedGroups": any(group["namedGroups"] for group in groups),
        },
        metadata={"pattern": args.pattern, "flags": args.flags, "textLength": len(args.text)},
    )


class ValidateArgs(ToolArgs):
    pattern: str = Field(description="The regex pattern to validate")
    flags: str = Field(default="", description="Regex flags to validate with the pattern")


@regex_toolset.tool("regex_validate", "Validate if a regex pattern is syntactically correct")
def validate(args: ValidateArgs) -> ToolResult:
    metadata = {"patternLength": len(args.pattern)}
    try:
        compiled = compile_pattern(args.pattern, args.flags)
    except RegexError as exc:
        # The check itself succeeded; the verdict lives in isValid.
        return ToolResult.ok(
            {"isValid": False, "pattern": args.pattern, "flags": args.flags, "error": str(exc)},
            metadata=metadata,
        )
    return ToolResult.ok(
        {
            "isValid": True,
            "pattern": args.pattern,
            "flags": args.flags,
            "source": compiled.source,
            "compiledFlags": compiled.flags,
        },
        metadata=metadata,
    )


class TokenizeArgs(ToolArgs):
    text: str = Field(description="The text to tokenize")
    pattern: str | None = Field(
        default=None, description="The regex delimiter (defaults to whitespace and punctuation)"
    )
    flags: str = Field(default="gu", description="Regex flags")


@regex_toolset.tool("regex_tokenize", "Tokenize text using regex pattern as delimiter")
def tokenize(args: TokenizeArgs) -> ToolResult:
    pattern = args.pattern or DEFAULT_TOKEN_PATTERN
    try:
        compiled = compile_pattern(pattern, args.flags)
    except RegexError as exc:
        return ToolResult.fail(f"Tokenization error: {exc}")
    pieces = [piece.strip() for piece in compiled.split(args.text) if piece and piece.strip()]
    tokens = [{"index": index, "token": piece, "length": len(piece)} for index, piece in enumerate(pieces)]
    average = sum(len(piece) for piece in pieces) / len(pieces) if pieces else 0
    return ToolResult.ok(
        {"tokens": tokens, "tokenCount": len(tokens), "averageTokenLength": average},
        metadata={"pattern": pattern, "flags": args.flags, "originalLength": len(args.text)},
    )


class WhitespaceOptions(ToolArgs):
    trim_start: bool = True
    trim_end: bool = True
    collapse_spaces: bool = True
    remove_line_breaks: bool = False
    normalize_line_breaks: bool = True


class NormalizeWhitespaceArgs(ToolArgs):
    text: str = Field(description="The text to normalize")
    options: WhitespaceOptions = Field(
        default_factory=WhitespaceOptions, description="Normalization options"
    )


@regex_toolset.tool("regex_normalize_whitespace", "Normalize whitespace in text with various options")
def normalize_whitespace(args: NormalizeWhitespaceArgs) -> ToolResult:
    opts = args.options
    result = args.text
    changes: list[str] = []

    if opts.trim_start and re.match(r"\s", result):
        result = re.sub(r"\A\s+", "", result)
        changes.append("trimmed start")
    if opts.trim_end and re.search(r"\s\Z", result):
        result = re.sub(r"\s+\Z", "", result)
        changes.append("trimmed end")
    if opts.normalize_line_breaks and "\r" in result:
        result = result.replace("\r\n", "\n").replace("\r", "\n")
        changes.append("normalized line breaks")
    if opts.remove_line_breaks and "\n" in result:
        result = re.sub(r"\n+", " ", result)
        changes.append("removed line breaks")
    if opts.collapse_spaces and re.search(r"\s{2,}", result):
        result = re.sub(r"[ \t]+", " ", result)
        changes.append("collapsed spaces")

    return ToolResult.ok(
        {
            "originalText": args.text,
            "normalizedText": result,
            "changes": changes,
            "hasChanges": result != args.text,
        },
        metadata={
            "originalLength": len(args.text),
            "newLength": len(result),
            "options": opts.model_dump(by_alias=True),
        },
    )


class RedactionPattern(ToolArgs):
    name: str = Field(description="Name for this redaction pattern")
    pattern: str = Field(description="Regex pattern to match sensitive data")
    replacement: str = Field(default="[REDACTED]", description="Replacement text")


class RedactArgs(ToolArgs):
    text: str = Field(description="The text to redact from")
    patterns: list[RedactionPattern] = Field(description="Array of redaction patterns")
    flags: str = Field(default="gi", description="Regex flags to use for all patterns")


@regex_toolset.tool("regex_redact", "Redact sensitive information using regex patterns")
def redact(args: RedactArgs) -> ToolResult:
    result = args.text
    redactions: list[dict[str, Any]] = []
    for spec in args.patterns:
        try:
            compiled = compile_pattern(spec.pattern, args.flags)
        except RegexError as exc:
            return ToolResult.fail(f"Redaction error: {exc}")
        matches = list(compiled.finditer(result))
        if not matches:
            continue
        result, _ = compiled.sub(spec.replacement, result)
        redactions.append(
            {
                "name": spec.name,
                "pattern": spec.pattern,
                "replacement": spec.replacement,
                "matchCount": len(matches),
                "matches": [{"text": found.group(0), "index": found.start()} for found in matches],
            }
        )

    return ToolResult.ok(
        {
            "originalText": args.text,
            "redactedText": result,
            "redactions": redactions,
            "totalRedactions": sum(entry["matchCount"] for entry in redactions),
            "hasRedactions": bool(redactions),
        },
        metadata={
            "originalLength": len(args.text),
            "newLength": len(result),
            "patternsUsed": len(args.patterns),
            "flags": args.flags,
        },
    )
