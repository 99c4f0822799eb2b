"""String tools — comparison, case transformation, analysis, diffing, validation."""

from __future__ import annotations

import math
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

from pydantic import Field

from mcptools.protocol.models import ToolResult
from mcptools.tools.base import ToolArgs, ToolsetSpec, as_number
from mcptools.tools.regex_tools import RegexError, compile_pattern

string_toolset = ToolsetSpec(
    domain="string",
    server_name="string-tools-server",
    version="1.0.0",
    default_port=3003,
)

COMPARE_METHODS = (
    "exact",
    "case_insensitive",
    "length",
    "levenshtein",
    "similarity",
    "contains",
    "starts_with",
    "ends_with",
)
TRANSFORM_TYPES = (
    "uppercase",
    "lowercase",
    "title",
    "camel",
    "pascal",
    "snake",
    "kebab",
    "reverse",
    "trim",
    "pad",
)
VALIDATION_TYPES = (
    "email",
    "url",
    "phone",
    "length",
    "pattern",
    "required",
    "numeric",
    "alpha",
    "alphanumeric",
)

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE = re.compile(r"^\+?[1-9][0-9]{0,15}$")
_PHONE_NOISE = re.compile(r"[\s\-().]")
_NUMERIC = re.compile(r"^[0-9]*\.?[0-9]+$")
_URL_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")
_SPECIAL_SCHEMES = frozenset({"http", "https", "ftp", "ws", "wss"})


# ---------------------------------------------------------------------------
# Distance metrics
# ---------------------------------------------------------------------------


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit-cost insertions, deletions and substitutions."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], previous[j], current[j - 1]) + 1)
        previous = current
    return previous[-1]


def jaro_winkler(a: str, b: str) -> float:
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    window = max(len(a), len(b)) // 2 - 1
    a_matched = [False] * len(a)
    b_matched = [False] * len(b)
    matches = 0
    for i, char in enumerate(a):
        for j in range(max(0, i - window), min(i + window + 1, len(b))):
            if b_matched[j] or b[j] != char:
                continue
            a_matched[i] = b_matched[j] = True
            matches += 1
            break
    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, char in enumerate(a):
        if not a_matched[i]:
            continue
        while not b_matched[k]:
            k += 1
        if char != b[k]:
            transpositions += 1
        k += 1

    jaro = (matches / len(a) + matches / len(b) + (matches - transpositions / 2) / matches) / 3
    prefix = 0
    for char_a, char_b in zip(a[:4], b[:4]):
        if char_a != char_b:
            break
        prefix += 1
    return jaro + 0.1 * prefix * (1 - jaro)


def _round_half_up(value: float, places: int = 0) -> float:
    scale = 10**places
    return math.floor(value * scale + 0.5) / scale


# ---------------------------------------------------------------------------
# string_compare
# ---------------------------------------------------------------------------


class CompareArgs(ToolArgs):
    str1: str = Field(description="First string to compare")
    str2: str = Field(description="Second string to compare")
    method: str = Field(
        default="exact",
        description="Comparison method to use",
        json_schema_extra={"enum": list(COMPARE_METHODS)},
    )


def _compare(str1: str, str2: str, method: str) -> tuple[Any, str] | None:
    if method == "exact":
        equal = str1 == str2
        return equal, "Strings are exactly equal" if equal else "Strings are not equal"
    if method == "case_insensitive":
        equal = str1.lower() == str2.lower()
        return equal, (
            "Strings are equal (case-insensitive)" if equal else "Strings are not equal (case-insensitive)"
        )
    if method == "length":
        if len(str1) > len(str2):
            verdict = "str1 is longer"
        elif len(str1) < len(str2):
            verdict = "str2 is longer"
        else:
            verdict = "equal length"
        return {
            "str1Length": len(str1),
            "str2Length": len(str2),
            "difference": len(str1) - len(str2),
            "equal": len(str1) == len(str2),
            "comparison": verdict,
        }, f"Length comparison: {verdict}"
    if method == "levenshtein":
        distance = levenshtein(str1, str2)
        longest = max(len(str1), len(str2))
        return {
            "distance": distance,
            "maxLength": longest,
            "similarity": as_number(1.0 if distance == 0 else 1 - distance / max(longest, 1)),
            "identical": distance == 0,
        }, f"Levenshtein distance: {distance}"
    if method == "similarity":
        score = jaro_winkler(str1, str2)
        percentage = int(_round_half_up(score * 100))
        return {
            "similarity": as_number(score),
            "percentage": percentage,
            "identical": score == 1.0,
            "highSimilarity": score > 0.8,
        }, f"Similarity: {percentage}%"
    if method == "contains":
        return {
            "str1ContainsStr2": str2 in str1,
            "str2ContainsStr1": str1 in str2,
            "mutualContainment": str2 in str1 and str1 in str2,
        }, "Substring containment analysis"
    if method == "starts_with":
        return {
            "str1StartsWithStr2": str1.startswith(str2),
            "str2StartsWithStr1": str2.startswith(str1),
            "caseInsensitive": {
                "str1StartsWithStr2": str1.lower().startswith(str2.lower()),
                "str2StartsWithStr1": str2.lower().startswith(str1.lower()),
            },
        }, "Prefix comparison analysis"
    if method == "ends_with":
        return {
            "str1EndsWithStr2": str1.endswith(str2),
            "str2EndsWithStr1": str2.endswith(str1),
            "caseInsensitive": {
                "str1EndsWithStr2": str1.lower().endswith(str2.lower()),
                "str2EndsWithStr1": str2.lower().endswith(str1.lower()),
            },
        }, "Suffix comparison analysis"
    return None


@string_toolset.tool("string_compare", "Compare two strings using various comparison methods")
def compare(args: CompareArgs) -> ToolResult:
    outcome = _compare(args.str1, args.str2, args.method)
    if outcome is None:
        return ToolResult.fail(f"Invalid comparison method: {args.method}")
    comparison, description = outcome
    return ToolResult.ok(
        {
            "method": args.method,
            "comparison": comparison,
            "description": description,
            "strings": {"str1": args.str1, "str2": args.str2},
        },
        metadata={"str1Length": len(args.str1), "str2Length": len(args.str2), "method": args.method},
    )


# ---------------------------------------------------------------------------
# string_transform
# ---------------------------------------------------------------------------


class Operation(ToolArgs):
    type: str = Field(
        description="Transformation type", json_schema_extra={"enum": list(TRANSFORM_TYPES)}
    )
    options: dict[str, Any] | None = Field(
        default=None, description="Operation-specific options (trim: type; pad: length, character, side)"
    )


class TransformArgs(ToolArgs):
    text: str = Field(description="Text to transform")
    operations: list[Operation] = Field(description="Transformations to apply, in order")


def _title(text: str) -> str:
    return re.sub(r"\w\S*", lambda m: m[0][0].upper() + m[0][1:].lower(), text)


def _camel(text: str, *, pascal: bool) -> str:
    def _case(m: re.Match[str]) -> str:
        if m.start() == 0 and not pascal:
            return m[0].lower()
        return m[0].upper()

    return re.sub(r"\s+", "", re.sub(r"^\w|[A-Z]|\b\w", _case, text))


def _delimited(text: str, joiner: str) -> str:
    words = re.split(r" |\B(?=[A-Z])", re.sub(r"\W+", " ", text))
    return joiner.join(word.lower() for word in words)


def _pad(text: str, options: dict[str, Any]) -> str:
    length = int(options.get("length") or 10)
    fill = str(options.get("character") or " ")
    side = options.get("side") or "both"
    missing = max(0, length - len(text))
    if side == "start":
        return (fill * missing)[:missing] + text
    if side == "end":
        return text + (fill * missing)[:missing]
    left = missing // 2
    return fill * left + text + fill * (missing - left)


def _trim(text: str, options: dict[str, Any]) -> str:
    kind = options.get("type") or "both"
    if kind == "start":
        return text.lstrip()
    if kind == "end":
        return text.rstrip()
    return text.strip()


def _apply(text: str, operation: Operation) -> str | None:
    options = operation.options or {}
    kind = operation.type
    if kind == "uppercase":
        return text.upper()
    if kind == "lowercase":
        return text.lower()
    if kind == "title":
        return _title(text)
    if kind in ("camel", "pascal"):
        return _camel(text, pascal=kind == "pascal")
    if kind == "snake":
        return _delimited(text, "_")
    if kind == "kebab":
        return _delimited(text, "-")
    if kind == "reverse":
        return text[::-1]
    if kind == "trim":
        return _trim(text, options)
    if kind == "pad":
        return _pad(text, options)
    return None


@string_toolset.tool("string_transform", "Transform strings with operations like case changes, trimming, padding")
def transform(args: TransformArgs) -> ToolResult:
    result = args.text
    transformations: list[dict[str, Any]] = []
    for operation in args.operations:
        before = result
        after = _apply(result, operation)
        if after is None:
            return ToolResult.fail(f"Unknown transformation type: {operation.type}")
        result = after
        step: dict[str, Any] = {"type": operation.type}
        if operation.options is not None:
            step["options"] = operation.options
        step.update(before=before, after=after, changed=before != after)
        transformations.append(step)

    return ToolResult.ok(
        {
            "original": args.text,
            "final": result,
            "transformations": transformations,
            "totalChanges": sum(1 for step in transformations if step["changed"]),
        },
        metadata={
            "originalLength": len(args.text),
            "finalLength": len(result),
            "operationsApplied": len(args.operations),
        },
    )


# ---------------------------------------------------------------------------
# string_analyze
# ---------------------------------------------------------------------------


class AnalyzeArgs(ToolArgs):
    text: str = Field(description="Text to analyze")


def _is_ascii_word(char: str) -> bool:
    return char.isascii() and (char.isalnum() or char == "_")


def _ratio(numerator: int, denominator: int) -> float | int:
    return as_number(numerator / denominator) if denominator else 0


@string_toolset.tool("string_analyze", "Analyze text properties: counts, character classes, frequencies, patterns")
def analyze(args: AnalyzeArgs) -> ToolResult:
    text = args.text
    lines = text.split("\n")
    words = text.split()
    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
    paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]

    letters = sum(1 for c in text if c.isascii() and c.isalpha())
    digits = sum(1 for c in text if "0" <= c <= "9")
    whitespace = sum(1 for c in text if c.isspace())
    punctuation = sum(1 for c in text if not _is_ascii_word(c) and not c.isspace())
    uppercase = sum(1 for c in text if "A" <= c <= "Z")
    lowercase = sum(1 for c in text if "a" <= c <= "z")

    char_freq = Counter(text)
    word_freq = Counter(word.lower() for word in words)

    return ToolResult.ok(
        {
            "basic": {
                "length": len(text),
                "lines": len(lines),
                "words": len(words),
                "sentences": len(sentences),
                "paragraphs": len(paragraphs),
            },
            "characters": {
                "total": len(text),
                "letters": letters,
                "digits": digits,
                "whitespace": whitespace,
                "punctuation": punctuation,
                "uppercase": uppercase,
                "lowercase": lowercase,
            },
            "averages": {
                "wordsPerLine": _ratio(len(words), len(lines)),
                "wordsPerSentence": _ratio(len(words), len(sentences)),
                "charactersPerWord": _ratio(letters, len(words)),
                "sentencesPerParagraph": _ratio(len(sentences), len(paragraphs)),
            },
            "frequency": {
                "topCharacters": [[char, count] for char, count in char_freq.most_common(10)],
                "topWords": [[word, count] for word, count in word_freq.most_common(10)],
                "uniqueWords": len(word_freq),
                "uniqueCharacters": len(char_freq),
            },
            "patterns": {
                "hasNumbers": digits > 0,
                "hasSpecialChars": punctuation > 0,
                "hasMixedCase": uppercase > 0 and lowercase > 0,
                "startsWithCapital": bool(re.match(r"[A-Z]", text)),
                "endsWithPunctuation": text.strip().endswith((".", "!", "?")),
            },
        },
        metadata={
            "analyzed": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        },
    )


# ---------------------------------------------------------------------------
# string_diff
# ---------------------------------------------------------------------------


class DiffOptions(ToolArgs):
    ignore_case: bool = Field(default=False, description="Ignore case differences")
    ignore_whitespace: bool = Field(default=False, description="Collapse and trim whitespace first")
    word_level: bool = Field(default=False, description="Report word-level instead of character-level counts")


class DiffArgs(ToolArgs):
    str1: str = Field(description="Original string")
    str2: str = Field(description="Modified string")
    options: DiffOptions = Field(default_factory=DiffOptions, description="Diff options")


@string_toolset.tool("string_diff", "Find differences between two strings")
def diff(args: DiffArgs) -> ToolResult:
    opts = args.options
    text1, text2 = args.str1, args.str2
    if opts.ignore_case:
        text1, text2 = text1.lower(), text2.lower()
    if opts.ignore_whitespace:
        text1 = re.sub(r"\s+", " ", text1).strip()
        text2 = re.sub(r"\s+", " ", text2).strip()

    differences: dict[str, Any]
    if opts.word_level:
        words1 = re.split(r"\s+", text1)
        words2 = re.split(r"\s+", text2)
        differences = {
            "changes": levenshtein(" ".join(words1), " ".join(words2)),
            "additions": max(0, len(words2) - len(words1)),
            "deletions": max(0, len(words1) - len(words2)),
            "type": "word",
            "words1Count": len(words1),
            "words2Count": len(words2),
        }
    else:
        differences = {
            "changes": levenshtein(text1, text2),
            "additions": max(0, len(text2) - len(text1)),
            "deletions": max(0, len(text1) - len(text2)),
            "type": "character",
        }

    identical = text1 == text2
    similarity = 1.0 if identical else 1 - differences["changes"] / max(len(text1), len(text2), 1)
    applied = opts.model_dump(by_alias=True)
    return ToolResult.ok(
        {
            "identical": identical,
            "similarity": as_number(_round_half_up(similarity, 2)),
            "differences": differences,
            "options": applied,
            "strings": {
                "original1": args.str1,
                "original2": args.str2,
                "processed1": text1,
                "processed2": text2,
            },
        },
        metadata={"str1Length": len(args.str1), "str2Length": len(args.str2), "optionsApplied": applied},
    )


# ---------------------------------------------------------------------------
# string_validate
# ---------------------------------------------------------------------------


class ValidationRule(ToolArgs):
    type: str = Field(description="Rule type", json_schema_extra={"enum": list(VALIDATION_TYPES)})
    options: dict[str, Any] | None = Field(
        default=None, description="Rule options (length: min, max; pattern: pattern, flags)"
    )
    message: str | None = Field(default=None, description="Custom message for this rule")


class ValidateArgs(ToolArgs):
    text: str = Field(description="Text to validate")
    rules: list[ValidationRule] = Field(description="Validation rules to apply")


def _valid_url(text: str) -> bool:
    try:
        parts = urlsplit(text.strip())
    except ValueError:
        return False
    if not _URL_SCHEME.fullmatch(parts.scheme):
        return False
    if parts.scheme.lower() in _SPECIAL_SCHEMES:
        return bool(parts.netloc or parts.path.strip("/"))
    return True


def _check(text: str, rule: ValidationRule) -> tuple[bool, dict[str, Any]]:
    options = rule.options or {}
    kind = rule.type
    if kind == "required":
        valid = bool(text.strip())
        return valid, {"hasContent": valid}
    if kind == "length":
        low = options.get("min") or 0
        high = options.get("max") or math.inf
        valid = low <= len(text) <= high
        return valid, {"length": len(text), "min": low, "max": high, "withinRange": valid}
    if kind == "email":
        valid = bool(_EMAIL.match(text))
        return valid, {"format": valid}
    if kind == "url":
        valid = _valid_url(text)
        return valid, {"validUrl": valid}
    if kind == "phone":
        cleaned = _PHONE_NOISE.sub("", text)
        valid = bool(_PHONE.match(cleaned))
        return valid, {"cleaned": cleaned, "validFormat": valid}
    if kind == "numeric":
        valid = bool(_NUMERIC.match(text.strip()))
        return valid, {"isNumber": valid}
    if kind == "alpha":
        valid = bool(re.fullmatch(r"[a-zA-Z]+", text))
        return valid, {"onlyLetters": valid}
    if kind == "alphanumeric":
        valid = bool(re.fullmatch(r"[a-zA-Z0-9]+", text))
        return valid, {"onlyAlphanumeric": valid}
    if kind == "pattern" and options.get("pattern"):
        pattern = str(options["pattern"])
        flags = str(options.get("flags") or "")
        valid = compile_pattern(pattern, flags).search(text) is not None
        return valid, {"pattern": pattern, "flags": flags, "matches": valid}
    return False, {}


@string_toolset.tool("string_validate", "Validate a string against rules such as email, url, length, pattern")
def validate(args: ValidateArgs) -> ToolResult:
    results: list[dict[str, Any]] = []
    for rule in args.rules:
        try:
            valid, details = _check(args.text, rule)
        except RegexError as exc:
            return ToolResult.fail(f"String validation error: {exc}")
        entry: dict[str, Any] = {
            "type": rule.type,
            "valid": valid,
            "message": rule.message or f"{rule.type} validation {'passed' if valid else 'failed'}",
            "details": details,
        }
        if rule.options is not None:
            entry["options"] = rule.options
        results.append(entry)

    passed = sum(1 for entry in results if entry["valid"])
    return ToolResult.ok(
        {
            "allValid": passed == len(results),
            "validationResults": results,
            "passedRules": passed,
            "failedRules": len(results) - passed,
            "totalRules": len(results),
        },
        metadata={"textLength": len(args.text), "rulesApplied": len(args.rules)},
    )
