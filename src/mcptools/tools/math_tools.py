"""Math tools — arithmetic, comparison, number parsing/formatting, statistics.

Numbers follow IEEE-754 double semantics throughout: integral results are
reported as integers, division by zero yields a non-finite value that the
tools turn into a reported failure.
"""

from __future__ import annotations

import ast
import math
import operator as op
import re
from collections import Counter
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Any

from pydantic import Field

from mcptools.protocol.models import ToolResult
from mcptools.tools.base import ToolArgs, ToolsetSpec, as_number

math_toolset = ToolsetSpec(
    domain="math",
    server_name="math-tools-server",
    version="1.0.0",
    default_port=3002,
)

_ALLOWED_CHARS = re.compile(r"[^0-9+\-*/(). ]")
_CONSECUTIVE_OPERATORS = re.compile(r"[+\-*/]{2,}")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))")
_NUMBER_PATTERN = r"-?\d+(?:\.\d+)?"
_WIDE_CONTEXT = Context(prec=200)

_BINARY_OPS = {
    ast.Add: op.add,
    ast.Sub: op.sub,
    ast.Mult: op.mul,
}
_UNARY_OPS = {ast.UAdd: op.pos, ast.USub: op.neg}

COMPARISON_OPERATORS = (">", "<", ">=", "<=", "==", "!=", "===", "!==")

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "CN¥",
    "INR": "₹",
    "KRW": "₩",
    "CAD": "CA$",
    "AUD": "A$",
    "NZD": "NZ$",
    "MXN": "MX$",
    "BRL": "R$",
    "HKD": "HK$",
    "ILS": "₪",
    "VND": "₫",
    "TWD": "NT$",
    "PHP": "₱",
}


# ---------------------------------------------------------------------------
# Number helpers
# ---------------------------------------------------------------------------


def parse_float(value: float | int | str) -> float:
    """Parse the leading decimal number of *value*; ``nan`` when there is none."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _FLOAT_PREFIX.match(str(value))
    if match is None:
        return math.nan
    return float(match.group(1).replace("Infinity", "inf"))


def number_text(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return str(as_number(value))


def to_fixed(value: float, decimals: int) -> str:
    """Fixed-point text with ties rounded away from zero.

    Magnitudes of 1e21 and above keep their exponent form.
    """
    if abs(value) >= 1e21:
        return repr(value)
    quantum = Decimal(1).scaleb(-decimals)
    exact = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP, context=_WIDE_CONTEXT)
    return f"{exact:f}"


def _group_thousands(digits: str, separator: str) -> str:
    return re.sub(r"\B(?=(\d{3})+(?!\d))", separator.replace("\\", "\\\\"), digits)


class _Evaluator(ast.NodeVisitor):
    """Walks a parsed arithmetic expression; anything but numbers and + - * / is rejected."""

    def visit_Expression(self, node: ast.Expression) -> float:
        return self.visit(node.body)

    def visit_Constant(self, node: ast.Constant) -> float:
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            try:
                return float(node.value)
            except OverflowError:
                return math.inf
        msg = f"Unexpected token {node.value!r}"
        raise ValueError(msg)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> float:
        func = _UNARY_OPS.get(type(node.op))
        if func is None:
            msg = f"Unsupported operator {type(node.op).__name__}"
            raise ValueError(msg)
        return func(self.visit(node.operand))

    def visit_BinOp(self, node: ast.BinOp) -> float:
        left = self.visit(node.left)
        right = self.visit(node.right)
        if isinstance(node.op, ast.Div):
            return _divide(left, right)
        func = _BINARY_OPS.get(type(node.op))
        if func is None:
            msg = f"Unsupported operator {type(node.op).__name__}"
            raise ValueError(msg)
        return func(left, right)

    def generic_visit(self, node: ast.AST) -> float:
        msg = f"Unexpected token {type(node).__name__}"
        raise ValueError(msg)


def _divide(left: float, right: float) -> float:
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression of numbers, ``+ - * /`` and parentheses."""
    tree = ast.parse(expression.strip(), mode="eval")
    return _Evaluator().visit(tree)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class CalculateArgs(ToolArgs):
    expression: str = Field(
        description='Mathematical expression to evaluate (e.g., "2 + 3 * 4", "(10 - 5) / 2")'
    )


@math_toolset.tool(
    "math_calculate",
    "Perform basic arithmetic calculations with support for +, -, *, /, and parentheses",
)
def calculate(args: CalculateArgs) -> ToolResult:
    expression = args.expression
    sanitized = _ALLOWED_CHARS.sub("", expression)
    if sanitized != expression:
        return ToolResult.fail(
            "Invalid characters in expression. Only numbers, +, -, *, /, (, ), and spaces are allowed."
        )
    if not sanitized.strip():
        return ToolResult.fail("Empty expression provided")
    if _CONSECUTIVE_OPERATORS.search(re.sub(r"\s", "", sanitized)):
        return ToolResult.fail("Calculation error: Malformed expression with consecutive operators")

    try:
        value = evaluate(sanitized)
    except SyntaxError as exc:
        return ToolResult.fail(f"Calculation error: {exc.msg}")
    except RecursionError:
        return ToolResult.fail("Calculation error: Expression is nested too deeply")
    except ValueError as exc:
        return ToolResult.fail(f"Calculation error: {exc}")

    if not math.isfinite(value):
        return ToolResult.fail("Result is not a finite number (division by zero or invalid operation)")

    return ToolResult.ok(
        {
            "expression": expression,
            "sanitized": sanitized,
            "value": as_number(value),
            "type": "integer" if value.is_integer() else "decimal",
        },
        metadata={"originalExpression": expression, "evaluatedAs": sanitized},
    )


class CompareArgs(ToolArgs):
    num1: int | float | str = Field(description="First number to compare")
    num2: int | float | str = Field(description="Second number to compare")
    operator: str = Field(
        description="Comparison operator to use",
        json_schema_extra={"enum": list(COMPARISON_OPERATORS)},
    )


_COMPARISONS = {
    ">": (op.gt, "is greater than"),
    "<": (op.lt, "is less than"),
    ">=": (op.ge, "is greater than or equal to"),
    "<=": (op.le, "is less than or equal to"),
    "==": (op.eq, "equals {n2} (loose equality)"),
    "!=": (op.ne, "does not equal {n2} (loose inequality)"),
    "===": (op.eq, "strictly equals"),
    "!==": (op.ne, "does not strictly equal"),
}


@math_toolset.tool("math_compare", "Compare two numbers using various comparison operators")
def compare(args: CompareArgs) -> ToolResult:
    n1 = parse_float(args.num1)
    n2 = parse_float(args.num2)
    if not (math.isfinite(n1) and math.isfinite(n2)):
        return ToolResult.fail("Both values must be valid numbers")

    entry = _COMPARISONS.get(args.operator)
    if entry is None:
        return ToolResult.fail(
            f"Invalid operator: {args.operator}. Use >, <, >=, <=, ==, !=, ===, or !=="
        )
    func, phrase = entry
    left, right = number_text(n1), number_text(n2)
    if "{n2}" in phrase:
        description = f"{left} {phrase.format(n2=right)}"
    else:
        description = f"{left} {phrase} {right}"

    return ToolResult.ok(
        {
            "comparison": f"{left} {args.operator} {right}",
            "result": func(n1, n2),
            "description": description,
            "values": {"num1": as_number(n1), "num2": as_number(n2)},
        },
        metadata={"operator": args.operator, "originalInputs": {"num1": args.num1, "num2": args.num2}},
    )


class ParseOptions(ToolArgs):
    integers_only: bool = Field(default=False, description="Only extract integers")
    include_negative: bool = Field(default=True, description="Include negative numbers")
    include_decimals: bool = Field(default=True, description="Include decimal numbers")


class ParseNumbersArgs(ToolArgs):
    text: str = Field(description="Text to extract numbers from")
    options: ParseOptions = Field(default_factory=ParseOptions, description="Parsing options")


@math_toolset.tool("math_parse_numbers", "Extract and parse numbers from text with various options")
def parse_numbers(args: ParseNumbersArgs) -> ToolResult:
    opts = args.options
    numbers: list[float] = []
    for raw in re.findall(_NUMBER_PATTERN, args.text, flags=re.ASCII):
        value = float(raw)
        if not math.isfinite(value):
            continue
        if not opts.include_negative and value < 0:
            value = abs(value)
        if opts.integers_only or not opts.include_decimals:
            if value.is_integer():
                numbers.append(value)
            else:
                whole = float(math.trunc(value))
                if whole != 0 or "0" in raw:
                    numbers.append(whole)
        else:
            numbers.append(value)

    total = math.fsum(numbers) if numbers else 0.0
    return ToolResult.ok(
        {
            "numbers": [as_number(n) for n in numbers],
            "count": len(numbers),
            "integers": [as_number(n) for n in numbers if n.is_integer()],
            "decimals": [n for n in numbers if not n.is_integer()],
            "sum": as_number(total),
            "average": as_number(total / len(numbers)) if numbers else 0,
            "min": as_number(min(numbers)) if numbers else None,
            "max": as_number(max(numbers)) if numbers else None,
        },
        metadata={
            "originalText": args.text,
            "options": opts.model_dump(by_alias=True),
            "pattern": _NUMBER_PATTERN,
        },
    )


class FormatOptions(ToolArgs):
    decimals: int = Field(default=2, ge=0, le=100, description="Number of decimal places")
    thousands_separator: str = Field(default=",", description="Thousands separator character")
    decimal_separator: str = Field(default=".", description="Decimal separator character")
    prefix: str = Field(default="", description="Prefix to add")
    suffix: str = Field(default="", description="Suffix to add")
    percentage: bool = Field(default=False, description="Format as percentage")
    currency: str | None = Field(default=None, description="Currency code for currency formatting")
    locale: str = Field(default="en-US", description="Locale for formatting")


class FormatNumberArgs(ToolArgs):
    number: int | float | str = Field(description="Number to format")
    options: FormatOptions = Field(default_factory=FormatOptions, description="Formatting options")


@math_toolset.tool(
    "math_format_number",
    "Format numbers with various display options including currency, percentages, and custom separators",
)
def format_number(args: FormatNumberArgs) -> ToolResult:
    num = parse_float(args.number)
    if not math.isfinite(num):
        return ToolResult.fail("Invalid number provided")

    opts = args.options
    value = num * 100 if opts.percentage else num

    if opts.currency:
        code = opts.currency.upper()
        if not re.fullmatch(r"[A-Z]{3}", code):
            return ToolResult.fail(f"Number formatting error: Invalid currency code: {opts.currency}")
        digits = to_fixed(abs(value), opts.decimals)
        whole, _, fraction = digits.partition(".")
        body = _group_thousands(whole, ",") + (f".{fraction}" if fraction else "")
        symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
        formatted = f"{'-' if value < 0 else ''}{symbol}{body}"
    else:
        formatted = to_fixed(value, opts.decimals)
        if opts.decimal_separator != ".":
            formatted = formatted.replace(".", opts.decimal_separator, 1)
        if opts.thousands_separator:
            if opts.decimal_separator:
                whole, sep, fraction = formatted.partition(opts.decimal_separator)
            else:
                whole, sep, fraction = formatted, "", ""
            formatted = _group_thousands(whole, opts.thousands_separator) + sep + fraction
        formatted = f"{opts.prefix}{formatted}{opts.suffix}"
        if opts.percentage:
            formatted += "%"

    applied = opts.model_dump(by_alias=True)
    return ToolResult.ok(
        {
            "original": args.number,
            "formatted": formatted,
            "numeric": as_number(value),
            "options": applied,
        },
        metadata={"originalNumber": args.number, "appliedOptions": applied},
    )


class SanitizeOptions(ToolArgs):
    allow_decimals: bool = Field(default=True, description="Allow decimal numbers")
    allow_negative: bool = Field(default=True, description="Allow negative numbers")
    thousands_separator: str = Field(default=",", description="Expected thousands separator")
    decimal_separator: str = Field(default=".", description="Expected decimal separator")


class SanitizeNumberArgs(ToolArgs):
    input: str = Field(description="String to sanitize into a number")
    options: SanitizeOptions = Field(default_factory=SanitizeOptions, description="Sanitization options")


@math_toolset.tool(
    "math_sanitize_number",
    "Clean and sanitize numeric strings by removing invalid characters and normalizing format",
)
def sanitize_number(args: SanitizeNumberArgs) -> ToolResult:
    opts = args.options
    original = args.input.strip()

    allowed = "0-9"
    if opts.allow_negative:
        allowed += r"\-"
    if opts.allow_decimals and opts.decimal_separator:
        allowed += re.escape(opts.decimal_separator)
    if opts.thousands_separator:
        allowed += re.escape(opts.thousands_separator)

    sanitized = re.sub(f"[^{allowed}]", "", original)
    if opts.thousands_separator:
        sanitized = sanitized.replace(opts.thousands_separator, "")
    if opts.decimal_separator and opts.decimal_separator != ".":
        sanitized = sanitized.replace(opts.decimal_separator, ".")

    head, *rest = sanitized.split(".")
    if len(rest) > 1:
        sanitized = f"{head}.{''.join(rest)}"

    negatives = sanitized.count("-")
    if negatives > 1:
        sanitized = sanitized.replace("-", "")
        if negatives % 2 == 1:
            sanitized = "-" + sanitized
    if "-" in sanitized and not sanitized.startswith("-"):
        sanitized = "-" + sanitized.replace("-", "")

    parsed = parse_float(sanitized)
    is_valid = math.isfinite(parsed)
    return ToolResult.ok(
        {
            "original": args.input,
            "sanitized": sanitized,
            "parsed": as_number(parsed) if is_valid else None,
            "isValid": is_valid,
            "changes": "sanitized" if original != sanitized else "no changes needed",
        },
        metadata={
            "options": opts.model_dump(by_alias=True),
            "removedCharacters": re.sub(f"[{allowed}]", "", original),
        },
    )


class StatisticsArgs(ToolArgs):
    numbers: list[int | float | str] = Field(description="Array of numbers to analyze")


@math_toolset.tool(
    "math_statistics",
    "Calculate statistical measures (mean, median, mode, etc.) for a set of numbers",
)
def statistics(args: StatisticsArgs) -> ToolResult:
    nums = [n for n in (parse_float(raw) for raw in args.numbers) if math.isfinite(n)]
    if not nums:
        return ToolResult.fail("No valid numbers provided")

    ordered = sorted(nums)
    count = len(nums)
    total = math.fsum(nums)
    mean = total / count
    middle = count // 2
    median = (ordered[middle - 1] + ordered[middle]) / 2 if count % 2 == 0 else ordered[middle]

    frequency = Counter(nums)
    top = max(frequency.values())
    modes = sorted(value for value, seen in frequency.items() if seen == top)

    variance = math.fsum((n - mean) ** 2 for n in nums) / count
    result: dict[str, Any] = {
        "count": count,
        "sum": as_number(total),
        "mean": as_number(mean),
        "median": as_number(median),
        "mode": None if len(modes) == count else [as_number(m) for m in modes],
        "min": as_number(ordered[0]),
        "max": as_number(ordered[-1]),
        "range": as_number(ordered[-1] - ordered[0]),
        "variance": as_number(variance),
        "standardDeviation": as_number(math.sqrt(variance)),
        "sorted": [as_number(n) for n in ordered],
    }
    return ToolResult.ok(
        result,
        metadata={"originalCount": len(args.numbers), "invalidNumbers": len(args.numbers) - count},
    )
