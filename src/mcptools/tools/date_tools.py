"""Date tools — parsing, formatting, conversion, arithmetic, comparison.

Every instant is held as an aware UTC :class:`datetime.datetime` truncated
to millisecond precision.  Inputs without an offset are read as UTC; the
``timezone`` options only change how components and formatted strings are
presented.
"""

from __future__ import annotations

import calendar
import datetime as dt
import math
import re
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field

from mcptools.protocol.models import ToolResult
from mcptools.tools.base import ToolArgs, ToolsetSpec, as_number

date_toolset = ToolsetSpec(
    domain="date",
    server_name="date-tools-server",
    version="1.0.0",
    default_port=3004,
)

DateInput = str | int | float
TimeUnit = Literal["years", "months", "weeks", "days", "hours", "minutes", "seconds", "milliseconds"]

UTC = dt.timezone.utc
_EPOCH = dt.datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = dt.timedelta(milliseconds=1)

# Sunday first, matching the numeric weekday reported in components
WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_MS_PER_UNIT: dict[str, float] = {
    "milliseconds": 1,
    "seconds": 1000,
    "minutes": 1000 * 60,
    "hours": 1000 * 60 * 60,
    "days": 1000 * 60 * 60 * 24,
    "weeks": 1000 * 60 * 60 * 24 * 7,
    # approximations
    "months": 1000 * 60 * 60 * 24 * 30.44,
    "years": 1000 * 60 * 60 * 24 * 365.25,
}
_DURATION_UNITS = ("years", "months", "weeks", "days", "hours", "minutes", "seconds")

_YEAR_FIRST = re.compile(
    r"(\d{4})[/-](\d{1,2})[/-](\d{1,2})(?:[ T](\d{1,2}):(\d{2})(?::(\d{2}))?)?"
)
_MONTH_FIRST = re.compile(
    r"(\d{1,2})[/-](\d{1,2})[/-](\d{4})(?:[ T](\d{1,2}):(\d{2})(?::(\d{2}))?)?"
)
_NAMED_MONTH_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%d %b %Y", "%B %d %Y", "%b %d %Y")

_PARSE_TOKENS = {
    "YYYY": r"(\d{4})",
    "YY": r"(\d{2})",
    "MM": r"(\d{1,2})",
    "DD": r"(\d{1,2})",
    "HH": r"(\d{1,2})",
    "mm": r"(\d{2})",
    "ss": r"(\d{2})",
}
_PARSE_TOKEN_RE = re.compile("|".join(_PARSE_TOKENS))
_FORMAT_TOKEN_RE = re.compile(r"YYYY|YY|SSS|MM|M|DD|D|HH|H|mm|m|ss|s")


class DateError(ValueError):
    """A value could not be read as a date, or a timezone name is unknown."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _normalize(value: dt.datetime) -> dt.datetime:
    value = value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _from_parts(year: str, month: str, day: str, hour: str | None, minute: str | None,
                second: str | None) -> dt.datetime:
    return dt.datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0),
                       int(second or 0))


def _auto_parse(text: str) -> dt.datetime | None:
    try:
        return dt.datetime.fromisoformat(text)
    except ValueError:
        pass

    if m := _YEAR_FIRST.fullmatch(text):
        year, month, day, hour, minute, second = m.groups()
        return _from_parts(year, month, day, hour, minute, second)
    if m := _MONTH_FIRST.fullmatch(text):
        month, day, year, hour, minute, second = m.groups()
        return _from_parts(year, month, day, hour, minute, second)

    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        pass

    for fmt in _NAMED_MONTH_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_custom(text: str, fmt: str, *, strict: bool = False) -> dt.datetime | None:
    """Read *text* laid out as *fmt* (tokens ``YYYY YY MM DD HH mm ss``).

    Missing components default to January 1st, midnight.  Two-digit years
    land in 2000-2099.  ``strict`` requires the whole string to match.
    """
    tokens: list[str] = []
    pattern: list[str] = []
    last = 0
    for m in _PARSE_TOKEN_RE.finditer(fmt):
        pattern.append(re.escape(fmt[last:m.start()]))
        pattern.append(_PARSE_TOKENS[m[0]])
        tokens.append(m[0])
        last = m.end()
    pattern.append(re.escape(fmt[last:]))
    regex = re.compile("".join(pattern))

    found = regex.fullmatch(text) if strict else regex.search(text)
    if found is None:
        return None
    parts = {token: int(value) for token, value in zip(tokens, found.groups())}

    if "YYYY" in parts:
        year = parts["YYYY"]
    elif "YY" in parts:
        year = 2000 + parts["YY"]
    else:
        year = dt.datetime.now(UTC).year
    try:
        return dt.datetime(year, parts.get("MM", 1), parts.get("DD", 1), parts.get("HH", 0),
                           parts.get("mm", 0), parts.get("ss", 0))
    except ValueError:
        return None


def to_datetime(value: DateInput) -> dt.datetime:
    """Coerce a date argument (string or epoch milliseconds) to aware UTC.

    Raises :class:`DateError` when nothing matches.
    """
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            msg = f"Not a finite timestamp: {value}"
            raise DateError(msg)
        try:
            return _normalize(_EPOCH + dt.timedelta(milliseconds=value))
        except OverflowError as exc:
            msg = f"Timestamp out of range: {value}"
            raise DateError(msg) from exc

    text = value.strip()
    try:
        parsed = _auto_parse(text) if text else None
    except (ValueError, OverflowError):
        parsed = None
    if parsed is None:
        msg = f'Unable to parse date: "{value}"'
        raise DateError(msg)
    return _normalize(parsed)


def resolve_zone(name: str | None) -> dt.tzinfo:
    if not name or name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        msg = f"Invalid timezone: {name}"
        raise DateError(msg) from exc


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def epoch_ms(value: dt.datetime) -> int:
    return (value - _EPOCH) // _ONE_MS


def to_iso(value: dt.datetime) -> str:
    """``YYYY-MM-DDTHH:mm:ss.sssZ`` in UTC."""
    value = value.astimezone(UTC)
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"


def _js_weekday(value: dt.datetime) -> int:
    return (value.weekday() + 1) % 7


def _components(value: dt.datetime) -> dict[str, Any]:
    return {
        "year": value.year,
        "month": value.month,
        "day": value.day,
        "hour": value.hour,
        "minute": value.minute,
        "second": value.second,
        "millisecond": value.microsecond // 1000,
        "weekday": _js_weekday(value),
        "weekdayName": WEEKDAY_NAMES[_js_weekday(value)],
        "monthName": MONTH_NAMES[value.month - 1],
    }


def _date_string(value: dt.datetime) -> str:
    day = WEEKDAY_NAMES[_js_weekday(value)][:3]
    month = MONTH_NAMES[value.month - 1][:3]
    return f"{day} {month} {value.day:02d} {value.year:04d}"


def _time_string(value: dt.datetime) -> str:
    return f"{value:%H:%M:%S} GMT{value:%z} ({value.tzname()})"


def _short_date(value: dt.datetime) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def _local_string(value: dt.datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{_short_date(value)}, {hour}:{value.minute:02d}:{value.second:02d} {suffix}"


def _long_date(value: dt.datetime) -> str:
    weekday = WEEKDAY_NAMES[_js_weekday(value)]
    return f"{weekday}, {MONTH_NAMES[value.month - 1]} {value.day}, {value.year}"


def _formats(value: dt.datetime, zone: dt.tzinfo) -> dict[str, str]:
    local = value.astimezone(zone)
    return {
        "iso": to_iso(value),
        "utc": format_datetime(value.astimezone(UTC), usegmt=True),
        "local": _local_string(local),
        "date": _date_string(local),
        "time": _time_string(local),
    }


def apply_format(value: dt.datetime, fmt: str, zone: dt.tzinfo = UTC) -> str:
    """Substitute format tokens in a single left-to-right pass."""
    local = value.astimezone(zone)
    values = {
        "YYYY": str(local.year),
        "YY": str(local.year)[-2:],
        "MM": f"{local.month:02d}",
        "M": str(local.month),
        "DD": f"{local.day:02d}",
        "D": str(local.day),
        "HH": f"{local.hour:02d}",
        "H": str(local.hour),
        "mm": f"{local.minute:02d}",
        "m": str(local.minute),
        "ss": f"{local.second:02d}",
        "s": str(local.second),
        "SSS": f"{local.microsecond // 1000:03d}",
    }
    return _FORMAT_TOKEN_RE.sub(lambda m: values[m[0]], fmt)


def format_duration(milliseconds: float) -> str:
    """Largest whole unit of *milliseconds*, e.g. ``"3 hours"``."""
    for unit in _DURATION_UNITS:
        count = math.floor(milliseconds / _MS_PER_UNIT[unit])
        if count >= 1:
            label = unit[:-1]
            return f"{count} {label}{'s' if count > 1 else ''}"
    return "0 seconds"


# ---------------------------------------------------------------------------
# date_parse
# ---------------------------------------------------------------------------


class ParseOptions(ToolArgs):
    format: str | None = Field(default=None, description="Custom input format, e.g. DD/MM/YYYY")
    timezone: str = Field(default="UTC", description="UTC or an IANA zone used for components")
    locale: str = Field(default="en-US", description="Locale tag echoed in metadata")
    strict: bool = Field(default=False, description="Require the whole string to match the format")


class ParseArgs(ToolArgs):
    date_string: str = Field(description="Date string to parse")
    options: ParseOptions = Field(default_factory=ParseOptions, description="Parsing options")


def _parse_with(text: str, fmt: str | None, *, strict: bool) -> dt.datetime:
    if fmt:
        parsed = parse_custom(text.strip(), fmt, strict=strict)
        if parsed is not None:
            return _normalize(parsed)
        if strict:
            msg = f'Unable to parse date: "{text}"'
            raise DateError(msg)
    return to_datetime(text)


def parse_date(text: str, options: ParseOptions) -> dict[str, Any]:
    if not text:
        msg = "Date string cannot be null, undefined, or empty"
        raise DateError(msg)
    zone = resolve_zone(options.timezone)
    parsed = _parse_with(text, options.format, strict=options.strict)
    return {
        "original": text,
        "parsed": to_iso(parsed),
        "timestamp": epoch_ms(parsed),
        "components": _components(parsed.astimezone(zone)),
        "formats": _formats(parsed, zone),
    }


@date_toolset.tool("date_parse", "Parse a date string (ISO 8601, common forms, RFC 2822, custom format)")
def parse(args: ParseArgs) -> ToolResult:
    opts = args.options
    try:
        result = parse_date(args.date_string, opts)
    except DateError as exc:
        return ToolResult.fail(str(exc))
    return ToolResult.ok(
        result,
        metadata={
            "timezone": opts.timezone,
            "locale": opts.locale,
            "inputFormat": opts.format or "auto-detected",
        },
    )


# ---------------------------------------------------------------------------
# date_format
# ---------------------------------------------------------------------------


class FormatOptions(ToolArgs):
    timezone: str = Field(default="UTC", description="UTC or an IANA zone to render in")
    locale: str = Field(default="en-US", description="Locale tag echoed in metadata")


class FormatArgs(ToolArgs):
    date: DateInput = Field(description="Date string or epoch milliseconds")
    format: str = Field(description="Format pattern, tokens YYYY YY MM M DD D HH H mm m ss s SSS")
    options: FormatOptions = Field(default_factory=FormatOptions, description="Formatting options")


@date_toolset.tool("date_format", "Format a date using a token pattern")
def format_date(args: FormatArgs) -> ToolResult:
    opts = args.options
    try:
        value = to_datetime(args.date)
    except DateError:
        return ToolResult.fail("Invalid date provided")
    try:
        zone = resolve_zone(opts.timezone)
    except DateError as exc:
        return ToolResult.fail(f"Date formatting error: {exc}")

    return ToolResult.ok(
        {
            "original": args.date,
            "formatted": apply_format(value, args.format, zone),
            "format": args.format,
            "timestamp": epoch_ms(value),
            "iso": to_iso(value),
        },
        metadata={"timezone": opts.timezone, "locale": opts.locale, "formatPattern": args.format},
    )


# ---------------------------------------------------------------------------
# date_convert
# ---------------------------------------------------------------------------


class ConvertOptions(ToolArgs):
    timezone: str | None = Field(default=None, description="UTC or an IANA zone")
    locale: str | None = Field(default=None, description="Locale tag echoed in metadata")


class ConvertArgs(ToolArgs):
    date_string: str = Field(description="Date string to convert")
    from_format: str = Field(description="Current format of the date string")
    to_format: str = Field(description="Desired output format")
    options: ConvertOptions = Field(default_factory=ConvertOptions, description="Conversion options")


@date_toolset.tool("date_convert", "Convert a date string from one format to another")
def convert(args: ConvertArgs) -> ToolResult:
    given = args.options.model_dump(by_alias=True, exclude_none=True)
    parse_opts = ParseOptions(format=args.from_format, **given)
    try:
        intermediate = parse_date(args.date_string, parse_opts)
        zone = resolve_zone(parse_opts.timezone)
    except DateError as exc:
        return ToolResult.fail(str(exc))

    instant = to_datetime(intermediate["parsed"])
    return ToolResult.ok(
        {
            "original": args.date_string,
            "fromFormat": args.from_format,
            "toFormat": args.to_format,
            "converted": apply_format(instant, args.to_format, zone),
            "intermediate": intermediate,
        },
        metadata={**given, "conversion": f"{args.from_format} → {args.to_format}"},
    )


# ---------------------------------------------------------------------------
# date_arithmetic
# ---------------------------------------------------------------------------


class DateOperation(ToolArgs):
    unit: TimeUnit = Field(description="Time unit")
    value: float = Field(description="Amount of the unit")
    operation: Literal["add", "subtract"] = Field(description="Add or subtract")


class ArithmeticArgs(ToolArgs):
    date: DateInput = Field(description="Starting date string or epoch milliseconds")
    operations: list[DateOperation] = Field(description="Operations to apply, in order")


def _add_months(value: dt.datetime, months: int) -> dt.datetime:
    total = value.month - 1 + months
    year = value.year + total // 12
    month = total % 12 + 1
    if not dt.MINYEAR <= year <= dt.MAXYEAR:
        msg = f"year {year} is out of range"
        raise OverflowError(msg)
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def shift(value: dt.datetime, unit: str, amount: float) -> dt.datetime:
    """Move *value* by *amount* units.

    Years and months are calendar moves clamped to the end of the target
    month (Jan 31 + 1 month is Feb 28/29); other units are fixed lengths.
    """
    if unit == "years":
        return _add_months(value, int(amount) * 12)
    if unit == "months":
        return _add_months(value, int(amount))
    return _normalize(value + dt.timedelta(**{unit: amount}))


@date_toolset.tool("date_arithmetic", "Add or subtract time periods from a date")
def arithmetic(args: ArithmeticArgs) -> ToolResult:
    try:
        original = to_datetime(args.date)
    except DateError:
        return ToolResult.fail("Invalid date provided")

    current = original
    steps: list[dict[str, Any]] = []
    for op in args.operations:
        before = current
        sign = 1 if op.operation == "add" else -1
        try:
            current = shift(current, op.unit, op.value * sign)
        except (OverflowError, ValueError) as exc:
            return ToolResult.fail(f"Date arithmetic error: {exc}")
        value = as_number(op.value)
        steps.append(
            {
                "operation": f"{op.operation} {value} {op.unit}",
                "before": to_iso(before),
                "after": to_iso(current),
                "unit": op.unit,
                "value": value,
                "type": op.operation,
            }
        )

    difference = epoch_ms(current) - epoch_ms(original)
    return ToolResult.ok(
        {
            "original": to_iso(original),
            "final": to_iso(current),
            "originalTimestamp": epoch_ms(original),
            "finalTimestamp": epoch_ms(current),
            "difference": difference,
            "steps": steps,
            "summary": f"Applied {len(args.operations)} operations",
        },
        metadata={"operationsCount": len(args.operations), "totalTimeDifference": difference},
    )


# ---------------------------------------------------------------------------
# date_compare
# ---------------------------------------------------------------------------


class CompareOptions(ToolArgs):
    precision: TimeUnit = Field(default="milliseconds", description="Unit of primaryDifference")
    absolute: bool = Field(default=False, description="Report differences as absolute values")


class CompareArgs(ToolArgs):
    date1: DateInput = Field(description="First date")
    date2: DateInput = Field(description="Second date")
    options: CompareOptions = Field(default_factory=CompareOptions, description="Comparison options")


@date_toolset.tool("date_compare", "Compare two dates and calculate the difference between them")
def compare(args: CompareArgs) -> ToolResult:
    opts = args.options
    try:
        first = to_datetime(args.date1)
        second = to_datetime(args.date2)
    except DateError:
        return ToolResult.fail("One or both dates are invalid")

    diff = epoch_ms(second) - epoch_ms(first)
    reported = abs(diff) if opts.absolute else diff
    differences = {unit: as_number(reported / per) for unit, per in _MS_PER_UNIT.items()}
    differences["milliseconds"] = reported

    if diff == 0:
        human = "Same time"
    elif diff > 0:
        human = f"Date 2 is {format_duration(abs(diff))} after Date 1"
    else:
        human = f"Date 2 is {format_duration(abs(diff))} before Date 1"

    return ToolResult.ok(
        {
            "date1": to_iso(first),
            "date2": to_iso(second),
            "comparison": {
                "earlier": to_iso(first if diff > 0 else second),
                "later": to_iso(second if diff > 0 else first),
                "equal": diff == 0,
                "date1IsEarlier": diff > 0,
                "date2IsEarlier": diff < 0,
            },
            "differences": differences,
            "primaryDifference": differences[opts.precision],
            "humanReadable": human,
            "rawDifference": diff,
        },
        metadata={"precision": opts.precision, "absolute": opts.absolute, "unit": opts.precision},
    )


# ---------------------------------------------------------------------------
# date_info
# ---------------------------------------------------------------------------


class InfoArgs(ToolArgs):
    date: DateInput = Field(description="Date string or epoch milliseconds")


def _calendar(value: dt.datetime) -> dict[str, Any]:
    day_of_year = value.timetuple().tm_yday
    jan_first = dt.datetime(value.year, 1, 1, tzinfo=UTC)
    leap = calendar.isleap(value.year)
    return {
        "dayOfYear": day_of_year,
        "weekOfYear": math.ceil((day_of_year + _js_weekday(jan_first)) / 7),
        "quarter": (value.month - 1) // 3 + 1,
        "daysInMonth": calendar.monthrange(value.year, value.month)[1],
        "isLeapYear": leap,
        "daysInYear": 366 if leap else 365,
    }


@date_toolset.tool("date_info", "Get detailed information about a date")
def info(args: InfoArgs) -> ToolResult:
    try:
        value = to_datetime(args.date)
    except DateError:
        return ToolResult.fail("Invalid date provided")

    now = _normalize(dt.datetime.now(UTC))
    age_ms = epoch_ms(now) - epoch_ms(value)
    age = format_duration(abs(age_ms))
    if age_ms < 0:
        description = "Future date"
    elif age_ms == 0:
        description = "Now"
    else:
        description = "Past date"

    return ToolResult.ok(
        {
            "date": to_iso(value),
            "timestamp": epoch_ms(value),
            "components": _components(value),
            "calendar": _calendar(value),
            "relative": {
                "isInPast": value < now,
                "isInFuture": value > now,
                "isToday": value.date() == now.date(),
                "age": f"{age} in the future" if age_ms < 0 else f"{age} ago",
                "description": description,
            },
            "formats": {
                **_formats(value, UTC),
                "short": _short_date(value),
                "long": _long_date(value),
            },
        },
        metadata={"analyzedAt": to_iso(now), "timezone": "UTC"},
    )


# ---------------------------------------------------------------------------
# date_validate
# ---------------------------------------------------------------------------


class ValidateOptions(ToolArgs):
    strict: bool = Field(default=False, description="Require the whole string to match the format")
    allow_future: bool = Field(default=True, description="Accept dates after now")
    allow_past: bool = Field(default=True, description="Accept dates before now")
    min_date: DateInput | None = Field(default=None, description="Earliest accepted date")
    max_date: DateInput | None = Field(default=None, description="Latest accepted date")


class ValidateArgs(ToolArgs):
    date_string: str = Field(description="Date string to validate")
    format: str | None = Field(default=None, description="Expected format, auto-detected if omitted")
    options: ValidateOptions = Field(default_factory=ValidateOptions, description="Validation rules")


@date_toolset.tool("date_validate", "Validate a date string against format and range rules")
def validate(args: ValidateArgs) -> ToolResult:
    opts = args.options
    echoed = opts.model_dump(by_alias=True, exclude_none=True)
    shown_format = args.format or "auto-detect"

    try:
        if not args.date_string:
            msg = "Date string cannot be null, undefined, or empty"
            raise DateError(msg)
        parsed = _parse_with(args.date_string, args.format, strict=opts.strict)
    except DateError as exc:
        return ToolResult.ok(
            {
                "isValid": False,
                "dateString": args.date_string,
                "format": shown_format,
                "errors": [str(exc)],
                "validationsPassed": 0,
                "validationsFailed": 1,
            },
            metadata=echoed,
        )

    now = _normalize(dt.datetime.now(UTC))
    errors: list[str] = []
    validations: list[dict[str, Any]] = []

    future_ok = opts.allow_future or parsed <= now
    if not future_ok:
        errors.append("Future dates not allowed")
    validations.append({"rule": "allowFuture", "passed": future_ok})

    past_ok = opts.allow_past or parsed >= now
    if not past_ok:
        errors.append("Past dates not allowed")
    validations.append({"rule": "allowPast", "passed": past_ok})

    try:
        bounds = [
            ("minDate", to_datetime(opts.min_date) if opts.min_date is not None else None),
            ("maxDate", to_datetime(opts.max_date) if opts.max_date is not None else None),
        ]
    except DateError as exc:
        return ToolResult.fail(f"Date validation error: {exc}")

    for rule, bound in bounds:
        if bound is None:
            continue
        if rule == "minDate":
            passed = parsed >= bound
            message = f"Date must be on or after {to_iso(bound)}"
        else:
            passed = parsed <= bound
            message = f"Date must be on or before {to_iso(bound)}"
        if not passed:
            errors.append(message)
        validations.append({"rule": rule, "passed": passed, "value": to_iso(bound)})

    failed = sum(1 for v in validations if not v["passed"])
    return ToolResult.ok(
        {
            "isValid": not errors,
            "dateString": args.date_string,
            "parsedDate": to_iso(parsed),
            "format": shown_format,
            "errors": errors,
            "validations": validations,
            "validationsPassed": len(validations) - failed,
            "validationsFailed": failed,
            "summary": "All validations passed" if not errors else f"{failed} validation(s) failed",
        },
        metadata=echoed,
    )
