"""
Input normalization for noisy speech transcripts and keypad digits.

Every caller input goes through two separate stages:

1. repair   - an ordered table of deterministic (pattern, replacement) rules
              that undo common speech-recognition output ("two four six",
              "double four", "tenth", "twenty twenty five")
2. validate - a strict check on the repaired text that either yields a
              canonical value or None

No fuzzy matching happens anywhere. Unrecognised input is rejected and the
dialogue decides whether to re-prompt.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date, datetime, time, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

import dateparser
from dateparser.search import search_dates
from dateutil import parser as dateutil_parser
from dateutil.parser import ParserError

from leave_ivr.leave_types import (
    ABBREVIATIONS,
    KEYPAD_LEAVE_TYPES,
    LEAVE_TYPE_SYNONYMS,
    LeaveType,
)
from leave_ivr.models import DateRange

logger = logging.getLogger(__name__)

EMPLOYEE_ID_LENGTH = 6
DEFAULT_TIMEZONE = "Asia/Kolkata"

Rule = tuple[re.Pattern[str], str | Callable[[re.Match[str]], str]]


def apply_rules(text: str, rules: list[Rule]) -> str:
    """Run text through an ordered repair table."""
    for pattern, replacement in rules:
        text = pattern.sub(replacement, text)
    return text


def _word_table_pattern(words) -> re.Pattern[str]:
    # Longest alternative first so "twenty first" wins over "first"
    alternatives = sorted(words, key=len, reverse=True)
    return re.compile(r"\b(" + "|".join(re.escape(w) for w in alternatives) + r")\b")


# ---------------------------------------------------------------------------
# Employee ID
# ---------------------------------------------------------------------------

DIGIT_WORDS = {
    "zero": "0",
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
}
_DIGIT_TOKEN = "(" + "|".join(DIGIT_WORDS) + r"|\d)"

SPOKEN_DIGIT_RULES: list[Rule] = [
    (re.compile(rf"\btriple\s+{_DIGIT_TOKEN}\b"), lambda m: " ".join([m.group(1)] * 3)),
    (re.compile(rf"\bdouble\s+{_DIGIT_TOKEN}\b"), lambda m: " ".join([m.group(1)] * 2)),
    (_word_table_pattern(DIGIT_WORDS), lambda m: DIGIT_WORDS[m.group(1)]),
]


def repair_spoken_digits(text: str) -> str:
    """Map spoken digit words to digits: "double four two" -> "4 4 2"."""
    return apply_rules(text.lower(), SPOKEN_DIGIT_RULES)


def validate_employee_id(candidate: str | None) -> str | None:
    """Return the first six digits of candidate, or None if it has fewer."""
    if not candidate:
        return None
    digits = "".join(re.findall(r"\d", candidate))[:EMPLOYEE_ID_LENGTH]
    return digits if len(digits) == EMPLOYEE_ID_LENGTH else None


def extract_employee_id(speech: str | None, digits: str | None) -> str | None:
    """
    Extract a 6-digit employee ID from keyed or spoken input.

    Keyed digits take precedence: when the caller pressed any digit, only
    the keypad input is considered.
    """
    if digits and re.search(r"\d", digits):
        return validate_employee_id(digits)

    if not speech:
        return None

    repaired = repair_spoken_digits(speech)
    cleaned = re.sub(r"\s+", " ", re.sub(r"[^\d\s]", " ", repaired)).strip()
    return validate_employee_id(cleaned)


def compose_employee_address(employee_id: str, domain: str) -> str:
    """Ledger key and mailbox for an employee: "246433@company.com"."""
    return f"{employee_id}@{domain}".lower()


# ---------------------------------------------------------------------------
# Menu
# ---------------------------------------------------------------------------


class MenuChoice(str, Enum):
    APPLY = "1"
    STATUS = "2"


_APPLY_WORDS = {"1", "one", "first", "apply"}
_STATUS_WORDS = {"2", "two", "second", "status", "balance", "check"}


def parse_menu_choice(speech: str | None, digits: str | None) -> MenuChoice | None:
    keyed = (digits or "").strip()
    if keyed:
        try:
            return MenuChoice(keyed[0])
        except ValueError:
            return None

    words = set(re.findall(r"[a-z0-9]+", (speech or "").lower()))
    if words & _APPLY_WORDS:
        return MenuChoice.APPLY
    if words & _STATUS_WORDS:
        return MenuChoice.STATUS
    return None


# ---------------------------------------------------------------------------
# Leave type
# ---------------------------------------------------------------------------


def _synonym_pattern(phrase: str) -> re.Pattern[str]:
    if phrase in ABBREVIATIONS:
        return re.compile(rf"\b{re.escape(phrase)}\b")
    return re.compile(re.escape(phrase))


_LEAVE_TYPE_PATTERNS = tuple(
    (_synonym_pattern(phrase), code) for phrase, code in LEAVE_TYPE_SYNONYMS
)


def extract_leave_type(speech: str | None, digits: str | None = None) -> LeaveType | None:
    """
    Match a spoken phrase (or a keypad digit) to a leave type.

    Phrases are tried longest first; the first one found in the input wins.
    Abbreviations must stand alone, full words may be part of a longer word.
    """
    text = re.sub(r"[^a-z0-9]+", " ", (speech or "").lower()).strip()
    for pattern, code in _LEAVE_TYPE_PATTERNS:
        if pattern.search(text):
            return code

    keyed = (digits or "").strip() or repair_spoken_digits(text).strip()
    return KEYPAD_LEAVE_TYPES.get(keyed)


# ---------------------------------------------------------------------------
# Date range
# ---------------------------------------------------------------------------

_UNITS = ("one", "two", "three", "four", "five", "six", "seven", "eight", "nine")
_ORDINAL_UNITS = (
    "first",
    "second",
    "third",
    "fourth",
    "fifth",
    "sixth",
    "seventh",
    "eighth",
    "ninth",
)

ORDINAL_WORDS: dict[str, int] = {word: n for n, word in enumerate(_ORDINAL_UNITS, start=1)}
ORDINAL_WORDS.update(
    {
        "tenth": 10,
        "eleventh": 11,
        "twelfth": 12,
        "thirteenth": 13,
        "fourteenth": 14,
        "fifteenth": 15,
        "sixteenth": 16,
        "seventeenth": 17,
        "eighteenth": 18,
        "nineteenth": 19,
        "twentieth": 20,
        "thirtieth": 30,
        "thirty first": 31,
    }
)
ORDINAL_WORDS.update({f"twenty {word}": 20 + n for n, word in enumerate(_ORDINAL_UNITS, start=1)})

YEAR_WORDS: dict[str, int] = {}
for _n in range(20, 40):
    _tens = "twenty" if _n < 30 else "thirty"
    _spoken = _tens if _n % 10 == 0 else f"{_tens} {_UNITS[_n % 10 - 1]}"
    for _prefix in ("twenty", "two thousand", "two thousand and"):
        YEAR_WORDS[f"{_prefix} {_spoken}"] = 2000 + _n

# Years must be rewritten before ordinals: "twenty twenty first" is not a day.
SPOKEN_DATE_RULES: list[Rule] = [
    (re.compile(r"(?<=[a-z])-(?=[a-z])"), " "),
    (re.compile(r"[,!?]|\.(?=\s|$)"), " "),
    (_word_table_pattern(YEAR_WORDS), lambda m: str(YEAR_WORDS[m.group(1)])),
    (_word_table_pattern(ORDINAL_WORDS), lambda m: str(ORDINAL_WORDS[m.group(1)])),
    (re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)\b"), r"\1"),
    # "10-15" is a range of days, not a single token
    (re.compile(r"(?<![\d-])(\d{1,2})\s*-\s*(\d{1,2})(?![\d-])"), r"\1 to \2"),
    (re.compile(r"\s+"), " "),
]

RANGE_SEPARATOR = re.compile(r"\s+(?:to|till|until|through|thru|and)\s+|\s+-\s+")
FILLER_WORDS = re.compile(
    r"\b(?:from|starting|start|between|on|the|of|date|dates|leave|i|want|need|would|like|please)\b"
)
_BARE_DAY = re.compile(r"\d{1,2}")
_DAY_IN_PHRASE = re.compile(r"\b\d{1,2}\b")

_COUNT_WORDS = {"a": 1, "an": 1, "ten": 10}
_COUNT_WORDS.update({word: n for n, word in enumerate(_UNITS, start=1)})

# "for 3 days", "a week", "in two weeks": lengths and offsets, never dates
DURATION = re.compile(
    r"\b(?:(?P<lead>for|in)\s+)?(?P<count>\d{1,3}|"
    + "|".join(sorted(_COUNT_WORDS, key=len, reverse=True))
    + r")\s+(?P<unit>day|week|month)s?\b"
)


def repair_spoken_dates(text: str) -> str:
    """Rewrite spoken numbers: "tenth september twenty twenty five" -> "10 september 2025"."""
    return apply_rules(text.lower(), SPOKEN_DATE_RULES).strip()


def today_in(timezone: str) -> date:
    return datetime.now(ZoneInfo(timezone)).date()


def _duration_days(match: re.Match[str]) -> int | None:
    """Leave length in days, or None when the phrase gives no usable length."""
    if match.group("lead") == "in" or match.group("unit") == "month":
        return None
    count = _COUNT_WORDS.get(match.group("count")) or int(match.group("count"))
    if count < 1:
        return None
    return count * 7 if match.group("unit") == "week" else count


def _split_range(text: str) -> list[str]:
    chunks = []
    for part in RANGE_SEPARATOR.split(text):
        part = re.sub(r"\s+", " ", FILLER_WORDS.sub(" ", part)).strip()
        if part:
            chunks.append(part)

    # "10 to 15 september 2025" / "september 10 to 15": a bare day borrows
    # month and year from its neighbour
    if len(chunks) >= 2:
        first, second = chunks[0], chunks[1]
        if _BARE_DAY.fullmatch(first) and _DAY_IN_PHRASE.search(second):
            chunks[0] = _DAY_IN_PHRASE.sub(first, second, count=1)
        elif _BARE_DAY.fullmatch(second) and _DAY_IN_PHRASE.search(first):
            chunks[1] = _DAY_IN_PHRASE.sub(second, first, count=1)
    return chunks


def _parse_chunk(chunk: str, parser_settings: dict, base: datetime) -> date | None:
    parsed = dateparser.parse(chunk, languages=["en"], settings=parser_settings)
    if parsed is None:
        try:
            parsed = dateutil_parser.parse(chunk, dayfirst=True, fuzzy=True, default=base)
        except (ParserError, ValueError, OverflowError):
            return None
    return parsed.date()


def parse_spoken_dates(
    text: str | None, timezone: str = DEFAULT_TIMEZONE, today: date | None = None
) -> list[date]:
    """
    Parse every calendar date in a spoken phrase, in the order spoken.

    Relative phrases ("tomorrow", "next monday") resolve against today in the
    configured timezone. A length ("for 3 days") after a single start date
    supplies the end date. A duration is never read as a date itself: one
    without a usable start date yields no dates, so the caller is asked again.
    """
    if not text or not text.strip():
        return []

    # Noon, so a timezone shift inside the parser never moves the calendar day
    base = datetime.combine(today or today_in(timezone), time(12, 0))
    parser_settings = {
        "TIMEZONE": timezone,
        "RETURN_AS_TIMEZONE_AWARE": False,
        "PREFER_DATES_FROM": "future",
        "DATE_ORDER": "DMY",
        "RELATIVE_BASE": base,
    }

    repaired = repair_spoken_dates(text)
    durations = [_duration_days(match) for match in DURATION.finditer(repaired)]
    chunks = _split_range(DURATION.sub(" ", repaired))

    dates = []
    for chunk in chunks:
        parsed = _parse_chunk(chunk, parser_settings, base)
        if parsed is not None:
            dates.append(parsed)

    if durations:
        if len(dates) == 1 and len(durations) == 1 and durations[0] is not None:
            dates.append(dates[0] + timedelta(days=durations[0] - 1))
        elif len(dates) < 2:
            dates = []
    elif not dates and len(chunks) <= 1:
        found = search_dates(repaired, languages=["en"], settings=parser_settings) or []
        dates = [found_dt.date() for _, found_dt in found]

    logger.debug("Parsed dates %s from %r (repaired %r)", dates, text, repaired)
    return dates


def extract_date_range(
    text: str | None, timezone: str = DEFAULT_TIMEZONE, today: date | None = None
) -> DateRange | None:
    """First spoken date is the start; the second, if any, the end."""
    dates = parse_spoken_dates(text, timezone=timezone, today=today)
    if not dates:
        return None
    return DateRange.from_dates(dates[0], dates[1] if len(dates) > 1 else None)
