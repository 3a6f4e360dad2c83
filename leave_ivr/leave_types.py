"""
Leave type catalog.

The four leave codes the assistant understands, how they are spoken back to
the caller, what a new employee starts with, and the phrases and keypad digits
a caller can use to pick one.
"""

from enum import Enum


class LeaveType(str, Enum):
    """Leave codes as stored in the ledger."""

    CASUAL = "CL"
    PERSONAL = "PL"
    SICK = "SL"
    PATERNITY = "PAT"

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES[self]


DISPLAY_NAMES = {
    LeaveType.CASUAL: "Casual leave",
    LeaveType.PERSONAL: "Personal leave",
    LeaveType.SICK: "Sick leave",
    LeaveType.PATERNITY: "Paternity leave",
}

# Order used when balances are read out to the caller
STATUS_ORDER = (LeaveType.PERSONAL, LeaveType.CASUAL, LeaveType.SICK, LeaveType.PATERNITY)

DEFAULT_BALANCES = {
    LeaveType.CASUAL: 8,
    LeaveType.PERSONAL: 10,
    LeaveType.SICK: 9,
    LeaveType.PATERNITY: 8,
}

_SYNONYMS = {
    "casual leave": LeaveType.CASUAL,
    "casual": LeaveType.CASUAL,
    "c l": LeaveType.CASUAL,
    "cl": LeaveType.CASUAL,
    "personal leave": LeaveType.PERSONAL,
    "personal": LeaveType.PERSONAL,
    "p l": LeaveType.PERSONAL,
    "pl": LeaveType.PERSONAL,
    "sick leave": LeaveType.SICK,
    "medical leave": LeaveType.SICK,
    "sick": LeaveType.SICK,
    "medical": LeaveType.SICK,
    "s l": LeaveType.SICK,
    "sl": LeaveType.SICK,
    "paternity leave": LeaveType.PATERNITY,
    "paternity": LeaveType.PATERNITY,
    "pat": LeaveType.PATERNITY,
}

# Longest phrase first so an abbreviation never masks a fuller phrase.
# sorted() is stable, so equal-length phrases keep the order above.
LEAVE_TYPE_SYNONYMS: tuple[tuple[str, LeaveType], ...] = tuple(
    sorted(_SYNONYMS.items(), key=lambda item: len(item[0]), reverse=True)
)

# Spoken letters and short codes. These only match as whole words, so "pl"
# is not found in "please"; every other phrase matches anywhere in the text
# ("sickness", "casualleave").
ABBREVIATIONS = frozenset({"c l", "cl", "p l", "pl", "s l", "sl", "pat"})

KEYPAD_LEAVE_TYPES = {
    "1": LeaveType.CASUAL,
    "2": LeaveType.PERSONAL,
    "3": LeaveType.SICK,
    "4": LeaveType.PATERNITY,
}

SPEECH_HINTS = "casual leave, personal leave, sick leave, paternity leave"


def parse_seed_balances(raw: dict[str, int]) -> dict[LeaveType, int]:
    """Turn configured {"CL": 8, ...} into a full balance map.

    Codes missing from the configuration fall back to DEFAULT_BALANCES.
    Unknown codes raise ValueError.
    """
    balances = dict(DEFAULT_BALANCES)
    for code, amount in raw.items():
        if amount < 0:
            raise ValueError(f"Seed balance for {code} must not be negative")
        balances[LeaveType(code.upper())] = int(amount)
    return balances
