"""
Ledger records and value objects.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leave_ivr.leave_types import LeaveType


class LeaveStatus(str, Enum):
    # Requests are auto-approved; there is no pending or rejected state.
    APPROVED = "APPROVED"


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range of a leave request."""

    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Range end {self.end} is before start {self.start}")

    @classmethod
    def from_dates(cls, start: date, end: date | None = None) -> "DateRange":
        """Build a range from one or two spoken dates, in whatever order they came."""
        if end is None:
            end = start
        if end < start:
            start, end = end, start
        return cls(start=start, end=end)

    @property
    def days(self) -> int:
        return max(1, (self.end - self.start).days + 1)


class LeaveRequest(BaseModel):
    """An applied leave request. Never edited once appended."""

    model_config = ConfigDict(frozen=True)

    code: LeaveType
    start: date
    end: date
    days: int = Field(ge=1)
    status: LeaveStatus = LeaveStatus.APPROVED

    def matches(self, code: LeaveType, date_range: DateRange) -> bool:
        return self.code == code and self.start == date_range.start and self.end == date_range.end


class EmployeeLedgerEntry(BaseModel):
    """Balances and request history of one employee."""

    balances: dict[LeaveType, int]
    requests: list[LeaveRequest] = Field(default_factory=list)

    @field_validator("balances")
    @classmethod
    def _no_negative_balances(cls, value: dict[LeaveType, int]) -> dict[LeaveType, int]:
        for code, amount in value.items():
            if amount < 0:
                raise ValueError(f"Negative balance for {code.value}: {amount}")
        return value

    @property
    def latest_request(self) -> LeaveRequest | None:
        return self.requests[-1] if self.requests else None


class LedgerDocument(BaseModel):
    """The whole persisted ledger, keyed by employee address."""

    employees: dict[str, EmployeeLedgerEntry] = Field(default_factory=dict)
