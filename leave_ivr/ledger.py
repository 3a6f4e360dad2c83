"""
Per-employee leave ledger: balances and request history.

The ledger is the only writer of employee records. Applying a leave request
is a check-then-act sequence (duplicate check, balance check, deduct, append,
persist) and must not interleave with another application for the same
employee, otherwise two concurrent calls could both pass the balance check.
Each employee therefore gets its own lock, held for the whole sequence, while
the shared document is only touched under the store lock.
"""

import logging
import threading

from leave_ivr.leave_types import DEFAULT_BALANCES, LeaveType
from leave_ivr.ledger_store import JsonLedgerStore, LedgerError, LedgerPersistenceError
from leave_ivr.models import DateRange, EmployeeLedgerEntry, LedgerDocument, LeaveRequest
from leave_ivr.observability import trace_span

logger = logging.getLogger(__name__)

__all__ = [
    "DuplicateLeaveError",
    "InsufficientBalanceError",
    "LeaveLedger",
    "LedgerError",
    "LedgerPersistenceError",
]


class DuplicateLeaveError(LedgerError):
    """The employee already has a request with the same type and dates."""

    def __init__(self, existing: LeaveRequest):
        self.existing = existing
        super().__init__(
            f"Duplicate {existing.code.value} request {existing.start} to {existing.end}"
        )


class InsufficientBalanceError(LedgerError):
    """The requested days exceed the remaining balance."""

    def __init__(self, code: LeaveType, available: int, requested: int):
        self.code = code
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient {code.value} balance: {available} available, {requested} requested"
        )


class LeaveLedger:
    """
    Durable ledger of leave balances and requests keyed by employee address.

    The document is loaded once and cached; every mutation is written back
    through the store before apply() returns.
    """

    def __init__(self, store: JsonLedgerStore, seed_balances: dict[LeaveType, int] | None = None):
        self.store = store
        self.seed_balances = dict(seed_balances or DEFAULT_BALANCES)

        self._document: LedgerDocument | None = None
        self._store_lock = threading.RLock()
        self._employee_locks: dict[str, threading.Lock] = {}
        self._employee_locks_guard = threading.Lock()

    @staticmethod
    def _key(address: str) -> str:
        return address.strip().lower()

    def _employee_lock(self, key: str) -> threading.Lock:
        with self._employee_locks_guard:
            return self._employee_locks.setdefault(key, threading.Lock())

    def _seed_entry(self) -> EmployeeLedgerEntry:
        return EmployeeLedgerEntry(balances=dict(self.seed_balances))

    def load(self) -> LedgerDocument:
        """Return the cached document, reading it from the store on first use."""
        with self._store_lock:
            if self._document is None:
                self._document = self.store.load()
            return self._document

    def save(self) -> None:
        """Write the cached document back to the store."""
        with self._store_lock:
            self.store.save(self.load())

    def reload(self) -> None:
        """Drop the cached document; the next access re-reads the store."""
        with self._store_lock:
            self._document = None

    def get_or_create(self, address: str) -> EmployeeLedgerEntry:
        """
        Return a snapshot of the employee's entry.

        A first-time employee is registered with the seed balances. The new
        entry reaches disk with the next save.
        """
        key = self._key(address)
        with self._store_lock:
            document = self.load()
            entry = document.employees.get(key)
            if entry is None:
                logger.info(f"Creating ledger entry for {key}")
                entry = document.employees[key] = self._seed_entry()
            return entry.model_copy(deep=True)

    @staticmethod
    def find_duplicate(
        entry: EmployeeLedgerEntry, code: LeaveType, date_range: DateRange
    ) -> LeaveRequest | None:
        for request in entry.requests:
            if request.matches(code, date_range):
                return request
        return None

    def apply(self, address: str, code: LeaveType, date_range: DateRange) -> LeaveRequest:
        """
        Apply and auto-approve a leave request.

        Raises:
            DuplicateLeaveError: same type and dates already applied
            InsufficientBalanceError: balance lower than the requested days
            LedgerPersistenceError: ledger could not be read or written;
                the ledger is left unchanged
        """
        key = self._key(address)
        days = date_range.days

        with self._employee_lock(key), trace_span(
            "ledger_apply", employee=key, leave_type=code.value, days=days
        ):
            with self._store_lock:
                current = self.load().employees.get(key) or self._seed_entry()

            duplicate = self.find_duplicate(current, code, date_range)
            if duplicate is not None:
                logger.info(f"Duplicate {code.value} request for {key}: {duplicate.start}")
                raise DuplicateLeaveError(duplicate)

            available = current.balances.get(code, 0)
            if available < days:
                logger.info(f"Insufficient {code.value} for {key}: {available} < {days}")
                raise InsufficientBalanceError(code, available, days)

            request = LeaveRequest(code=code, start=date_range.start, end=date_range.end, days=days)
            updated = current.model_copy(deep=True)
            updated.balances[code] = available - days
            updated.requests.append(request)

            with self._store_lock:
                document = self.load()
                previous = document.employees.get(key)
                document.employees[key] = updated
                try:
                    self.store.save(document)
                except LedgerPersistenceError:
                    if previous is None:
                        document.employees.pop(key, None)
                    else:
                        document.employees[key] = previous
                    raise

            logger.info(
                f"Applied {code.value} for {key}: {request.start} to {request.end} "
                f"({days} days), balance now {updated.balances[code]}"
            )
            return request
