"""
IVR dialogue for applying for leave and checking leave status.

Call flow (each arrow is one provider callback):

    greet -> identifier -> menu -+-> leave type -> dates -> confirmation
                                 +-> status

Every handler takes the caller's latest input and returns a Prompt: what to
say, and either what to gather next (and which route receives it), a
redirect, or nothing, which ends the call. Handlers never raise for bad
input or business rejections; those become spoken messages.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date

from leave_ivr.call_session import CallSession, CallSessionStore
from leave_ivr.leave_types import SPEECH_HINTS, STATUS_ORDER
from leave_ivr.ledger import (
    DuplicateLeaveError,
    InsufficientBalanceError,
    LeaveLedger,
    LedgerPersistenceError,
)
from leave_ivr.models import LeaveRequest
from leave_ivr.normalizer import (
    EMPLOYEE_ID_LENGTH,
    MenuChoice,
    compose_employee_address,
    extract_date_range,
    extract_employee_id,
    extract_leave_type,
    parse_menu_choice,
)

logger = logging.getLogger(__name__)

ROUTE_IDENTIFIER = "/id"
ROUTE_MENU = "/menu"
ROUTE_LEAVE_TYPE = "/apply/type"
ROUTE_DATES = "/apply/dates"
ROUTE_STATUS = "/status"

MONTHS = (
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

LEAVE_TYPE_QUESTION = (
    "Which type of leave would you like? Say casual leave, personal leave, "
    "sick leave, or paternity leave. You can also press 1 for casual, 2 for personal, "
    "3 for sick, or 4 for paternity leave."
)
DATES_QUESTION = (
    "Please say your from date and to date. For example, from tenth September "
    "twenty twenty five to fifteenth September twenty twenty five."
)

MSG_NO_VALID_INPUT = "Sorry, no valid input received. Thank you."
MSG_NOT_UNDERSTOOD = "Sorry, I did not get that. Thank you."
MSG_SESSION_EXPIRED = "Sorry, your session has expired. Please call again. Thank you."
MSG_DUPLICATE = (
    "You have already applied for the same dates. Please choose some other dates. Thank you."
)
MSG_UNAVAILABLE = "Sorry, we could not complete your request right now. Please try again later."


def spoken_date(value: date) -> str:
    """2025-09-10 -> "10 September 2025"."""
    return f"{value.day} {MONTHS[value.month - 1]} {value.year}"


def spoken_days(count: int) -> str:
    return "1 day" if count == 1 else f"{count} days"


def confirmation_sentence(request: LeaveRequest) -> str:
    """Confirmation read to the caller and sent as the email body."""
    return (
        f"Your {request.code.display_name} has been applied from {spoken_date(request.start)} "
        f"to {spoken_date(request.end)}. Status: {request.status.value.capitalize()}."
    )


@dataclass
class CallbackInput:
    """What one provider callback tells us about the caller's latest turn."""

    call_sid: str
    speech: str | None = None
    digits: str | None = None
    confidence: float | None = None  # reported by the provider, not used

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "CallbackInput":
        confidence = params.get("Confidence")
        try:
            confidence = float(confidence) if confidence else None
        except ValueError:
            confidence = None
        return cls(
            call_sid=params.get("CallSid", ""),
            speech=params.get("SpeechResult") or None,
            digits=params.get("Digits") or None,
            confidence=confidence,
        )


@dataclass
class Gather:
    action: str
    prompts: list[str]
    num_digits: int | None = None
    timeout: int = 6
    input: str = "speech dtmf"
    hints: str | None = None


@dataclass
class Prompt:
    say: list[str] = field(default_factory=list)
    gather: Gather | None = None
    redirect: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.gather is None and self.redirect is None


class LeaveCallFlow:
    """
    Drives one call through the leave dialogue.

    The flow owns call sessions; the ledger owns balances and requests.
    """

    def __init__(
        self,
        ledger: LeaveLedger,
        sessions: CallSessionStore,
        notifier,
        email_domain: str,
        notify_overrides: Mapping[str, str] | None = None,
        organization_name: str = "H R Services",
        gather_timeout: int = 6,
        timezone: str = "Asia/Kolkata",
        today: date | None = None,
    ):
        self.ledger = ledger
        self.sessions = sessions
        self.notifier = notifier
        self.email_domain = email_domain
        self.notify_overrides = dict(notify_overrides or {})
        self.organization_name = organization_name
        self.gather_timeout = gather_timeout
        self.timezone = timezone
        self.today = today

    def _gather(self, action: str, *prompts: str, **options) -> Gather:
        options.setdefault("timeout", self.gather_timeout)
        return Gather(action=action, prompts=list(prompts), **options)

    def _menu_gather(self) -> Gather:
        return self._gather(
            ROUTE_MENU,
            "Please choose from the following options. Option 1, apply leave. "
            "Option 2, check your leave status.",
            num_digits=1,
            hints="apply leave, leave status",
        )

    def _leave_type_gather(self, *prompts: str) -> Gather:
        return self._gather(ROUTE_LEAVE_TYPE, *prompts, num_digits=1, hints=SPEECH_HINTS)

    def _dates_gather(self, *prompts: str) -> Gather:
        return self._gather(ROUTE_DATES, *prompts, input="speech")

    @staticmethod
    def _end(*lines: str) -> Prompt:
        return Prompt(say=list(lines))

    # -- steps -------------------------------------------------------------

    def greet(self, inbound: CallbackInput) -> Prompt:
        self.sessions.get(inbound.call_sid)
        logger.info(f"New call {inbound.call_sid}")
        return Prompt(
            gather=self._gather(
                ROUTE_IDENTIFIER,
                f"Welcome to {self.organization_name} Assistant. Please say your six digit "
                "employee I D, for example two four six four three three. "
                "You may also key it in.",
                num_digits=EMPLOYEE_ID_LENGTH,
            )
        )

    def receive_identifier(self, inbound: CallbackInput) -> Prompt:
        employee_id = extract_employee_id(inbound.speech, inbound.digits)
        logger.info(
            f"Identifier input speech={inbound.speech!r} digits={inbound.digits!r} "
            f"parsed={employee_id}"
        )
        if employee_id is None:
            return self._end(MSG_NO_VALID_INPUT)

        session = self.sessions.get(inbound.call_sid)
        session.employee_id = employee_id
        session.employee_address = compose_employee_address(employee_id, self.email_domain)
        return Prompt(say=["Thank you."], gather=self._menu_gather())

    def receive_menu_choice(self, inbound: CallbackInput) -> Prompt:
        choice = parse_menu_choice(inbound.speech, inbound.digits)
        logger.info(f"Menu choice {choice} from speech={inbound.speech!r} digits={inbound.digits!r}")

        if choice == MenuChoice.APPLY:
            return Prompt(
                say=["You chose option 1, apply leave."],
                gather=self._leave_type_gather(LEAVE_TYPE_QUESTION),
            )
        if choice == MenuChoice.STATUS:
            return Prompt(redirect=ROUTE_STATUS)
        return self._end(MSG_NOT_UNDERSTOOD)

    def receive_leave_type(self, inbound: CallbackInput) -> Prompt:
        session = self.sessions.get(inbound.call_sid)
        if not session.is_identified:
            return self._end(MSG_SESSION_EXPIRED)

        code = extract_leave_type(inbound.speech, inbound.digits)
        if code is None:
            logger.info(f"Unrecognised leave type {inbound.speech!r} / {inbound.digits!r}")
            return Prompt(
                gather=self._leave_type_gather(
                    "Sorry, I did not catch the leave type.", LEAVE_TYPE_QUESTION
                )
            )

        session.pending_leave_type = code
        return Prompt(gather=self._dates_gather(f"You chose {code.display_name}.", DATES_QUESTION))

    def receive_dates(self, inbound: CallbackInput) -> Prompt:
        session = self.sessions.get(inbound.call_sid)
        if not session.is_identified or session.pending_leave_type is None:
            return self._end(MSG_SESSION_EXPIRED)

        date_range = extract_date_range(inbound.speech, timezone=self.timezone, today=self.today)
        if date_range is None:
            logger.info(f"Unparseable dates {inbound.speech!r}")
            return Prompt(
                gather=self._dates_gather(
                    "Sorry, I could not understand the dates. Please say, for example, "
                    "from tenth September to fifteenth September twenty twenty five."
                )
            )

        code = session.pending_leave_type
        try:
            request = self.ledger.apply(session.employee_address, code, date_range)
        except DuplicateLeaveError:
            return self._end(MSG_DUPLICATE)
        except InsufficientBalanceError as e:
            return self._end(
                f"Sorry, you do not have sufficient {code.display_name} balance for the "
                f"requested dates. You have {spoken_days(e.available)} available, and the "
                f"request needs {spoken_days(e.requested)}. Thank you."
            )
        except LedgerPersistenceError:
            logger.error(
                f"Ledger unavailable while applying for {session.employee_address}", exc_info=True
            )
            return self._end(MSG_UNAVAILABLE)

        session.pending_leave_type = None
        sentence = confirmation_sentence(request)
        self._send_confirmation(session, sentence)

        return self._end(
            sentence,
            f"A confirmation email has been sent to {self._spoken_address(session)}.",
            "You can check your leave status later by choosing option 2. Thank you.",
        )

    def report_status(self, inbound: CallbackInput) -> Prompt:
        session = self.sessions.get(inbound.call_sid)
        if not session.is_identified:
            return self._end(MSG_SESSION_EXPIRED)

        try:
            entry = self.ledger.get_or_create(session.employee_address)
        except LedgerPersistenceError:
            logger.error(f"Ledger unavailable reading {session.employee_address}", exc_info=True)
            return self._end(MSG_UNAVAILABLE)

        latest = entry.latest_request
        if latest is None:
            status_line = "Thank you. You have not applied for any leave so far."
        else:
            status_line = (
                f"Thank you. Your latest request: your {latest.code.display_name} from "
                f"{spoken_date(latest.start)} to {spoken_date(latest.end)} is "
                f"{latest.status.value.lower()}."
            )

        balances = " ".join(
            f"{code.display_name} {spoken_days(entry.balances.get(code, 0))}."
            for code in STATUS_ORDER
        )
        return self._end(status_line, f"Your leave balance: {balances}")

    def end_call(self, call_sid: str) -> bool:
        return self.sessions.remove(call_sid)

    # -- helpers -----------------------------------------------------------

    def notify_address(self, session: CallSession) -> str:
        return self.notify_overrides.get(session.employee_id) or session.employee_address

    def _spoken_address(self, session: CallSession) -> str:
        local, _, domain = session.employee_address.partition("@")
        return f"{' '.join(local)} at {domain}"

    def _send_confirmation(self, session: CallSession, body: str) -> None:
        address = self.notify_address(session)
        try:
            self.notifier.notify(address, body)
        except Exception:
            # The leave is applied either way; the caller must still hear it
            logger.error(f"Could not queue confirmation email to {address}", exc_info=True)
