"""
Tests for the IVR call flow, driven step by step the way the provider
would call it.
"""

from datetime import date
from unittest.mock import patch

from leave_ivr.dialogue import (
    MSG_DUPLICATE,
    MSG_NO_VALID_INPUT,
    MSG_NOT_UNDERSTOOD,
    MSG_SESSION_EXPIRED,
    MSG_UNAVAILABLE,
    ROUTE_DATES,
    ROUTE_IDENTIFIER,
    ROUTE_LEAVE_TYPE,
    ROUTE_MENU,
    ROUTE_STATUS,
    CallbackInput,
    LeaveCallFlow,
    spoken_date,
)
from leave_ivr.leave_types import DEFAULT_BALANCES, LeaveType
from leave_ivr.ledger import LeaveLedger, LedgerPersistenceError
from tests.conftest import EMPLOYEE_ADDRESS, EMPLOYEE_ID, TODAY, RecordingNotifier

CONFIRMATION = (
    "Your Casual leave has been applied from 10 September 2025 to 15 September 2025. "
    "Status: Approved."
)


def apply_leave(flow, say, leave_type="casual leave", dates=None, call_sid="CA-test-1"):
    """Walk one call from greeting to the dates answer; return the final prompt."""
    dates = dates or "from tenth September twenty twenty five to fifteenth September twenty twenty five"
    flow.greet(say(call_sid=call_sid))
    flow.receive_identifier(say(digits=EMPLOYEE_ID, call_sid=call_sid))
    flow.receive_menu_choice(say(digits="1", call_sid=call_sid))
    flow.receive_leave_type(say(speech=leave_type, call_sid=call_sid))
    return flow.receive_dates(say(speech=dates, call_sid=call_sid))


def check_status(flow, say, call_sid="CA-status"):
    flow.greet(say(call_sid=call_sid))
    flow.receive_identifier(say(speech="two four six four three three", call_sid=call_sid))
    redirect = flow.receive_menu_choice(say(speech="leave status", call_sid=call_sid))
    assert redirect.redirect == ROUTE_STATUS
    return flow.report_status(say(call_sid=call_sid))


class TestGreetingAndIdentification:
    """Greeting, ID capture and the main menu."""

    def test_greeting_asks_for_id(self, flow, say):
        prompt = flow.greet(say())

        assert prompt.gather.action == ROUTE_IDENTIFIER
        assert prompt.gather.num_digits == 6
        assert "H R Services" in prompt.gather.prompts[0]
        assert not prompt.is_terminal

    def test_valid_id_opens_menu(self, flow, say, sessions):
        prompt = flow.receive_identifier(say(speech="two four six four three three"))

        assert prompt.say == ["Thank you."]
        assert prompt.gather.action == ROUTE_MENU
        assert prompt.gather.num_digits == 1
        session = sessions.get("CA-test-1")
        assert session.employee_id == EMPLOYEE_ID
        assert session.employee_address == EMPLOYEE_ADDRESS

    def test_invalid_id_ends_call(self, flow, say):
        prompt = flow.receive_identifier(say(speech="I don't remember"))
        assert prompt.say == [MSG_NO_VALID_INPUT]
        assert prompt.is_terminal

    def test_menu_apply(self, flow, say):
        prompt = flow.receive_menu_choice(say(digits="1"))

        assert prompt.say == ["You chose option 1, apply leave."]
        assert prompt.gather.action == ROUTE_LEAVE_TYPE

    def test_menu_status_redirects(self, flow, say):
        prompt = flow.receive_menu_choice(say(speech="two"))
        assert prompt.redirect == ROUTE_STATUS
        assert prompt.say == []

    def test_menu_not_understood(self, flow, say):
        prompt = flow.receive_menu_choice(say(speech="pizza"))
        assert prompt.say == [MSG_NOT_UNDERSTOOD]
        assert prompt.is_terminal


class TestApplyLeave:
    """Applying for leave over the phone."""

    def test_leave_type_then_dates_prompt(self, flow, say, sessions):
        flow.receive_identifier(say(digits=EMPLOYEE_ID))
        prompt = flow.receive_leave_type(say(speech="sick leave"))

        assert prompt.gather.action == ROUTE_DATES
        assert prompt.gather.input == "speech"
        assert prompt.gather.prompts[0] == "You chose Sick leave."
        assert sessions.get("CA-test-1").pending_leave_type == LeaveType.SICK

    def test_keypad_leave_type(self, flow, say, sessions):
        flow.receive_identifier(say(digits=EMPLOYEE_ID))
        flow.receive_leave_type(say(digits="4"))
        assert sessions.get("CA-test-1").pending_leave_type == LeaveType.PATERNITY

    def test_unknown_leave_type_reprompts(self, flow, say):
        flow.receive_identifier(say(digits=EMPLOYEE_ID))
        prompt = flow.receive_leave_type(say(speech="vacation"))

        assert prompt.gather.action == ROUTE_LEAVE_TYPE
        assert prompt.gather.prompts[0] == "Sorry, I did not catch the leave type."

    def test_successful_application(self, flow, say, ledger, notifier, sessions):
        prompt = apply_leave(flow, say)

        assert prompt.is_terminal
        assert prompt.say == [
            CONFIRMATION,
            "A confirmation email has been sent to 2 4 6 4 3 3 at company.com.",
            "You can check your leave status later by choosing option 2. Thank you.",
        ]
        assert ledger.get_or_create(EMPLOYEE_ADDRESS).balances[LeaveType.CASUAL] == 2
        assert notifier.sent == [(EMPLOYEE_ADDRESS, CONFIRMATION)]
        assert sessions.get("CA-test-1").pending_leave_type is None

    def test_duplicate_application(self, flow, say, ledger, notifier):
        apply_leave(flow, say, call_sid="CA-first")
        prompt = apply_leave(flow, say, call_sid="CA-second")

        assert prompt.say == [MSG_DUPLICATE]
        assert ledger.get_or_create(EMPLOYEE_ADDRESS).balances[LeaveType.CASUAL] == 2
        assert len(notifier.sent) == 1

    def test_insufficient_balance(self, ledger_store, sessions, notifier, say):
        ledger = LeaveLedger(ledger_store, seed_balances={**DEFAULT_BALANCES, LeaveType.SICK: 2})
        flow = LeaveCallFlow(ledger, sessions, notifier, email_domain="company.com", today=TODAY)

        prompt = apply_leave(
            flow, say, leave_type="sick leave", dates="from 1 September 2025 to 5 September 2025"
        )

        assert prompt.is_terminal
        assert "sufficient Sick leave balance" in prompt.say[0]
        assert "You have 2 days available" in prompt.say[0]
        assert "needs 5 days" in prompt.say[0]
        assert notifier.sent == []
        assert ledger.get_or_create(EMPLOYEE_ADDRESS).balances[LeaveType.SICK] == 2

    def test_unparseable_dates_reprompt(self, flow, say, sessions):
        prompt = apply_leave(flow, say, dates="hello")

        assert prompt.gather.action == ROUTE_DATES
        assert prompt.gather.prompts[0].startswith("Sorry, I could not understand the dates.")
        # Leave type kept for the retry
        assert sessions.get("CA-test-1").pending_leave_type == LeaveType.CASUAL

    def test_duration_without_date_reprompts(self, flow, say, ledger):
        prompt = apply_leave(flow, say, dates="for two days please")

        assert prompt.gather.action == ROUTE_DATES
        assert ledger.get_or_create(EMPLOYEE_ADDRESS).requests == []

    def test_length_after_start_date_is_applied(self, flow, say, ledger):
        prompt = apply_leave(flow, say, dates="10 September 2025 for 3 days")

        assert "from 10 September 2025 to 12 September 2025" in prompt.say[0]
        assert ledger.get_or_create(EMPLOYEE_ADDRESS).balances[LeaveType.CASUAL] == 5

    def test_ledger_unavailable(self, flow, say, ledger):
        with patch.object(ledger, "apply", side_effect=LedgerPersistenceError("disk full")):
            prompt = apply_leave(flow, say)
        assert prompt.say == [MSG_UNAVAILABLE]

    def test_notifier_failure_still_confirms(self, ledger, sessions, say):
        flow = LeaveCallFlow(
            ledger, sessions, RecordingNotifier(fail=True), email_domain="company.com", today=TODAY
        )
        prompt = apply_leave(flow, say)

        assert prompt.say[0] == CONFIRMATION
        assert ledger.get_or_create(EMPLOYEE_ADDRESS).balances[LeaveType.CASUAL] == 2

    def test_notify_address_override(self, ledger, sessions, notifier, say):
        flow = LeaveCallFlow(
            ledger,
            sessions,
            notifier,
            email_domain="company.com",
            notify_overrides={EMPLOYEE_ID: "demo.inbox@example.org"},
            today=TODAY,
        )
        prompt = apply_leave(flow, say)

        assert notifier.sent[0][0] == "demo.inbox@example.org"
        # The caller still hears their own address
        assert "2 4 6 4 3 3 at company.com" in prompt.say[1]

    def test_steps_without_identification_expire(self, flow, say):
        assert flow.receive_leave_type(say(speech="sick leave")).say == [MSG_SESSION_EXPIRED]
        assert flow.receive_dates(say(speech="tomorrow")).say == [MSG_SESSION_EXPIRED]

    def test_dates_without_leave_type_expire(self, flow, say):
        flow.receive_identifier(say(digits=EMPLOYEE_ID))
        prompt = flow.receive_dates(say(speech="tomorrow"))
        assert prompt.say == [MSG_SESSION_EXPIRED]


class TestLeaveStatus:
    """Status and balance readout."""

    def test_status_before_any_leave(self, flow, say):
        prompt = check_status(flow, say)

        assert prompt.is_terminal
        assert prompt.say == [
            "Thank you. You have not applied for any leave so far.",
            "Your leave balance: Personal leave 10 days. Casual leave 8 days. "
            "Sick leave 9 days. Paternity leave 8 days.",
        ]

    def test_status_after_application(self, flow, say):
        apply_leave(flow, say)
        prompt = check_status(flow, say)

        assert prompt.say == [
            "Thank you. Your latest request: your Casual leave from 10 September 2025 "
            "to 15 September 2025 is approved.",
            "Your leave balance: Personal leave 10 days. Casual leave 2 days. "
            "Sick leave 9 days. Paternity leave 8 days.",
        ]

    def test_single_day_balance_wording(self, flow, say):
        apply_leave(flow, say, dates="from 1 September 2025 to 7 September 2025")
        prompt = check_status(flow, say)
        assert "Casual leave 1 day." in prompt.say[1]

    def test_status_requires_identification(self, flow, say):
        assert flow.report_status(say(call_sid="CA-unknown")).say == [MSG_SESSION_EXPIRED]

    def test_status_ledger_unavailable(self, flow, say, ledger):
        with patch.object(ledger, "get_or_create", side_effect=LedgerPersistenceError("bad file")):
            prompt = check_status(flow, say)
        assert prompt.say == [MSG_UNAVAILABLE]


class TestCallLifecycle:
    """Sessions end with the call."""

    def test_end_call_forgets_session(self, flow, say, sessions):
        flow.receive_identifier(say(digits=EMPLOYEE_ID))
        assert flow.end_call("CA-test-1") is True
        assert "CA-test-1" not in sessions

    def test_callback_input_from_params(self):
        inbound = CallbackInput.from_params(
            {"CallSid": "CA9", "SpeechResult": "sick leave", "Digits": "", "Confidence": "0.91"}
        )
        assert inbound.call_sid == "CA9"
        assert inbound.speech == "sick leave"
        assert inbound.digits is None
        assert inbound.confidence == 0.91

    def test_spoken_date(self):
        assert spoken_date(date(2025, 9, 10)) == "10 September 2025"
