"""
Per-call scratch state for the IVR dialogue.

A session carries what one step learned for the next (who is calling, which
leave type they picked). It lives only in process memory and only as long as
the call: the provider's call-status callback removes it, and idle sessions
are evicted so abandoned calls cannot grow memory without bound.
"""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field

from leave_ivr.leave_types import LeaveType

logger = logging.getLogger(__name__)


@dataclass
class CallSession:
    call_sid: str
    employee_id: str | None = None
    employee_address: str | None = None
    pending_leave_type: LeaveType | None = None
    last_seen: float = field(default_factory=time.monotonic)

    @property
    def is_identified(self) -> bool:
        return self.employee_address is not None


class CallSessionStore:
    """
    Get-or-create store of call sessions keyed by call SID.

    Eviction:
    - sessions idle for longer than ttl_seconds are dropped
    - beyond max_sessions, least recently used sessions are dropped

    Pruning runs on every get(), so memory use is self-healing.
    """

    def __init__(
        self,
        max_sessions: int = 1000,
        ttl_seconds: float = 1800,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_sessions = max_sessions
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: OrderedDict[str, CallSession] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, call_sid: str) -> CallSession:
        """Return the session for call_sid, creating an empty one if needed."""
        with self._lock:
            self._prune_locked()
            now = self._clock()

            session = self._sessions.get(call_sid)
            if session is None:
                session = CallSession(call_sid=call_sid, last_seen=now)
                self._sessions[call_sid] = session
                logger.info(f"Created call session {call_sid}")
            else:
                session.last_seen = now
                self._sessions.move_to_end(call_sid)

            # A brand-new session may push the store over capacity
            while len(self._sessions) > self.max_sessions:
                oldest_sid, _ = self._sessions.popitem(last=False)
                logger.info(f"Evicted call session {oldest_sid} (capacity)")
            return session

    def remove(self, call_sid: str) -> bool:
        """Forget a call. Returns False if it was not known."""
        with self._lock:
            removed = self._sessions.pop(call_sid, None) is not None
        if removed:
            logger.info(f"Removed call session {call_sid}")
        return removed

    def prune(self) -> int:
        """Drop expired and over-capacity sessions; return how many were dropped."""
        with self._lock:
            return self._prune_locked()

    def _prune_locked(self) -> int:
        now = self._clock()
        expired = [
            sid
            for sid, session in self._sessions.items()
            if now - session.last_seen > self.ttl_seconds
        ]
        for sid in expired:
            del self._sessions[sid]

        dropped = len(expired)
        while len(self._sessions) > self.max_sessions:
            self._sessions.popitem(last=False)
            dropped += 1

        if dropped:
            logger.info(f"Pruned {dropped} call sessions")
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, call_sid: str) -> bool:
        with self._lock:
            return call_sid in self._sessions
