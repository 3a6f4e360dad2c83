"""
Call-scoped execution context.

Webhook handlers run one callback per worker thread, so the call SID and the
dialogue step of the callback being handled are kept in thread-local storage.
CallContextFilter copies them onto every log record, which lets one call be
followed across modules without passing the SID through every function.
"""

from __future__ import annotations

import logging
import threading

_tls = threading.local()


def set_call_context(call_sid: str | None, step: str | None = None) -> None:
    """Bind the callback being handled to the current thread."""
    _tls.call_sid = call_sid
    _tls.step = step


def get_call_sid() -> str | None:
    return getattr(_tls, "call_sid", None)


def get_call_step() -> str | None:
    return getattr(_tls, "step", None)


def clear_call_context() -> None:
    """Worker threads are reused; always clear after the callback."""
    for attr in ("call_sid", "step"):
        if hasattr(_tls, attr):
            delattr(_tls, attr)


class CallContextFilter(logging.Filter):
    """Adds call_sid and call_step attributes to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.call_sid = get_call_sid() or "-"
        record.call_step = get_call_step() or "-"
        return True
