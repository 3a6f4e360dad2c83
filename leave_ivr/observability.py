"""
Latency tracing for the operations that touch shared or external state.

Ledger writes, ledger file I/O and SMTP delivery are the slow or fragile
parts of a call. Each is wrapped in trace_span so a single log line records
how long it took and whether it failed:

    [TRACE] ledger_apply duration_ms=3.12 status=ok employee=246433@company.com
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

logger = logging.getLogger("leave_ivr.trace")


@contextmanager
def trace_span(name: str, **metadata):
    """
    Log the duration and outcome of the wrapped block.

    Exceptions are logged as status=error and re-raised unchanged.
    """
    start = time.perf_counter()
    status = "ok"
    try:
        yield
    except Exception as e:
        status = f"error:{type(e).__name__}"
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        meta = " ".join(f"{k}={v}" for k, v in metadata.items())
        logger.info("[TRACE] %s duration_ms=%.2f status=%s %s", name, duration_ms, status, meta)
