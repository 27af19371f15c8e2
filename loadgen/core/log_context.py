"""
Per-VU log context.

The current VU id lives in a contextvar set when a VU task starts; a logging
filter copies it onto every record so log lines from concurrent VUs can be
told apart.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Optional

CURRENT_VU_ID: ContextVar[Optional[int]] = ContextVar("CURRENT_VU_ID", default=None)


class VuContextFilter(logging.Filter):
    """
    Attach `vu_id` to log records.

    Records logged outside a VU (setup, scheduler, teardown) get "-".
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "vu_id", None) is None:
            vu_id = CURRENT_VU_ID.get()
            record.vu_id = "-" if vu_id is None else str(vu_id)
        return True
