from .async_utils import gather_or_cancel, guarded_call, wait_with_stop
from .logging import log_event, sanitize_text, sanitize_value

__all__ = [
    "gather_or_cancel",
    "guarded_call",
    "log_event",
    "sanitize_text",
    "sanitize_value",
    "wait_with_stop",
]
