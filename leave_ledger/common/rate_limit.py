"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance wired into the FastAPI app in
main.py. Leave submission carries a tighter per-route limit.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from leave_ledger.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)
