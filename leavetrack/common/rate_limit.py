"""Shared slowapi limiter, keyed by client address.

Attached to ``app.state`` in main.py, where ``SlowAPIMiddleware`` applies
``RATE_LIMIT_DEFAULT`` to every route.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from leavetrack.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)
