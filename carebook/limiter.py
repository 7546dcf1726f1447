# carebook/limiter.py
# Sole purpose: create the rate limiter instance.
# This avoids circular imports between main.py and the routers.

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

limiter = Limiter(key_func=get_remote_address, enabled=get_settings().environment.lower() != "testing")


def booking_rate_limit() -> str:
    return get_settings().booking_rate_limit
