"""Rate limiting for the report endpoints."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from fleetbooks.core.config import settings

REPORT_RATE_LIMIT = f"{settings.RATE_LIMIT_PER_MINUTE}/minute"
WRITE_RATE_LIMIT = "30/minute"

limiter = Limiter(key_func=get_remote_address, default_limits=[REPORT_RATE_LIMIT])
