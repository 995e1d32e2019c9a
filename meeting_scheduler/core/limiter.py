from slowapi import Limiter
from slowapi.util import get_remote_address

from meeting_scheduler.core.config import settings

# Limits are declared per route with @limiter.limit
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)
