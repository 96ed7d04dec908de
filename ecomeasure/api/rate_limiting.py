"""
Shared rate limiter for the API.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from ecomeasure.config import settings


limiter = Limiter(key_func=get_remote_address)

# Applied to endpoints that fan out into many analyses
BATCH_RATE_LIMIT = f"{settings.rate_limit_requests}/minute"
