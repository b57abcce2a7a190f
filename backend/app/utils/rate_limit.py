import logging

from fastapi import Depends, Request, Response

from .. import config
from ..services.rate_limiter import RATE_LIMITS, RateLimiter, get_client_key, get_rate_limiter
from .dependencies import client_address, get_optional_user
from .error_handlers import RateLimitedError, get_error_message

logger = logging.getLogger(__name__)


def rate_limited(limit_class: str):
    """Dependency admitting a request under the named limit class, keyed by caller."""
    limit = RATE_LIMITS[limit_class]

    def check(
        request: Request,
        response: Response,
        user: dict | None = Depends(get_optional_user),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        if not config.RATE_LIMIT_ENABLED:
            return
        key = get_client_key(user.get("sub") if user else None, client_address(request))
        # Limit classes are counted independently for the same client.
        result = limiter.check(f"{limit_class}:{key}", limit)
        if not result.allowed:
            logger.warning("Rate limited %s on %s %s", key, request.method, request.url.path)
            raise RateLimitedError(
                get_error_message("rate_limited"),
                retry_after=result.retry_after or 1,
            )
        for header, value in result.headers(limit).items():
            response.headers[header] = value

    return check
