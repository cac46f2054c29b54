"""
Per-IP request rate limiting
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple
import time

from fastapi import Request
from fastapi.responses import JSONResponse

from ..errors import RateLimitedError
from ..logging_config import get_logger, log_action


logger = get_logger("bankease.api.rate_limit")


@dataclass(frozen=True)
class RateLimitRule:
    """At most ``max_requests`` per client inside the window for paths under ``prefix``"""
    prefix: str
    max_requests: int
    message: str = RateLimitedError.default_message


class RateLimiter:
    """
    HTTP middleware enforcing sliding-window limits per client IP.

    Every rule whose prefix matches the request path applies; a request is
    counted against all of them and rejected with 429 when any is exhausted.
    """

    def __init__(self, rules: List[RateLimitRule], window_seconds: int = 60,
                 clock: Callable[[], float] = time.monotonic):
        self.rules = rules
        self.window = window_seconds
        self.clock = clock
        self.requests: Dict[Tuple[str, str], List[float]] = defaultdict(list)

    def _client(self, request: Request) -> str:
        return request.client.host if request.client else "unknown"

    async def __call__(self, request: Request, call_next):
        path = request.url.path
        matching = [rule for rule in self.rules if path.startswith(rule.prefix)]
        if not matching:
            return await call_next(request)

        client_ip = self._client(request)
        now = self.clock()
        for rule in matching:
            key = (rule.prefix, client_ip)
            # Drop hits that left the window
            self.requests[key] = [t for t in self.requests[key] if now - t < self.window]
            if len(self.requests[key]) >= rule.max_requests:
                log_action(
                    logger, "warning", "Rate limit exceeded",
                    action="rate_limited", resource=path,
                    extra={"client_ip": client_ip, "prefix": rule.prefix}
                )
                error = RateLimitedError(rule.message)
                return JSONResponse(status_code=error.status_code, content=error.to_dict())

        for rule in matching:
            self.requests[(rule.prefix, client_ip)].append(now)
        return await call_next(request)
