"""Rate limiting middleware for the Tidy API

Per-IP request limits over sliding minute and hour windows. Every analysis
request fans out into several model calls, so unbounded clients translate
directly into provider quota burn.

- X-Forwarded-For is trusted only behind a known proxy header (or in development)
- Buckets live in TTLCache so idle IPs expire without a cleanup sweep
"""

from __future__ import annotations

import ipaddress
import time
from collections.abc import Callable
from typing import Any

from cachetools import TTLCache
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tidy.config import DEBUG, RATE_LIMIT_MAX_IPS, RATE_LIMIT_RPH, RATE_LIMIT_RPM
from tidy.observability.telemetry import counter, log_event

EXEMPT_PATHS = frozenset({"/health", "/health/db", "/"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP request limiter (60 req/min, 1000 req/hour by default).

    Single-process only; buckets are not shared between workers.
    """

    def __init__(
        self,
        app: Any,
        requests_per_minute: int = RATE_LIMIT_RPM,
        requests_per_hour: int = RATE_LIMIT_RPH,
        trust_forwarded: bool = DEBUG,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.trust_forwarded = trust_forwarded
        self._clock = clock

        # {ip: [timestamp, ...]}; TTL slightly above the window length
        self.minute_buckets: TTLCache[str, list[float]] = TTLCache(
            maxsize=RATE_LIMIT_MAX_IPS, ttl=120
        )
        self.hour_buckets: TTLCache[str, list[float]] = TTLCache(
            maxsize=RATE_LIMIT_MAX_IPS, ttl=7200
        )

        # Cloud Run sets this header; only then is X-Forwarded-For the real client
        self._trusted_proxy_header = "X-Cloud-Trace-Context"

    def _is_valid_ip(self, ip_str: str) -> bool:
        try:
            ipaddress.ip_address(ip_str)
            return True
        except ValueError:
            return False

    def _get_client_ip(self, request: Request) -> str:
        """Client IP with spoofing protection; malformed headers fall back to the socket."""
        if self.trust_forwarded or self._trusted_proxy_header in request.headers:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                ip = forwarded.split(",")[0].strip()
                if self._is_valid_ip(ip):
                    return ip

            real_ip = request.headers.get("X-Real-IP")
            if real_ip and self._is_valid_ip(real_ip):
                return real_ip

        return request.client.host if request.client else "unknown"

    def _recent(self, bucket: list[float], max_age_seconds: int, now: float) -> list[float]:
        return [ts for ts in bucket if now - ts < max_age_seconds]

    def _limited(self, client_ip: str, window: str, limit: int, retry_after: int) -> JSONResponse:
        log_event("api.rate_limit.request_exceeded", ip=client_ip, limit=window)
        counter("api.rate_limit.rejected")
        return JSONResponse(
            status_code=429,
            content={
                "error": f"Rate limit exceeded. Maximum {limit} requests per {window}.",
                "retryAfter": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        now = self._clock()

        minute_bucket = self._recent(self.minute_buckets.get(client_ip, []), 60, now)
        hour_bucket = self._recent(self.hour_buckets.get(client_ip, []), 3600, now)

        if len(minute_bucket) >= self.requests_per_minute:
            self.minute_buckets[client_ip] = minute_bucket
            return self._limited(client_ip, "minute", self.requests_per_minute, 60)
        if len(hour_bucket) >= self.requests_per_hour:
            self.hour_buckets[client_ip] = hour_bucket
            return self._limited(client_ip, "hour", self.requests_per_hour, 3600)

        minute_bucket.append(now)
        hour_bucket.append(now)
        self.minute_buckets[client_ip] = minute_bucket
        self.hour_buckets[client_ip] = hour_bucket

        response = await call_next(request)

        response.headers["X-RateLimit-Limit-Minute"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining-Minute"] = str(
            max(0, self.requests_per_minute - len(minute_bucket))
        )
        response.headers["X-RateLimit-Limit-Hour"] = str(self.requests_per_hour)
        response.headers["X-RateLimit-Remaining-Hour"] = str(
            max(0, self.requests_per_hour - len(hour_bucket))
        )
        return response
