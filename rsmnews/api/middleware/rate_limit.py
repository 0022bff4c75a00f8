"""Rate limiting middleware for the subscription endpoints

Every subscribe/unsubscribe request triggers an outbound WhatsApp message, so
those paths are limited per client IP. Everything else passes through.

Security features:
- IP spoofing protection (X-Forwarded-For only trusted from a listed proxy peer)
- Bounded memory via TTLCache buckets
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

from rsmnews.config import RATE_LIMIT_MAX_IPS, RATE_LIMIT_RPH, RATE_LIMIT_RPM, get_trusted_proxies
from rsmnews.observability.telemetry import counter, log_event

LIMITED_PATHS = ("/api/subscribe", "/api/unsubscribe")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP sliding-window limits (per minute and per hour) on LIMITED_PATHS.

    State is in-process; a multi-instance deployment needs a shared store.
    """

    def __init__(
        self,
        app: Any,
        requests_per_minute: int = RATE_LIMIT_RPM,
        requests_per_hour: int = RATE_LIMIT_RPH,
        limited_paths: tuple[str, ...] = LIMITED_PATHS,
        trusted_proxies: frozenset[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.limited_paths = limited_paths

        # {ip: [timestamp, ...]}, idle IPs expire on their own
        self.minute_buckets: TTLCache[str, list[float]] = TTLCache(maxsize=RATE_LIMIT_MAX_IPS, ttl=120)
        self.hour_buckets: TTLCache[str, list[float]] = TTLCache(maxsize=RATE_LIMIT_MAX_IPS, ttl=7200)

        # Peers whose X-Forwarded-For is believed; anyone else can forge it
        self.trusted_proxies = get_trusted_proxies() if trusted_proxies is None else frozenset(trusted_proxies)

    def _is_valid_ip(self, ip_str: str) -> bool:
        try:
            ipaddress.ip_address(ip_str)
            return True
        except ValueError:
            return False

    def _get_client_ip(self, request: Request) -> str:
        """
        Client IP, taken from X-Forwarded-For only when the peer is a trusted proxy.

        Proxies append to the header, so the nearest hop that is not itself a
        trusted proxy is the client; anything left of it is client-supplied.
        """
        peer = request.client.host if request.client else "unknown"
        if peer not in self.trusted_proxies:
            return peer

        forwarded = request.headers.get("X-Forwarded-For", "")
        for hop in reversed([part.strip() for part in forwarded.split(",")]):
            if hop in self.trusted_proxies:
                continue
            if self._is_valid_ip(hop):
                return hop
            break

        return peer

    def _clean_old_requests(self, bucket: list[float], max_age_seconds: int) -> list[float]:
        now = time.time()
        return [ts for ts in bucket if now - ts < max_age_seconds]

    def _too_many(self, client_ip: str, limit: str, count: int, allowed: int, retry_after: int) -> JSONResponse:
        counter("api.rate_limited")
        log_event("api.rate_limit.request_exceeded", ip=client_ip, limit=limit, count=count)
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": f"Rate limit exceeded. Maximum {allowed} requests per {limit}.",
                "retry_after": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method != "POST" or request.url.path not in self.limited_paths:
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        now = time.time()

        minute_bucket = self._clean_old_requests(self.minute_buckets.get(client_ip, []), 60)
        hour_bucket = self._clean_old_requests(self.hour_buckets.get(client_ip, []), 3600)

        if len(minute_bucket) >= self.requests_per_minute:
            self.minute_buckets[client_ip] = minute_bucket
            return self._too_many(client_ip, "minute", len(minute_bucket), self.requests_per_minute, 60)

        if len(hour_bucket) >= self.requests_per_hour:
            self.hour_buckets[client_ip] = hour_bucket
            return self._too_many(client_ip, "hour", len(hour_bucket), self.requests_per_hour, 3600)

        minute_bucket.append(now)
        hour_bucket.append(now)
        self.minute_buckets[client_ip] = minute_bucket
        self.hour_buckets[client_ip] = hour_bucket

        response = await call_next(request)

        response.headers["X-RateLimit-Limit-Minute"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining-Minute"] = str(
            self.requests_per_minute - len(minute_bucket)
        )
        response.headers["X-RateLimit-Limit-Hour"] = str(self.requests_per_hour)
        response.headers["X-RateLimit-Remaining-Hour"] = str(self.requests_per_hour - len(hour_bucket))

        return response
