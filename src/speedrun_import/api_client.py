from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .errors import FetchError
from .logging_utils import log_json


@dataclass
class ApiConfig:
    base_url: str
    timeout_seconds: float
    max_concurrency: int
    rate_limit_per_sec: float
    log_every_requests: int = 50


class RateLimiter:
    """Token bucket; capacity is one second's worth of requests (at least one)."""

    def __init__(self, rate_per_sec: float) -> None:
        self.rate_per_sec = rate_per_sec
        self.capacity = max(1.0, float(rate_per_sec))
        self._lock = asyncio.Lock()
        self._tokens = self.capacity
        self._last = time.monotonic()

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                now = time.monotonic()
                self._tokens = min(self.capacity, self._tokens + (now - self._last) * self.rate_per_sec)
                self._last = now
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait = (1 - self._tokens) / self.rate_per_sec
            # Sleep outside the lock so other coroutines can proceed
            await asyncio.sleep(max(0.01, wait))


class ApiClient:
    """Single-attempt JSON GETs with a bounded timeout. Failures raise FetchError."""

    def __init__(self, cfg: ApiConfig, api_key: Optional[str] = None) -> None:
        self.cfg = cfg
        self._semaphore = asyncio.Semaphore(cfg.max_concurrency)
        self._limiter = RateLimiter(cfg.rate_limit_per_sec)
        headers = {"Accept": "application/json", "User-Agent": "speedrun-import"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = httpx.AsyncClient(
            base_url=cfg.base_url,
            timeout=cfg.timeout_seconds,
            headers=headers,
        )
        self._logger = None
        self._requests = 0

    def set_logger(self, logger) -> None:
        self._logger = logger

    async def close(self) -> None:
        await self._client.aclose()

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = params or {}
        async with self._semaphore:
            await self._limiter.acquire()
            self._requests += 1
            if self._logger and self._requests % self.cfg.log_every_requests == 0:
                log_json(self._logger, "http_progress", requests=self._requests)
            try:
                resp = await self._client.get(path, params=params)
            except httpx.TimeoutException as exc:
                if self._logger:
                    log_json(self._logger, "http_timeout", level="warning", path=path)
                raise FetchError(f"timeout fetching {path}") from exc
            except httpx.RequestError as exc:
                if self._logger:
                    log_json(self._logger, "http_error", level="warning", path=path, error=str(exc))
                raise FetchError(f"error fetching {path}: {exc}") from exc
        if resp.status_code != 200:
            if self._logger:
                log_json(self._logger, "http_status", level="warning", path=path, status=resp.status_code)
            raise FetchError(f"SRC API error {resp.status_code} for {path}")
        try:
            return resp.json()
        except ValueError as exc:
            raise FetchError(f"invalid JSON from {path}") from exc
