"""
Resilient HTTP client for inter-service calls.

One ResilientClient exists per downstream service in a process, so its
circuit breaker is shared by every coroutine calling that service. Each
request runs through:

    circuit breaker → retry (exponential backoff) → timeout → httpx

Transport failures and 5xx answers become Transient, httpx timeouts become
Timeout, and error bodies are turned back into the domain error taxonomy.
"""

import logging
from typing import Any, Awaitable, Callable

import httpx

from .. import errors
from ..log import correlation_id
from .breaker import CircuitBreaker
from .policies import Pipeline, RetryPolicy, TimeoutPolicy
from .settings import ResiliencySettings

logger = logging.getLogger(__name__)

_MISSING = object()


class ResilientClient:
    def __init__(
        self,
        service: str,
        base_url: str,
        settings: ResiliencySettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        settings = settings or ResiliencySettings()
        self.service = service
        self.base_url = base_url
        breaker_kwargs = {"clock": clock} if clock else {}
        retry_kwargs = {"sleep": sleep} if sleep else {}
        self.breaker = CircuitBreaker(service, settings.breaker, **breaker_kwargs)
        self.pipeline = Pipeline(
            self.breaker,
            RetryPolicy(settings.retry, name=service, **retry_kwargs),
            TimeoutPolicy(settings.call_timeout, name=service),
        )
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport)

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict | None = None,
        fallback: Any = _MISSING,
    ) -> Any:
        """
        Send one request through the resiliency pipeline.

        ``fallback`` (a value or a zero-argument callable) is returned when
        the peer is unavailable: CircuitOpen, Timeout or Transient. Semantic
        errors always propagate. Without a fallback every failure propagates.
        """
        async def call():
            return await self._send(method, path, json, params)

        try:
            return await self.pipeline.execute(call)
        except errors.AVAILABILITY_ERRORS as e:
            if fallback is _MISSING:
                raise
            logger.warning(
                "%s %s%s unavailable (%s), using fallback", method, self.service, path, e.code
            )
            return fallback() if callable(fallback) else fallback

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def _send(self, method: str, path: str, json: Any, params: dict | None) -> Any:
        headers = {}
        cid = correlation_id.get()
        if cid:
            headers["X-Correlation-Id"] = cid

        try:
            resp = await self._http.request(method, path, json=json, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise errors.Timeout(f"{self.service} did not answer in time: {e}") from e
        except httpx.TransportError as e:
            raise errors.Transient(f"{self.service} unreachable: {e}") from e

        if resp.is_success:
            return resp.json() if resp.content else None

        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        error = errors.from_response(resp.status_code, body)
        logger.info("%s %s%s -> %s %s", method, self.service, path, resp.status_code, error.code)
        raise error

    def status(self) -> dict[str, Any]:
        return self.breaker.status()

    async def aclose(self) -> None:
        await self._http.aclose()
