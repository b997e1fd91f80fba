# src/gateway/resolver.py - v1
"""Content resolution through an ordered chain of public gateways.

Each gateway is one strategy; ``try_in_order`` runs them head first and
returns the first success. List order is the only preference signal and no
health state survives between calls, so every resolution starts again at
the first gateway.

Per gateway attempt:
  - the shared RateLimiter spaces the request;
  - RetryPolicy retries connection errors and 5xx on the same gateway;
  - 429, timeouts, other non-success statuses and unparsable JSON move on
    to the next gateway without retrying.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from nftmeta.core.errors import GatewayExhausted, GatewayRateLimited, GatewayStatusError
from nftmeta.gateway.content_cache import ContentCache
from nftmeta.gateway.rate_limiter import RateLimiter
from nftmeta.gateway.retry import RetryPolicy, is_transient

if TYPE_CHECKING:
    from nftmeta.config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")

Strategy = tuple[str, Callable[[], Awaitable[T]]]


async def try_in_order(strategies: Sequence[Strategy[T]], identifier: str) -> T:
    """Run ``strategies`` in order and return the first successful result.

    Raises:
        GatewayExhausted: If every strategy failed (or none were given).
    """
    errors: list[Exception] = []
    for name, attempt in strategies:
        try:
            return await attempt()
        except Exception as e:
            logger.debug("Strategy %s failed for %s: %r", name, identifier, e)
            errors.append(e)
    raise GatewayExhausted(identifier, errors)


def normalize_identifier(ref: str) -> str:
    """Strip ``ipfs://`` / ``/ipfs/`` prefixes from a content reference."""
    ident = ref.strip()
    if ident.startswith("ipfs://"):
        ident = ident[len("ipfs://"):]
    ident = ident.lstrip("/")
    if ident.startswith("ipfs/"):
        ident = ident[len("ipfs/"):]
    return ident


def is_structured(identifier: str) -> bool:
    """Infer whether ``identifier`` names a JSON document rather than an image.

    ``.json`` paths are structured, paths ending in an image extension are
    not, and extensionless paths are treated as images. Any other extension
    is treated as structured.
    """
    lowered = identifier.lower()
    if lowered.endswith(".json"):
        return True
    last = lowered.rsplit("/", 1)[-1]
    if "." not in last or lowered.endswith(IMAGE_EXTENSIONS):
        return False
    return True


@dataclass
class RawContent:
    """An unconsumed streamed response from whichever gateway succeeded."""

    gateway: str
    url: str
    response: httpx.Response

    @property
    def content_type(self) -> str:
        return self.response.headers.get("content-type", "application/octet-stream")

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        return self.response.aiter_bytes()

    async def read(self) -> bytes:
        try:
            return await self.response.aread()
        finally:
            await self.response.aclose()

    async def aclose(self) -> None:
        await self.response.aclose()


class GatewayResolver:
    """Resolve content identifiers through an ordered list of gateways.

    Args:
        gateways: Gateway base URLs, most preferred first.
        client: Shared httpx client. One is created (and owned) if omitted.
        rate_limiter: Spacing applied before every outbound request.
        retry_policy: Same-gateway retry for transient failures.
        timeout_s: Wall-clock budget of a single gateway request.
        content_cache: Optional short-TTL cache of parsed JSON payloads.
    """

    def __init__(
        self,
        gateways: Sequence[str],
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_s: float = 10.0,
        content_cache: ContentCache | None = None,
    ) -> None:
        self._gateways = [g.rstrip("/") for g in gateways]
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._rate_limiter = rate_limiter or RateLimiter()
        self._retry = retry_policy or RetryPolicy()
        self._timeout_s = timeout_s
        self._content_cache = content_cache

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> GatewayResolver:
        return cls(
            gateways=settings.gateway_urls_list,
            client=client,
            rate_limiter=RateLimiter(settings.rate_limit_interval_s),
            retry_policy=RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                base_delay_s=settings.retry_base_delay_s,
            ),
            timeout_s=settings.gateway_timeout_s,
            content_cache=ContentCache(settings.content_cache_ttl_s),
        )

    @property
    def gateways(self) -> list[str]:
        return list(self._gateways)

    def gateway_url(self, gateway: str, identifier: str) -> str:
        return f"{gateway}/ipfs/{identifier}"

    def display_url(self, image_ref: str | None) -> str | None:
        """Map an ``ipfs://`` image reference onto the preferred gateway."""
        if not image_ref:
            return None
        if image_ref.startswith(("http://", "https://", "data:")):
            return image_ref
        if not self._gateways:
            return None
        return self.gateway_url(self._gateways[0], normalize_identifier(image_ref))

    async def resolve(self, ref: str, structured: bool | None = None) -> Any:
        """Resolve ``ref`` as JSON or as a raw stream, inferring when unspecified."""
        identifier = normalize_identifier(ref)
        if structured is None:
            structured = is_structured(identifier)
        if structured:
            return await self.resolve_json(identifier)
        return await self.resolve_raw(identifier)

    async def resolve_json(self, ref: str) -> Any:
        """Resolve ``ref`` to parsed JSON.

        Raises:
            GatewayExhausted: If no gateway produced parsable JSON.
        """
        identifier = normalize_identifier(ref)
        if self._content_cache is not None:
            cached = self._content_cache.get(identifier)
            if cached is not None:
                return cached

        strategies = [
            (gw, functools.partial(self._attempt_json, gw, identifier))
            for gw in self._gateways
        ]
        data = await try_in_order(strategies, identifier)

        if self._content_cache is not None:
            self._content_cache.set(identifier, data)
        return data

    async def resolve_raw(self, ref: str) -> RawContent:
        """Resolve ``ref`` to an unconsumed byte stream. The caller must close it.

        Raises:
            GatewayExhausted: If every gateway failed.
        """
        identifier = normalize_identifier(ref)
        strategies = [
            (gw, functools.partial(self._attempt_raw, gw, identifier))
            for gw in self._gateways
        ]
        return await try_in_order(strategies, identifier)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Single gateway attempts
    # ------------------------------------------------------------------

    async def _attempt_json(self, gateway: str, identifier: str) -> Any:
        url = self.gateway_url(gateway, identifier)
        response = await self._retry.run(
            self._fetch, url, stream=False,
            should_retry=self._retry_same_gateway, label=url,
        )
        # ValueError on malformed JSON falls through to the next gateway
        return response.json()

    async def _attempt_raw(self, gateway: str, identifier: str) -> RawContent:
        url = self.gateway_url(gateway, identifier)
        response = await self._retry.run(
            self._fetch, url, stream=True,
            should_retry=self._retry_same_gateway, label=url,
        )
        return RawContent(gateway=gateway, url=url, response=response)

    async def _fetch(self, url: str, stream: bool) -> httpx.Response:
        await self._rate_limiter.acquire()
        request = self._client.build_request("GET", url, timeout=self._timeout_s)
        response = await asyncio.wait_for(
            self._client.send(request, stream=stream), timeout=self._timeout_s
        )
        if response.is_success:
            return response
        if stream:
            await response.aclose()
        gateway = url.split("/ipfs/", 1)[0]
        if response.status_code == 429:
            raise GatewayRateLimited(gateway)
        raise GatewayStatusError(gateway, response.status_code)

    @staticmethod
    def _retry_same_gateway(error: Exception) -> bool:
        if isinstance(error, (GatewayRateLimited, httpx.TimeoutException, asyncio.TimeoutError)):
            return False
        return is_transient(error)
