# src/api/facade.py - v1
"""Public API facade: one object wiring the whole pipeline.

Usage:
    from nftmeta.api.facade import NftBrowser

    async with NftBrowser.from_settings() as browser:
        page = await browser.browse_collection("KATS", offset=24)

The facade is the caller layer: it decides when a search is "new" (which
cancels every background session) and handles address search, i.e.
filtering by collection membership rather than by attributes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from nftmeta.cache.cache_factory import create_cache_store
from nftmeta.cache.collection_cache import CollectionCache
from nftmeta.config.settings import Settings
from nftmeta.core.errors import CollectionNotFound, MissingMetadataURI
from nftmeta.core.models import Page, TokenView, TraitFilters, TraitRarityTable
from nftmeta.gateway.content_route import ContentResponse, handle_content_request
from nftmeta.gateway.resolver import GatewayResolver
from nftmeta.metadata.fetcher import MetadataFetcher
from nftmeta.pagination.orchestrator import PaginationOrchestrator
from nftmeta.prefetch.background import BackgroundPrefetcher
from nftmeta.prefetch.sessions import FetchSessionRegistry
from nftmeta.rarity.engine import compute_trait_rarities
from nftmeta.upstream.krc721_client import Krc721Client

if TYPE_CHECKING:
    from nftmeta.upstream.base_collection_service import BaseCollectionService

logger = logging.getLogger(__name__)


class NftBrowser:
    """Collection browsing, address search and content resolution.

    Args:
        settings: Application settings.
        resolver: Gateway resolver.
        collection_service: Upstream collection service.
        cache: Collection cache.
        registry: Session registry. A fresh one is created if omitted.
    """

    def __init__(
        self,
        settings: Settings,
        resolver: GatewayResolver,
        collection_service: BaseCollectionService,
        cache: CollectionCache,
        registry: FetchSessionRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.resolver = resolver
        self.collection_service = collection_service
        self.cache = cache
        self.registry = registry or FetchSessionRegistry()
        self.fetcher = MetadataFetcher(resolver)
        self.prefetcher = BackgroundPrefetcher(
            fetcher=self.fetcher,
            collection_service=collection_service,
            cache=cache,
            registry=self.registry,
            settings=settings,
        )
        self.orchestrator = PaginationOrchestrator(
            settings=settings,
            fetcher=self.fetcher,
            collection_service=collection_service,
            cache=cache,
            prefetcher=self.prefetcher,
        )
        self._current_search: str | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, client: httpx.AsyncClient | None = None
    ) -> NftBrowser:
        """Build every component from ``settings`` (loaded from .env if None)."""
        settings = settings or Settings()
        return cls(
            settings=settings,
            resolver=GatewayResolver.from_settings(settings, client=client),
            collection_service=Krc721Client.from_settings(settings, client=client),
            cache=CollectionCache(
                create_cache_store(settings), retention_s=settings.cache_retention_s
            ),
        )

    async def __aenter__(self) -> NftBrowser:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def new_search(self, query: str) -> None:
        """Start an unrelated search: stale background sessions are cancelled."""
        if query != self._current_search:
            logger.info("New search %r, cancelling %d sessions", query, len(self.registry))
            self.registry.cancel_all()
        self._current_search = query

    async def browse_collection(
        self,
        tick: str,
        offset: int = 0,
        limit: int | None = None,
        filters: TraitFilters | None = None,
        total_supply: int | None = None,
    ) -> Page:
        """Return one page of ``tick``; switching collections cancels old sessions."""
        self.new_search(tick)
        return await self.orchestrator.fetch_page(
            tick, offset=offset, limit=limit, total_supply=total_supply, filters=filters
        )

    async def search_address(self, address: str, tick: str | None = None) -> list[TokenView]:
        """Tokens held by ``address``, optionally restricted to one collection.

        Collections without a usable upstream record are skipped.
        """
        self.new_search(address)
        tokens: list[TokenView] = []
        for holding in await self.collection_service.get_address_collections(address):
            if tick is not None and holding.tick != tick:
                continue
            try:
                collection = await self.orchestrator.get_collection(holding.tick)
            except (CollectionNotFound, MissingMetadataURI) as e:
                logger.warning("Skipping %s for %s: %s", holding.tick, address, e)
                continue
            ids = [t.token_id for t in holding.tokens]
            metadata = await self.orchestrator.fetch_tokens(
                holding.tick, collection.buri or "", ids
            )
            tokens.extend(
                TokenView(
                    tick=holding.tick,
                    id=t.token_id,
                    owner=t.owner,
                    is_minted=True,
                    metadata=metadata.get(t.token_id),
                )
                for t in holding.tokens
            )
        return tokens

    async def resolve_content(self, path: str) -> ContentResponse:
        return await handle_content_request(self.resolver, path)

    async def collection_rarity(self, tick: str) -> TraitRarityTable | None:
        """Trait rarity over whatever is cached for ``tick`` right now."""
        entry = await self.cache.get_raw(tick)
        if entry is None:
            return None
        return compute_trait_rarities(entry.token_metadata)

    async def clear_cache(self, tick: str | None = None) -> None:
        await self.cache.clear(tick)

    async def aclose(self) -> None:
        await self.prefetcher.aclose()
        await self.resolver.aclose()
        await self.collection_service.aclose()
        self.cache.store.close()
