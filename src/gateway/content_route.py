# src/gateway/content_route.py - v1
"""Content resolution boundary exposed to browser clients.

``handle_content_request`` turns a store path into a response: parsed JSON
for structured documents, the raw stream for images, or a 500 error body
when every gateway failed. ``handle_preflight`` answers CORS preflight
requests without touching any gateway.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from nftmeta.core.errors import GatewayExhausted
from nftmeta.gateway.resolver import (
    IMAGE_EXTENSIONS,
    GatewayResolver,
    RawContent,
    is_structured,
    normalize_identifier,
)

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000"


@dataclass
class ContentResponse:
    """Transport-neutral response. Exactly one of ``json_body`` / ``stream`` is set on success."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    json_body: Any = None
    stream: RawContent | None = None


def target_path(path: str) -> tuple[str, bool]:
    """Return the path to request and whether it is structured.

    Extensionless image paths get ``.png`` appended.
    """
    identifier = normalize_identifier(path)
    structured = is_structured(identifier)
    if not structured and not identifier.lower().endswith(IMAGE_EXTENSIONS):
        identifier = f"{identifier}.png"
    return identifier, structured


async def handle_content_request(resolver: GatewayResolver, path: str) -> ContentResponse:
    """Resolve ``path`` through the gateway chain and build a response."""
    identifier, structured = target_path(path)
    try:
        if structured:
            data = await resolver.resolve_json(identifier)
            return ContentResponse(
                status=200,
                headers={
                    "Content-Type": "application/json",
                    "Cache-Control": IMMUTABLE_CACHE_CONTROL,
                    **CORS_HEADERS,
                },
                json_body=data,
            )
        raw = await resolver.resolve_raw(identifier)
        return ContentResponse(
            status=200,
            headers={
                "Content-Type": raw.response.headers.get("content-type", "image/png"),
                "Cache-Control": IMMUTABLE_CACHE_CONTROL,
                "Access-Control-Allow-Origin": "*",
            },
            stream=raw,
        )
    except GatewayExhausted as e:
        logger.error("Content resolution failed for %s: %s", identifier, e)
        return ContentResponse(
            status=500,
            headers={
                "Content-Type": "application/json",
                "Access-Control-Allow-Origin": "*",
            },
            json_body={"error": "Failed to fetch IPFS content"},
        )


def handle_preflight() -> ContentResponse:
    """Empty CORS preflight response."""
    return ContentResponse(status=200, headers=dict(CORS_HEADERS))
