"""UCP capability documents under ``/.well-known`` with ETag revalidation."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from merchforge.services.ucp import (
    build_ucp_jsonld,
    etag_for,
    load_ucp_capabilities,
    load_ucp_products,
    stable_stringify,
)

router = APIRouter(prefix="/.well-known", tags=["well-known"])

CACHE_CONTROL = "public, max-age=3600"


def _cached(request: Request, body: str, media_type: str) -> Response:
    """200 with the body, or an empty 304 when ``If-None-Match`` matches."""
    etag = etag_for(body)
    headers = {"ETag": etag, "Cache-Control": CACHE_CONTROL}
    if request.headers.get("if-none-match") == etag:
        return Response(status_code=304, headers=headers)
    return Response(content=body, media_type=media_type, headers=headers)


@router.get("/ucp-capabilities.json")
async def ucp_capabilities(request: Request) -> Response:
    body = stable_stringify(load_ucp_capabilities().model_dump(exclude_none=True))
    return _cached(request, body, "application/json")


@router.get("/ucp-capabilities.jsonld")
async def ucp_capabilities_jsonld(request: Request) -> Response:
    body = stable_stringify(build_ucp_jsonld())
    return _cached(request, body, "application/ld+json")


@router.get("/ucp-products.json")
async def ucp_products(request: Request) -> Response:
    return _cached(request, load_ucp_products(), "application/json")
