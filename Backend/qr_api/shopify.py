"""
Shopify Admin API gateway.

A thin client for the two platform integrations the app needs:

    - code discounts (GraphQL), to fill the discount picker and to resolve
      the display code of productWithDiscount QR codes
    - script tags (REST), to inject the storefront script

Responses are decoded into small pydantic models holding only the fields
the app reads, so the rest of the platform schema stays out of the core.
Every transport, HTTP or GraphQL failure surfaces as PlatformError.

Usage:
    async with httpx.AsyncClient(timeout=10.0) as client:
        gateway = ShopifyGateway(ctx.shop, ctx.access_token, client)
        discounts = await gateway.list_discounts(25)
"""

import logging
from typing import Any, AsyncIterator, Optional

import httpx
from fastapi import Depends
from pydantic import BaseModel, ConfigDict, ValidationError

from .core.config import get_settings
from .core.errors import PlatformError
from .tenancy.context import ShopContext, get_shop_context

logger = logging.getLogger(__name__)


_CODES_FRAGMENT = """
              codes(first: 1) {
                edges {
                  node {
                    code
                  }
                }
              }"""

DISCOUNTS_QUERY = f"""
  query discounts($first: Int!) {{
    codeDiscountNodes(first: $first) {{
      edges {{
        node {{
          id
          codeDiscount {{
            ... on DiscountCodeBasic {{{_CODES_FRAGMENT}
            }}
            ... on DiscountCodeBxgy {{{_CODES_FRAGMENT}
            }}
            ... on DiscountCodeFreeShipping {{{_CODES_FRAGMENT}
            }}
          }}
        }}
      }}
    }}
  }}
"""


# ────────────────────────────────────────────────────────────────
# Narrow Platform Schemas
# ────────────────────────────────────────────────────────────────

class Discount(BaseModel):
    """A code discount: its GID and its first redeemable code."""
    id: str
    code: str


class ScriptTag(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    src: str
    event: str = "onload"
    display_scope: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def parse_discount_nodes(data: dict[str, Any]) -> list[Discount]:
    """
    Decode the `data` object of DISCOUNTS_QUERY.

    Nodes whose discount type exposes no code (automatic discounts, types
    outside the query's fragments) are skipped.
    """
    edges = ((data or {}).get("codeDiscountNodes") or {}).get("edges") or []
    discounts = []
    for edge in edges:
        node = (edge or {}).get("node") or {}
        code_edges = ((node.get("codeDiscount") or {}).get("codes") or {}).get("edges") or []
        if not node.get("id") or not code_edges:
            continue
        code = ((code_edges[0] or {}).get("node") or {}).get("code")
        if code:
            discounts.append(Discount(id=node["id"], code=code))
    return discounts


# ────────────────────────────────────────────────────────────────
# Gateway
# ────────────────────────────────────────────────────────────────

class ShopifyGateway:
    def __init__(
        self,
        shop: str,
        access_token: str,
        client: httpx.AsyncClient,
        api_version: Optional[str] = None,
    ):
        self.shop = shop
        self.access_token = access_token
        self.client = client
        self.api_version = api_version or get_settings().shopify_api_version

    @property
    def base_url(self) -> str:
        return f"https://{self.shop}/admin/api/{self.api_version}"

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        url = f"{self.base_url}/{path}"
        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Accept": "application/json",
        }
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Shopify {method} {path} for {self.shop} returned HTTP {e.response.status_code}"
            )
            raise PlatformError(
                f"Shopify returned HTTP {e.response.status_code} for {path}",
                details={"status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Shopify {method} {path} for {self.shop} failed: {e}")
            raise PlatformError(f"Could not reach Shopify: {e}") from e
        except ValueError as e:
            logger.error(f"Shopify {method} {path} for {self.shop} returned invalid JSON")
            raise PlatformError(f"Shopify returned an invalid response for {path}") from e

    async def graphql(self, query: str, variables: Optional[dict] = None) -> dict[str, Any]:
        body = await self._request(
            "POST", "graphql.json", json={"query": query, "variables": variables or {}}
        )
        if body.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in body["errors"]
            )
            logger.error(f"Shopify GraphQL errors for {self.shop}: {messages}")
            raise PlatformError(f"Shopify GraphQL error: {messages}")
        return body.get("data") or {}

    # ── Discounts ───────────────────────────────────────────────

    async def fetch_discounts(self, limit: int) -> dict[str, Any]:
        """Raw `data` payload of the discounts query, as the frontend expects it."""
        return await self.graphql(DISCOUNTS_QUERY, {"first": limit})

    async def list_discounts(self, limit: int) -> list[Discount]:
        return parse_discount_nodes(await self.fetch_discounts(limit))

    # ── Script tags ─────────────────────────────────────────────

    async def list_script_tags(
        self,
        since_id: Optional[str] = None,
        src: Optional[str] = None,
    ) -> list[ScriptTag]:
        params = {}
        if since_id:
            params["since_id"] = since_id
        if src:
            params["src"] = src
        body = await self._request("GET", "script_tags.json", params=params)
        try:
            return [ScriptTag.model_validate(tag) for tag in body.get("script_tags") or []]
        except ValidationError as e:
            raise PlatformError(f"Unexpected script tag payload: {e}") from e

    async def find_existing_script_tag(self, src: str) -> Optional[ScriptTag]:
        """Return the shop's script tag loading `src`, if one is installed."""
        for tag in await self.list_script_tags(src=src):
            if tag.src == src:
                return tag
        return None

    async def create_script_tag(self, src: str, event: str = "onload") -> ScriptTag:
        body = await self._request(
            "POST",
            "script_tags.json",
            json={"script_tag": {"event": event, "src": src}},
        )
        try:
            tag = ScriptTag.model_validate(body.get("script_tag") or {})
        except ValidationError as e:
            raise PlatformError(f"Unexpected script tag payload: {e}") from e
        logger.info(f"Created script tag {tag.id} for {self.shop} ({src})")
        return tag


# ────────────────────────────────────────────────────────────────
# FastAPI Dependency
# ────────────────────────────────────────────────────────────────

async def get_platform_gateway(
    ctx: ShopContext = Depends(get_shop_context),
) -> AsyncIterator[ShopifyGateway]:
    """One HTTP client per request, closed when the request ends."""
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.platform_timeout_seconds) as client:
        yield ShopifyGateway(ctx.shop, ctx.access_token, client)
