"""
Tenant context module.

This module turns an inbound request into the ShopContext that every QR code
operation receives explicitly. Nothing below the route layer looks at the
request to find out which shop it is working for.

RESOLUTION:
    1. Read the session token from "Authorization: Bearer <token>"
       (App Bridge adds it on every request from the embedded admin).
    2. Verify it as an HS256 JWT signed with the app's API secret, with the
       app's API key as audience.
    3. Take the shop domain from the "dest" claim ("https://<shop>").
    4. Load the shop's stored offline session for the Admin API token.

Any failure along the way is a ShopSessionNotFound (401), raised before the
route does any other work.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import jwt
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.db import get_session
from ..core.errors import ShopSessionNotFound, StorageError
from ..models import ShopSession


logger = logging.getLogger(__name__)

# Clock skew tolerated between Shopify and this server when checking nbf/exp
SESSION_TOKEN_LEEWAY_SECONDS = 10


@dataclass(frozen=True)
class ShopContext:
    """
    Immutable context representing the current tenant for a request.

    Attributes:
        shop: The shop's myshopify domain (e.g., "shop1.myshopify.com")
        access_token: Offline Admin API access token for the shop
        scope: Granted access scopes, comma separated
    """

    shop: str
    access_token: str = ""
    scope: Optional[str] = None

    def __post_init__(self):
        if not self.shop or not self.shop.strip():
            raise ValueError("shop must be a non-empty domain")


# ────────────────────────────────────────────────────────────────
# Session Token Decoding
# ────────────────────────────────────────────────────────────────

def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from a "Bearer <token>" header value, or None."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def shop_from_dest(dest: Optional[str]) -> Optional[str]:
    """
    Extract the shop domain from a session token "dest" claim.

        "https://shop1.myshopify.com" -> "shop1.myshopify.com"
    """
    if not dest:
        return None
    parsed = urlparse(dest if "://" in dest else f"https://{dest}")
    return parsed.hostname or None


def decode_session_token(token: str) -> str:
    """
    Verify a session token and return the shop domain it was issued for.

    Raises:
        ShopSessionNotFound: If the token is malformed, expired, signed with
            another secret, issued for another app, or names no shop.
    """
    settings = get_settings()
    if not settings.shopify_api_secret:
        logger.error("SHOPIFY_API_SECRET is not configured; rejecting session token")
        raise ShopSessionNotFound("API secret not configured")

    try:
        payload = jwt.decode(
            token,
            settings.shopify_api_secret,
            algorithms=["HS256"],
            audience=settings.shopify_api_key or None,
            leeway=SESSION_TOKEN_LEEWAY_SECONDS,
            options={"verify_aud": bool(settings.shopify_api_key)},
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("Session token verification failed: token has expired")
        raise ShopSessionNotFound("expired session token") from e
    except jwt.InvalidTokenError as e:
        logger.warning(f"Session token verification failed: {e}")
        raise ShopSessionNotFound("invalid session token") from e

    shop = shop_from_dest(payload.get("dest"))
    if not shop:
        logger.warning("Session token verified but has no usable 'dest' claim")
        raise ShopSessionNotFound("session token missing dest")
    return shop


# ────────────────────────────────────────────────────────────────
# Resolution Functions
# ────────────────────────────────────────────────────────────────

async def load_offline_session(session: AsyncSession, shop: str) -> Optional[ShopSession]:
    try:
        result = await session.execute(select(ShopSession).where(ShopSession.shop == shop))
    except SQLAlchemyError as e:
        logger.error(f"Failed to load offline session for {shop}: {e}")
        raise StorageError(str(e)) from e
    return result.scalar_one_or_none()


async def resolve_shop_context(request: Request, session: AsyncSession) -> ShopContext:
    """
    Resolve the tenant for an authenticated admin request.

    Returns:
        ShopContext for the shop named in the session token

    Raises:
        ShopSessionNotFound: No valid token, or the shop has no stored session
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        logger.warning(f"No session token on {request.method} {request.url.path}")
        raise ShopSessionNotFound("missing bearer token")

    shop = decode_session_token(token)
    stored = await load_offline_session(session, shop)
    if not stored:
        logger.warning(f"Valid session token for {shop} but no stored offline session")
        raise ShopSessionNotFound("no offline session")

    logger.debug(f"Resolved shop from session token: {shop}")
    return ShopContext(
        shop=stored.shop,
        access_token=stored.access_token,
        scope=stored.scope,
    )


# ────────────────────────────────────────────────────────────────
# FastAPI Dependencies
# ────────────────────────────────────────────────────────────────

async def get_shop_context(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ShopContext:
    """
    FastAPI dependency to resolve the shop for an admin API request.

    Usage:
        @router.get("/qrcodes")
        async def list_qr_codes(ctx: ShopContext = Depends(get_shop_context)):
            ...
    """
    return await resolve_shop_context(request, session)
