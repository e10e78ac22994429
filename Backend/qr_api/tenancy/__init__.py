"""
Multi-tenancy package.

Modules:
    context: ShopContext resolution from Shopify session tokens
    queries: QR code record store and shop-scoped lookup
"""

from .context import (
    ShopContext,
    decode_session_token,
    extract_bearer_token,
    get_shop_context,
    resolve_shop_context,
    shop_from_dest,
)

from .queries import (
    QRCodeStore,
    get_qr_code_for_shop,
    parse_qr_code_id,
)

__all__ = [
    # Context
    "ShopContext",
    "decode_session_token",
    "extract_bearer_token",
    "get_shop_context",
    "resolve_shop_context",
    "shop_from_dest",
    # Record store
    "QRCodeStore",
    "get_qr_code_for_shop",
    "parse_qr_code_id",
]
