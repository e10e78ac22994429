"""
Response composition for QR codes.

Turns stored QR code rows into what the admin frontend renders: every
stored field plus

    qrCodeImageUrl  - where the scannable image for the code is served
    destinationUrl  - the storefront page the code sends shoppers to
    discountCode    - productWithDiscount codes only, refreshed from the
                      shop's current discount list when possible

URLs are built from stored fields alone; the only network call is the
optional discount lookup, made at most once per composition.
"""

import logging
from datetime import datetime
from typing import Optional, Protocol, Sequence
from urllib.parse import quote, urlencode

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .core.config import get_settings
from .core.errors import PlatformError
from .models import QRCode, QRCodeDestination
from .shopify import Discount
from .tenancy.context import ShopContext

logger = logging.getLogger(__name__)


class DiscountSource(Protocol):
    async def list_discounts(self, limit: int) -> list[Discount]:
        ...


class ClientQRCode(BaseModel):
    """A QR code as returned to the admin frontend (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    shop_domain: str
    title: str
    destination: QRCodeDestination
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    collection_id: Optional[str] = None
    discount_id: Optional[str] = None
    discount_code: Optional[str] = None
    scans_count: int = 0
    created_at: Optional[datetime] = None
    qr_code_image_url: str
    destination_url: str


# ────────────────────────────────────────────────────────────────
# URL Helpers
# ────────────────────────────────────────────────────────────────

def resource_ref(ref: str) -> str:
    """
    Last path segment of a Shopify GID; bare ids pass through.

        "gid://shopify/Product/42" -> "42"
    """
    return ref.rstrip("/").rsplit("/", 1)[-1]


def qr_code_scan_url(qr_code_id: int) -> str:
    """The URL encoded in the printed QR code (counts the scan, then redirects)."""
    return f"{get_settings().app_url_base}/qrcodes/{qr_code_id}/scan"


def qr_code_image_url(qr_code_id: int, shop_domain: str) -> str:
    query = urlencode({"shop": shop_domain})
    return f"{get_settings().app_url_base}/qrcodes/{qr_code_id}/image?{query}"


def destination_url(qr_code: QRCode) -> str:
    """Storefront URL for a QR code, computed from its stored fields."""
    storefront = f"https://{qr_code.shop_domain}"

    if qr_code.destination == QRCodeDestination.COLLECTION:
        return f"{storefront}/collections/{quote(resource_ref(qr_code.collection_id))}"

    product_path = f"/products/{quote(resource_ref(qr_code.product_id))}"
    if qr_code.variant_id:
        product_path += "?" + urlencode({"variant": resource_ref(qr_code.variant_id)})

    if qr_code.destination == QRCodeDestination.PRODUCT_WITH_DISCOUNT:
        query = urlencode({"redirect": product_path})
        return f"{storefront}/discount/{quote(qr_code.discount_code, safe='')}?{query}"

    return f"{storefront}{product_path}"


# ────────────────────────────────────────────────────────────────
# Composition
# ────────────────────────────────────────────────────────────────

def compose_one(qr_code: QRCode, discount_codes: dict[str, str]) -> ClientQRCode:
    discount_code = None
    if qr_code.has_discount():
        discount_code = discount_codes.get(qr_code.discount_id, qr_code.discount_code)

    return ClientQRCode(
        id=qr_code.id,
        shop_domain=qr_code.shop_domain,
        title=qr_code.title,
        destination=qr_code.destination,
        product_id=qr_code.product_id,
        variant_id=qr_code.variant_id,
        collection_id=qr_code.collection_id,
        discount_id=qr_code.discount_id if qr_code.has_discount() else None,
        discount_code=discount_code,
        scans_count=qr_code.scans or 0,
        created_at=qr_code.created_at,
        qr_code_image_url=qr_code_image_url(qr_code.id, qr_code.shop_domain),
        destination_url=destination_url(qr_code),
    )


async def _current_discount_codes(discounts: DiscountSource, shop: str) -> dict[str, str]:
    try:
        page = await discounts.list_discounts(get_settings().discounts_page_size)
    except PlatformError as e:
        logger.warning(f"Discount lookup failed for {shop}, using stored codes: {e.message}")
        return {}
    return {discount.id: discount.code for discount in page}


async def compose(
    ctx: ShopContext,
    qr_codes: Sequence[QRCode],
    discounts: Optional[DiscountSource] = None,
) -> list[ClientQRCode]:
    """
    Build the client view of `qr_codes` for the shop in `ctx`.

    Rows owned by another shop are left out. The shop's discounts are only
    fetched when a productWithDiscount code is present.
    """
    owned = []
    for qr_code in qr_codes:
        if qr_code.shop_domain != ctx.shop:
            logger.error(f"Refusing to compose QR code {qr_code.id} for {ctx.shop}: owned by another shop")
            continue
        owned.append(qr_code)

    discount_codes: dict[str, str] = {}
    if discounts is not None and any(qr_code.has_discount() for qr_code in owned):
        discount_codes = await _current_discount_codes(discounts, ctx.shop)

    return [compose_one(qr_code, discount_codes) for qr_code in owned]
