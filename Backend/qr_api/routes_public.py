"""
Public QR code endpoints, hit by shoppers' phones rather than the admin.

    GET /qrcodes/{id}/scan           -> Count the scan, redirect to the storefront
    GET /qrcodes/{id}/image?shop=... -> PNG of the code (encodes the scan URL)

No session token here. The image route requires the owning shop's domain so
ids cannot be enumerated across shops.
"""

import logging
from io import BytesIO

import qrcode
from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from .composer import destination_url, qr_code_scan_url
from .core.errors import QRCodeNotFound
from .routes_qrcodes import get_qr_code_store
from .tenancy.queries import QRCodeStore, get_qr_code_for_shop, parse_qr_code_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/qrcodes", tags=["public-qr-codes"])


def render_qr_png(data: str) -> bytes:
    """Render `data` as a QR code PNG."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@router.get("/{qr_code_id}/scan")
async def scan_qr_code(
    qr_code_id: str,
    store: QRCodeStore = Depends(get_qr_code_store),
):
    parsed_id = parse_qr_code_id(qr_code_id)
    qr_code = await store.read(parsed_id) if parsed_id is not None else None
    if not qr_code:
        raise QRCodeNotFound(qr_code_id)

    await store.increment_scans(qr_code.id)
    target = destination_url(qr_code)
    logger.info(f"Scan of QR code {qr_code_id} ({qr_code.shop_domain}) -> {target}")
    return RedirectResponse(target, status_code=status.HTTP_302_FOUND)


@router.get("/{qr_code_id}/image")
async def qr_code_image(
    qr_code_id: str,
    shop: str = Query(..., description="Owning shop domain"),
    store: QRCodeStore = Depends(get_qr_code_store),
):
    parsed_id = parse_qr_code_id(qr_code_id)
    qr_code = None
    if parsed_id is not None:
        qr_code = await get_qr_code_for_shop(store, shop, parsed_id)
    if not qr_code:
        raise QRCodeNotFound(qr_code_id)

    png = await run_in_threadpool(render_qr_png, qr_code_scan_url(qr_code.id))
    return Response(
        content=png,
        media_type="image/png",
        headers={"Cache-Control": "public, max-age=3600"},
    )
