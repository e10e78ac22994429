"""
Admin API for the embedded app frontend.

Every route resolves the shop from the session token first (401 before
anything else happens), then works only with that shop's data.

    GET    /api/discounts         -> Shop's code discounts (raw GraphQL data)
    GET    /api/get-script        -> Check installed script tags
    POST   /api/create-script     -> Inject the storefront script
    POST   /api/qrcodes           -> Create a QR code
    PATCH  /api/qrcodes/{id}      -> Update a QR code
    GET    /api/qrcodes           -> List the shop's QR codes
    GET    /api/qrcodes/{id}      -> Get one QR code
    DELETE /api/qrcodes/{id}      -> Delete a QR code
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .composer import ClientQRCode, compose
from .core.config import get_settings
from .core.db import get_session
from .core.errors import QRCodeNotFound, QRCodeValidationError, StorageError
from .models import QRCode
from .qr_codes import merge_qr_code_update, parse_qr_code_body
from .shopify import ShopifyGateway, get_platform_gateway
from .tenancy import ShopContext, get_shop_context
from .tenancy.queries import QRCodeStore, get_qr_code_for_shop, parse_qr_code_id

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/api", tags=["qr-codes"])


# ────────────────────────────────────────────────────────────────
# Dependencies & Helpers
# ────────────────────────────────────────────────────────────────

def get_qr_code_store(session: AsyncSession = Depends(get_session)) -> QRCodeStore:
    return QRCodeStore(session)


async def get_qr_code_or_404(store: QRCodeStore, ctx: ShopContext, raw_id: str) -> QRCode:
    """Look up a QR code from its path segment; malformed ids are plain 404s."""
    qr_code_id = parse_qr_code_id(raw_id)
    qr_code = None
    if qr_code_id is not None:
        qr_code = await get_qr_code_for_shop(store, ctx.shop, qr_code_id)
    if not qr_code:
        raise QRCodeNotFound(raw_id)
    return qr_code


async def read_json_body(request: Request) -> Any:
    """
    Decode the request body. Called inside the route, after the shop is
    resolved, so an unauthenticated request never reaches the parser.
    """
    try:
        return await request.json()
    except ValueError as e:
        raise QRCodeValidationError("Request body must be valid JSON") from e


async def reload_and_compose(
    store: QRCodeStore,
    ctx: ShopContext,
    qr_code_id: int,
    gateway: ShopifyGateway,
) -> ClientQRCode:
    """Re-read a just-written QR code and build its client view."""
    qr_code = await store.read(qr_code_id)
    if not qr_code:
        raise StorageError(f"QR code {qr_code_id} was not found after saving")
    composed = await compose(ctx, [qr_code], gateway)
    return composed[0]


# ────────────────────────────────────────────────────────────────
# Platform Passthrough Endpoints
# ────────────────────────────────────────────────────────────────

@router.get("/discounts")
async def list_discounts(
    ctx: ShopContext = Depends(get_shop_context),
    gateway: ShopifyGateway = Depends(get_platform_gateway),
):
    """Fetch the shop's code discounts to list in the QR code form."""
    page_size = get_settings().discounts_page_size
    logger.debug(f"Fetching up to {page_size} discounts for {ctx.shop}")
    return await gateway.fetch_discounts(page_size)


@router.get("/get-script", response_class=PlainTextResponse)
async def get_script(
    ctx: ShopContext = Depends(get_shop_context),
    gateway: ShopifyGateway = Depends(get_platform_gateway),
):
    settings = get_settings()
    tags = await gateway.list_script_tags(since_id=settings.script_tag_since_id)
    logger.info(f"Shop {ctx.shop} has {len(tags)} script tag(s) since {settings.script_tag_since_id}")
    return PlainTextResponse("true")


@router.post("/create-script")
async def create_script(
    ctx: ShopContext = Depends(get_shop_context),
    gateway: ShopifyGateway = Depends(get_platform_gateway),
):
    """Inject the storefront script into the shop's theme."""
    settings = get_settings()
    if settings.script_tag_skip_existing:
        existing = await gateway.find_existing_script_tag(settings.script_tag_src)
        if existing:
            logger.info(f"Script tag {existing.id} already installed for {ctx.shop}")
            return {"script_tag": existing.model_dump()}

    tag = await gateway.create_script_tag(settings.script_tag_src)
    return {"script_tag": tag.model_dump()}


# ────────────────────────────────────────────────────────────────
# QR Code Endpoints
# ────────────────────────────────────────────────────────────────

@router.post(
    "/qrcodes",
    response_model=ClientQRCode,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_qr_code(
    request: Request,
    ctx: ShopContext = Depends(get_shop_context),
    store: QRCodeStore = Depends(get_qr_code_store),
    gateway: ShopifyGateway = Depends(get_platform_gateway),
):
    qr_input = parse_qr_code_body(await read_json_body(request))
    # The shop always comes from the session, never from the body
    qr_code_id = await store.create({**qr_input.to_fields(), "shop_domain": ctx.shop})
    return await reload_and_compose(store, ctx, qr_code_id, gateway)


@router.patch(
    "/qrcodes/{qr_code_id}",
    response_model=ClientQRCode,
    response_model_exclude_none=True,
)
async def update_qr_code(
    qr_code_id: str,
    request: Request,
    ctx: ShopContext = Depends(get_shop_context),
    store: QRCodeStore = Depends(get_qr_code_store),
    gateway: ShopifyGateway = Depends(get_platform_gateway),
):
    qr_code = await get_qr_code_or_404(store, ctx, qr_code_id)
    qr_input = merge_qr_code_update(qr_code, await read_json_body(request))
    await store.update(qr_code.id, qr_input.to_fields())
    return await reload_and_compose(store, ctx, qr_code.id, gateway)


@router.get(
    "/qrcodes",
    response_model=list[ClientQRCode],
    response_model_exclude_none=True,
)
async def list_qr_codes(
    ctx: ShopContext = Depends(get_shop_context),
    store: QRCodeStore = Depends(get_qr_code_store),
    gateway: ShopifyGateway = Depends(get_platform_gateway),
):
    qr_codes = await store.list(ctx.shop)
    return await compose(ctx, qr_codes, gateway)


@router.get(
    "/qrcodes/{qr_code_id}",
    response_model=ClientQRCode,
    response_model_exclude_none=True,
)
async def get_qr_code(
    qr_code_id: str,
    ctx: ShopContext = Depends(get_shop_context),
    store: QRCodeStore = Depends(get_qr_code_store),
    gateway: ShopifyGateway = Depends(get_platform_gateway),
):
    qr_code = await get_qr_code_or_404(store, ctx, qr_code_id)
    composed = await compose(ctx, [qr_code], gateway)
    return composed[0]


@router.delete("/qrcodes/{qr_code_id}")
async def delete_qr_code(
    qr_code_id: str,
    ctx: ShopContext = Depends(get_shop_context),
    store: QRCodeStore = Depends(get_qr_code_store),
):
    qr_code = await get_qr_code_or_404(store, ctx, qr_code_id)
    await store.delete(qr_code.id)
    return Response(status_code=status.HTTP_200_OK)
