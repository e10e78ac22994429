"""
QR code record store.

QRCodeStore is the only code that touches the qr_codes table. It is a plain
keyed store: read/update/delete work by id and do NOT check which shop owns
the row. Callers that act for a shop go through get_qr_code_for_shop(),
which treats another shop's row exactly like a missing one.

Usage:
    from qr_api.tenancy.queries import QRCodeStore, get_qr_code_for_shop

    store = QRCodeStore(session)
    qr_code_id = await store.create({...})
    qr_code = await get_qr_code_for_shop(store, ctx.shop, qr_code_id)
    if not qr_code:
        raise QRCodeNotFound(qr_code_id)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import QRCodeNotFound, StorageError
from ..models import QRCode

logger = logging.getLogger(__name__)

# Columns a caller may set. id, shop_domain (create only), scans and
# created_at are managed here.
WRITABLE_FIELDS = frozenset({
    "title",
    "product_id",
    "variant_id",
    "collection_id",
    "destination",
    "discount_id",
    "discount_code",
})

# Largest value the Integer primary key can hold
MAX_QR_CODE_ID = 2**31 - 1


def parse_qr_code_id(raw: str) -> Optional[int]:
    """
    Turn a path segment into a QR code id.

    Returns None for anything that cannot name a row: non-numeric text,
    zero, or a number past the id column's range.
    """
    if not raw or len(raw) > len(str(MAX_QR_CODE_ID)) or not (raw.isascii() and raw.isdigit()):
        return None
    qr_code_id = int(raw)
    if not 1 <= qr_code_id <= MAX_QR_CODE_ID:
        return None
    return qr_code_id


class QRCodeStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _guard(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"QR code store failed to {action}: {e}")
            await self.session.rollback()
            raise StorageError(f"Could not {action} QR code: {e}") from e

    async def create(self, fields: dict[str, Any]) -> int:
        values = {key: value for key, value in fields.items() if key in WRITABLE_FIELDS}
        async with self._guard("create"):
            qr_code = QRCode(shop_domain=fields["shop_domain"], scans=0, **values)
            self.session.add(qr_code)
            await self.session.commit()
            await self.session.refresh(qr_code)
        logger.info(f"Created QR code {qr_code.id} for {qr_code.shop_domain}")
        return qr_code.id

    async def read(self, qr_code_id: int) -> Optional[QRCode]:
        async with self._guard("read"):
            result = await self.session.execute(
                select(QRCode)
                .where(QRCode.id == qr_code_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def update(self, qr_code_id: int, fields: dict[str, Any]) -> None:
        qr_code = await self.read(qr_code_id)
        if not qr_code:
            raise QRCodeNotFound(qr_code_id)
        async with self._guard("update"):
            for key, value in fields.items():
                if key in WRITABLE_FIELDS:
                    setattr(qr_code, key, value)
            await self.session.commit()
        logger.info(f"Updated QR code {qr_code_id}")

    async def list(self, shop_domain: str) -> Sequence[QRCode]:
        async with self._guard("list"):
            result = await self.session.execute(
                select(QRCode)
                .where(QRCode.shop_domain == shop_domain)
                .order_by(QRCode.id)
                .execution_options(populate_existing=True)
            )
            return result.scalars().all()

    async def delete(self, qr_code_id: int) -> None:
        qr_code = await self.read(qr_code_id)
        if not qr_code:
            raise QRCodeNotFound(qr_code_id)
        async with self._guard("delete"):
            await self.session.delete(qr_code)
            await self.session.commit()
        logger.info(f"Deleted QR code {qr_code_id}")

    async def increment_scans(self, qr_code_id: int) -> None:
        """Count one scan. Done in SQL so concurrent scans are not lost."""
        async with self._guard("count scan for"):
            result = await self.session.execute(
                update(QRCode)
                .where(QRCode.id == qr_code_id)
                .values(scans=QRCode.scans + 1)
            )
            await self.session.commit()
        if result.rowcount == 0:
            raise QRCodeNotFound(qr_code_id)


async def get_qr_code_for_shop(
    store: QRCodeStore,
    shop_domain: str,
    qr_code_id: int,
) -> Optional[QRCode]:
    """
    Fetch a QR code by id, validating shop ownership.
    Returns None if not found or owned by another shop.
    """
    qr_code = await store.read(qr_code_id)
    if not qr_code:
        return None
    if qr_code.shop_domain != shop_domain:
        logger.warning(
            f"Shop {shop_domain} asked for QR code {qr_code_id} owned by another shop"
        )
        return None
    return qr_code
