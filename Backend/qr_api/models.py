from datetime import datetime
from enum import Enum

from sqlalchemy import (
    DateTime,
    Enum as SqlEnum,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .core.db import Base


class QRCodeDestination(str, Enum):
    PRODUCT = "product"
    PRODUCT_WITH_DISCOUNT = "productWithDiscount"
    COLLECTION = "collection"


class ShopSession(Base):
    """Offline Admin API session stored when a shop installs the app."""

    __tablename__ = "shop_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    access_token: Mapped[str] = mapped_column(String(255), nullable=False)
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class QRCode(Base):
    __tablename__ = "qr_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    variant_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    collection_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    destination: Mapped[QRCodeDestination] = mapped_column(
        SqlEnum(QRCodeDestination, native_enum=False, length=32), nullable=False
    )
    discount_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    discount_code: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scans: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def has_discount(self) -> bool:
        return self.destination == QRCodeDestination.PRODUCT_WITH_DISCOUNT
