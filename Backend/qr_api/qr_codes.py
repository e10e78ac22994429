"""
QR code input parsing and validation.

Request bodies use the frontend's camelCase names (productId, discountCode,
...); snake_case names are accepted too. Fields the server owns (id,
shopDomain, scansCount, createdAt) and unknown fields are ignored, so a
client can never choose the shop a QR code is stored under.

Destination rules (the fields each destination needs):

    destination           required                           forbidden
    product               productId                          collectionId, discount*
    productWithDiscount   productId, discountId, discountCode collectionId
    collection            collectionId                       productId, variantId, discount*
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .core.errors import QRCodeValidationError
from .models import QRCode, QRCodeDestination


# Width of the String columns these fields are stored in
MAX_FIELD_LENGTH = 255

REFERENCE_FIELDS = ("product_id", "variant_id", "collection_id", "discount_id", "discount_code")

_REQUIRED = {
    QRCodeDestination.PRODUCT: ("product_id",),
    QRCodeDestination.PRODUCT_WITH_DISCOUNT: ("product_id", "discount_id", "discount_code"),
    QRCodeDestination.COLLECTION: ("collection_id",),
}

_FORBIDDEN = {
    QRCodeDestination.PRODUCT: ("collection_id", "discount_id", "discount_code"),
    QRCodeDestination.PRODUCT_WITH_DISCOUNT: ("collection_id",),
    QRCodeDestination.COLLECTION: ("product_id", "variant_id", "discount_id", "discount_code"),
}


class QRCodeInput(BaseModel):
    """A complete, valid set of client-writable QR code fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    title: str = Field(max_length=MAX_FIELD_LENGTH)
    destination: QRCodeDestination
    product_id: Optional[str] = Field(default=None, max_length=MAX_FIELD_LENGTH)
    variant_id: Optional[str] = Field(default=None, max_length=MAX_FIELD_LENGTH)
    collection_id: Optional[str] = Field(default=None, max_length=MAX_FIELD_LENGTH)
    discount_id: Optional[str] = Field(default=None, max_length=MAX_FIELD_LENGTH)
    discount_code: Optional[str] = Field(default=None, max_length=MAX_FIELD_LENGTH)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator(*REFERENCE_FIELDS, mode="before")
    @classmethod
    def normalize_reference(cls, v: Any) -> Any:
        # Numeric ids arrive from some clients; blank strings mean "unset"
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def validate_destination_fields(self):
        """Require exactly the reference fields the destination uses."""
        missing = [name for name in _REQUIRED[self.destination] if getattr(self, name) is None]
        if missing:
            raise ValueError(
                f"{self.destination.value} destination requires "
                f"{', '.join(to_camel(name) for name in missing)}"
            )
        extra = [name for name in _FORBIDDEN[self.destination] if getattr(self, name) is not None]
        if extra:
            raise ValueError(
                f"{self.destination.value} destination does not allow "
                f"{', '.join(to_camel(name) for name in extra)}"
            )
        return self

    def to_fields(self) -> dict[str, Any]:
        """Column values for the record store."""
        return self.model_dump()


# Accepted body keys, camelCase or snake_case, mapped to the camelCase alias
_INPUT_KEYS = {
    key: to_camel(name)
    for name in QRCodeInput.model_fields
    for key in (name, to_camel(name))
}


def _validation_error(e: ValidationError) -> QRCodeValidationError:
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"]) or "body",
            "message": err["msg"],
        }
        for err in e.errors(include_url=False, include_context=False, include_input=False)
    ]
    return QRCodeValidationError(
        f"Invalid QR code: {errors[0]['message']}" if errors else "Invalid QR code",
        details={"errors": errors},
    )


def parse_qr_code_body(payload: Any) -> QRCodeInput:
    """
    Validate a create request body.

    Raises:
        QRCodeValidationError: Missing/invalid fields or destination rule violated
    """
    if not isinstance(payload, dict):
        raise QRCodeValidationError("Request body must be a JSON object")
    try:
        return QRCodeInput.model_validate(payload)
    except ValidationError as e:
        raise _validation_error(e) from e


def stored_fields(qr_code: QRCode) -> dict[str, Any]:
    """The client-writable fields of a stored record, keyed by camelCase alias."""
    return {
        "title": qr_code.title,
        "destination": qr_code.destination,
        "productId": qr_code.product_id,
        "variantId": qr_code.variant_id,
        "collectionId": qr_code.collection_id,
        "discountId": qr_code.discount_id,
        "discountCode": qr_code.discount_code,
    }


def merge_qr_code_update(qr_code: QRCode, payload: Any) -> QRCodeInput:
    """
    Apply a partial update body over a stored record and validate the result.

    Supplied keys replace stored values (an explicit null clears a field);
    omitted keys keep their stored values. The destination rules are checked
    against the merged record, so switching destination means clearing the
    fields the new destination forbids in the same request.

    Raises:
        QRCodeValidationError: The merged record is invalid
    """
    if not isinstance(payload, dict):
        raise QRCodeValidationError("Request body must be a JSON object")
    merged = stored_fields(qr_code)
    for key, value in payload.items():
        alias = _INPUT_KEYS.get(key)
        if alias:
            merged[alias] = value
    try:
        return QRCodeInput.model_validate(merged)
    except ValidationError as e:
        raise _validation_error(e) from e
