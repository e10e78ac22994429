import pytest

from qr_api.core.errors import QRCodeValidationError
from qr_api.models import QRCode, QRCodeDestination
from qr_api.qr_codes import merge_qr_code_update, parse_qr_code_body
from qr_api.tenancy.queries import parse_qr_code_id


def make_stored(**overrides):
    data = {
        "id": 1,
        "shop_domain": "shop1.example",
        "title": "Spring Sale",
        "destination": QRCodeDestination.PRODUCT,
        "product_id": "p1",
        "variant_id": None,
        "collection_id": None,
        "discount_id": None,
        "discount_code": None,
        "scans": 4,
    }
    data.update(overrides)
    return QRCode(**data)


def error_fields(exc_info) -> list[str]:
    return [err["field"] for err in exc_info.value.details["errors"]]


# ────────────────────────────────────────────────────────────────
# Create bodies
# ────────────────────────────────────────────────────────────────

def test_parse_product_body():
    qr_input = parse_qr_code_body({"title": "  Spring Sale ", "destination": "product", "productId": "p1"})

    assert qr_input.title == "Spring Sale"
    assert qr_input.destination == QRCodeDestination.PRODUCT
    assert qr_input.to_fields() == {
        "title": "Spring Sale",
        "destination": QRCodeDestination.PRODUCT,
        "product_id": "p1",
        "variant_id": None,
        "collection_id": None,
        "discount_id": None,
        "discount_code": None,
    }


def test_parse_accepts_snake_case_keys():
    qr_input = parse_qr_code_body({"title": "Summer", "destination": "collection", "collection_id": "c1"})

    assert qr_input.collection_id == "c1"


def test_parse_ignores_server_owned_fields():
    qr_input = parse_qr_code_body({
        "title": "Spring Sale",
        "destination": "product",
        "productId": "p1",
        "shopDomain": "evil.example",
        "scansCount": 10,
    })

    assert "shop_domain" not in qr_input.to_fields()
    assert "scans" not in qr_input.to_fields()


def test_parse_normalizes_references():
    qr_input = parse_qr_code_body({
        "title": "Spring Sale",
        "destination": "product",
        "productId": 42,
        "variantId": "  ",
    })

    assert qr_input.product_id == "42"
    assert qr_input.variant_id is None


def test_discount_destination_requires_both_discount_fields():
    with pytest.raises(QRCodeValidationError, match="requires discountCode"):
        parse_qr_code_body({
            "title": "VIP",
            "destination": "productWithDiscount",
            "productId": "p1",
            "discountId": "d1",
        })


def test_other_destinations_forbid_discount_fields():
    with pytest.raises(QRCodeValidationError, match="does not allow discountId"):
        parse_qr_code_body({
            "title": "Spring Sale",
            "destination": "product",
            "productId": "p1",
            "discountId": "d1",
        })


def test_collection_forbids_product_fields():
    with pytest.raises(QRCodeValidationError, match="does not allow productId, variantId"):
        parse_qr_code_body({
            "title": "Summer",
            "destination": "collection",
            "collectionId": "c1",
            "productId": "p1",
            "variantId": "v1",
        })


def test_missing_title_reports_field():
    with pytest.raises(QRCodeValidationError) as exc_info:
        parse_qr_code_body({"destination": "product", "productId": "p1"})

    assert error_fields(exc_info) == ["title"]
    assert exc_info.value.status_code == 422


def test_unknown_destination_reports_field():
    with pytest.raises(QRCodeValidationError) as exc_info:
        parse_qr_code_body({"title": "x", "destination": "homepage"})

    assert error_fields(exc_info) == ["destination"]


def test_title_longer_than_column_rejected():
    with pytest.raises(QRCodeValidationError) as exc_info:
        parse_qr_code_body({"title": "x" * 256, "destination": "product", "productId": "p1"})

    assert error_fields(exc_info) == ["title"]


def test_reference_longer_than_column_rejected():
    with pytest.raises(QRCodeValidationError) as exc_info:
        parse_qr_code_body({"title": "Spring Sale", "destination": "product", "productId": "9" * 256})

    assert error_fields(exc_info) == ["productId"]


def test_discount_destination_accepts_variant():
    qr_input = parse_qr_code_body({
        "title": "VIP",
        "destination": "productWithDiscount",
        "productId": "p1",
        "variantId": "v1",
        "discountId": "d1",
        "discountCode": "SAVE10",
    })

    assert qr_input.variant_id == "v1"


@pytest.mark.parametrize("raw, expected", [
    ("1", 1),
    ("007", 7),
    ("2147483647", 2147483647),
    ("2147483648", None),
    ("99999999999999999999999", None),
    ("0", None),
    ("-1", None),
    ("abc", None),
    ("1.5", None),
    ("", None),
    ("²", None),
])
def test_parse_qr_code_id(raw, expected):
    assert parse_qr_code_id(raw) == expected


@pytest.mark.parametrize("payload", [None, "title", ["title"], 3])
def test_non_object_bodies_rejected(payload):
    with pytest.raises(QRCodeValidationError, match="must be a JSON object"):
        parse_qr_code_body(payload)


# ────────────────────────────────────────────────────────────────
# Update bodies
# ────────────────────────────────────────────────────────────────

def test_merge_keeps_omitted_fields():
    qr_input = merge_qr_code_update(make_stored(variant_id="v1"), {"title": "Renamed"})

    assert qr_input.title == "Renamed"
    assert qr_input.product_id == "p1"
    assert qr_input.variant_id == "v1"


def test_merge_explicit_null_clears_field():
    qr_input = merge_qr_code_update(make_stored(variant_id="v1"), {"variantId": None})

    assert qr_input.variant_id is None


def test_merge_validates_merged_record():
    stored = make_stored(
        destination=QRCodeDestination.PRODUCT_WITH_DISCOUNT,
        discount_id="d1",
        discount_code="SAVE10",
    )

    with pytest.raises(QRCodeValidationError, match="does not allow discountId, discountCode"):
        merge_qr_code_update(stored, {"destination": "product"})


def test_merge_can_switch_destination_when_clearing_fields():
    qr_input = merge_qr_code_update(
        make_stored(),
        {"destination": "collection", "productId": None, "collectionId": "c1"},
    )

    assert qr_input.destination == QRCodeDestination.COLLECTION
    assert qr_input.product_id is None
    assert qr_input.collection_id == "c1"


def test_merge_ignores_server_owned_fields():
    qr_input = merge_qr_code_update(make_stored(), {"shopDomain": "evil.example", "id": 7, "scansCount": 0})

    assert qr_input.to_fields()["title"] == "Spring Sale"
    assert "shop_domain" not in qr_input.to_fields()


def test_merge_empty_title_rejected():
    with pytest.raises(QRCodeValidationError, match="Title is required"):
        merge_qr_code_update(make_stored(), {"title": ""})
