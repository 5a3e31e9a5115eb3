import json

import pytest

from receipt_splitter.exceptions import ParserNotConfiguredError, ReceiptParseError
from receipt_splitter.services import receipt_parser
from receipt_splitter.services.receipt_parser import decode_image, normalize_receipt


def test_normalize_filters_and_defaults():
    parsed = normalize_receipt(json.dumps({
        "store_name": "Corner Shop",
        "date": "2024-02-01",
        "items": [
            {"name": "Bread", "price": 2.5},
            {"name": "  ", "price": 1.0},
            {"name": "Coupon", "price": 0},
            {"name": "Juice", "price": 4, "quantity": 2, "category": "drink"},
            {"name": "Mystery", "price": "3.00"},
            "garbage",
        ],
        "tax": 0.3,
    }))
    assert parsed.store_name == "Corner Shop"
    assert [(i.name, i.price, i.quantity, i.category) for i in parsed.items] == [
        ("Bread", 2.5, 1, "other"),
        ("Juice", 4.0, 2, "drink"),
    ]
    assert parsed.tax == 0.3
    assert parsed.total is None


def test_normalize_strips_markdown_fence():
    parsed = normalize_receipt('```json\n{"items": [{"name": "Tea", "price": 2}]}\n```')
    assert parsed.items[0].name == "Tea"


def test_unknown_category_becomes_other():
    parsed = normalize_receipt('{"items": [{"name": "Soap", "price": 2, "category": "household"}]}')
    assert parsed.items[0].category == "other"


@pytest.mark.parametrize("raw", ["not json", "[]", '{"store_name": "X"}', '{"items": "none"}'])
def test_normalize_rejects_bad_replies(raw):
    with pytest.raises(ReceiptParseError):
        normalize_receipt(raw)


def test_decode_image_reads_data_url():
    data, mime_type = decode_image("data:image/png;base64,aGVsbG8=")
    assert data == b"hello"
    assert mime_type == "image/png"


def test_decode_image_defaults_to_jpeg():
    assert decode_image("aGVsbG8=") == (b"hello", "image/jpeg")


def test_decode_image_rejects_garbage():
    with pytest.raises(ReceiptParseError):
        decode_image("not base64!")


def test_parse_requires_api_key(monkeypatch):
    monkeypatch.setattr(receipt_parser, "GEMINI_API_KEY", "")
    with pytest.raises(ParserNotConfiguredError):
        receipt_parser.parse_receipt_image("aGVsbG8=")


def test_parse_passes_image_to_model(monkeypatch):
    calls = []

    def fake_generate(image_bytes, mime_type):
        calls.append((image_bytes, mime_type))
        return '{"store_name": "Cafe", "items": [{"name": "Latte", "price": 3.8}]}'

    monkeypatch.setattr(receipt_parser, "GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(receipt_parser, "_generate", fake_generate)
    parsed = receipt_parser.parse_receipt_image("data:image/webp;base64,aGVsbG8=")
    assert calls == [(b"hello", "image/webp")]
    assert parsed.store_name == "Cafe"


def test_empty_model_reply_fails(monkeypatch):
    monkeypatch.setattr(receipt_parser, "GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(receipt_parser, "_generate", lambda image_bytes, mime_type: "")
    with pytest.raises(ReceiptParseError):
        receipt_parser.parse_receipt_image("aGVsbG8=")
