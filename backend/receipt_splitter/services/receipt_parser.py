"""Receipt image -> store, date and line items via Gemini."""
import base64
import binascii
import json
import os
import re
import time

import google.generativeai as genai
from loguru import logger
from pydantic import ValidationError

from receipt_splitter.exceptions import ParserNotConfiguredError, ReceiptParseError
from receipt_splitter.schemas import ParsedItem, ParsedReceipt

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-2.0-flash")

ITEM_CATEGORIES = ("food", "drink", "other")

_DATA_URL_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,")

RECEIPT_PROMPT = """Analyze this receipt image and extract the following information as JSON:
{
  "store_name": "store name if visible",
  "date": "date in YYYY-MM-DD format if visible",
  "items": [
    {"name": "item name", "price": number, "quantity": number, "category": "food/drink/other"}
  ],
  "subtotal": number,
  "tax": number,
  "total": number
}

Guidelines:
- Extract only clearly visible line items with prices.
- Ignore duplicate entries, headers and footers.
- Prices are plain numbers without currency symbols.
- If quantity is not printed, use 1.
- Use null for values that are not visible.
- Return valid JSON only, no additional text.
"""


def decode_image(image_data: str) -> tuple[bytes, str]:
    """Split an optional data-URL prefix off a base64 image; default to JPEG."""
    mime_type = "image/jpeg"
    match = _DATA_URL_RE.match(image_data)
    if match:
        mime_type = match.group(1)
        image_data = image_data[match.end():]
    try:
        return base64.b64decode(image_data, validate=True), mime_type
    except (binascii.Error, ValueError) as exc:
        raise ReceiptParseError("Image data is not valid base64") from exc


def normalize_receipt(raw_text: str) -> ParsedReceipt:
    """
    Parse the model's JSON reply. Items without a name or with a non-positive
    price are dropped; quantity defaults to 1 and category to "other".
    """
    text = raw_text.strip()
    # models sometimes wrap JSON in a markdown fence
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ReceiptParseError("Failed to parse receipt data") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
        raise ReceiptParseError("Invalid receipt format: missing items array")

    items = []
    for raw in payload["items"]:
        if not isinstance(raw, dict):
            continue
        name = str(raw.get("name") or "").strip()
        price = raw.get("price")
        if not name or isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
            continue
        quantity = raw.get("quantity")
        category = raw.get("category")
        items.append(ParsedItem(
            name=name,
            price=float(price),
            quantity=int(quantity) if isinstance(quantity, (int, float)) and quantity >= 1 else 1,
            category=category if category in ITEM_CATEGORIES else "other",
        ))

    try:
        return ParsedReceipt(
            store_name=payload.get("store_name"),
            date=payload.get("date"),
            items=items,
            subtotal=payload.get("subtotal"),
            tax=payload.get("tax"),
            total=payload.get("total"),
        )
    except ValidationError as exc:
        raise ReceiptParseError("Failed to parse receipt data") from exc


def _generate(image_bytes: bytes, mime_type: str) -> str:
    genai.configure(api_key=GEMINI_API_KEY)
    model = genai.GenerativeModel(
        model_name=GEMINI_MODEL_NAME,
        generation_config=genai.GenerationConfig(
            temperature=0.0,
            response_mime_type="application/json",
            max_output_tokens=1000,
        ),
    )
    response = model.generate_content([RECEIPT_PROMPT, {"mime_type": mime_type, "data": image_bytes}])
    return response.text


def parse_receipt_image(image_data: str) -> ParsedReceipt:
    if not GEMINI_API_KEY:
        raise ParserNotConfiguredError("Receipt parsing is not configured. GEMINI_API_KEY is missing.")
    image_bytes, mime_type = decode_image(image_data)

    start = time.time()
    logger.info("Sending receipt image ({} bytes, {}) to {}", len(image_bytes), mime_type, GEMINI_MODEL_NAME)
    try:
        raw_text = _generate(image_bytes, mime_type)
    except Exception as exc:
        logger.error("Gemini receipt extraction failed: {}", exc)
        raise ReceiptParseError("Failed to process receipt image") from exc
    if not raw_text:
        raise ReceiptParseError("No response from the receipt model")

    parsed = normalize_receipt(raw_text)
    logger.info("Parsed {} items in {:.2f}s", len(parsed.items), time.time() - start)
    return parsed
