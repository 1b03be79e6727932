# Overview: AI gateway; chat assistant, product insights, bill OCR and shelf analysis over external providers.

from __future__ import annotations

import json
import re
from decimal import Decimal, ROUND_HALF_UP

import httpx
from flask import current_app

from ..errors import ExternalServiceError
from ..time_utils import to_utc_z, utcnow


SYSTEM_PROMPT = (
    "You are a helpful shopping assistant for a smart retail store. "
    "You can help customers with product recommendations, healthier alternatives, "
    "budget-friendly options, product questions, dietary restrictions and health goals. "
    "Be concise, friendly, and helpful. If asked about specific products, provide "
    "alternatives based on health, price, and popularity."
)

INSIGHTS_PROMPT = (
    "Analyze this product and provide insights:\n"
    "Product: {name}\nCategory: {category}\nPrice: {price}\nIngredients: {ingredients}\n\n"
    "Provide:\n1. Health score (1-10)\n2. Key health benefits/concerns\n"
    "3. Better alternatives if unhealthy\n4. Target audience"
)

# (keywords, reply, suggestions); first match wins
FALLBACK_RESPONSES = (
    (
        ("healthy", "health"),
        "I recommend checking out our organic products, fresh fruits, vegetables, and whole grain items. "
        "These are great healthy options! You can also look for products with high health scores "
        "(8+ out of 10) in our app.",
        ["Organic vegetables", "Fresh fruits", "Whole grain bread", "Greek yogurt"],
    ),
    (
        ("budget", "cheap", "affordable"),
        "Looking for budget-friendly options? Check out our store brand products, items on sale, and bulk "
        "purchase options. Don't forget to check the 'Savings' section in your cart!",
        ["Store brand items", "Bulk rice", "Seasonal vegetables", "Value packs"],
    ),
    (
        ("gluten", "allergy"),
        "For dietary restrictions, I recommend using our product scanner to check ingredients. Look for "
        "certified gluten-free products in our health section. Always check product labels for allergen "
        "information.",
        ["Gluten-free bread", "Rice products", "Certified allergen-free items"],
    ),
    (
        ("recommend", "suggest"),
        "Based on popular choices, I recommend checking out our fresh produce section, dairy products, and "
        "whole grain items. Use our product scanner to compare health scores and find the best options for you!",
        ["Fresh vegetables", "Low-fat dairy", "Whole grains", "Lean proteins"],
    ),
)

DEFAULT_FALLBACK = (
    "I'm here to help you with your shopping! You can ask me about healthy alternatives, budget-friendly "
    "options, dietary restrictions, or any product-related questions. How can I assist you today?",
    ["Healthy snacks", "Today's deals", "New arrivals", "Popular items"],
)

SUGGESTION_PATTERNS = (
    re.compile(r"recommend\s+([^.,;]+)", re.IGNORECASE),
    re.compile(r"try\s+([^.,;]+)", re.IGNORECASE),
    re.compile(r"consider\s+([^.,;]+)", re.IGNORECASE),
    re.compile(r"check out\s+([^.,;]+)", re.IGNORECASE),
)

MAX_SUGGESTIONS = 4
MAX_SUGGESTION_LENGTH = 50


def fallback_response(message: str) -> dict:
    """Keyword-matched canned reply used when the chat provider is unavailable."""
    lowered = (message or "").lower()
    for keywords, reply, suggestions in FALLBACK_RESPONSES:
        if any(k in lowered for k in keywords):
            return {"success": True, "message": reply, "suggestions": list(suggestions)}
    reply, suggestions = DEFAULT_FALLBACK
    return {"success": True, "message": reply, "suggestions": list(suggestions)}


def extract_suggestions(reply: str | None) -> list[str]:
    """
    Pull product suggestions out of a free-text reply.

    Pattern order is preserved; duplicates and matches of 50+ characters are
    dropped; at most four are returned.
    """
    if not reply:
        return []
    found: list[str] = []
    for pattern in SUGGESTION_PATTERNS:
        for match in pattern.finditer(reply):
            text = match.group(1)
            if text and len(text) < MAX_SUGGESTION_LENGTH:
                text = text.strip()
                if text not in found:
                    found.append(text)
    return found[:MAX_SUGGESTIONS]


def basic_insights(product) -> dict:
    """Health-score based insights for when no provider is configured."""
    score = product.health_score if product.health_score is not None else 5
    if score >= 8:
        text = "This is a healthy choice with good nutritional value."
    elif score >= 6:
        text = ("This product has moderate nutritional value. "
                "Consider healthier alternatives for regular consumption.")
    else:
        text = "This product should be consumed in moderation. Look for healthier alternatives."
    return {"health_score": score, "insights": text, "source": "basic", "generated_at": to_utc_z(utcnow())}


def parse_insights(text: str) -> dict:
    match = re.search(r"health score[:\s]+(\d+)", text, re.IGNORECASE)
    score = int(match.group(1)) if match else 5
    return {
        "health_score": max(0, min(10, score)),
        "insights": text,
        "source": "provider",
        "generated_at": to_utc_z(utcnow()),
    }


class _ProviderClient:
    """Shared httpx plumbing: one attempt per call, configured timeout."""

    def __init__(self, *, client: httpx.Client | None = None, timeout: float = 30.0):
        self.client = client or httpx.Client(timeout=timeout)
        self.timeout = timeout

    def _post_json(self, url: str, **kwargs) -> dict:
        response = self.client.post(url, timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response.json()


class ChatAssistant(_ProviderClient):
    def __init__(self, *, api_key: str | None, model: str = "gpt-3.5-turbo",
                 base_url: str = "https://api.openai.com/v1", client: httpx.Client | None = None,
                 timeout: float = 30.0):
        super().__init__(client=client, timeout=timeout)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, config, *, client: httpx.Client | None = None) -> "ChatAssistant":
        return cls(
            api_key=config.get("OPENAI_API_KEY"),
            model=config.get("OPENAI_MODEL", "gpt-3.5-turbo"),
            base_url=config.get("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            client=client,
            timeout=float(config.get("AI_REQUEST_TIMEOUT", 30.0)),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _complete(self, messages: list[dict], *, max_tokens: int, temperature: float = 0.7) -> str:
        data = self._post_json(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": messages,
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
        )
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ExternalServiceError("Unexpected chat completion response") from exc

    def chat(self, message: str, context: dict | None = None) -> dict:
        """
        Answer a shopper's question. Falls back to canned replies when the
        provider is not configured or the call fails.
        """
        if not self.is_configured:
            return fallback_response(message)

        system = SYSTEM_PROMPT
        if context:
            system = f"{SYSTEM_PROMPT}\n\nContext: {json.dumps(context, default=str)}"
        try:
            reply = self._complete(
                [{"role": "system", "content": system}, {"role": "user", "content": message}],
                max_tokens=200,
            )
        except (httpx.HTTPError, ValueError, ExternalServiceError):
            current_app.logger.exception("Chat provider failed; using fallback response")
            return fallback_response(message)

        return {"success": True, "message": reply, "suggestions": extract_suggestions(reply)}

    def product_insights(self, product) -> dict:
        if not self.is_configured:
            return basic_insights(product)

        prompt = INSIGHTS_PROMPT.format(
            name=product.name,
            category=product.category,
            price=f"{product.price_cents / 100:.2f}",
            ingredients=", ".join(product.ingredients or []) or "N/A",
        )
        try:
            text = self._complete(
                [
                    {"role": "system", "content": "You are a nutrition and product expert."},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=150,
            )
        except (httpx.HTTPError, ValueError, ExternalServiceError):
            current_app.logger.exception("Insights provider failed for product %s", product.id)
            return basic_insights(product)
        return parse_insights(text)


SHOP_NAME_PATTERNS = (
    re.compile(r"^([A-Z][A-Za-z\s&]+)$", re.MULTILINE),
    re.compile(r"(?:store|mart|market|shop):\s*(.+)", re.IGNORECASE),
)
DATE_PATTERN = re.compile(r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})")
ITEM_PATTERN = re.compile(r"^(.+?)\s+(?:Rs\.?|₹)\s*(\d+(?:\.\d{2})?)", re.MULTILINE)
NON_ITEM_PATTERN = re.compile(r"total|tax|discount|change|paid", re.IGNORECASE)
TOTAL_PATTERN = re.compile(r"(?:total|amount).*?(?:Rs\.?|₹)\s*(\d+(?:\.\d{2})?)", re.IGNORECASE)


def _to_cents(amount: str) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_bill_text(text: str) -> dict:
    """
    Extract shop, date, line items and total from OCR'd receipt text.

    Item lines look like "<name> Rs. 45.50" or "<name> ₹45"; lines naming a
    total, tax, discount, change or amount paid are not items.
    """
    text = text or ""

    shop_name = ""
    for pattern in SHOP_NAME_PATTERNS:
        match = pattern.search(text)
        if match:
            shop_name = match.group(1).strip()
            break

    date_match = DATE_PATTERN.search(text)

    items = []
    for match in ITEM_PATTERN.finditer(text):
        name = match.group(1).strip()
        if NON_ITEM_PATTERN.search(name):
            continue
        items.append({"name": name, "price_cents": _to_cents(match.group(2)), "quantity": 1})

    total_match = TOTAL_PATTERN.search(text)

    return {
        "shop_name": shop_name,
        "date": date_match.group(1) if date_match else "",
        "items": items,
        "total_cents": _to_cents(total_match.group(1)) if total_match else 0,
        "item_count": len(items),
    }


class BillReader(_ProviderClient):
    def __init__(self, *, api_url: str | None, api_key: str | None = None,
                 client: httpx.Client | None = None, timeout: float = 30.0):
        super().__init__(client=client, timeout=timeout)
        self.api_url = api_url
        self.api_key = api_key

    @classmethod
    def from_config(cls, config, *, client: httpx.Client | None = None) -> "BillReader":
        return cls(
            api_url=config.get("OCR_API_URL"),
            api_key=config.get("OCR_API_KEY"),
            client=client,
            timeout=float(config.get("AI_REQUEST_TIMEOUT", 30.0)),
        )

    def read_bill(self, image_bytes: bytes) -> dict:
        """OCR a receipt image and parse it. Raises ExternalServiceError when OCR is unavailable."""
        if not image_bytes:
            raise ExternalServiceError("No image data provided")
        if not self.api_url:
            raise ExternalServiceError("OCR provider is not configured")

        headers = {"Content-Type": "application/octet-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            data = self._post_json(self.api_url, headers=headers, content=image_bytes)
        except (httpx.HTTPError, ValueError) as exc:
            current_app.logger.exception("OCR provider failed")
            raise ExternalServiceError("OCR provider request failed") from exc

        raw_text = data.get("text") or ""
        return {
            "success": True,
            "data": parse_bill_text(raw_text),
            "raw_text": raw_text,
            "confidence": data.get("confidence"),
        }


# Frame size the vision provider reports bounding boxes in
FRAME_WIDTH = 640
FRAME_HEIGHT = 480
GRID_SIZE = 3
MESSY_OVERLAP_RATIO = 0.2


def _boxes_overlap(a, b) -> bool:
    x1, y1, w1, h1 = a
    x2, y2, w2, h2 = b
    return not (x1 + w1 < x2 or x2 + w2 < x1 or y1 + h1 < y2 or y2 + h2 < y1)


def count_overlaps(detections: list[dict]) -> int:
    boxes = [d["bbox"] for d in detections]
    overlaps = 0
    for i in range(len(boxes)):
        for j in range(i + 1, len(boxes)):
            if _boxes_overlap(boxes[i], boxes[j]):
                overlaps += 1
    return overlaps


def identify_zones(detections: list[dict]) -> list[dict]:
    """3x3 grid over the frame, counting detections by top-left corner."""
    zones = [
        {"row": row, "col": col, "is_empty": True, "products": 0}
        for row in range(GRID_SIZE)
        for col in range(GRID_SIZE)
    ]
    for detection in detections:
        x, y = detection["bbox"][0], detection["bbox"][1]
        col = int(x // (FRAME_WIDTH / GRID_SIZE))
        row = int(y // (FRAME_HEIGHT / GRID_SIZE))
        if 0 <= row < GRID_SIZE and 0 <= col < GRID_SIZE:
            zone = zones[row * GRID_SIZE + col]
            zone["is_empty"] = False
            zone["products"] += 1
    return zones


def analyze_detections(detections: list[dict]) -> dict:
    product_count = len(detections)
    labels: dict[str, int] = {}
    for detection in detections:
        label = detection.get("label", "unknown")
        labels[label] = labels.get(label, 0) + 1
    return {
        "is_empty": product_count == 0,
        "is_messy": count_overlaps(detections) > product_count * MESSY_OVERLAP_RATIO,
        "product_count": product_count,
        "object_counts": labels,
        "zones": identify_zones(detections),
    }


def shelf_recommendations(analysis: dict) -> list[dict]:
    recommendations = []
    if analysis["is_empty"]:
        recommendations.append({
            "action": "restock",
            "priority": "high",
            "message": "Shelf is empty and needs immediate restocking",
        })
    if analysis["is_messy"]:
        recommendations.append({
            "action": "organize",
            "priority": "medium",
            "message": "Shelf needs reorganization for better presentation",
        })
    empty_zones = [z for z in analysis["zones"] if z["is_empty"]]
    if empty_zones:
        recommendations.append({
            "action": "fill_zones",
            "priority": "medium",
            "message": f"{len(empty_zones)} empty zones detected that need products",
            "zones": empty_zones,
        })
    return recommendations


class ShelfAnalyzer(_ProviderClient):
    def __init__(self, *, api_url: str | None, client: httpx.Client | None = None, timeout: float = 30.0):
        super().__init__(client=client, timeout=timeout)
        self.api_url = api_url

    @classmethod
    def from_config(cls, config, *, client: httpx.Client | None = None) -> "ShelfAnalyzer":
        return cls(
            api_url=config.get("VISION_API_URL"),
            client=client,
            timeout=float(config.get("AI_REQUEST_TIMEOUT", 30.0)),
        )

    def analyze(self, image_bytes: bytes) -> dict:
        if not image_bytes:
            raise ExternalServiceError("No image data provided")
        if not self.api_url:
            raise ExternalServiceError("Vision provider is not configured")
        try:
            data = self._post_json(
                self.api_url,
                headers={"Content-Type": "application/octet-stream"},
                content=image_bytes,
            )
        except (httpx.HTTPError, ValueError) as exc:
            current_app.logger.exception("Vision provider failed")
            raise ExternalServiceError("Vision provider request failed") from exc

        detections = [d for d in (data.get("detections") or []) if isinstance(d, dict) and d.get("bbox")]
        analysis = analyze_detections(detections)
        return {
            "success": True,
            "analysis": analysis,
            "recommendations": shelf_recommendations(analysis),
            "detections": detections,
        }
