# Overview: Pytest coverage for the AI gateway; chat fallbacks, bill parsing and shelf analysis.

import json
from types import SimpleNamespace

import httpx
import pytest

from smartshop.errors import ExternalServiceError
from smartshop.services.ai_service import (
    BillReader,
    ChatAssistant,
    ShelfAnalyzer,
    analyze_detections,
    basic_insights,
    extract_suggestions,
    fallback_response,
    parse_bill_text,
    parse_insights,
    shelf_recommendations,
)


RECEIPT = """FRESH MART
Date: 12/06/2024
Milk Rs. 45.50
Bread ₹30
Tax Rs. 4.00
Total Rs. 79.50
"""


def mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestFallbacks:

    def test_healthy_keyword(self):
        result = fallback_response("Any healthy snacks?")
        assert result["success"] is True
        assert "Organic vegetables" in result["suggestions"]

    def test_budget_keyword(self):
        assert "Store brand items" in fallback_response("something cheap please")["suggestions"]

    def test_first_matching_rule_wins(self):
        # "healthy" is checked before "budget"
        assert "Organic vegetables" in fallback_response("healthy and budget")["suggestions"]

    def test_default_reply(self):
        result = fallback_response("hello")
        assert "Healthy snacks" in result["suggestions"]


class TestExtractSuggestions:

    def test_patterns_in_order(self):
        reply = "I recommend Greek yogurt. You could also try brown rice, or consider oats."
        assert extract_suggestions(reply) == ["Greek yogurt", "brown rice", "oats"]

    def test_long_matches_dropped(self):
        reply = "I recommend " + "a very long description of a product " * 3 + "."
        assert extract_suggestions(reply) == []

    def test_at_most_four_unique(self):
        reply = "Try apples. Try apples. Try pears. Try plums. Try figs. Try kiwis."
        assert extract_suggestions(reply) == ["apples", "pears", "plums", "figs"]

    def test_empty(self):
        assert extract_suggestions(None) == []
        assert extract_suggestions("Nothing to see here") == []


class TestChatAssistant:

    def test_unconfigured_uses_fallback(self, app):
        assistant = ChatAssistant(api_key=None)
        assert assistant.chat("recommend something")["suggestions"][0] == "Fresh vegetables"

    def test_provider_reply(self, app):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("You should try oat milk."))

        assistant = ChatAssistant(api_key="sk-test", base_url="https://llm.test/v1/", client=mock_client(handler))
        result = assistant.chat("dairy free milk?", {"cart_items": 2})

        assert result == {"success": True, "message": "You should try oat milk.", "suggestions": ["oat milk"]}
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["max_tokens"] == 200
        assert seen["body"]["messages"][0]["role"] == "system"
        assert '"cart_items": 2' in seen["body"]["messages"][0]["content"]

    def test_provider_error_falls_back(self, app):
        assistant = ChatAssistant(
            api_key="sk-test",
            client=mock_client(lambda request: httpx.Response(500, json={"error": "down"})),
        )
        result = assistant.chat("anything gluten free?")
        assert "Gluten-free bread" in result["suggestions"]

    def test_malformed_reply_falls_back(self, app):
        assistant = ChatAssistant(
            api_key="sk-test",
            client=mock_client(lambda request: httpx.Response(200, json={"choices": []})),
        )
        assert "Healthy snacks" in assistant.chat("hi")["suggestions"]

    def test_network_error_falls_back(self, app):
        def handler(request):
            raise httpx.ConnectError("no route", request=request)

        assistant = ChatAssistant(api_key="sk-test", client=mock_client(handler))
        assert assistant.chat("hi")["success"] is True

    def test_from_config(self, app):
        assistant = ChatAssistant.from_config({"OPENAI_API_KEY": "k", "OPENAI_MODEL": "m"})
        assert assistant.is_configured
        assert assistant.model == "m"


class TestInsights:

    def test_basic_tiers(self):
        assert "healthy choice" in basic_insights(SimpleNamespace(health_score=9))["insights"]
        assert "moderate" in basic_insights(SimpleNamespace(health_score=6))["insights"]
        assert "moderation" in basic_insights(SimpleNamespace(health_score=3))["insights"]
        assert basic_insights(SimpleNamespace(health_score=3))["source"] == "basic"

    def test_parse_provider_score(self):
        assert parse_insights("Health score: 7\nGood protein.")["health_score"] == 7
        assert parse_insights("Health Score 15")["health_score"] == 10
        assert parse_insights("No score here")["health_score"] == 5

    def test_provider_insights(self, app):
        product = SimpleNamespace(id=1, name="Oats", category="groceries", price_cents=25000,
                                  ingredients=["oats"], health_score=5)
        assistant = ChatAssistant(
            api_key="sk-test",
            client=mock_client(lambda request: httpx.Response(200, json=completion("1. Health score: 9"))),
        )
        insights = assistant.product_insights(product)
        assert insights["health_score"] == 9
        assert insights["source"] == "provider"


class TestBillParsing:

    def test_parse_receipt(self):
        bill = parse_bill_text(RECEIPT)
        assert bill["shop_name"] == "FRESH MART"
        assert bill["date"] == "12/06/2024"
        assert bill["items"] == [
            {"name": "Milk", "price_cents": 4550, "quantity": 1},
            {"name": "Bread", "price_cents": 3000, "quantity": 1},
        ]
        assert bill["total_cents"] == 7950
        assert bill["item_count"] == 2

    def test_empty_text(self):
        assert parse_bill_text("") == {"shop_name": "", "date": "", "items": [], "total_cents": 0, "item_count": 0}

    def test_reader_requires_image(self, app):
        with pytest.raises(ExternalServiceError):
            BillReader(api_url="https://ocr.test").read_bill(b"")

    def test_reader_requires_provider(self, app):
        with pytest.raises(ExternalServiceError):
            BillReader(api_url=None).read_bill(b"\x89PNG")

    def test_reader_success(self, app):
        def handler(request):
            assert request.content == b"\x89PNG"
            return httpx.Response(200, json={"text": RECEIPT, "confidence": 0.92})

        result = BillReader(api_url="https://ocr.test", client=mock_client(handler)).read_bill(b"\x89PNG")
        assert result["success"] is True
        assert result["confidence"] == 0.92
        assert result["data"]["total_cents"] == 7950

    def test_reader_provider_failure(self, app):
        reader = BillReader(api_url="https://ocr.test", client=mock_client(lambda r: httpx.Response(503)))
        with pytest.raises(ExternalServiceError):
            reader.read_bill(b"\x89PNG")


class TestShelfAnalysis:

    def test_empty_shelf(self):
        analysis = analyze_detections([])
        assert analysis["is_empty"] is True
        assert analysis["is_messy"] is False

        actions = [r["action"] for r in shelf_recommendations(analysis)]
        assert actions == ["restock", "fill_zones"]

    def test_zones_and_overlaps(self):
        detections = [
            {"label": "bottle", "bbox": [10, 10, 50, 50]},
            {"label": "bottle", "bbox": [40, 40, 50, 50]},
            {"label": "can", "bbox": [300, 200, 20, 20]},
        ]
        analysis = analyze_detections(detections)

        assert analysis["product_count"] == 3
        assert analysis["object_counts"] == {"bottle": 2, "can": 1}
        assert analysis["is_messy"] is True
        filled = [(z["row"], z["col"]) for z in analysis["zones"] if not z["is_empty"]]
        assert filled == [(0, 0), (1, 1)]

        recommendations = shelf_recommendations(analysis)
        assert [r["action"] for r in recommendations] == ["organize", "fill_zones"]
        assert len(recommendations[1]["zones"]) == 7

    def test_analyzer_filters_detections_without_boxes(self, app):
        payload = {"detections": [{"label": "can", "bbox": [0, 0, 10, 10]}, {"label": "ghost"}]}
        analyzer = ShelfAnalyzer(
            api_url="https://vision.test",
            client=mock_client(lambda request: httpx.Response(200, json=payload)),
        )
        result = analyzer.analyze(b"img")
        assert result["analysis"]["product_count"] == 1
        assert len(result["detections"]) == 1

    def test_analyzer_requires_provider(self, app):
        with pytest.raises(ExternalServiceError):
            ShelfAnalyzer(api_url=None).analyze(b"img")
