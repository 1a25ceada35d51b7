"""
Test Scenarios for Tool Dispatch

Covers the two tool schemas, dispatch to search and conversion, the
price-in-currency chaining rule and inline error markers.
"""

import os
import sys
import pytest
from unittest.mock import Mock

import requests

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from shopping_chatbot.catalog import CatalogStore
from shopping_chatbot.currency import CurrencyConverter
from shopping_chatbot.models import Product, ToolName
from shopping_chatbot.tools import (
    CHAINING_RULES, CONVERSION_FAILED_MESSAGE, PRICE_IN_CURRENCY_PATTERN,
    TOOLS, ToolDispatcher
)


RATES_PAYLOAD = {
    "base": "USD",
    "timestamp": 1700000000,
    "rates": {"EUR": 0.92, "CAD": 1.35}
}


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def session():
    response = Mock()
    response.json.return_value = RATES_PAYLOAD
    response.raise_for_status.return_value = None

    session = Mock()
    session.get.return_value = response
    return session


@pytest.fixture
def catalog():
    return CatalogStore([
        Product(
            display_title="Classic Leather Watch",
            embedding_text="Analog wrist watch with leather strap",
            url="https://shop.example.com/products/classic-leather-watch",
            image_url="https://cdn.example.com/img/classic-leather-watch.jpg",
            product_type="Accessories > Watches",
            price=49.99,
            variants="Brown;Black"
        ),
        Product(
            display_title="Sport Digital Watch",
            embedding_text="Digital watch with stopwatch and alarm",
            url="https://shop.example.com/products/sport-digital-watch",
            product_type="Accessories > Watches",
            price=25.00
        ),
        Product(
            display_title="Smartphone X200",
            embedding_text="Smartphone with dual camera",
            url="https://shop.example.com/products/smartphone-x200",
            product_type="Electronics > Phones",
            price=499.00
        ),
    ], source="memory")


@pytest.fixture
def dispatcher(catalog, session):
    converter = CurrencyConverter(api_key="test-app-id", session=session)
    return ToolDispatcher(catalog, converter=converter, top_n=2)


# =============================================================================
# Tool Schemas
# =============================================================================

class TestToolSchemas:
    """The schemas sent to the model on every first call."""

    def test_two_tools_offered(self):
        names = [tool["function"]["name"] for tool in TOOLS]

        assert names == ["search_products", "convert_currencies"]

    def test_search_schema(self):
        params = TOOLS[0]["function"]["parameters"]

        assert list(params["properties"]) == ["query"]
        assert params["required"] == ["query"]

    def test_convert_schema(self):
        params = TOOLS[1]["function"]["parameters"]

        assert params["properties"]["amount"]["type"] == "number"
        assert params["required"] == ["amount", "fromCurrency", "toCurrency"]


# =============================================================================
# Chaining Rule
# =============================================================================

class TestPriceInCurrencyPattern:
    """Detection of 'price ... in CCY' in the user's message."""

    @pytest.mark.parametrize("query,expected", [
        ("what is the price of the watch in EUR", "EUR"),
        ("How much does it cost in CAD?", "CAD"),
        ("Price of the phone in GBP", "GBP"),
        ("what are the shipping fees in JPY", "JPY"),
        ("is the watch expensive in EUR terms", "EUR"),
        ("Show me watch prices in EUR", "EUR"),
        ("what is the pricing in EUR", "EUR"),
        ("how is it priced in CAD", "CAD"),
        ("What does it COST in GBP", "GBP"),
    ])
    def test_detects_target_currency(self, query, expected):
        match = PRICE_IN_CURRENCY_PATTERN.search(query)

        assert match is not None
        assert match.group(1) == expected

    @pytest.mark.parametrize("query", [
        "what is the price of the watch in the box",
        "show me watches in EUR",
        "price in eur",
        "what is the price of the watch",
    ])
    def test_ignores_other_queries(self, query):
        assert PRICE_IN_CURRENCY_PATTERN.search(query) is None

    def test_rule_only_follows_search(self):
        rule = CHAINING_RULES[0]

        assert rule.match("search_products", "price of the watch in EUR") == "EUR"
        assert rule.match("convert_currencies", "price of the watch in EUR") is None
        assert rule.chained_tool == ToolName.CONVERT_CURRENCIES


# =============================================================================
# Search Dispatch
# =============================================================================

class TestSearchDispatch:
    """search_products with and without chained conversion."""

    def test_search_result_format(self, dispatcher, session):
        invocation = dispatcher.dispatch("search_products", {"query": "leather watch"}, "show me a leather watch")
        result = invocation.result

        assert invocation.tool_name == "search_products"
        assert result["query"] == "leather watch"
        assert result["results_count"] == len(result["products"])
        assert result["products"][0] == {
            "title": "Classic Leather Watch",
            "price": 49.99,
            "url": "https://shop.example.com/products/classic-leather-watch",
            "image_url": "https://cdn.example.com/img/classic-leather-watch.jpg",
            "product_type": "Accessories > Watches",
            "variants": "Brown;Black",
        }
        session.get.assert_not_called()

    def test_search_respects_top_n(self, dispatcher):
        result = dispatcher.dispatch("search_products", {"query": "watch"}).result

        assert result["results_count"] == 2

    def test_price_in_currency_attaches_converted_price(self, dispatcher):
        invocation = dispatcher.dispatch(
            "search_products",
            {"query": "leather watch"},
            user_query="what is the price of the leather watch in EUR"
        )
        product = invocation.result["products"][0]

        assert invocation.result["target_currency"] == "EUR"
        assert product["title"] == "Classic Leather Watch"
        assert product["price"] == 49.99
        assert product["converted_price"]["converted_amount"] == 45.99
        assert product["converted_price"]["to_currency"] == "EUR"
        assert product["converted_price"]["from_currency"] == "USD"

    def test_every_product_converted(self, dispatcher, session):
        result = dispatcher.dispatch(
            "search_products", {"query": "watch"}, user_query="price of watches in CAD"
        ).result

        assert len(result["products"]) == 2
        assert all("converted_price" in p for p in result["products"])
        assert session.get.call_count == 2
        assert result["products"][1]["converted_price"]["converted_amount"] == 33.75

    def test_conversion_failure_becomes_inline_error(self, dispatcher, session):
        session.get.side_effect = requests.ConnectionError("rate provider down")

        invocation = dispatcher.dispatch(
            "search_products", {"query": "watch"}, user_query="price of the watch in EUR"
        )

        for product in invocation.result["products"]:
            assert product["converted_price"] == {"error": CONVERSION_FAILED_MESSAGE}
            assert product["title"]

    def test_no_results_skips_conversion(self, dispatcher, session):
        result = dispatcher.dispatch(
            "search_products", {"query": "zzzz"}, user_query="price of zzzz in EUR"
        ).result

        assert result["results_count"] == 0
        assert result["products"] == []
        session.get.assert_not_called()

    def test_empty_catalog(self, session):
        converter = CurrencyConverter(api_key="test-app-id", session=session)
        dispatcher = ToolDispatcher(CatalogStore(load_error="missing file"), converter=converter)

        result = dispatcher.dispatch("search_products", {"query": "watch"}).result

        assert result["products"] == []


# =============================================================================
# Conversion Dispatch
# =============================================================================

class TestConvertDispatch:
    """convert_currencies and its inline error marker."""

    def test_convert(self, dispatcher):
        invocation = dispatcher.dispatch(
            "convert_currencies",
            {"amount": 100, "fromCurrency": "EUR", "toCurrency": "CAD"},
            "convert 100 EUR to CAD"
        )

        assert not invocation.failed
        assert invocation.result["converted_amount"] == 146.74
        assert invocation.result["rate"] == 1.4674

    def test_missing_credential_is_inline_error(self, catalog, session):
        converter = CurrencyConverter(api_key="test-app-id", session=session)
        converter.api_key = None
        dispatcher = ToolDispatcher(catalog, converter=converter)

        invocation = dispatcher.dispatch(
            "convert_currencies", {"amount": 10, "fromCurrency": "USD", "toCurrency": "EUR"}
        )

        assert invocation.failed
        assert invocation.result == {"error": CONVERSION_FAILED_MESSAGE}

    @pytest.mark.parametrize("arguments", [
        {"amount": "lots", "fromCurrency": "USD", "toCurrency": "EUR"},
        {"amount": 10, "fromCurrency": "USD"},
        {"amount": -1, "fromCurrency": "USD", "toCurrency": "EUR"},
        {"amount": 10, "fromCurrency": "DOLLARS", "toCurrency": "EUR"},
    ])
    def test_invalid_arguments_are_inline_errors(self, dispatcher, arguments):
        invocation = dispatcher.dispatch("convert_currencies", arguments)

        assert invocation.result == {"error": CONVERSION_FAILED_MESSAGE}

    def test_amount_too_large_to_round_is_inline_error(self, dispatcher):
        invocation = dispatcher.dispatch(
            "convert_currencies", {"amount": 1e308, "fromCurrency": "EUR", "toCurrency": "CAD"}
        )

        assert invocation.failed
        assert invocation.result == {"error": CONVERSION_FAILED_MESSAGE}

    def test_unknown_tool(self, dispatcher):
        invocation = dispatcher.dispatch("order_pizza", {"size": "large"})

        assert invocation.result == {"error": "Unknown tool: order_pizza"}
