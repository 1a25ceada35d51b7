"""
Tool definitions and dispatch for the shopping chatbot.

Two tools are offered to the language model: product search and currency
conversion. A search can chain into conversions when the user's message
asks for a price in another currency; the chaining conditions live in
CHAINING_RULES rather than in the dispatch code.
"""

import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern

from dotenv import load_dotenv
from pydantic import ValidationError

from shopping_chatbot.catalog import CatalogStore
from shopping_chatbot.currency import BASE_CURRENCY, CurrencyConverter
from shopping_chatbot.errors import ShoppingChatbotError
from shopping_chatbot.models import (
    ConvertArguments, Product, SearchArguments, ToolInvocation, ToolName
)
from shopping_chatbot.scoring import DEFAULT_TOP_N, search_products

# Load environment variables
load_dotenv()

# Configuration
SEARCH_TOP_N = int(os.getenv("SEARCH_TOP_N", str(DEFAULT_TOP_N)))

CONVERSION_FAILED_MESSAGE = "Currency conversion failed. Please try again."

logger = logging.getLogger("shopping_chatbot.tools")


# =============================================================================
# Function Calling Tool Definitions
# =============================================================================

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": ToolName.SEARCH_PRODUCTS.value,
            "description": "Search for products based on user query",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The search query for products (e.g., \"present\", \"phone\", \"watch\")"
                    }
                },
                "required": ["query"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": ToolName.CONVERT_CURRENCIES.value,
            "description": "Convert amount from one currency to another",
            "parameters": {
                "type": "object",
                "properties": {
                    "amount": {
                        "type": "number",
                        "description": "The amount to convert"
                    },
                    "fromCurrency": {
                        "type": "string",
                        "description": "The source currency code (e.g., USD, EUR)"
                    },
                    "toCurrency": {
                        "type": "string",
                        "description": "The target currency code (e.g., USD, EUR)"
                    }
                },
                "required": ["amount", "fromCurrency", "toCurrency"]
            }
        }
    }
]


# =============================================================================
# Chaining Rules
# =============================================================================

PRICE_KEYWORDS = "price|pricing|cost|costs|expensive|fee|fees|charge|charges"

# Keywords match case-insensitively and may carry a suffix ("prices", "priced");
# the currency code must be uppercase
PRICE_IN_CURRENCY_PATTERN = re.compile(
    rf"(?i:\b(?:{PRICE_KEYWORDS})\w*).*\b(?i:in)\s+([A-Z]{{3}})\b"
)


@dataclass(frozen=True)
class ChainingRule:
    """
    After ``source_tool`` runs, invoke ``chained_tool`` when ``trigger``
    matches the user's message. The first capture group of the trigger is
    handed to the chained step.
    """
    source_tool: ToolName
    trigger: Pattern[str]
    chained_tool: ToolName

    def match(self, tool_name: str, user_query: str) -> Optional[str]:
        if tool_name != self.source_tool.value:
            return None
        found = self.trigger.search(user_query or "")
        return found.group(1) if found else None


CHAINING_RULES: List[ChainingRule] = [
    ChainingRule(
        source_tool=ToolName.SEARCH_PRODUCTS,
        trigger=PRICE_IN_CURRENCY_PATTERN,
        chained_tool=ToolName.CONVERT_CURRENCIES,
    ),
]


# =============================================================================
# Tool Dispatcher
# =============================================================================

class ToolDispatcher:
    """
    Executes tool calls requested by the language model.

    Tool failures never escape as exceptions from the conversion paths; they
    are returned as ``{"error": ...}`` inside the tool result so the model
    can still answer the user.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        converter: Optional[CurrencyConverter] = None,
        top_n: Optional[int] = None,
        chaining_rules: Optional[List[ChainingRule]] = None,
        max_workers: Optional[int] = None
    ):
        """
        Initialize the dispatcher.

        Args:
            catalog: Loaded product catalog
            converter: Currency converter used by both tools
            top_n: Maximum number of search results
            chaining_rules: Rules for follow-up tool calls
            max_workers: Thread pool size for chained conversions
        """
        self.catalog = catalog
        self.converter = converter or CurrencyConverter()
        self.top_n = top_n if top_n is not None else SEARCH_TOP_N
        self.chaining_rules = CHAINING_RULES if chaining_rules is None else chaining_rules
        self.max_workers = max_workers

        self._chain_handlers = {
            ToolName.CONVERT_CURRENCIES: self._attach_converted_prices,
        }

    def dispatch(self, tool_name: str, arguments: Dict[str, Any], user_query: str = "") -> ToolInvocation:
        """
        Execute one tool call.

        Args:
            tool_name: Name of the tool to execute
            arguments: Decoded tool arguments
            user_query: Original user message, checked by chaining rules

        Returns:
            ToolInvocation holding the JSON-serializable result
        """
        logger.info("Function called: %s with args: %s", tool_name, arguments)

        if tool_name == ToolName.SEARCH_PRODUCTS.value:
            result = self._search_products(arguments)
        elif tool_name == ToolName.CONVERT_CURRENCIES.value:
            result = self._convert_currencies(arguments)
        else:
            logger.warning("Model requested unknown tool %s", tool_name)
            result = {"error": f"Unknown tool: {tool_name}"}

        for rule in self.chaining_rules:
            captured = rule.match(tool_name, user_query)
            if captured:
                logger.info("Chaining %s -> %s (%s)", tool_name, rule.chained_tool.value, captured)
                result = self._chain_handlers[rule.chained_tool](result, captured)

        return ToolInvocation(tool_name=tool_name, arguments=arguments, result=result)

    def _search_products(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Run the relevance search and format results for the model."""
        query = SearchArguments(**arguments).query
        products = search_products(query, self.catalog.all(), top_n=self.top_n)

        formatted_results = [format_product(product) for product in products]

        return {
            "query": query,
            "results_count": len(formatted_results),
            "products": formatted_results
        }

    def _convert_currencies(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        try:
            args = ConvertArguments(**arguments)
            return self.converter.convert(
                args.amount, args.from_currency, args.to_currency
            ).model_dump()
        except (ShoppingChatbotError, ValidationError, ValueError, TypeError) as e:
            logger.error("Currency conversion failed: %s", e)
            return {"error": CONVERSION_FAILED_MESSAGE}

    def _attach_converted_prices(self, result: Dict[str, Any], target_currency: str) -> Dict[str, Any]:
        """
        Add ``converted_price`` to every product in a search result.

        Conversions run concurrently; each product's conversion succeeds or
        fails on its own.
        """
        products = result.get("products") or []
        if not products:
            return result

        target = target_currency.upper()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            converted = list(executor.map(
                lambda product: self._convert_price(product["price"], target),
                products
            ))

        return {
            **result,
            "target_currency": target,
            "products": [
                {**product, "converted_price": price}
                for product, price in zip(products, converted)
            ]
        }

    def _convert_price(self, price: float, target_currency: str) -> Dict[str, Any]:
        # Catalog prices are assumed to be in the base currency
        try:
            return self.converter.convert(price, BASE_CURRENCY, target_currency).model_dump()
        except (ShoppingChatbotError, ValueError) as e:
            logger.error("Currency conversion failed for price %s: %s", price, e)
            return {"error": CONVERSION_FAILED_MESSAGE}


def format_product(product: Product) -> Dict[str, Any]:
    """Shape a product for the tool message sent back to the model."""
    return {
        "title": product.display_title,
        "price": product.price,
        "url": product.url,
        "image_url": product.image_url,
        "product_type": product.product_type,
        "variants": product.variants,
    }
