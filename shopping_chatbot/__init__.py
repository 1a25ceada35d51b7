"""
Shopping Chatbot

A shopping assistant that answers product and price questions using
OpenAI Function Calling over two tools: catalog search and currency
conversion.
"""

from shopping_chatbot.models import (
    Product,
    ScoredProduct,
    ConversionResult,
    ToolInvocation,
    ToolName,
    ChatRequest,
    ChatResponse
)
from shopping_chatbot.errors import (
    ShoppingChatbotError,
    ConfigurationError,
    UpstreamError,
    ParseError
)
from shopping_chatbot.catalog import CatalogStore, get_catalog
from shopping_chatbot.scoring import search_products, rank_products
from shopping_chatbot.currency import CurrencyConverter
from shopping_chatbot.tools import TOOLS, CHAINING_RULES, ToolDispatcher
from shopping_chatbot.chatbot import ShoppingChatbot

__version__ = "1.0.0"
__all__ = [
    "Product",
    "ScoredProduct",
    "ConversionResult",
    "ToolInvocation",
    "ToolName",
    "ChatRequest",
    "ChatResponse",
    "ShoppingChatbotError",
    "ConfigurationError",
    "UpstreamError",
    "ParseError",
    "CatalogStore",
    "get_catalog",
    "search_products",
    "rank_products",
    "CurrencyConverter",
    "TOOLS",
    "CHAINING_RULES",
    "ToolDispatcher",
    "ShoppingChatbot",
]
