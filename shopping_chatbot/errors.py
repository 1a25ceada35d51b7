"""
Error taxonomy for the shopping chatbot.

Tool-level failures are folded into inline error markers by the dispatcher;
turn-level failures are replaced with an apology by the chatbot. Nothing
defined here is meant to reach the end user directly.
"""


class ShoppingChatbotError(Exception):
    """Base class for all chatbot errors."""


class ConfigurationError(ShoppingChatbotError):
    """A required credential or setting is missing."""


class UpstreamError(ShoppingChatbotError):
    """The language model or the rate provider failed or returned junk."""


class ParseError(ShoppingChatbotError):
    """Tool-call arguments could not be decoded as JSON."""
