"""
Shopping Chatbot - Main Application

Answers shopping questions in two model calls:
1. Tool decision: the model sees the query and the tool schemas and either
   answers directly or requests product search / currency conversion.
2. Composition: the tool result is handed back and the model writes the
   final reply.

Each turn is a small state machine; any failure inside a turn ends in a
fixed apology instead of an exception.
"""

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
import openai

from shopping_chatbot.catalog import CatalogStore, get_catalog
from shopping_chatbot.errors import ConfigurationError, ParseError, UpstreamError
from shopping_chatbot.models import ChatRequest, ChatResponse, ToolInvocation
from shopping_chatbot.tools import TOOLS, ToolDispatcher

# Load environment variables
load_dotenv()

# Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")

EMPTY_RESPONSE_APOLOGY = (
    "I apologize, but I couldn't process your request. "
    "Please try rephrasing your question."
)
ERROR_APOLOGY = (
    "I apologize, but I encountered an error while processing your request. "
    "Please try again later."
)

logger = logging.getLogger("shopping_chatbot.chatbot")


# =============================================================================
# System Prompts
# =============================================================================

TOOL_DECISION_PROMPT = """You are a helpful shopping assistant. Use the available functions to help users find products or convert currencies.

IMPORTANT RULES:
- If the user asks for product prices in a different currency (like "price in euros", "cost in CAD", etc.), you MUST:
  1. First use search_products to find the product
  2. Then use convert_currencies to convert the price to the requested currency
- If the user asks for product recommendations, use the search_products function.
- If the user asks for currency conversion, use the convert_currencies function.
- Always use the available functions to provide accurate and complete information.
- When you see queries like "price of X in Y currency", this requires BOTH functions.
"""

COMPOSITION_PROMPT = """You are a helpful shopping assistant. Provide a friendly and informative response based on the function results.

IMPORTANT INSTRUCTIONS:
- If multiple products are found, you MUST show ALL of them to the user
- Include details for each product: title, original price, converted price (if applicable), and URL
- Format the response clearly with each product as a separate item
- Use bullet points or numbered lists when showing multiple products
- Always be thorough and show complete information when asking about a product; otherwise, only perform currency conversions.
"""


# =============================================================================
# Turn State Machine
# =============================================================================

class TurnState(str, Enum):
    """States of a single chat turn."""
    IDLE = "idle"
    AWAITING_TOOL_DECISION = "awaiting_tool_decision"
    NO_TOOL = "no_tool"
    TOOL_SELECTED = "tool_selected"
    AWAITING_FINAL_COMPOSITION = "awaiting_final_composition"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TurnState.DONE, TurnState.FAILED})


@dataclass
class Turn:
    """Everything one chat turn accumulates on its way to an answer."""
    user_query: str
    state: TurnState = TurnState.IDLE
    assistant_message: Any = None
    tool_call: Any = None
    invocation: Optional[ToolInvocation] = None
    answer: Optional[str] = None


# =============================================================================
# Shopping Chatbot
# =============================================================================

class ShoppingChatbot:
    """
    Shopping assistant backed by OpenAI function calling.

    Turns are independent: no conversation history is kept between calls,
    so one instance can serve concurrent requests.
    """

    # Non-terminal state -> handler returning the next state
    TRANSITIONS = {
        TurnState.IDLE: "_start",
        TurnState.AWAITING_TOOL_DECISION: "_request_tool_decision",
        TurnState.NO_TOOL: "_answer_directly",
        TurnState.TOOL_SELECTED: "_run_tool",
        TurnState.AWAITING_FINAL_COMPOSITION: "_compose_final_answer",
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        chat_model: Optional[str] = None,
        catalog: Optional[CatalogStore] = None,
        dispatcher: Optional[ToolDispatcher] = None
    ):
        """
        Initialize the chatbot with API configuration.

        Args:
            api_key: OpenAI API key
            base_url: API base URL
            chat_model: Model to use for chat completion
            catalog: Product catalog; loaded from PRODUCTS_PATH if omitted
            dispatcher: Tool dispatcher; built around the catalog if omitted
        """
        self.api_key = api_key or OPENAI_API_KEY
        self.base_url = base_url or OPENAI_BASE_URL
        self.chat_model = chat_model or CHAT_MODEL

        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable is required")

        # Initialize OpenAI client
        self.client = openai.OpenAI(
            api_key=self.api_key,
            base_url=self.base_url
        )

        if dispatcher is None:
            dispatcher = ToolDispatcher(catalog if catalog is not None else get_catalog())
        self.dispatcher = dispatcher
        self.catalog = dispatcher.catalog

        if self.catalog.load_error:
            logger.warning("Catalog unavailable, searches will return nothing: %s", self.catalog.load_error)

    def chat(self, user_message: str) -> str:
        """
        Process a user message and return the assistant's response.

        Args:
            user_message: The user's input message

        Returns:
            The assistant's response, or an apology if anything failed
        """
        return self.run_turn(user_message).answer

    def respond(self, request: ChatRequest) -> ChatResponse:
        """Handle a validated inbound request."""
        turn = self.run_turn(request.query)
        return ChatResponse(
            response=turn.answer,
            tool_name=turn.invocation.tool_name if turn.invocation else None
        )

    def run_turn(self, user_message: str) -> Turn:
        """
        Drive one turn through the state machine.

        Args:
            user_message: The user's input message

        Returns:
            The finished turn; ``answer`` is always set
        """
        logger.info("Processing user query: %r", user_message)
        turn = Turn(user_query=user_message)

        try:
            while turn.state not in TERMINAL_STATES:
                handler = getattr(self, self.TRANSITIONS[turn.state])
                next_state = handler(turn)
                logger.debug("Turn state %s -> %s", turn.state.value, next_state.value)
                turn.state = next_state
        except Exception:
            logger.exception("Error processing query in state %s", turn.state.value)
            turn.state = TurnState.FAILED
            turn.answer = ERROR_APOLOGY

        return turn

    # -------------------------------------------------------------------------
    # State handlers
    # -------------------------------------------------------------------------

    def _start(self, turn: Turn) -> TurnState:
        return TurnState.AWAITING_TOOL_DECISION

    def _request_tool_decision(self, turn: Turn) -> TurnState:
        """Phase 1: let the model pick a tool or answer directly."""
        message = self._complete(
            messages=[
                {"role": "system", "content": TOOL_DECISION_PROMPT},
                {"role": "user", "content": turn.user_query}
            ],
            tools=TOOLS,
            tool_choice="auto"
        )
        turn.assistant_message = message

        if message.tool_calls:
            if len(message.tool_calls) > 1:
                logger.warning("Model requested %d tools; using the first", len(message.tool_calls))
            turn.tool_call = message.tool_calls[0]
            return TurnState.TOOL_SELECTED
        return TurnState.NO_TOOL

    def _answer_directly(self, turn: Turn) -> TurnState:
        turn.answer = turn.assistant_message.content or EMPTY_RESPONSE_APOLOGY
        return TurnState.DONE

    def _run_tool(self, turn: Turn) -> TurnState:
        tool_name = turn.tool_call.function.name
        arguments = parse_tool_arguments(turn.tool_call.function.arguments)

        turn.invocation = self.dispatcher.dispatch(tool_name, arguments, user_query=turn.user_query)
        return TurnState.AWAITING_FINAL_COMPOSITION

    def _compose_final_answer(self, turn: Turn) -> TurnState:
        """Phase 2: hand the tool output back and get the final reply."""
        tool_call = turn.tool_call
        message = self._complete(
            messages=[
                {"role": "system", "content": COMPOSITION_PROMPT},
                {"role": "user", "content": turn.user_query},
                {
                    "role": "assistant",
                    "content": turn.assistant_message.content,
                    "tool_calls": [
                        {
                            "id": tool_call.id,
                            "type": "function",
                            "function": {
                                "name": tool_call.function.name,
                                "arguments": tool_call.function.arguments
                            }
                        }
                    ]
                },
                {
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": json.dumps(turn.invocation.result)
                }
            ]
        )

        turn.answer = message.content or EMPTY_RESPONSE_APOLOGY
        logger.info("Generated final response for user query")
        return TurnState.DONE

    def _complete(self, messages: List[Dict[str, Any]], **kwargs: Any) -> Any:
        """Call the chat completions API and return the first message."""
        try:
            response = self.client.chat.completions.create(
                model=self.chat_model,
                messages=messages,
                **kwargs
            )
        except openai.OpenAIError as e:
            raise UpstreamError(f"Language model request failed: {e}") from e

        if not response.choices:
            raise UpstreamError("Language model returned no choices")
        return response.choices[0].message


def parse_tool_arguments(raw_arguments: Optional[str]) -> Dict[str, Any]:
    """
    Decode the JSON argument string of a tool call.

    Raises:
        ParseError: If the string is not a JSON object
    """
    try:
        arguments = json.loads(raw_arguments or "{}")
    except (TypeError, json.JSONDecodeError) as e:
        raise ParseError(f"Malformed tool arguments: {raw_arguments!r}") from e

    if not isinstance(arguments, dict):
        raise ParseError(f"Tool arguments must be a JSON object: {raw_arguments!r}")
    return arguments


# =============================================================================
# CLI Interface
# =============================================================================

def run_cli():
    """Run the chatbot in command-line interface mode."""
    from shopping_chatbot.logging_config import setup_logging

    setup_logging()

    print("=" * 60)
    print("Welcome to the Shopping Assistant!")
    print("=" * 60)
    print("\nI can help you find products and convert prices between currencies.")
    print("Type 'quit' or 'exit' to end the conversation.")
    print("Type 'catalog' to see catalog status.")
    print("-" * 60)

    try:
        chatbot = ShoppingChatbot()
    except ConfigurationError as e:
        print(f"\nError initializing chatbot: {e}")
        print("Make sure you have set up your environment variables correctly.")
        print("See .env.example for required configuration.")
        return

    while True:
        try:
            user_input = input("\nYou: ").strip()

            if not user_input:
                continue

            if user_input.lower() in ['quit', 'exit']:
                print("\nThank you for shopping with us! Goodbye!")
                break

            if user_input.lower() == 'catalog':
                catalog = chatbot.catalog
                print(f"\nCatalog: {catalog.source}")
                print(f"  Products: {len(catalog)}")
                if catalog.load_error:
                    print(f"  Load error: {catalog.load_error}")
                continue

            print("\nAssistant: ", end="")
            print(chatbot.chat(user_input))

        except (KeyboardInterrupt, EOFError):
            print("\n\nThank you for shopping with us! Goodbye!")
            break


if __name__ == "__main__":
    run_cli()
