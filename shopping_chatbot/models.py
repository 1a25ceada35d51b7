"""
Pydantic models for the Shopping Chatbot.

Defines the catalog product record, search and conversion results, the
exchange-rate provider payload, tool arguments and the inbound/outbound
chat schemas.
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ToolName(str, Enum):
    """Names of the tools offered to the language model."""
    SEARCH_PRODUCTS = "search_products"
    CONVERT_CURRENCIES = "convert_currencies"


class Product(BaseModel):
    """
    Catalog product record.

    Field aliases match the column headers of the catalog file, so rows can
    be passed straight from ``csv.DictReader``.

    Attributes:
        display_title: Title shown to the customer
        embedding_text: Free-text description used for matching
        url: Product page URL
        image_url: Product image URL
        product_type: Catalog category, e.g. "Home > Laundry"
        price: Price in USD (must be >= 0)
        variants: Raw variants description
        discount: Discount value (empty cells mean 0)
        create_date: Creation date as found in the source
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    display_title: str = Field(..., alias="displayTitle", min_length=1, description="Product title")
    embedding_text: str = Field("", alias="embeddingText", description="Searchable description")
    url: str = Field("", description="Product URL")
    image_url: str = Field("", alias="imageUrl", description="Image URL")
    product_type: str = Field("", alias="productType", description="Product type")
    price: float = Field(..., ge=0, description="Product price in USD")
    variants: str = Field("", description="Variants")
    discount: float = Field(0.0, description="Discount")
    create_date: str = Field("", alias="createDate", description="Creation date")

    @field_validator('embedding_text', 'url', 'image_url', 'product_type', 'variants', 'create_date', mode='before')
    @classmethod
    def empty_cell_to_string(cls, v: Any) -> Any:
        """CSV readers hand back None for short rows."""
        return "" if v is None else v

    @field_validator('price', mode='before')
    @classmethod
    def parse_price(cls, v: Any) -> Any:
        """Accept price strings such as '$1,049.99'."""
        if isinstance(v, str):
            return v.replace("$", "").replace(",", "").strip()
        return v

    @field_validator('price')
    @classmethod
    def validate_price(cls, v: float) -> float:
        """Ensure price has at most 2 decimal places."""
        return round(v, 2)

    @field_validator('discount', mode='before')
    @classmethod
    def parse_discount(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0.0
        return v


class ScoredProduct(BaseModel):
    """
    A product paired with its relevance score for one search.
    """
    model_config = ConfigDict(frozen=True)

    product: Product
    score: int = Field(..., description="Additive relevance score")


class ExchangeRatesResponse(BaseModel):
    """
    Payload returned by the exchange-rate provider.
    """
    rates: Dict[str, float] = Field(..., description="Rates keyed by 3-letter code")
    base: str = Field(..., min_length=3, max_length=3, description="Base currency")
    timestamp: int = Field(..., description="Unix time of the rate snapshot")


class ConversionResult(BaseModel):
    """
    Result of a single currency conversion.

    Attributes:
        from_currency: Source currency code (uppercase)
        to_currency: Target currency code (uppercase)
        amount: Amount that was converted
        converted_amount: Amount in the target currency, 2 decimal places
        rate: Applied rate, 4 decimal places
    """
    from_currency: str = Field(..., pattern="^[A-Z]{3}$")
    to_currency: str = Field(..., pattern="^[A-Z]{3}$")
    amount: float = Field(..., ge=0)
    converted_amount: float = Field(..., ge=0)
    rate: float = Field(..., ge=0)


class SearchArguments(BaseModel):
    """Arguments of the search_products tool."""
    query: str = Field("", description="Search query for products")


class ConvertArguments(BaseModel):
    """
    Arguments of the convert_currencies tool, using the schema's camelCase
    property names as aliases.
    """
    model_config = ConfigDict(populate_by_name=True)

    amount: float = Field(..., ge=0, description="Amount to convert")
    from_currency: str = Field(..., alias="fromCurrency", min_length=3, max_length=3)
    to_currency: str = Field(..., alias="toCurrency", min_length=3, max_length=3)


class ToolInvocation(BaseModel):
    """
    Record of one tool call within a single chat turn.

    ``result`` is what gets serialized into the tool message for the second
    model call; failures are stored there as ``{"error": ...}``.
    """
    tool_name: str = Field(..., description="Tool requested by the model")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Decoded arguments")
    result: Any = Field(None, description="Tool output or inline error marker")

    @property
    def failed(self) -> bool:
        return isinstance(self.result, dict) and "error" in self.result


class ChatRequest(BaseModel):
    """
    Inbound chat request.
    """
    query: str = Field(..., min_length=1, description="User query for the chatbot")

    @field_validator('query')
    @classmethod
    def validate_query(cls, v: str) -> str:
        """Reject whitespace-only queries."""
        v = v.strip()
        if not v:
            raise ValueError('query must not be empty')
        return v


class ChatResponse(BaseModel):
    """
    Chatbot reply to a ChatRequest.
    """
    response: str = Field(..., description="Chatbot response to the user query")
    tool_name: Optional[str] = Field(None, description="Tool used to build the reply, if any")
