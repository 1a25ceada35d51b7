"""
Relevance scoring for catalog search.

Scoring is an ordered list of weighted rules applied to every product. Each
rule counts how many times it matches a (query, product) pair and adds
``weight * hits`` to the product's score. The catalog is small and static,
so every search scans it in full.
"""

import logging
import re
import string
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Sequence, Tuple

from shopping_chatbot.models import Product, ScoredProduct

logger = logging.getLogger("shopping_chatbot.scoring")

DEFAULT_TOP_N = 2

# Query words that reveal who the product is for
MALE_KEYWORDS: FrozenSet[str] = frozenset(
    ['dad', 'father', 'padre', 'men', 'man', 'boy', 'boys', 'male', 'him', 'his']
)
FEMALE_KEYWORDS: FrozenSet[str] = frozenset(
    ['mom', 'mother', 'madre', 'women', 'woman', 'girl', 'girls', 'female', 'her']
)
GENDER_KEYWORDS = MALE_KEYWORDS | FEMALE_KEYWORDS

# Product-side markers, matched as whole words (optionally "s" or "'s") so
# "womens" never reads as "mens"
MALE_MARKERS = re.compile(r"\b(?:men|man|boy|boys|male)(?:'?s)?\b")
FEMALE_MARKERS = re.compile(r"\b(?:women|woman|girl|girls|female)(?:'?s)?\b")

GIFT_TERMS: Tuple[str, ...] = ('present', 'gift', 'regalo')
GIFT_PRODUCT_TYPE = 'home'
PRACTICAL_GIFT_KEYWORDS: Tuple[str, ...] = ('safely', 'detergent')

GENDER_MISMATCH_PENALTY = -100
GENDER_MATCH_BONUS = 15


@dataclass(frozen=True)
class QueryContext:
    """Lower-cased query plus the intents detected in it."""
    text: str
    words: Tuple[str, ...]
    male_intent: bool
    female_intent: bool
    gift_intent: bool

    @classmethod
    def from_query(cls, query: str) -> "QueryContext":
        text = (query or "").lower().strip()
        words = tuple(
            w for w in (raw.strip(string.punctuation) for raw in text.split()) if w
        )
        tokens = set(re.findall(r"[a-z]+", text))
        return cls(
            text=text,
            words=words,
            male_intent=bool(tokens & MALE_KEYWORDS),
            female_intent=bool(tokens & FEMALE_KEYWORDS),
            gift_intent=any(term in text for term in GIFT_TERMS),
        )

    @property
    def content_words(self) -> Tuple[str, ...]:
        """Words that take part in per-word matching."""
        return tuple(w for w in self.words if len(w) > 2 and w not in GENDER_KEYWORDS)


@dataclass(frozen=True)
class ProductText:
    """Lower-cased searchable fields of one product."""
    title: str
    description: str
    product_type: str

    @classmethod
    def from_product(cls, product: Product) -> "ProductText":
        return cls(
            title=product.display_title.lower(),
            description=product.embedding_text.lower(),
            product_type=product.product_type.lower(),
        )


@dataclass(frozen=True)
class ScoringRule:
    """
    One weighted scoring rule.

    ``matches`` returns the number of hits (a bool counts as 0 or 1).
    """
    name: str
    weight: int
    matches: Callable[[QueryContext, ProductText], int]

    def apply(self, query: QueryContext, product: ProductText) -> int:
        return self.weight * int(self.matches(query, product))


def _mentions_female(p: ProductText) -> bool:
    return bool(FEMALE_MARKERS.search(p.title) or FEMALE_MARKERS.search(p.description))


def _mentions_male(p: ProductText) -> bool:
    return bool(MALE_MARKERS.search(p.title) or MALE_MARKERS.search(p.description))


# Gender rules come first: the penalty is large enough that nothing after it
# can lift a mismatched product above zero.
SCORING_RULES: List[ScoringRule] = [
    ScoringRule(
        "male_intent_excludes_female", GENDER_MISMATCH_PENALTY,
        lambda q, p: q.male_intent and _mentions_female(p),
    ),
    ScoringRule(
        "male_intent_boost", GENDER_MATCH_BONUS,
        lambda q, p: q.male_intent and bool(MALE_MARKERS.search(p.title)),
    ),
    ScoringRule(
        "female_intent_excludes_male", GENDER_MISMATCH_PENALTY,
        lambda q, p: q.female_intent and _mentions_male(p),
    ),
    ScoringRule(
        "female_intent_boost", GENDER_MATCH_BONUS,
        lambda q, p: q.female_intent and bool(FEMALE_MARKERS.search(p.title)),
    ),
    ScoringRule(
        "query_in_title", 10,
        lambda q, p: bool(q.text) and q.text in p.title,
    ),
    ScoringRule(
        "query_in_description", 5,
        lambda q, p: bool(q.text) and q.text in p.description,
    ),
    ScoringRule(
        "query_in_product_type", 3,
        lambda q, p: bool(q.text) and q.text in p.product_type,
    ),
    ScoringRule(
        "word_in_title", 2,
        lambda q, p: sum(1 for w in q.content_words if w in p.title),
    ),
    ScoringRule(
        "word_in_description", 1,
        lambda q, p: sum(1 for w in q.content_words if w in p.description),
    ),
    ScoringRule(
        "gift_home_product", 5,
        lambda q, p: q.gift_intent and GIFT_PRODUCT_TYPE in p.product_type,
    ),
    ScoringRule(
        "gift_practical_product", 3,
        lambda q, p: q.gift_intent and any(k in p.title for k in PRACTICAL_GIFT_KEYWORDS),
    ),
]


def score_product(
    query: QueryContext,
    product: Product,
    rules: Sequence[ScoringRule] = SCORING_RULES
) -> int:
    """
    Score a single product against a query.

    Args:
        query: Parsed query
        product: Catalog product
        rules: Rules to apply, in order

    Returns:
        Total additive score
    """
    text = ProductText.from_product(product)
    return sum(rule.apply(query, text) for rule in rules)


def rank_products(
    query: str,
    products: Sequence[Product],
    top_n: int = DEFAULT_TOP_N,
    rules: Sequence[ScoringRule] = SCORING_RULES
) -> List[ScoredProduct]:
    """
    Score every product and keep the best positive ones.

    Args:
        query: Free-text user query
        products: Catalog products in catalog order
        top_n: Maximum number of results
        rules: Scoring rules to apply

    Returns:
        Scored products, highest score first; ties keep catalog order
    """
    context = QueryContext.from_query(query)
    scored = [
        ScoredProduct(product=product, score=score_product(context, product, rules))
        for product in products
    ]

    # sorted() is stable, so equal scores stay in catalog order
    ranked = sorted(
        (item for item in scored if item.score > 0),
        key=lambda item: item.score,
        reverse=True
    )[:max(top_n, 0)]

    logger.info("Found %d products for query: %r", len(ranked), query)
    for item in ranked:
        logger.debug("Product: %s, Score: %d", item.product.display_title, item.score)

    return ranked


def search_products(
    query: str,
    products: Sequence[Product],
    top_n: int = DEFAULT_TOP_N
) -> List[Product]:
    """
    Return the most relevant products for a query.

    An unmatched or empty query returns an empty list.
    """
    return [item.product for item in rank_products(query, products, top_n=top_n)]
