"""Keyword/title relevance scoring.

score = 100 if the whole keyword phrase appears in the title
      + 10 per keyword token (longer than 2 chars) found in the title
      + max(0, 20 - position of the first token in the title)

Case-insensitive, pure and deterministic. Ties are broken later by rating
and review count, not here.
"""

from __future__ import annotations

from app.models.contracts import Product

PHRASE_MATCH_POINTS = 100
TOKEN_MATCH_POINTS = 10
POSITION_BONUS_MAX = 20
MIN_TOKEN_LENGTH = 3


def relevance_score(title: str, keywords: str) -> int:
    title_lower = title.lower()
    phrase = keywords.lower().strip()
    if not phrase:
        return 0

    score = 0
    if phrase in title_lower:
        score += PHRASE_MATCH_POINTS

    tokens = phrase.split()
    for token in tokens:
        if len(token) >= MIN_TOKEN_LENGTH and token in title_lower:
            score += TOKEN_MATCH_POINTS

    position = title_lower.find(tokens[0])
    if position != -1:
        score += max(0, POSITION_BONUS_MAX - position)

    return score


def annotate_relevance(products: list[Product], keywords: str) -> list[Product]:
    """Copies of ``products`` with ``relevance_score`` filled in."""
    return [
        p.model_copy(update={"relevance_score": relevance_score(p.title, keywords)})
        for p in products
    ]
