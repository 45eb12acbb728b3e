"""Rule-cascade relevance classifier for topic mentions."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RelevanceRules(BaseModel):
    """Immutable rule set for one tracked topic."""

    model_config = ConfigDict(frozen=True)

    canonical_handle: str = ""
    proper_noun: str = Field(min_length=1)
    denylist: tuple[str, ...] = ()
    direct_phrases: tuple[str, ...] = ()
    context_terms: tuple[str, ...] = ()


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    include: bool
    reason: str


def _normalise_handle(handle: str) -> str:
    return handle.strip().lstrip("@").lower()


def _contains_any(text_lower: str, terms: tuple[str, ...]) -> str | None:
    """Return the first term found in *text_lower* (case-insensitive), if any."""
    for term in terms:
        if term and term.lower() in text_lower:
            return term
    return None


def classify(text: str, author_handle: str, rules: RelevanceRules) -> Verdict:
    """Decide whether a mention is on-topic.

    Rules are applied in order and the first match wins:

    1. canonical account → include (even if a denylisted term appears)
    2. denylisted term → exclude
    3. direct-mention phrase → include
    4. proper noun with exact capitalisation → include
    5. topic name in any other casing → include only alongside a context term
       (wider than lowercase-only on purpose, so "REDSTONE" and "Redstone"
       fall under the context check too)
    6. anything else → exclude
    """
    if rules.canonical_handle and _normalise_handle(author_handle) == _normalise_handle(
        rules.canonical_handle
    ):
        return Verdict(include=True, reason="canonical")

    text_lower = text.lower()

    hit = _contains_any(text_lower, rules.denylist)
    if hit is not None:
        return Verdict(include=False, reason=f"denylist:{hit}")

    hit = _contains_any(text_lower, rules.direct_phrases)
    if hit is not None:
        return Verdict(include=True, reason=f"phrase:{hit}")

    if rules.proper_noun in text:
        return Verdict(include=True, reason="proper_noun")

    if rules.proper_noun.lower() in text_lower:
        hit = _contains_any(text_lower, rules.context_terms)
        if hit is not None:
            return Verdict(include=True, reason=f"context:{hit}")
        return Verdict(include=False, reason="no_context")

    return Verdict(include=False, reason="off_topic")
