"""Load a topic profile: search queries plus relevance rules."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from mentionboard.classifier import RelevanceRules

logger = logging.getLogger(__name__)

# X Recent Search has a 512-char query limit on Basic tier.
_MAX_QUERY_LEN = 512


class TopicProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    queries: tuple[str, ...] = Field(default=())
    rules: RelevanceRules


def _clean_terms(values: Any) -> list[str]:
    """Strip entries and drop blanks; a missing list is empty."""
    terms: list[str] = []
    for raw in values or []:
        stripped = str(raw).strip()
        if stripped:
            terms.append(stripped)
    return terms


def load_topic(topic_path: Path, name: str | None = None) -> TopicProfile:
    """Parse a topic YAML file into a :class:`TopicProfile`.

    The file holds:
    - ``queries``: X search strings, run in order every cycle
    - ``rules.canonical_handle``: the account that is always relevant
    - ``rules.proper_noun``: the topic's exact spelling
    - ``rules.denylist`` / ``rules.direct_phrases`` / ``rules.context_terms``
    """
    with open(topic_path, encoding="utf-8") as fh:
        cfg: dict[str, Any] = yaml.safe_load(fh) or {}

    queries: list[str] = []
    for query in _clean_terms(cfg.get("queries")):
        if len(query) > _MAX_QUERY_LEN:
            logger.warning(
                "Query is %d chars (limit %d); skipping: %s…",
                len(query),
                _MAX_QUERY_LEN,
                query[:60],
            )
            continue
        queries.append(query)
    if not queries:
        logger.warning("Topic file %s defines no usable queries", topic_path)

    rules_cfg: dict[str, Any] = cfg.get("rules") or {}
    rules = RelevanceRules(
        canonical_handle=str(rules_cfg.get("canonical_handle") or "").strip().lstrip("@"),
        proper_noun=str(rules_cfg.get("proper_noun") or "").strip(),
        denylist=tuple(_clean_terms(rules_cfg.get("denylist"))),
        direct_phrases=tuple(_clean_terms(rules_cfg.get("direct_phrases"))),
        context_terms=tuple(_clean_terms(rules_cfg.get("context_terms"))),
    )

    profile = TopicProfile(
        name=name or cfg.get("name") or topic_path.stem,
        queries=tuple(queries),
        rules=rules,
    )
    logger.debug("Loaded topic %s with %d queries", profile.name, len(profile.queries))
    return profile
