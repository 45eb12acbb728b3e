"""Read-path author resolution with an upstream fallback on cache miss."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

from mentionboard.classifier import RelevanceRules, classify
from mentionboard.models import Author, SearchPage
from mentionboard.store import MentionStore
from mentionboard.x_client import XClientError

logger = logging.getLogger(__name__)


class LookupSource(Protocol):
    def lookup_user(self, handle: str) -> Author | None: ...

    def user_timeline(self, author_id: str, cursor: str = "") -> SearchPage: ...


class LookupBudget:
    """Minimum spacing between upstream escalations.

    Kept apart from the ingestion cool-down so dashboard lookups never eat
    into the scheduled cycle's pacing.
    """

    def __init__(self, min_interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._min_interval = min_interval
        self._clock = clock
        self._last: float | None = None

    def try_acquire(self) -> bool:
        now = self._clock()
        if self._last is not None and now - self._last < self._min_interval:
            return False
        self._last = now
        return True


class AuthorResolver:
    """Find an author in the store, escalating to X when it is not there yet."""

    def __init__(
        self,
        store: MentionStore,
        client: LookupSource | None,
        rules: RelevanceRules,
        budget: LookupBudget,
    ) -> None:
        self._store = store
        self._client = client
        self._rules = rules
        self._budget = budget

    def resolve(self, handle: str) -> Author | None:
        author = self._store.get_author(handle)
        if author is not None or self._client is None:
            return author

        if not self._budget.try_acquire():
            logger.info("Lookup budget exhausted; not escalating @%s", handle)
            return None

        try:
            found = self._client.lookup_user(handle)
            if found is None or not self._store.upsert_author(found):
                return None
            page = self._client.user_timeline(found.author_id)
        except XClientError as exc:
            logger.warning("Upstream lookup for @%s failed: %s", handle, exc)
            return None

        kept = 0
        for mention in page.mentions:
            if mention.author_id != found.author_id:
                continue
            if classify(mention.text, found.username, self._rules).include:
                self._store.upsert_mention(mention)
                kept += 1
        logger.info("Resolved @%s from X; stored %d relevant mentions", found.username, kept)
        return self._store.get_author(found.username)
