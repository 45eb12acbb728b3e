"""Ingestion cycle: rollover → paginated search → classify → upsert → counter refresh."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from mentionboard.classifier import RelevanceRules, classify
from mentionboard.models import Author, CycleReport, SearchPage
from mentionboard.store import MentionStore, UpsertResult
from mentionboard.window import current_window_start, needs_rollover
from mentionboard.x_client import XClientError

logger = logging.getLogger(__name__)


class SearchSource(Protocol):
    """The upstream calls the ingestor relies on (implemented by ``XClient``)."""

    def search_page(self, query: str, cursor: str = "") -> SearchPage: ...

    def user_timeline(self, author_id: str, cursor: str = "") -> SearchPage: ...


class Ingestor:
    """Runs one full refresh cycle against the store.

    Every upstream request is followed by a cool-down, whether it succeeded
    or not; that pause is the only rate limiting applied.
    """

    def __init__(
        self,
        client: SearchSource | None,
        store: MentionStore,
        rules: RelevanceRules,
        queries: list[str] | tuple[str, ...],
        *,
        cooldown: float = 1.0,
        max_pages: int = 5,
        refresh_authors: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._client = client
        self._store = store
        self._rules = rules
        self._queries = list(queries)
        self._cooldown = cooldown
        self._max_pages = max(max_pages, 1)
        self._refresh_authors = refresh_authors
        self._sleep = sleep
        self._clock = clock

    # ── public ──────────────────────────────────────────────────────────

    def run_cycle(self) -> CycleReport:
        """Execute one refresh cycle and return its counters."""
        report = CycleReport()
        client = self._client
        if client is None:
            logger.warning("No X bearer token configured; skipping ingestion cycle.")
            return report

        logger.info("=== ingestion cycle start [%d queries] ===", len(self._queries))
        report.rolled_over = self.rollover_if_due()

        for query in self._queries:
            self._ingest_query(client, query, report)

        if self._refresh_authors:
            self._refresh_known_authors(client, report)

        logger.info(
            "=== ingestion cycle done: %d written (%d new, %d updated), %d rejected, "
            "%d skipped, %d/%d requests failed; %d non-reply mentions stored ===",
            report.written,
            report.created,
            report.updated,
            report.rejected,
            report.skipped,
            report.failed_requests,
            report.requests,
            self._store.count_mentions(include_replies=False),
        )
        return report

    def rollover_if_due(self) -> bool:
        """Clear mentions and advance the window marker when a new week has begun."""
        now = self._clock()
        last = self._store.last_rollover()
        if not needs_rollover(last, now):
            return False
        logger.info(
            "New window starting %s (last rollover %s); clearing mentions",
            current_window_start(now).isoformat(),
            last.isoformat() if last else "never",
        )
        deleted = self._store.delete_all_mentions()
        self._store.record_rollover(now)
        logger.info("Rollover complete; %d mentions removed", deleted)
        return True

    # ── private ─────────────────────────────────────────────────────────

    def _request(self, report: CycleReport, fetch: Callable[[], SearchPage]) -> SearchPage | None:
        """Issue one upstream request, then cool down regardless of outcome."""
        report.requests += 1
        try:
            return fetch()
        except XClientError as exc:
            report.failed_requests += 1
            logger.warning("Upstream request failed: %s", exc)
            return None
        finally:
            self._sleep(self._cooldown)

    def _ingest_query(self, client: SearchSource, query: str, report: CycleReport) -> None:
        cursor = ""
        for page_no in range(1, self._max_pages + 1):
            page = self._request(report, lambda c=cursor: client.search_page(query, cursor=c))
            if page is None:
                logger.warning("Abandoning query after page %d: %s", page_no, query)
                return
            self._ingest_page(page, report)
            if not page.has_more:
                return
            cursor = page.next_cursor
        logger.info("Reached page limit (%d) for query: %s", self._max_pages, query)

    def _ingest_page(self, page: SearchPage, report: CycleReport) -> None:
        # Authors are written lazily, only once one of their mentions is accepted.
        author_stored: dict[str, bool] = {}

        for mention in page.mentions:
            author = page.author_for(mention.author_id)
            handle = author.username if author else ""
            verdict = classify(mention.text, handle, self._rules)
            if not verdict.include:
                report.rejected += 1
                logger.debug("Rejected %s (%s)", mention.mention_id, verdict.reason)
                continue
            if author is not None and author.author_id not in author_stored:
                author_stored[author.author_id] = self._store.upsert_author(author)
            if not author_stored.get(mention.author_id, False):
                report.skipped += 1
                logger.debug("Skipping %s: author %s unresolved", mention.mention_id, mention.author_id)
                continue
            result = self._store.upsert_mention(mention)
            if result is UpsertResult.CREATED:
                report.created += 1
            elif result is UpsertResult.UPDATED:
                report.updated += 1
            else:
                report.skipped += 1

    def _refresh_known_authors(self, client: SearchSource, report: CycleReport) -> None:
        authors: list[Author] = self._store.authors_with_mentions()
        logger.info("Refreshing counters for %d authors", len(authors))
        for author in authors:
            page = self._request(report, lambda a=author: client.user_timeline(a.author_id))
            if page is None:
                continue
            refreshed = sum(1 for m in page.mentions if self._store.refresh_counts(m))
            report.updated += refreshed
            logger.debug("  @%s: refreshed %d mentions", author.username, refreshed)
