"""Weekly leaderboard: per-author engagement totals, composite score and rank."""

from __future__ import annotations

import logging
from datetime import datetime

from mentionboard.models import (
    AuthorDetail,
    AuthorTotals,
    LeaderboardEntry,
    WindowStats,
)
from mentionboard.store import MentionStore

logger = logging.getLogger(__name__)

# ── Weights ────────────────────────────────────────────────────────────────
_W_LIKE = 3.0
_W_RT = 5.0
_W_VIEW = 0.01
_W_TWEET = 10.0

_MIN_SEARCH_LEN = 2


def score(likes: int, retweets: int, views: int, tweet_count: int) -> float:
    """Composite author score over one window."""
    return likes * _W_LIKE + retweets * _W_RT + views * _W_VIEW + tweet_count * _W_TWEET


def _totals_score(t: AuthorTotals) -> float:
    return score(t.total_likes, t.total_retweets, t.total_views, t.tweet_count)


def _ordered(store: MentionStore, window_start: datetime) -> list[tuple[AuthorTotals, float]]:
    """Window population sorted by score descending, author id ascending on ties."""
    scored = [(t, _totals_score(t)) for t in store.window_totals(window_start)]
    scored.sort(key=lambda pair: (-pair[1], pair[0].author.author_id))
    return scored


def rank(
    store: MentionStore, window_start: datetime, limit: int | None = None
) -> list[LeaderboardEntry]:
    """Return the leaderboard for the window starting at *window_start*.

    Ranks are 1-based and contiguous; equal scores still get distinct ranks.
    """
    ordered = _ordered(store, window_start)
    if limit is not None:
        ordered = ordered[:limit]
    entries = [
        LeaderboardEntry(
            rank=i,
            author=t.author,
            tweet_count=t.tweet_count,
            total_likes=t.total_likes,
            total_retweets=t.total_retweets,
            total_views=t.total_views,
            score=s,
        )
        for i, (t, s) in enumerate(ordered, start=1)
    ]
    logger.debug(
        "Ranked %d authors; top score=%.2f", len(entries), entries[0].score if entries else 0
    )
    return entries


def rank_for_author(store: MentionStore, author_id: str, window_start: datetime) -> int | None:
    """Rank of *author_id* in the full window ordering, or None if absent."""
    for i, (t, _) in enumerate(_ordered(store, window_start), start=1):
        if t.author.author_id == author_id:
            return i
    return None


def author_detail(store: MentionStore, handle: str, window_start: datetime) -> AuthorDetail | None:
    """Profile, window totals, mentions and rank for one stored author."""
    author = store.get_author(handle)
    if author is None:
        return None
    totals = store.author_totals(author.author_id, window_start)
    if totals is None:
        return None
    return AuthorDetail(
        author=totals.author,
        tweet_count=totals.tweet_count,
        total_likes=totals.total_likes,
        total_retweets=totals.total_retweets,
        total_views=totals.total_views,
        rank=rank_for_author(store, author.author_id, window_start) if totals.tweet_count else None,
        mentions=store.window_mentions(window_start, author_id=author.author_id),
        window_start=window_start,
    )


def search_authors(
    store: MentionStore, term: str, window_start: datetime, limit: int = 20
) -> list[AuthorDetail]:
    """Authors matching *term* by handle or name, each with window totals and rank.

    Results are ordered by window views, highest first.
    """
    term = term.strip()
    if len(term) < _MIN_SEARCH_LEN:
        return []

    ranks = {t.author.author_id: i for i, (t, _) in enumerate(_ordered(store, window_start), start=1)}
    hits: list[AuthorDetail] = []
    for author in store.find_authors(term):
        totals = store.author_totals(author.author_id, window_start)
        if totals is None:
            continue
        hits.append(
            AuthorDetail(
                author=totals.author,
                tweet_count=totals.tweet_count,
                total_likes=totals.total_likes,
                total_retweets=totals.total_retweets,
                total_views=totals.total_views,
                rank=ranks.get(author.author_id),
                window_start=window_start,
            )
        )
    hits.sort(key=lambda d: (-d.total_views, d.author.author_id))
    return hits[:limit]


def window_stats(store: MentionStore, window_start: datetime) -> WindowStats:
    """Headline totals for the dashboard over the current window."""
    totals = store.window_totals(window_start)
    mentions = store.window_mentions(window_start)
    return WindowStats(
        window_start=window_start,
        total_tweets=sum(t.tweet_count for t in totals),
        total_likes=sum(t.total_likes for t in totals),
        total_retweets=sum(t.total_retweets for t in totals),
        total_replies=store.reply_count_total(window_start),
        total_views=sum(t.total_views for t in totals),
        unique_users=len(totals),
        most_viewed=mentions[0] if mentions else None,
    )
