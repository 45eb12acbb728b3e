"""Minimal X API v2 client: paginated search, author lookup and timelines (read-only)."""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import ValidationError

from mentionboard.models import Author, EngagementCounts, Mention, SearchPage

logger = logging.getLogger(__name__)

_API_BASE = "https://api.twitter.com/2"
_RECENT_SEARCH_URL = f"{_API_BASE}/tweets/search/recent"
_USER_BY_USERNAME_URL = f"{_API_BASE}/users/by/username/{{username}}"
_USER_TWEETS_URL = f"{_API_BASE}/users/{{user_id}}/tweets"

# Fields we always request.
_TWEET_FIELDS = "created_at,public_metrics,author_id,in_reply_to_user_id"
_EXPANSIONS = "author_id"
_USER_FIELDS = "name,username,profile_image_url,description,public_metrics,verified"


class XClientError(Exception):
    """Raised when the X API request fails or returns an unexpected response."""


class XClient:
    """Thin wrapper around the X API v2 endpoints the tracker consumes."""

    def __init__(
        self,
        bearer_token: str,
        max_results: int = 100,
        timeout: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        if not bearer_token:
            raise ValueError("X_BEARER_TOKEN is required but was empty.")
        self._bearer = bearer_token
        self._max_results = min(max(max_results, 10), 100)
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {self._bearer}"})

    # ── public ──────────────────────────────────────────────────────────
    def search_page(self, query: str, cursor: str = "") -> SearchPage:
        """Fetch one page of Recent Search results; empty *cursor* is the first page."""
        params: dict[str, Any] = {
            "query": query,
            "max_results": self._max_results,
            "tweet.fields": _TWEET_FIELDS,
            "expansions": _EXPANSIONS,
            "user.fields": _USER_FIELDS,
        }
        if cursor:
            params["next_token"] = cursor

        data = self._get(_RECENT_SEARCH_URL, params)
        page = parse_page(data)
        logger.info(
            "Fetched %d tweets for query: %s (more=%s)", len(page.mentions), query, page.has_more
        )
        return page

    def lookup_user(self, handle: str) -> Author | None:
        """Return the profile for *handle*, or None if X does not know it."""
        username = handle.strip().lstrip("@")
        url = _USER_BY_USERNAME_URL.format(username=username)
        data = self._get(url, {"user.fields": _USER_FIELDS}, allow_not_found=True)
        raw = data.get("data")
        if not raw:
            logger.info("User not found: @%s", username)
            return None
        try:
            return parse_author(raw)
        except (KeyError, TypeError, AttributeError, ValidationError) as exc:
            raise XClientError(f"Malformed user payload for @{username}: {exc}") from exc

    def user_timeline(self, author_id: str, cursor: str = "") -> SearchPage:
        """Fetch one page of an author's own tweets (retweets excluded)."""
        params: dict[str, Any] = {
            "max_results": self._max_results,
            "tweet.fields": _TWEET_FIELDS,
            "expansions": _EXPANSIONS,
            "user.fields": _USER_FIELDS,
            "exclude": "retweets",
        }
        if cursor:
            params["pagination_token"] = cursor

        data = self._get(_USER_TWEETS_URL.format(user_id=author_id), params)
        page = parse_page(data)
        logger.info("Fetched %d timeline tweets for user %s", len(page.mentions), author_id)
        return page

    # ── private ─────────────────────────────────────────────────────────
    def _get(
        self, url: str, params: dict[str, Any], allow_not_found: bool = False
    ) -> dict[str, Any]:
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise XClientError(f"X API request failed: {exc}") from exc

        if resp.status_code == 404 and allow_not_found:
            return {}
        if resp.status_code == 429:
            logger.warning(
                "Rate-limited by X API (retry after %ss); deferring to the next cycle",
                resp.headers.get("Retry-After", "?"),
            )
        if resp.status_code != 200:
            raise XClientError(f"X API returned {resp.status_code}: {resp.text[:500]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise XClientError(f"X API returned a non-JSON body: {exc}") from exc
        if not isinstance(data, dict):
            raise XClientError(f"X API returned unexpected payload type {type(data).__name__}")
        return data


# ── payload parsing ────────────────────────────────────────────────────────
def parse_author(raw: dict[str, Any]) -> Author:
    pm = raw.get("public_metrics") or {}
    return Author(
        author_id=str(raw["id"]),
        username=raw["username"],
        name=raw.get("name") or "",
        profile_image_url=raw.get("profile_image_url") or "",
        banner_url=raw.get("profile_banner_url") or "",
        followers_count=pm.get("followers_count", 0),
        description=raw.get("description") or "",
        verified=bool(raw.get("verified", False)),
    )


def mention_url(mention_id: str, username: str = "") -> str:
    if username:
        return f"https://twitter.com/{username}/status/{mention_id}"
    return f"https://twitter.com/i/status/{mention_id}"


def parse_page(data: dict[str, Any]) -> SearchPage:
    """Turn a search/timeline response body into a :class:`SearchPage`.

    Individually malformed tweets or users are dropped; a body whose overall
    shape is wrong raises :class:`XClientError`.
    """
    try:
        return _parse_page(data)
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        raise XClientError(f"X API payload has an unexpected shape: {exc}") from exc


def _parse_page(data: dict[str, Any]) -> SearchPage:
    tweets_raw = data.get("data") or []
    includes = data.get("includes") or {}
    meta = data.get("meta") or {}
    if not isinstance(tweets_raw, list) or not isinstance(includes, dict) or not isinstance(meta, dict):
        raise XClientError("X API payload has an unexpected shape")
    users_raw = includes.get("users") or []
    if not isinstance(users_raw, list):
        raise XClientError("X API payload has a non-list includes.users")

    # Build author-id → Author map from expansions
    authors: dict[str, Author] = {}
    for raw_user in users_raw:
        try:
            author = parse_author(raw_user)
        except (KeyError, TypeError, AttributeError, ValidationError) as exc:
            logger.warning("Dropping malformed user payload: %s", exc)
            continue
        authors[author.author_id] = author

    mentions: list[Mention] = []
    for raw in tweets_raw:
        try:
            pm = raw.get("public_metrics") or {}
            author_id = str(raw["author_id"])
            author = authors.get(author_id)
            mentions.append(
                Mention(
                    mention_id=str(raw["id"]),
                    author_id=author_id,
                    text=raw["text"],
                    created_at=raw["created_at"],
                    metrics=EngagementCounts(
                        like_count=pm.get("like_count", 0),
                        retweet_count=pm.get("retweet_count", 0),
                        reply_count=pm.get("reply_count", 0),
                        view_count=pm.get("impression_count", 0),
                    ),
                    url=mention_url(str(raw["id"]), author.username if author else ""),
                    is_reply=bool(raw.get("in_reply_to_user_id")),
                )
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as exc:
            logger.warning("Dropping malformed tweet payload: %s", exc)

    return SearchPage(
        mentions=mentions,
        authors=list(authors.values()),
        next_cursor=str(meta.get("next_token") or ""),
    )
