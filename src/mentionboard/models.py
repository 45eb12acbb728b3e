"""Domain models used across the pipeline."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: datetime) -> datetime:
    """Normalise *value* to an aware UTC instant (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class EngagementCounts(BaseModel):
    like_count: int = Field(default=0, ge=0)
    retweet_count: int = Field(default=0, ge=0)
    reply_count: int = Field(default=0, ge=0)
    view_count: int = Field(default=0, ge=0)


class Author(BaseModel):
    author_id: str = Field(min_length=1)
    username: str = Field(min_length=1)
    name: str = ""
    profile_image_url: str = ""
    banner_url: str = ""
    followers_count: int = Field(default=0, ge=0)
    description: str = ""
    verified: bool = False
    updated_at: datetime | None = None


class Mention(BaseModel):
    mention_id: str = Field(min_length=1)
    author_id: str = Field(min_length=1)
    text: str
    created_at: datetime
    metrics: EngagementCounts = Field(default_factory=EngagementCounts)
    url: str = ""
    is_reply: bool = False
    fetched_at: datetime | None = None

    @field_validator("created_at", "fetched_at")
    @classmethod
    def _normalise_instant(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class SearchPage(BaseModel):
    """One page of an upstream search or timeline response."""

    mentions: list[Mention] = Field(default_factory=list)
    authors: list[Author] = Field(default_factory=list)
    next_cursor: str = ""

    @property
    def has_more(self) -> bool:
        return bool(self.next_cursor)

    def author_for(self, author_id: str) -> Author | None:
        return next((a for a in self.authors if a.author_id == author_id), None)


class AuthorTotals(BaseModel):
    """Per-author sums over the non-reply mentions of one window."""

    author: Author
    tweet_count: int = 0
    total_likes: int = 0
    total_retweets: int = 0
    total_views: int = 0


class LeaderboardEntry(BaseModel):
    rank: int
    author: Author
    tweet_count: int = 0
    total_likes: int = 0
    total_retweets: int = 0
    total_views: int = 0
    score: float = 0.0


class AuthorDetail(BaseModel):
    author: Author
    tweet_count: int = 0
    total_likes: int = 0
    total_retweets: int = 0
    total_views: int = 0
    rank: int | None = None
    mentions: list[Mention] = Field(default_factory=list)
    window_start: datetime

    @property
    def has_tweets(self) -> bool:
        return self.tweet_count > 0


class WindowStats(BaseModel):
    window_start: datetime
    total_tweets: int = 0
    total_likes: int = 0
    total_retweets: int = 0
    total_replies: int = 0
    total_views: int = 0
    unique_users: int = 0
    most_viewed: Mention | None = None


class CycleReport(BaseModel):
    """Counters collected over one ingestion cycle."""

    model_config = ConfigDict(validate_assignment=True)

    created: int = 0
    updated: int = 0
    skipped: int = 0
    rejected: int = 0
    requests: int = 0
    failed_requests: int = 0
    rolled_over: bool = False

    @property
    def written(self) -> int:
        return self.created + self.updated


class PriceQuote(BaseModel):
    usd: float = 0.0
    change_24h: float = 0.0
    updated_at: datetime
