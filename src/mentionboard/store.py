"""SQLite-backed author/mention store with merge-on-conflict writes."""

from __future__ import annotations

import enum
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from mentionboard.models import Author, AuthorTotals, EngagementCounts, Mention, as_utc

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS authors (
    author_id         TEXT PRIMARY KEY,
    username          TEXT NOT NULL UNIQUE COLLATE NOCASE,
    name              TEXT NOT NULL DEFAULT '',
    profile_image_url TEXT NOT NULL DEFAULT '',
    banner_url        TEXT NOT NULL DEFAULT '',
    followers_count   INTEGER NOT NULL DEFAULT 0,
    description       TEXT NOT NULL DEFAULT '',
    verified          INTEGER NOT NULL DEFAULT 0,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS mentions (
    mention_id    TEXT PRIMARY KEY,
    author_id     TEXT NOT NULL REFERENCES authors (author_id),
    text          TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    like_count    INTEGER NOT NULL DEFAULT 0,
    retweet_count INTEGER NOT NULL DEFAULT 0,
    reply_count   INTEGER NOT NULL DEFAULT 0,
    view_count    INTEGER NOT NULL DEFAULT 0,
    url           TEXT NOT NULL DEFAULT '',
    is_reply      INTEGER NOT NULL DEFAULT 0,
    fetched_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS window_state (
    id            INTEGER PRIMARY KEY CHECK (id = 1),
    last_rollover TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_mentions_author ON mentions (author_id);
CREATE INDEX IF NOT EXISTS idx_mentions_created ON mentions (created_at);
"""

_AUTHOR_COLUMNS = (
    "a.author_id, a.username, a.name, a.profile_image_url, a.banner_url, "
    "a.followers_count, a.description, a.verified, a.updated_at"
)

# Sums over the window; every caller binds the window start first.
_WINDOW_TOTALS = """
    COUNT(m.mention_id)                AS tweet_count,
    COALESCE(SUM(m.like_count), 0)     AS total_likes,
    COALESCE(SUM(m.retweet_count), 0)  AS total_retweets,
    COALESCE(SUM(m.view_count), 0)     AS total_views
"""


class StoreError(Exception):
    """Raised when a read query against the store fails."""


class UpsertResult(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


def _ts(value: datetime) -> str:
    """Fixed-width UTC text so that lexical order matches time order."""
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=UTC)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MentionStore:
    """Authors, mentions and the weekly window marker, backed by SQLite."""

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._init_db()

    # ── writes ──────────────────────────────────────────────────────────

    def upsert_author(self, author: Author) -> bool:
        """Insert or overwrite an author's profile; False if the row was rejected."""
        con = self._connect()
        try:
            con.execute(
                """
                INSERT INTO authors
                    (author_id, username, name, profile_image_url, banner_url,
                     followers_count, description, verified, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (author_id) DO UPDATE SET
                    username          = excluded.username,
                    name              = excluded.name,
                    profile_image_url = excluded.profile_image_url,
                    banner_url        = excluded.banner_url,
                    followers_count   = excluded.followers_count,
                    description       = excluded.description,
                    verified          = excluded.verified,
                    updated_at        = excluded.updated_at
                """,
                (
                    author.author_id,
                    author.username,
                    author.name,
                    author.profile_image_url,
                    author.banner_url,
                    author.followers_count,
                    author.description,
                    int(author.verified),
                    _ts(_utcnow()),
                ),
            )
            con.commit()
            return True
        except sqlite3.IntegrityError as exc:
            logger.warning("Skipping author %s (@%s): %s", author.author_id, author.username, exc)
            return False
        finally:
            con.close()

    def upsert_mention(self, mention: Mention) -> UpsertResult:
        """Insert a mention, or refresh the counters of an existing one.

        Text, origination time, author and reply flag never change after the
        first insert.
        """
        con = self._connect()
        now = _ts(_utcnow())
        m = mention.metrics
        try:
            cur = con.execute(
                """
                INSERT INTO mentions
                    (mention_id, author_id, text, created_at, like_count, retweet_count,
                     reply_count, view_count, url, is_reply, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (mention_id) DO NOTHING
                """,
                (
                    mention.mention_id,
                    mention.author_id,
                    mention.text,
                    _ts(mention.created_at),
                    m.like_count,
                    m.retweet_count,
                    m.reply_count,
                    m.view_count,
                    mention.url,
                    int(mention.is_reply),
                    now,
                ),
            )
            if cur.rowcount == 1:
                con.commit()
                return UpsertResult.CREATED
            updated = self._update_counts(con, mention, now)
            con.commit()
            return UpsertResult.UPDATED if updated else UpsertResult.SKIPPED
        except sqlite3.IntegrityError as exc:
            logger.warning("Skipping mention %s: %s", mention.mention_id, exc)
            return UpsertResult.SKIPPED
        finally:
            con.close()

    def refresh_counts(self, mention: Mention) -> bool:
        """Overwrite counters of an already-stored mention; never inserts."""
        con = self._connect()
        try:
            updated = self._update_counts(con, mention, _ts(_utcnow()))
            con.commit()
            return updated
        finally:
            con.close()

    def delete_all_mentions(self) -> int:
        """Remove every mention; authors are kept. Return rows deleted."""
        con = self._connect()
        try:
            cur = con.execute("DELETE FROM mentions")
            con.commit()
            return cur.rowcount
        finally:
            con.close()

    def record_rollover(self, instant: datetime) -> datetime:
        """Persist *instant* as the last rollover; the stored value never decreases."""
        con = self._connect()
        try:
            con.execute(
                """
                INSERT INTO window_state (id, last_rollover) VALUES (1, ?)
                ON CONFLICT (id) DO UPDATE SET
                    last_rollover = MAX(last_rollover, excluded.last_rollover)
                """,
                (_ts(instant),),
            )
            con.commit()
            row = con.execute("SELECT last_rollover FROM window_state WHERE id = 1").fetchone()
            return _parse_ts(row["last_rollover"])  # type: ignore[return-value]
        finally:
            con.close()

    # ── reads ───────────────────────────────────────────────────────────

    def last_rollover(self) -> datetime | None:
        row = self._fetchone("SELECT last_rollover FROM window_state WHERE id = 1")
        return _parse_ts(row["last_rollover"]) if row else None

    def count_mentions(self, *, include_replies: bool = True) -> int:
        sql = "SELECT COUNT(*) AS c FROM mentions"
        if not include_replies:
            sql += " WHERE is_reply = 0"
        row = self._fetchone(sql)
        return int(row["c"]) if row else 0

    def get_author(self, handle: str) -> Author | None:
        """Look an author up by handle (case-insensitive, leading ``@`` ignored)."""
        row = self._fetchone(
            f"SELECT {_AUTHOR_COLUMNS} FROM authors a WHERE a.username = ?",
            (handle.strip().lstrip("@"),),
        )
        return _row_to_author(row) if row else None

    def get_mention(self, mention_id: str) -> Mention | None:
        row = self._fetchone("SELECT * FROM mentions WHERE mention_id = ?", (mention_id,))
        return _row_to_mention(row) if row else None

    def authors_with_mentions(self) -> list[Author]:
        """Authors owning at least one non-reply mention, ordered by id."""
        rows = self._fetchall(
            f"""
            SELECT {_AUTHOR_COLUMNS} FROM authors a
            WHERE EXISTS (
                SELECT 1 FROM mentions m WHERE m.author_id = a.author_id AND m.is_reply = 0
            )
            ORDER BY a.author_id
            """
        )
        return [_row_to_author(r) for r in rows]

    def window_totals(self, window_start: datetime) -> list[AuthorTotals]:
        """Per-author sums over non-reply mentions created at or after *window_start*.

        Mentions whose author row is missing drop out of the join.
        """
        rows = self._fetchall(
            f"""
            SELECT {_AUTHOR_COLUMNS}, {_WINDOW_TOTALS}
            FROM authors a JOIN mentions m ON m.author_id = a.author_id
            WHERE m.is_reply = 0 AND m.created_at >= ?
            GROUP BY a.author_id
            ORDER BY a.author_id
            """,
            (_ts(window_start),),
        )
        return [_row_to_totals(r) for r in rows]

    def author_totals(self, author_id: str, window_start: datetime) -> AuthorTotals | None:
        """Window sums for one author; zero counts when the author has no mentions."""
        rows = self._fetchall(
            f"""
            SELECT {_AUTHOR_COLUMNS}, {_WINDOW_TOTALS}
            FROM authors a LEFT JOIN mentions m
                ON m.author_id = a.author_id AND m.is_reply = 0 AND m.created_at >= ?
            WHERE a.author_id = ?
            GROUP BY a.author_id
            """,
            (_ts(window_start), author_id),
        )
        return _row_to_totals(rows[0]) if rows else None

    def window_mentions(
        self, window_start: datetime, *, author_id: str | None = None
    ) -> list[Mention]:
        """Non-reply mentions in the window with a known author, most viewed first."""
        sql = """
            SELECT m.* FROM mentions m JOIN authors a ON a.author_id = m.author_id
            WHERE m.is_reply = 0 AND m.created_at >= ?
        """
        params: list[str] = [_ts(window_start)]
        if author_id is not None:
            sql += " AND m.author_id = ?"
            params.append(author_id)
        sql += " ORDER BY m.view_count DESC, m.mention_id"
        return [_row_to_mention(r) for r in self._fetchall(sql, tuple(params))]

    def reply_count_total(self, window_start: datetime) -> int:
        row = self._fetchone(
            """
            SELECT COALESCE(SUM(m.reply_count), 0) AS c
            FROM mentions m JOIN authors a ON a.author_id = m.author_id
            WHERE m.is_reply = 0 AND m.created_at >= ?
            """,
            (_ts(window_start),),
        )
        return int(row["c"]) if row else 0

    def find_authors(self, term: str) -> list[Author]:
        """Authors whose handle or display name contains *term* (case-insensitive)."""
        like = f"%{_escape_like(term.lower())}%"
        rows = self._fetchall(
            f"""
            SELECT {_AUTHOR_COLUMNS} FROM authors a
            WHERE LOWER(a.username) LIKE ? ESCAPE '\\' OR LOWER(a.name) LIKE ? ESCAPE '\\'
            ORDER BY a.author_id
            """,
            (like, like),
        )
        return [_row_to_author(r) for r in rows]

    # ── private ─────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self._db_path))
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA foreign_keys = ON")
        return con

    def _init_db(self) -> None:
        con = self._connect()
        try:
            con.execute("PRAGMA journal_mode = WAL")
            con.executescript(_SCHEMA)
        finally:
            con.close()

    def _fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        rows = self._fetchall(sql, params)
        return rows[0] if rows else None

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        con = self._connect()
        try:
            return con.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Query failed against {self._db_path}: {exc}") from exc
        finally:
            con.close()

    @staticmethod
    def _update_counts(con: sqlite3.Connection, mention: Mention, fetched_at: str) -> bool:
        m = mention.metrics
        cur = con.execute(
            """
            UPDATE mentions SET
                like_count = ?, retweet_count = ?, reply_count = ?, view_count = ?,
                fetched_at = ?
            WHERE mention_id = ?
            """,
            (
                m.like_count,
                m.retweet_count,
                m.reply_count,
                m.view_count,
                fetched_at,
                mention.mention_id,
            ),
        )
        return cur.rowcount == 1


def _row_to_author(row: sqlite3.Row) -> Author:
    return Author(
        author_id=row["author_id"],
        username=row["username"],
        name=row["name"],
        profile_image_url=row["profile_image_url"],
        banner_url=row["banner_url"],
        followers_count=row["followers_count"],
        description=row["description"],
        verified=bool(row["verified"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _row_to_mention(row: sqlite3.Row) -> Mention:
    return Mention(
        mention_id=row["mention_id"],
        author_id=row["author_id"],
        text=row["text"],
        created_at=_parse_ts(row["created_at"]),
        metrics=EngagementCounts(
            like_count=row["like_count"],
            retweet_count=row["retweet_count"],
            reply_count=row["reply_count"],
            view_count=row["view_count"],
        ),
        url=row["url"],
        is_reply=bool(row["is_reply"]),
        fetched_at=_parse_ts(row["fetched_at"]),
    )


def _row_to_totals(row: sqlite3.Row) -> AuthorTotals:
    return AuthorTotals(
        author=_row_to_author(row),
        tweet_count=row["tweet_count"],
        total_likes=row["total_likes"],
        total_retweets=row["total_retweets"],
        total_views=row["total_views"],
    )
