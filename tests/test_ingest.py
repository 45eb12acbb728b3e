"""Unit tests for the ingestion cycle."""

from datetime import UTC, datetime, timedelta
from typing import Any

from factories import make_author, make_mention

from mentionboard.classifier import RelevanceRules
from mentionboard.ingest import Ingestor
from mentionboard.models import SearchPage
from mentionboard.store import MentionStore
from mentionboard.window import current_window_start
from mentionboard.x_client import XClient, XClientError

_RULES = RelevanceRules(
    canonical_handle="redstone_defi",
    proper_noun="RedStone",
    denylist=("minecraft",),
    direct_phrases=("redstone oracle",),
    context_terms=("defi",),
)

_NOW = datetime(2024, 5, 15, 12, 0, tzinfo=UTC)


class FakeClient:
    """Serves canned pages per query and records every call."""

    def __init__(
        self,
        pages: dict[str, list[SearchPage | Exception]] | None = None,
        timelines: dict[str, SearchPage | Exception] | None = None,
    ) -> None:
        self._pages = {q: list(p) for q, p in (pages or {}).items()}
        self._timelines = timelines or {}
        self.calls: list[tuple[str, str, str]] = []

    def search_page(self, query: str, cursor: str = "") -> SearchPage:
        self.calls.append(("search", query, cursor))
        queue = self._pages.get(query)
        if not queue:
            return SearchPage()
        result = queue.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def user_timeline(self, author_id: str, cursor: str = "") -> SearchPage:
        self.calls.append(("timeline", author_id, cursor))
        result = self._timelines.get(author_id, SearchPage())
        if isinstance(result, Exception):
            raise result
        return result


class CannedResponse:
    status_code = 200
    text = ""

    def __init__(self, payload: Any) -> None:
        self._payload = payload
        self.headers: dict[str, str] = {}

    def json(self) -> Any:
        return self._payload


class CannedSession:
    """Stands in for ``requests.Session``; answers each search query with a fixed body."""

    def __init__(self, bodies: dict[str, Any]) -> None:
        self.headers: dict[str, str] = {}
        self._bodies = bodies
        self.queries: list[str] = []

    def get(self, url: str, params: dict[str, Any], timeout: float) -> CannedResponse:
        self.queries.append(params["query"])
        return CannedResponse(self._bodies[params["query"]])


class SleepRecorder:
    def __init__(self) -> None:
        self.pauses: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.pauses.append(seconds)


def _page(*mention_ids: str, cursor: str = "", author_id: str = "1", text: str = "RedStone rocks") -> SearchPage:
    return SearchPage(
        mentions=[make_mention(mid, author_id, text=text, created_at=_NOW) for mid in mention_ids],
        authors=[make_author(author_id)],
        next_cursor=cursor,
    )


def _ingestor(
    client: FakeClient | None,
    store: MentionStore,
    queries: list[str],
    sleep: SleepRecorder | None = None,
    **kwargs: object,
) -> Ingestor:
    kwargs.setdefault("refresh_authors", False)
    return Ingestor(
        client,
        store,
        _RULES,
        queries,
        cooldown=2.5,
        sleep=sleep or SleepRecorder(),
        clock=lambda: _NOW,
        **kwargs,  # type: ignore[arg-type]
    )


class TestPagination:
    def test_three_pages_three_requests(self, store: MentionStore) -> None:
        client = FakeClient(
            pages={
                "q": [
                    _page("1", cursor="c1"),
                    _page("2", cursor="c2"),
                    _page("3"),
                ]
            }
        )
        sleep = SleepRecorder()

        report = _ingestor(client, store, ["q"], sleep).run_cycle()

        assert client.calls == [("search", "q", ""), ("search", "q", "c1"), ("search", "q", "c2")]
        assert sleep.pauses == [2.5, 2.5, 2.5]
        assert report.requests == 3
        assert report.created == 3
        assert store.count_mentions() == 3

    def test_page_limit_bounds_perpetual_continuation(self, store: MentionStore) -> None:
        client = FakeClient(pages={"q": [_page(str(i), cursor=f"c{i}") for i in range(10)]})

        report = _ingestor(client, store, ["q"], max_pages=4).run_cycle()

        assert len(client.calls) == 4
        assert report.created == 4

    def test_queries_run_in_order(self, store: MentionStore) -> None:
        client = FakeClient(pages={"first": [_page("1")], "second": [_page("2")]})
        _ingestor(client, store, ["first", "second"]).run_cycle()
        assert [c[1] for c in client.calls] == ["first", "second"]


class TestFailures:
    def test_failure_aborts_only_that_query(self, store: MentionStore) -> None:
        client = FakeClient(
            pages={
                "bad": [_page("1", cursor="c1"), XClientError("boom"), _page("never")],
                "good": [_page("2")],
            }
        )
        sleep = SleepRecorder()

        report = _ingestor(client, store, ["bad", "good"], sleep).run_cycle()

        assert client.calls == [("search", "bad", ""), ("search", "bad", "c1"), ("search", "good", "")]
        assert len(sleep.pauses) == 3
        assert report.failed_requests == 1
        assert store.get_mention("1") is not None
        assert store.get_mention("2") is not None
        assert store.get_mention("never") is None

    def test_malformed_payload_aborts_only_that_query(self, store: MentionStore) -> None:
        good_body = {
            "data": [
                {
                    "id": "2",
                    "text": "RedStone rocks",
                    "author_id": "1",
                    "created_at": "2024-05-15T10:00:00.000Z",
                }
            ],
            "includes": {"users": [{"id": "1", "username": "alice"}]},
            "meta": {},
        }
        session = CannedSession({"bad": {"includes": {"users": 5}}, "good": good_body})
        client = XClient("token", session=session)  # type: ignore[arg-type]
        sleep = SleepRecorder()

        report = _ingestor(client, store, ["bad", "good"], sleep).run_cycle()  # type: ignore[arg-type]

        assert session.queries == ["bad", "good"]
        assert len(sleep.pauses) == 2
        assert report.failed_requests == 1
        assert report.created == 1
        assert store.get_mention("2") is not None

    def test_no_client_is_a_noop(self, store: MentionStore) -> None:
        store.upsert_author(make_author("1"))
        store.upsert_mention(make_mention("old", "1", created_at=_NOW - timedelta(days=30)))
        sleep = SleepRecorder()

        report = _ingestor(None, store, ["q"], sleep).run_cycle()

        assert report.requests == 0
        assert not report.rolled_over
        assert sleep.pauses == []
        assert store.count_mentions() == 1


class TestClassificationOnIngest:
    def test_rejected_items_never_stored(self, store: MentionStore) -> None:
        page = SearchPage(
            mentions=[
                make_mention("1", "1", text="RedStone Oracle in minecraft", created_at=_NOW),
                make_mention("2", "1", text="redstone oracle update", created_at=_NOW),
                make_mention("3", "1", text="unrelated", created_at=_NOW),
            ],
            authors=[make_author("1")],
        )
        client = FakeClient(pages={"q": [page]})

        report = _ingestor(client, store, ["q"]).run_cycle()

        assert report.rejected == 2
        assert report.created == 1
        assert store.get_mention("2") is not None

    def test_canonical_author_bypasses_denylist(self, store: MentionStore) -> None:
        page = SearchPage(
            mentions=[make_mention("1", "9", text="minecraft night!", created_at=_NOW)],
            authors=[make_author("9", "redstone_defi")],
        )
        report = _ingestor(FakeClient(pages={"q": [page]}), store, ["q"]).run_cycle()
        assert report.created == 1

    def test_unresolved_author_is_skipped(self, store: MentionStore) -> None:
        page = SearchPage(mentions=[make_mention("1", "404", text="RedStone", created_at=_NOW)])
        report = _ingestor(FakeClient(pages={"q": [page]}), store, ["q"]).run_cycle()
        assert report.skipped == 1
        assert store.count_mentions() == 0

    def test_author_with_only_rejected_mentions_is_not_stored(self, store: MentionStore) -> None:
        page = SearchPage(
            mentions=[
                make_mention("1", "1", text="RedStone in minecraft", created_at=_NOW),
                make_mention("2", "2", text="RedStone oracle", created_at=_NOW),
                make_mention("3", "2", text="RedStone again", created_at=_NOW),
            ],
            authors=[make_author("1", "crafter"), make_author("2", "builder")],
        )

        report = _ingestor(FakeClient(pages={"q": [page]}), store, ["q"]).run_cycle()

        assert report.rejected == 1
        assert report.created == 2
        assert store.get_author("crafter") is None
        assert store.get_author("builder") is not None

    def test_reingestion_counts_as_update(self, store: MentionStore) -> None:
        client = FakeClient(pages={"a": [_page("1")], "b": [_page("1")]})
        report = _ingestor(client, store, ["a", "b"]).run_cycle()
        assert report.created == 1
        assert report.updated == 1
        assert report.written == 2
        assert store.count_mentions() == 1


class TestRollover:
    def test_new_week_clears_mentions_keeps_authors(self, store: MentionStore) -> None:
        store.record_rollover(_NOW - timedelta(days=8))
        store.upsert_author(make_author("1", "alice"))
        store.upsert_mention(make_mention("old", "1", created_at=_NOW - timedelta(days=8)))
        client = FakeClient(pages={"q": [_page("new", author_id="2")]})

        report = _ingestor(client, store, ["q"]).run_cycle()

        assert report.rolled_over
        assert store.get_mention("old") is None
        assert store.get_mention("new") is not None
        assert store.get_author("alice") is not None
        last = store.last_rollover()
        assert last is not None
        assert last >= current_window_start(_NOW)

    def test_same_week_keeps_mentions(self, store: MentionStore) -> None:
        store.record_rollover(current_window_start(_NOW))
        store.upsert_author(make_author("1"))
        store.upsert_mention(make_mention("kept", "1", created_at=_NOW))

        report = _ingestor(FakeClient(), store, ["q"]).run_cycle()

        assert not report.rolled_over
        assert store.get_mention("kept") is not None

    def test_rollover_runs_before_first_request(self, store: MentionStore) -> None:
        store.record_rollover(_NOW - timedelta(days=8))
        store.upsert_author(make_author("1"))
        store.upsert_mention(make_mention("old", "1", created_at=_NOW - timedelta(days=8)))
        seen_counts: list[int] = []

        class Probe(FakeClient):
            def search_page(self, query: str, cursor: str = "") -> SearchPage:
                seen_counts.append(store.count_mentions())
                return super().search_page(query, cursor)

        _ingestor(Probe(), store, ["q"]).run_cycle()
        assert seen_counts == [0]


class TestAuthorRefresh:
    def test_refreshes_counters_of_known_mentions(self, store: MentionStore) -> None:
        store.record_rollover(_NOW)
        store.upsert_author(make_author("1"))
        store.upsert_author(make_author("2"))
        store.upsert_mention(make_mention("10", "1", likes=1, created_at=_NOW))
        store.upsert_mention(make_mention("20", "2", is_reply=True, created_at=_NOW))
        timeline = SearchPage(
            mentions=[
                make_mention("10", "1", likes=42, created_at=_NOW),
                make_mention("11", "1", likes=5, created_at=_NOW),
            ],
            authors=[make_author("1")],
        )
        client = FakeClient(timelines={"1": timeline})
        sleep = SleepRecorder()

        report = _ingestor(client, store, [], sleep, refresh_authors=True).run_cycle()

        assert client.calls == [("timeline", "1", "")]
        assert len(sleep.pauses) == 1
        assert report.updated == 1
        stored = store.get_mention("10")
        assert stored is not None
        assert stored.metrics.like_count == 42
        assert store.get_mention("11") is None

    def test_refresh_failure_is_tolerated(self, store: MentionStore) -> None:
        store.record_rollover(_NOW)
        store.upsert_author(make_author("1"))
        store.upsert_mention(make_mention("10", "1", created_at=_NOW))
        client = FakeClient(timelines={"1": XClientError("timeout")})

        report = _ingestor(client, store, [], refresh_authors=True).run_cycle()

        assert report.failed_requests == 1
        assert store.get_mention("10") is not None
