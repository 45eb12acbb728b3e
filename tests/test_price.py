"""Unit tests for the price ticker."""

from typing import Any

import requests

from mentionboard.price import PriceTicker


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")

    def json(self) -> Any:
        return self._payload


class FakeSession:
    def __init__(self, *responses: FakeResponse | Exception) -> None:
        self._responses = list(responses)

    def get(self, url: str, params: dict[str, Any], timeout: float) -> FakeResponse:
        result = self._responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class TestPriceTicker:
    def test_refresh_parses_quote(self) -> None:
        session = FakeSession(
            FakeResponse({"redstone-oracles": {"usd": 0.512, "usd_24h_change": -3.2}})
        )
        ticker = PriceTicker("redstone-oracles", session=session)  # type: ignore[arg-type]

        quote = ticker.refresh()

        assert quote is not None
        assert quote.usd == 0.512
        assert quote.change_24h == -3.2
        assert ticker.latest is quote

    def test_failure_keeps_previous_quote(self) -> None:
        session = FakeSession(
            FakeResponse({"redstone-oracles": {"usd": 0.5}}),
            requests.ConnectionError("down"),
            FakeResponse({}, status_code=503),
        )
        ticker = PriceTicker("redstone-oracles", session=session)  # type: ignore[arg-type]

        first = ticker.refresh()
        assert ticker.refresh() is first
        assert ticker.refresh() is first
        assert first is not None
        assert first.change_24h == 0.0

    def test_nothing_cached_yet(self) -> None:
        session = FakeSession(requests.Timeout("slow"))
        ticker = PriceTicker("redstone-oracles", session=session)  # type: ignore[arg-type]
        assert ticker.refresh() is None
