"""Cached spot price for the tracked token (CoinGecko simple price)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import requests

from mentionboard.models import PriceQuote

logger = logging.getLogger(__name__)

_SIMPLE_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"


class PriceTicker:
    """Keeps the most recent quote; a failed refresh leaves it unchanged."""

    def __init__(
        self,
        coin_id: str,
        vs_currency: str = "usd",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._coin_id = coin_id
        self._vs = vs_currency
        self._timeout = timeout
        self._session = session or requests.Session()
        self.latest: PriceQuote | None = None

    def refresh(self) -> PriceQuote | None:
        params = {
            "ids": self._coin_id,
            "vs_currencies": self._vs,
            "include_24hr_change": "true",
        }
        try:
            resp = self._session.get(_SIMPLE_PRICE_URL, params=params, timeout=self._timeout)
            resp.raise_for_status()
            quote = resp.json().get(self._coin_id) or {}
            self.latest = PriceQuote(
                usd=quote.get(self._vs, 0.0),
                change_24h=quote.get(f"{self._vs}_24h_change", 0.0) or 0.0,
                updated_at=datetime.now(UTC),
            )
        except (requests.RequestException, ValueError, AttributeError) as exc:
            logger.warning("Price refresh for %s failed: %s", self._coin_id, exc)
            return self.latest
        logger.debug("%s: %.4f %s", self._coin_id, self.latest.usd, self._vs)
        return self.latest
