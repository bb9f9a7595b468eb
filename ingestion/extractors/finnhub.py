"""
Finnhub providers: real-time quote and basic financial metrics
"""

from typing import Any, Dict

from core.exceptions import MalformedPayloadError, ProviderError
from ingestion.extractors.base import Provider
from ingestion.transformers.merger import parse_float


class _FinnhubProvider(Provider):

    async def _get_finnhub(self, path: str, entity_key: str, **params) -> Dict[str, Any]:
        data = await self._get_json(path, entity_key, params={"symbol": entity_key, "token": self.api_key, **params})

        if not isinstance(data, dict):
            raise MalformedPayloadError(
                f"Expected a JSON object, got {type(data).__name__}",
                context={"provider": self.name, "entity_key": entity_key}
            )
        if data.get("error"):
            raise ProviderError(
                f"Finnhub error: {data['error']}",
                context={"provider": self.name, "entity_key": entity_key}
            )
        return data


class FinnhubQuoteProvider(_FinnhubProvider):
    """
    ``GET /quote``

    Response keys: c (current), o, h, l, pc (previous close), d (change),
    dp (change percent), t (timestamp). Unknown symbols come back as all
    zeros: the prices are then treated as missing by the merge step and the
    change fields are dropped here, since 0 is a valid change otherwise.
    """

    name = "finnhub_quote"

    async def fetch_fields(self, entity_key: str) -> Dict[str, Any]:
        quote = await self._get_finnhub("/quote", entity_key)
        last_price = parse_float(quote.get("c"))
        has_quote = bool(last_price)
        return {
            "last_price": last_price,
            "open_price": parse_float(quote.get("o")),
            "high_price": parse_float(quote.get("h")),
            "low_price": parse_float(quote.get("l")),
            "previous_close": parse_float(quote.get("pc")),
            "change": parse_float(quote.get("d")) if has_quote else None,
            "change_percent": parse_float(quote.get("dp")) if has_quote else None,
        }


class FinnhubMetricsProvider(_FinnhubProvider):
    """``GET /stock/metric?metric=all``: sparse map of named ratios"""

    name = "finnhub_metrics"

    async def fetch_fields(self, entity_key: str) -> Dict[str, Any]:
        data = await self._get_finnhub("/stock/metric", entity_key, metric="all")
        metric = data.get("metric")

        if not isinstance(metric, dict):
            raise MalformedPayloadError(
                "Response has no metric object",
                context={"provider": self.name, "entity_key": entity_key}
            )

        return {
            "market_cap": parse_float(metric.get("marketCapitalization")),
            "pe_ttm": parse_float(metric.get("peTTM", metric.get("peBasicExclExtraTTM"))),
            "roe_ttm": parse_float(metric.get("roeTTM")),
            "pb_ratio": parse_float(metric.get("pbAnnual")),
            "ps_ratio": parse_float(metric.get("psAnnual")),
            "dividend_yield": parse_float(metric.get("dividendYieldIndicatedAnnual")),
            "week_52_high": parse_float(metric.get("52WeekHigh")),
            "week_52_low": parse_float(metric.get("52WeekLow")),
        }
