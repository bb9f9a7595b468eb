"""
Polygon previous-day aggregate provider
"""

from typing import Any, Dict

from core.exceptions import MalformedPayloadError, ProviderError, ProviderNotFoundError
from ingestion.extractors.base import Provider
from ingestion.transformers.merger import parse_float, parse_int


class PolygonPrevDayProvider(Provider):
    """
    ``GET /v2/aggs/ticker/{ticker}/prev?adjusted=true``

    Uses results[0]: o, h, l, c, v (volume), vw (VWAP), n (trade count).
    Turnover is derived as volume * VWAP.
    """

    name = "polygon_prev_day"

    async def fetch_fields(self, entity_key: str) -> Dict[str, Any]:
        data = await self._get_json(
            f"/v2/aggs/ticker/{entity_key}/prev",
            entity_key,
            params={"adjusted": "true", "apiKey": self.api_key}
        )
        context = {"provider": self.name, "entity_key": entity_key}

        if not isinstance(data, dict):
            raise MalformedPayloadError(f"Expected a JSON object, got {type(data).__name__}", context=context)

        if data.get("status") == "ERROR":
            raise ProviderError(f"Polygon error: {data.get('error', 'unknown')}", context=context)

        results = data.get("results")
        if not results:
            raise ProviderNotFoundError("No previous-day aggregate available", context=context)

        bar = results[0]
        if not isinstance(bar, dict):
            raise MalformedPayloadError("Aggregate bar is not an object", context=context)

        volume = parse_int(bar.get("v"))
        vwap = parse_float(bar.get("vw"))

        return {
            "open_price": parse_float(bar.get("o")),
            "high_price": parse_float(bar.get("h")),
            "low_price": parse_float(bar.get("l")),
            "last_price": parse_float(bar.get("c")),
            "volume": volume,
            "vwap": vwap,
            "trade_count": parse_int(bar.get("n")),
            "turnover": volume * vwap if volume is not None and vwap is not None else None,
        }
