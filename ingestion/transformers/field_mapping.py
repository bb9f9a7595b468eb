"""
Market profiles: which table a run updates and how logical fields map onto it
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from core.exceptions import ConfigurationError
from models.stock import ChineseStock, Stock

# Logical fields produced by providers, independent of any target table
LOGICAL_FIELDS = (
    "last_price",
    "open_price",
    "high_price",
    "low_price",
    "previous_close",
    "change",
    "change_percent",
    "volume",
    "vwap",
    "trade_count",
    "turnover",
    "market_cap",
    "pe_ttm",
    "roe_ttm",
    "pb_ratio",
    "ps_ratio",
    "dividend_yield",
    "week_52_high",
    "week_52_low",
)

# Fields where 0 is a real reading; elsewhere 0 means the provider had no value
ZERO_VALID_FIELDS = frozenset({"change", "change_percent", "dividend_yield"})

# Merged data must carry a usable value for this field
PRIMARY_FIELD = "last_price"


@dataclass(frozen=True)
class MarketProfile:
    """
    Field-mapping table for one market.

    Attributes:
        name: Profile name used in configuration (ETL_MARKET)
        target_model: ORM model of the target table
        column_map: logical field -> column name; unmapped fields are dropped
        scale: logical field -> multiplier applied before writing
        key_column: Column holding the entity key
        updated_at_column: Timestamp column touched on every update
        run_date_column: Date column set to the run date on every update
    """
    name: str
    target_model: Any
    column_map: Mapping[str, str]
    scale: Mapping[str, float] = field(default_factory=dict)
    key_column: str = "ticker"
    updated_at_column: Optional[str] = None
    run_date_column: Optional[str] = None

    @property
    def table_name(self) -> str:
        return self.target_model.__tablename__

    def to_columns(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate logical fields into this market's column names"""
        columns = {}
        for name, value in fields.items():
            column = self.column_map.get(name)
            if column is None:
                continue
            if value is not None and name in self.scale:
                value = value * self.scale[name]
            columns[column] = value
        return columns


SP500 = MarketProfile(
    name="sp500",
    target_model=Stock,
    column_map={
        "last_price": "last_price",
        "open_price": "open_price",
        "high_price": "high_price",
        "low_price": "low_price",
        "previous_close": "previous_close",
        "change": "change_amount",
        "change_percent": "change_percent",
        "volume": "volume",
        "vwap": "vwap",
        "trade_count": "trade_count",
        "turnover": "turnover",
        "market_cap": "market_cap",
        "pe_ttm": "pe_ttm",
        "roe_ttm": "roe_ttm",
        "dividend_yield": "dividend_yield",
        "week_52_high": "week_52_high",
        "week_52_low": "week_52_low",
    },
    updated_at_column="last_updated",
    run_date_column="daily_data_last_updated",
)

CHINESE_STOCKS = MarketProfile(
    name="chinese_stocks",
    target_model=ChineseStock,
    column_map={
        "last_price": "current_price",
        "open_price": "open",
        "high_price": "high",
        "low_price": "low",
        "previous_close": "previous_close",
        "change": "change",
        "change_percent": "change_percent",
        "volume": "volume",
        "vwap": "vwap",
        "trade_count": "transactions",
        "market_cap": "market_cap",
        "pe_ttm": "pe_ratio",
        "pb_ratio": "pb_ratio",
        "ps_ratio": "ps_ratio",
        "dividend_yield": "dividend_yield",
        "week_52_high": "week_52_high",
        "week_52_low": "week_52_low",
    },
    # Finnhub reports market cap in millions
    scale={"market_cap": 1_000_000},
    updated_at_column="updated_at",
)

MARKET_PROFILES: Dict[str, MarketProfile] = {
    profile.name: profile for profile in (SP500, CHINESE_STOCKS)
}


def get_market_profile(name: str) -> MarketProfile:
    try:
        return MARKET_PROFILES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown market profile: {name}",
            context={"setting": "ETL_MARKET", "available": sorted(MARKET_PROFILES)}
        )
