"""
Unit tests for the coalescing target updater
"""

from datetime import date, datetime

import pytest
from sqlalchemy import select
from unittest.mock import AsyncMock, Mock

from core.exceptions import TargetUpdateError
from ingestion.loaders.postgres_loader import TargetUpdater
from ingestion.transformers.field_mapping import CHINESE_STOCKS, SP500
from models.stock import ChineseStock, Stock

RUN_DATE = date(2024, 1, 15)


async def _load(db_session, model, ticker):
    result = await db_session.execute(
        select(model).where(model.ticker == ticker).execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestTargetUpdater:
    """Partial updates with coalesce-on-write"""

    @pytest.mark.asyncio
    async def test_omitted_and_null_fields_keep_stored_values(self, db_session, seed_stocks, clock):
        await seed_stocks(["AAPL"], last_price=180.0, market_cap=2_800_000.0, pe_ttm=29.0)
        updater = TargetUpdater(db_session, SP500, clock=clock)

        written = await updater.update_fields("AAPL", {"last_price": 190.5, "pe_ttm": None}, RUN_DATE)
        await db_session.commit()
        stock = await _load(db_session, Stock, "AAPL")

        assert written == ["last_price"]
        assert stock.last_price == 190.5
        assert stock.pe_ttm == 29.0
        assert stock.market_cap == 2_800_000.0
        assert stock.last_updated == clock.now
        assert stock.daily_data_last_updated == RUN_DATE

    @pytest.mark.asyncio
    async def test_chinese_stocks_mapping(self, db_session, seed_stocks, clock):
        await seed_stocks(["BABA"], model=ChineseStock, current_price=70.0, pe_ratio=9.0)
        updater = TargetUpdater(db_session, CHINESE_STOCKS, clock=clock)

        await updater.update_fields("BABA", {"last_price": 72.5, "market_cap": 180_000.0, "trade_count": 12})
        await db_session.commit()
        stock = await _load(db_session, ChineseStock, "BABA")

        assert stock.current_price == 72.5
        assert stock.market_cap == 180_000_000_000.0
        assert stock.transactions == 12
        assert stock.pe_ratio == 9.0
        assert stock.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_missing_record(self, db_session):
        updater = TargetUpdater(db_session, SP500)

        with pytest.raises(TargetUpdateError) as exc_info:
            await updater.update_fields("NOPE", {"last_price": 1.0})

        assert exc_info.value.message == "target record not found"
        assert exc_info.value.context["table_name"] == "stocks"

    @pytest.mark.asyncio
    async def test_does_not_commit(self):
        mock_session = AsyncMock()
        mock_session.execute = AsyncMock(return_value=Mock(rowcount=1))

        updater = TargetUpdater(mock_session, SP500, clock=lambda: datetime(2024, 1, 15))
        await updater.update_fields("AAPL", {"last_price": 1.0})

        mock_session.execute.assert_called_once()
        mock_session.commit.assert_not_called()

    def test_build_values_touches_timestamp_columns(self):
        now = datetime(2024, 1, 15, 10, 0)
        updater = TargetUpdater(Mock(), SP500, clock=lambda: now)

        values = updater.build_values({"last_price": 1.0}, RUN_DATE)

        assert set(values) == {"last_price", "last_updated", "daily_data_last_updated"}
        assert values["last_updated"] == now
        assert values["daily_data_last_updated"] == RUN_DATE
