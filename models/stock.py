from sqlalchemy import Column, String, Float, BigInteger, Date, DateTime
from models.base import Base


class Stock(Base):
    """
    S&P 500 stock row updated by the batch ETL.

    The dashboard owns this table; the ETL only reads tickers and issues
    partial, coalescing updates to the market data columns.
    """
    __tablename__ = "stocks"

    ticker = Column(String(20), primary_key=True)
    company_name = Column(String(255), nullable=True)

    # Daily price data
    last_price = Column(Float, nullable=True)
    open_price = Column(Float, nullable=True)
    high_price = Column(Float, nullable=True)
    low_price = Column(Float, nullable=True)
    previous_close = Column(Float, nullable=True)
    change_amount = Column(Float, nullable=True)
    change_percent = Column(Float, nullable=True)

    # Aggregates
    volume = Column(BigInteger, nullable=True)
    vwap = Column(Float, nullable=True)
    trade_count = Column(BigInteger, nullable=True)
    turnover = Column(Float, nullable=True)

    # Financial metrics
    market_cap = Column(Float, nullable=True)  # millions USD, as reported upstream
    pe_ttm = Column(Float, nullable=True)
    roe_ttm = Column(Float, nullable=True)
    dividend_yield = Column(Float, nullable=True)
    week_52_high = Column(Float, nullable=True)
    week_52_low = Column(Float, nullable=True)

    daily_data_last_updated = Column(Date, nullable=True)
    last_updated = Column(DateTime, nullable=True)


class ChineseStock(Base):
    """US-listed Chinese company row, kept in its own table and database."""
    __tablename__ = "chinese_stocks"

    ticker = Column(String(20), primary_key=True)
    company_name = Column(String(255), nullable=True)

    current_price = Column(Float, nullable=True)
    open = Column(Float, nullable=True)
    high = Column(Float, nullable=True)
    low = Column(Float, nullable=True)
    previous_close = Column(Float, nullable=True)
    change = Column(Float, nullable=True)
    change_percent = Column(Float, nullable=True)

    volume = Column(BigInteger, nullable=True)
    vwap = Column(Float, nullable=True)
    transactions = Column(BigInteger, nullable=True)

    market_cap = Column(Float, nullable=True)  # USD
    pe_ratio = Column(Float, nullable=True)
    pb_ratio = Column(Float, nullable=True)
    ps_ratio = Column(Float, nullable=True)
    dividend_yield = Column(Float, nullable=True)
    week_52_high = Column(Float, nullable=True)
    week_52_low = Column(Float, nullable=True)

    updated_at = Column(DateTime, nullable=True)
