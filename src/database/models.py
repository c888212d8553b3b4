"""SQLAlchemy database models for persistent storage."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MarketDataRecord(Base):
    """Latest collected payload per asset category."""
    __tablename__ = "market_data"

    category = Column(String, primary_key=True)
    payload = Column(Text, nullable=False)  # JSON string, RawQuote shape
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
