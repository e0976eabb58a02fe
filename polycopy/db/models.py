"""SQLAlchemy ORM models for tracked trader activity."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UserActivity(Base):
    """One trader activity from the data API.

    Rows for every tracked trader share the table; ``trader_address`` selects
    one trader's collection, and a transaction hash is unique within it.
    ``processed`` flips to True exactly once.
    """

    __tablename__ = "user_activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trader_address = Column(String(42), nullable=False, index=True)
    transaction_hash = Column(String(66), nullable=False, index=True)
    type = Column(String(20), nullable=False, default="TRADE")  # TRADE, REDEEM, MERGE
    proxy_wallet = Column(String(42), nullable=True)
    timestamp = Column(Integer, nullable=False, default=0)  # unix seconds
    condition_id = Column(String(66), nullable=True)
    asset = Column(String(100), nullable=True)
    side = Column(String(10), nullable=True)  # "BUY" or "SELL"
    size = Column(Float, nullable=True)
    usdc_size = Column(Float, nullable=True)
    price = Column(Float, nullable=True)
    outcome_index = Column(Integer, nullable=True)
    outcome = Column(String(255), nullable=True)
    title = Column(Text, nullable=True)
    slug = Column(String(255), nullable=True)
    event_slug = Column(String(255), nullable=True)

    # Bot bookkeeping
    processed = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    execution_outcome = Column(String(40), nullable=True)
    my_bought_size = Column(Float, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("trader_address", "transaction_hash", name="uq_user_activities_trader_tx"),
        Index("ix_user_activities_pending", "trader_address", "type", "processed"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserActivity(tx={self.transaction_hash[:10]}, side={self.side}, "
            f"usdc={self.usdc_size}, processed={self.processed})>"
        )
