"""
Database models for Craft Architect.

Defines SQLAlchemy models for the cached market board snapshots.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class MarketSnapshot(Base):
    """Latest market board download for one item on one data center."""

    __tablename__ = 'market_snapshots'

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, nullable=False, index=True)
    data_center = Column(String(50), nullable=False, index=True)
    fetched_at_utc = Column(DateTime, nullable=False, index=True)
    last_upload_utc = Column(DateTime, nullable=True)
    dc_average_price = Column(Float, nullable=False, default=0.0)
    hq_average_price = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=func.now())

    listings = relationship('MarketListing', back_populates='snapshot', cascade='all, delete-orphan')

    __table_args__ = (
        Index('idx_item_dc', 'item_id', 'data_center', unique=True),
    )

    def __repr__(self):
        return f"<MarketSnapshot(item={self.item_id}, dc={self.data_center})>"


class MarketListing(Base):
    """One listing (an atomic stack) inside a snapshot."""

    __tablename__ = 'market_listings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    snapshot_id = Column(Integer, ForeignKey('market_snapshots.id'), nullable=False, index=True)
    world_name = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_per_unit = Column(Integer, nullable=False)
    retainer_name = Column(String(100), nullable=True)
    is_hq = Column(Boolean, nullable=False, default=False)

    snapshot = relationship('MarketSnapshot', back_populates='listings')
