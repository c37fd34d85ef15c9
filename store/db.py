"""
Database manager for Craft Architect.

Handles database initialization, connections, and market snapshot storage.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from engine.market_models import CachedListing, CachedMarketData, CachedWorldData
from utils.paths import DB_PATH
from utils.timefmt import to_utc
from .models import Base, MarketListing, MarketSnapshot


def _naive_utc(dt: Optional[datetime]) -> datetime:
    # SQLite stores naive datetimes; everything is kept in UTC
    return to_utc(dt or datetime.now(timezone.utc)).replace(tzinfo=None)


class DatabaseManager:
    """Manages database operations for the application."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize database manager with configuration."""
        self.config = config
        self.logger = logging.getLogger(__name__)

        db_path = config.get('database', {}).get('path', str(DB_PATH))
        self.db_path = Path(db_path)
        self.db_url = f"sqlite:///{self.db_path}"

        self.engine = None
        self.SessionLocal = None

    def initialize_database(self):
        """Initialize database engine and create tables."""
        try:
            self.logger.info("Initializing database at %s", self.db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self.engine = create_engine(
                self.db_url,
                echo=False,
                pool_pre_ping=True,
                connect_args={"check_same_thread": False}
            )
            self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
            Base.metadata.create_all(bind=self.engine)

            self.logger.info("Database initialized successfully")

        except SQLAlchemyError as e:
            self.logger.error("Database initialization failed: %s", e)
            raise

    def get_session(self) -> Session:
        """Get a new database session."""
        if not self.SessionLocal:
            raise RuntimeError("Database not initialized. Call initialize_database() first.")
        return self.SessionLocal()

    def save_snapshot(self, data: CachedMarketData) -> int:
        """Replace the stored snapshot for (item, data center); returns listings saved."""
        session = self.get_session()
        try:
            existing = session.query(MarketSnapshot).filter(
                MarketSnapshot.item_id == data.item_id,
                MarketSnapshot.data_center == data.data_center,
            ).first()
            if existing is not None:
                session.delete(existing)
                session.flush()

            snapshot = MarketSnapshot(
                item_id=data.item_id,
                data_center=data.data_center,
                fetched_at_utc=_naive_utc(data.fetched_at),
                last_upload_utc=_naive_utc(data.last_upload_at) if data.last_upload_at else None,
                dc_average_price=data.dc_average_price,
                hq_average_price=data.hq_average_price,
            )
            for world in data.worlds:
                for listing in world.listings:
                    snapshot.listings.append(MarketListing(
                        world_name=world.world_name,
                        quantity=listing.quantity,
                        price_per_unit=listing.price_per_unit,
                        retainer_name=listing.retainer_name,
                        is_hq=listing.is_hq,
                    ))
            session.add(snapshot)
            session.commit()

            self.logger.debug("Saved snapshot for item %s on %s (%d listings)",
                              data.item_id, data.data_center, len(snapshot.listings))
            return len(snapshot.listings)

        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error("Failed to save snapshot for item %s: %s", data.item_id, e)
            raise
        finally:
            session.close()

    def load_snapshot(self, item_id: int, data_center: str) -> Optional[CachedMarketData]:
        """Stored snapshot for (item, data center) or ``None``."""
        session = self.get_session()
        try:
            snapshot = session.query(MarketSnapshot).filter(
                MarketSnapshot.item_id == item_id,
                MarketSnapshot.data_center == data_center,
            ).first()
            if snapshot is None:
                return None

            worlds: Dict[str, CachedWorldData] = {}
            for row in sorted(snapshot.listings, key=lambda l: (l.world_name, l.price_per_unit)):
                world = worlds.setdefault(row.world_name, CachedWorldData(world_name=row.world_name))
                world.listings.append(CachedListing(
                    quantity=row.quantity,
                    price_per_unit=row.price_per_unit,
                    retainer_name=row.retainer_name or "",
                    is_hq=bool(row.is_hq),
                ))

            return CachedMarketData(
                item_id=snapshot.item_id,
                data_center=snapshot.data_center,
                fetched_at=to_utc(snapshot.fetched_at_utc),
                last_upload_at=to_utc(snapshot.last_upload_utc) if snapshot.last_upload_utc else None,
                dc_average_price=snapshot.dc_average_price,
                hq_average_price=snapshot.hq_average_price,
                worlds=list(worlds.values()),
            )

        except SQLAlchemyError as e:
            self.logger.error("Failed to load snapshot for item %s: %s", item_id, e)
            raise
        finally:
            session.close()

    def snapshot_times(self, item_ids: Iterable[int], data_center: str) -> Dict[int, datetime]:
        """Fetch time of every stored snapshot among ``item_ids``."""
        ids = list(item_ids)
        if not ids:
            return {}
        session = self.get_session()
        try:
            rows = session.query(MarketSnapshot.item_id, MarketSnapshot.fetched_at_utc).filter(
                MarketSnapshot.item_id.in_(ids),
                MarketSnapshot.data_center == data_center,
            ).all()
            return {item_id: to_utc(fetched) for item_id, fetched in rows}
        except SQLAlchemyError as e:
            self.logger.error("Failed to read snapshot times: %s", e)
            raise
        finally:
            session.close()

    def purge_stale(self, max_age_hours: float) -> int:
        """Delete snapshots older than ``max_age_hours``; returns snapshots removed."""
        session = self.get_session()
        try:
            cutoff = _naive_utc(None) - timedelta(hours=max_age_hours)
            stale: List[MarketSnapshot] = session.query(MarketSnapshot).filter(
                MarketSnapshot.fetched_at_utc < cutoff
            ).all()
            for snapshot in stale:
                session.delete(snapshot)
            session.commit()

            if stale:
                self.logger.info("Purged %d stale market snapshots", len(stale))
            return len(stale)

        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error("Failed to purge stale snapshots: %s", e)
            raise
        finally:
            session.close()

    def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        session = self.get_session()
        try:
            return {
                'snapshots': session.query(MarketSnapshot).count(),
                'listings': session.query(MarketListing).count(),
                'data_centers': session.query(MarketSnapshot.data_center).distinct().count(),
                'database_size_mb': self._get_database_size_mb(),
            }
        finally:
            session.close()

    def _get_database_size_mb(self) -> float:
        """Get database file size in MB."""
        if self.db_path.exists():
            return self.db_path.stat().st_size / (1024 * 1024)
        return 0.0

    def close(self):
        """Dispose the engine and its pooled connections."""
        if getattr(self, "engine", None):
            self.engine.dispose()
