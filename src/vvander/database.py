"""
Persistent storage for visited hexes and raw location history.

Two append-only tables:
- visited: one row per H3 cell (storage resolution) the user has been in
- locations: every recorded location point, used for path replay

The fog engine only reads visited hexes through VisitedStore.list() and
watches VisitedStore.version to know when its resolved set is stale.
"""
import logging
import threading
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import BigInteger, Column, Float, Integer, String, create_engine, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

Base = declarative_base()


class VisitedHex(Base):
    """An H3 cell the user has visited."""
    __tablename__ = "visited"

    h3 = Column(String(16), primary_key=True)


class LocationPoint(Base):
    """A raw location update."""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(BigInteger, nullable=False, index=True)  # Epoch milliseconds
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)


def make_engine(url: str = DATABASE_URL, **kwargs):
    """Create an engine; SQLite connections may be used from the API thread pool."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine)


def init_db(bind=None) -> None:
    """Create tables that do not exist yet."""
    Base.metadata.create_all(bind=bind or engine)


class VisitedStore:
    """
    Set of visited H3 cell IDs.

    `version` increases every time a new cell is inserted by this process.
    Writes from other processes are not seen by the counter; callers that
    expect those should invalidate their resolved sets explicitly.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal
        self._lock = threading.Lock()
        self.version = 0

    def _bump(self, inserted: int) -> None:
        if inserted:
            with self._lock:
                self.version += 1

    def list(self) -> Set[str]:
        session = self._session_factory()
        try:
            return set(session.scalars(select(VisitedHex.h3)))
        finally:
            session.close()

    def count(self) -> int:
        session = self._session_factory()
        try:
            return session.scalar(select(func.count()).select_from(VisitedHex)) or 0
        finally:
            session.close()

    def add(self, hex_id: str) -> bool:
        """
        Record a visited cell.

        Returns:
            True if the cell was new, False if it was already visited
        """
        return self.add_many([hex_id]) == 1

    def add_many(self, hex_ids: Iterable[str]) -> int:
        """
        Record several visited cells in one transaction.

        Returns:
            Number of cells that were not visited before
        """
        session = self._session_factory()
        try:
            wanted = set(hex_ids)
            if not wanted:
                return 0
            existing = set(session.scalars(select(VisitedHex.h3).where(VisitedHex.h3.in_(wanted))))
            new_ids = wanted - existing
            session.add_all(VisitedHex(h3=hex_id) for hex_id in new_ids)
            session.commit()
        except IntegrityError:
            # Another writer inserted the same cell first
            session.rollback()
            logger.info("Concurrent insert of visited hexes, retrying one by one")
            return sum(self.add(hex_id) for hex_id in wanted)
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

        self._bump(len(new_ids))
        return len(new_ids)


class LocationStore:
    """Append-only history of raw location points."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal

    def add(self, timestamp_ms: int, latitude: float, longitude: float) -> None:
        self.add_many([(timestamp_ms, latitude, longitude)])

    def add_many(self, points: Iterable[Tuple[int, float, float]]) -> int:
        session = self._session_factory()
        try:
            rows = [
                LocationPoint(timestamp=timestamp_ms, latitude=latitude, longitude=longitude)
                for timestamp_ms, latitude, longitude in points
            ]
            session.add_all(rows)
            session.commit()
            return len(rows)
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    def query_by_time_range(self, start_ms: int, end_ms: int) -> List[Tuple[int, float, float]]:
        """
        Location points recorded between start_ms and end_ms (inclusive).

        Returns:
            List of (timestamp_ms, latitude, longitude) ordered by time
        """
        session = self._session_factory()
        try:
            stmt = (
                select(LocationPoint.timestamp, LocationPoint.latitude, LocationPoint.longitude)
                .where(LocationPoint.timestamp >= start_ms, LocationPoint.timestamp <= end_ms)
                .order_by(LocationPoint.timestamp, LocationPoint.id)
            )
            return [tuple(row) for row in session.execute(stmt)]
        finally:
            session.close()
