"""SQLite-backed persistence for parking lots and tickets.

Every public operation takes the store lock and runs as one unit against the
database, so callers can treat each call as atomic. Nothing here spans more
than one operation; a caller issuing two calls in a row gets no transaction
around the pair.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, Iterator, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session as DbSession, col, select

from .errors import StoreConstraintError, StoreNotInitializedError, StoreUnavailableError
from .models import ParkingLot, ParkingTicket, create_db_and_tables, make_engine

logger = logging.getLogger("Store")

HOURS_IN_DAY = 24


class Store:
    def __init__(self, url: str):
        self.url = url
        self.engine: Optional[Engine] = None
        self.lock = threading.Lock()

    def initialize(self) -> None:
        """Connect and create tables and indexes if they do not exist yet."""
        with self.lock:
            if self.engine is not None:
                return
            try:
                engine = make_engine(self.url)
                create_db_and_tables(engine)
            except SQLAlchemyError as e:
                raise StoreUnavailableError(f"Cannot initialize store at {self.url}: {e}") from e
            self.engine = engine
            logger.info(f"Store ready at {self.url}")

    def close(self) -> None:
        with self.lock:
            if self.engine is not None:
                self.engine.dispose()
                self.engine = None

    @property
    def initialized(self) -> bool:
        return self.engine is not None

    @contextmanager
    def _session(self) -> Iterator[DbSession]:
        """Hold the store lock for the lifetime of one database session."""
        with self.lock:
            if self.engine is None:
                raise StoreNotInitializedError()
            try:
                with DbSession(self.engine, expire_on_commit=False) as db:
                    yield db
            except IntegrityError as e:
                logger.warning(f"Constraint violated: {e.orig}")
                raise StoreConstraintError(str(e.orig)) from e
            except SQLAlchemyError as e:
                logger.error(f"Store failure: {e}")
                raise StoreUnavailableError(str(e)) from e

    # --- WRITES ---

    def add_parking_lot(self, name: str, capacity: int) -> ParkingLot:
        lot = ParkingLot(name=name, capacity=capacity)
        with self._session() as db:
            db.add(lot)
            db.commit()
            db.refresh(lot)
        return lot

    def add_ticket(self, ticket: ParkingTicket) -> ParkingTicket:
        with self._session() as db:
            db.add(ticket)
            db.commit()
            db.refresh(ticket)
        return ticket

    def remove_ticket(self, ticket_id: uuid.UUID, leave_time: Optional[datetime] = None) -> Optional[ParkingTicket]:
        """Record the leave time of an open ticket.

        Returns the closed ticket, or None when no open ticket has that id
        (never issued, or already closed).
        """
        leave_time = leave_time or datetime.now()
        table = ParkingTicket.__table__
        stmt = (
            table.update()
            .where(table.c.id == ticket_id, table.c.leave_time.is_(None))
            .values(leave_time=leave_time)
        )
        with self._session() as db:
            result = db.connection().execute(stmt)
            if result.rowcount == 0:
                db.rollback()
                return None
            db.commit()
            return db.get(ParkingTicket, ticket_id)

    # --- AGGREGATES ---

    def get_usages_in_percent(self, ids: Iterable[int]) -> Dict[int, float]:
        """Usage of the given lots in percent, keyed by lot id.

        Ids without a matching lot are left out of the result.
        """
        ids = list(ids)
        if not ids:
            return {}
        stmt = (
            select(ParkingLot.id, ParkingLot.capacity, func.count(col(ParkingTicket.id)))
            .outerjoin(
                ParkingTicket,
                and_(
                    col(ParkingTicket.parking_lot_id) == col(ParkingLot.id),
                    col(ParkingTicket.leave_time).is_(None),
                ),
            )
            .where(col(ParkingLot.id).in_(ids))
            .group_by(col(ParkingLot.id), col(ParkingLot.capacity))
        )
        with self._session() as db:
            rows = db.exec(stmt).all()
        return {lot_id: _percentage(open_count, capacity) for lot_id, capacity, open_count in rows}

    def get_visitors_during_day(self, lot_id: int, day: date) -> Optional[int]:
        """Tickets of a lot that arrived and left within the 24h window of `day`.

        Returns None if the lot does not exist.
        """
        start = datetime.combine(day, time.min)
        end = start + timedelta(hours=HOURS_IN_DAY)
        stmt = select(func.count(col(ParkingTicket.id))).where(
            col(ParkingTicket.parking_lot_id) == lot_id,
            col(ParkingTicket.arrival_time) >= start,
            col(ParkingTicket.leave_time).is_not(None),
            col(ParkingTicket.leave_time) <= end,
        )
        with self._session() as db:
            if db.get(ParkingLot, lot_id) is None:
                return None
            return db.exec(stmt).one()

    def get_remaining_capacity(self, lot_id: int) -> Optional[int]:
        """Capacity minus open tickets; None if the lot does not exist."""
        stmt = select(func.count(col(ParkingTicket.id))).where(
            col(ParkingTicket.parking_lot_id) == lot_id,
            col(ParkingTicket.leave_time).is_(None),
        )
        with self._session() as db:
            lot = db.get(ParkingLot, lot_id)
            if lot is None:
                return None
            return lot.capacity - db.exec(stmt).one()

    # --- SNAPSHOTS ---

    def list_lots(self) -> List[ParkingLot]:
        with self._session() as db:
            return list(db.exec(select(ParkingLot).order_by(ParkingLot.id)).all())

    def list_tickets(self, lot_id: Optional[int] = None) -> List[ParkingTicket]:
        stmt = select(ParkingTicket).order_by(ParkingTicket.arrival_time)
        if lot_id is not None:
            stmt = stmt.where(ParkingTicket.parking_lot_id == lot_id)
        with self._session() as db:
            return list(db.exec(stmt).all())


def _percentage(open_count: int, capacity: int) -> float:
    if capacity == 0:
        return 0.0
    return open_count / capacity * 100
