import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, event
from sqlalchemy.engine import Engine
from sqlmodel import Field, SQLModel, create_engine


class ParkingLotBase(SQLModel):
    name: str = Field(max_length=256, unique=True)
    capacity: int


class ParkingLot(ParkingLotBase, table=True):
    __tablename__ = "parking_lot"
    __table_args__ = (CheckConstraint("capacity >= 0", name="capacity_non_negative"),)

    id: Optional[int] = Field(default=None, primary_key=True)


class ParkingLotCreate(ParkingLotBase):
    pass


class ParkingLotRead(ParkingLotBase):
    id: int


class ParkingTicketBase(SQLModel):
    car_licence_plate: str = Field(max_length=16)
    parking_lot_id: int = Field(foreign_key="parking_lot.id")


class ParkingTicket(ParkingTicketBase, table=True):
    __tablename__ = "parking_ticket"
    __table_args__ = (Index("time_index", "arrival_time", "leave_time"),)

    id: uuid.UUID = Field(primary_key=True)
    # naive local timestamps
    arrival_time: datetime = Field(sa_type=DateTime)
    leave_time: Optional[datetime] = Field(default=None, sa_type=DateTime)  # None while the car is parked


class ParkingTicketCreate(ParkingTicketBase):
    pass


class ParkingTicketRead(ParkingTicketBase):
    id: uuid.UUID
    arrival_time: datetime
    leave_time: Optional[datetime] = None


# Database Setup
def make_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url)

    engine = create_engine(url, connect_args={"check_same_thread": False})

    # SQLite leaves foreign keys unenforced unless asked on every connection
    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)
