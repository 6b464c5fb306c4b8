"""Commands accepted by the dispatcher and the results it hands back.

A command is built by the HTTP layer from raw request data. Construction
validates everything, so a command that exists is well-formed and the
dispatcher can execute it without looking at the request again.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Optional, Tuple, Union

from .errors import CommandValidationError

DAY_FORMAT = "%Y-%m-%d"  # also accepts non-padded month/day, e.g. 2001-2-3
MAX_LOT_NAME_LENGTH = 256
MAX_PLATE_LENGTH = 16


# SQLite INTEGER is a signed 64-bit value
MIN_INTEGER = -(2 ** 63)
MAX_INTEGER = 2 ** 63 - 1


def is_db_integer(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_INTEGER <= value <= MAX_INTEGER


def parse_lot_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise CommandValidationError(f"Invalid parking lot id: {raw!r}")
    if isinstance(raw, int):
        value = raw
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            raise CommandValidationError(f"Invalid parking lot id: {raw!r}") from None
    if not is_db_integer(value):
        raise CommandValidationError(f"Parking lot id out of range: {raw!r}")
    return value


def parse_day(raw: str) -> date:
    try:
        return datetime.strptime(raw.strip(), DAY_FORMAT).date()
    except (AttributeError, ValueError):
        raise CommandValidationError(f"Invalid day {raw!r}, expected YYYY-M-D") from None


def parse_ticket_id(raw: str) -> uuid.UUID:
    """Parse a ticket id given in canonical 8-4-4-4-12 hex form."""
    try:
        ticket_id = uuid.UUID(raw)
    except (AttributeError, TypeError, ValueError):
        raise CommandValidationError(f"Invalid ticket id: {raw!r}") from None
    if str(ticket_id) != raw.lower():
        raise CommandValidationError(f"Ticket id must be in canonical form: {raw!r}")
    return ticket_id


@dataclass(frozen=True)
class CreateLot:
    name: str
    capacity: int

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise CommandValidationError("Parking lot name is required")
        if len(self.name) > MAX_LOT_NAME_LENGTH:
            raise CommandValidationError(f"Parking lot name longer than {MAX_LOT_NAME_LENGTH} characters")
        if not is_db_integer(self.capacity):
            raise CommandValidationError(f"Capacity must be an integer, got {self.capacity!r}")
        if self.capacity < 0:
            raise CommandValidationError("Capacity must be >= 0")


@dataclass(frozen=True)
class GetUsages:
    lot_ids: Tuple[int, ...]

    def __post_init__(self):
        for lot_id in self.lot_ids:
            if not is_db_integer(lot_id):
                raise CommandValidationError(f"Invalid parking lot id: {lot_id!r}")

    @classmethod
    def from_request(cls, raw_ids: Iterable[Any]) -> "GetUsages":
        return cls(lot_ids=tuple(parse_lot_id(raw) for raw in raw_ids))


@dataclass(frozen=True)
class GetVisitors:
    lot_id: int
    day: date

    def __post_init__(self):
        if not is_db_integer(self.lot_id):
            raise CommandValidationError(f"Invalid parking lot id: {self.lot_id!r}")
        if isinstance(self.day, datetime) or not isinstance(self.day, date):
            raise CommandValidationError(f"Invalid day: {self.day!r}")

    @classmethod
    def from_request(cls, raw_lot_id: Any, raw_day: Optional[str]) -> "GetVisitors":
        if raw_day is None:
            raise CommandValidationError("Query parameter 'day' is required")
        return cls(lot_id=parse_lot_id(raw_lot_id), day=parse_day(raw_day))


@dataclass(frozen=True)
class IssueTicket:
    licence_plate: str
    lot_id: int
    ticket_id: uuid.UUID
    arrival_time: datetime

    def __post_init__(self):
        if not isinstance(self.licence_plate, str) or not self.licence_plate.strip():
            raise CommandValidationError("Car licence plate is required")
        if len(self.licence_plate) > MAX_PLATE_LENGTH:
            raise CommandValidationError(f"Car licence plate longer than {MAX_PLATE_LENGTH} characters")
        if not is_db_integer(self.lot_id):
            raise CommandValidationError(f"Invalid parking lot id: {self.lot_id!r}")
        if not isinstance(self.ticket_id, uuid.UUID):
            raise CommandValidationError(f"Invalid ticket id: {self.ticket_id!r}")

    @classmethod
    def new(cls, licence_plate: str, lot_id: Any) -> "IssueTicket":
        """Stamp a fresh ticket id and the current time as arrival."""
        plate = licence_plate.strip() if isinstance(licence_plate, str) else licence_plate
        return cls(
            licence_plate=plate,
            lot_id=parse_lot_id(lot_id),
            ticket_id=uuid.uuid4(),
            arrival_time=datetime.now(),
        )


@dataclass(frozen=True)
class CloseTicket:
    ticket_id: uuid.UUID

    def __post_init__(self):
        if not isinstance(self.ticket_id, uuid.UUID):
            raise CommandValidationError(f"Invalid ticket id: {self.ticket_id!r}")

    @classmethod
    def from_request(cls, raw_ticket_id: str) -> "CloseTicket":
        return cls(ticket_id=parse_ticket_id(raw_ticket_id))


Command = Union[CreateLot, GetUsages, GetVisitors, IssueTicket, CloseTicket]


class ResultStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command.

    `value` holds the payload when status is OK: the created ParkingLot, the
    usage mapping, the visitor count, or the issued/closed ParkingTicket.
    `error` holds the exception when status is FAILED.
    """
    status: ResultStatus
    value: Any = None
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, value: Any) -> "CommandResult":
        return cls(ResultStatus.OK, value=value)

    @classmethod
    def not_found(cls) -> "CommandResult":
        return cls(ResultStatus.NOT_FOUND)

    @classmethod
    def failed(cls, error: Exception) -> "CommandResult":
        return cls(ResultStatus.FAILED, error=error)

    @property
    def is_ok(self) -> bool:
        return self.status is ResultStatus.OK
