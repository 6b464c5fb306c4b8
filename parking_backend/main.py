import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .commands import (
    CloseTicket,
    Command,
    CommandResult,
    CreateLot,
    GetUsages,
    GetVisitors,
    IssueTicket,
    ResultStatus,
)
from .config import Settings, configure_logging
from .dispatcher import Dispatcher
from .errors import (
    CommandValidationError,
    CompletionTimeoutError,
    DispatcherNotRunningError,
    StoreConstraintError,
    StoreError,
)
from .models import ParkingLotCreate, ParkingLotRead, ParkingTicketCreate, ParkingTicketRead
from .store import Store

logger = logging.getLogger("ParkingAPI")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = Store(settings.database_url)
        store.initialize()
        dispatcher = Dispatcher(store)
        dispatcher.start()
        app.state.store = store
        app.state.dispatcher = dispatcher
        yield
        dispatcher.stop()
        store.close()

    app = FastAPI(title="Parking API", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


# --- HELPERS ---

def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def run_command(request: Request, dispatcher: Dispatcher, command: Command) -> CommandResult:
    """Hand the command to the dispatcher and block this worker thread on the result."""
    timeout = request.app.state.settings.completion_timeout_s
    try:
        result = dispatcher.dispatch(command, timeout)
    except DispatcherNotRunningError as e:
        raise HTTPException(503, str(e))
    except CompletionTimeoutError:
        logger.error(f"{type(command).__name__} not completed within {timeout}s")
        raise HTTPException(504, "Request timed out")

    if result.status is ResultStatus.FAILED:
        if isinstance(result.error, StoreConstraintError):
            raise HTTPException(409, str(result.error))
        if isinstance(result.error, StoreError):
            raise HTTPException(503, "Store unavailable")
        raise HTTPException(500, "Internal error")
    return result


def build(factory, *args):
    try:
        return factory(*args)
    except CommandValidationError as e:
        raise HTTPException(400, str(e))


# --- API ---

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True}


@router.post("/parkingLot", response_model=ParkingLotRead)
def add_parking_lot(req: ParkingLotCreate, request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)):
    command = build(CreateLot, req.name, req.capacity)
    return run_command(request, dispatcher, command).value


@router.get("/parkingLot/usage", response_model=Dict[str, float])
def get_usages(
    request: Request,
    lot_ids: List[str] = Query(default=[], alias="id"),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    command = build(GetUsages.from_request, lot_ids)
    usages = run_command(request, dispatcher, command).value
    return {str(lot_id): percent for lot_id, percent in usages.items()}


@router.get("/parkingLot/{lot_id}/visitors", response_model=int)
def get_visitors(lot_id: str, request: Request, day: Optional[str] = None, dispatcher: Dispatcher = Depends(get_dispatcher)):
    command = build(GetVisitors.from_request, lot_id, day)
    result = run_command(request, dispatcher, command)
    if result.status is ResultStatus.NOT_FOUND:
        raise HTTPException(404, f"Parking lot {command.lot_id} not found")
    return result.value


@router.post("/ticket", response_model=ParkingTicketRead)
def add_ticket(req: ParkingTicketCreate, request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)):
    command = build(IssueTicket.new, req.car_licence_plate, req.parking_lot_id)
    return run_command(request, dispatcher, command).value


@router.delete("/ticket/{ticket_id}", response_model=ParkingTicketRead)
def remove_ticket(ticket_id: str, request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)):
    command = build(CloseTicket.from_request, ticket_id)
    result = run_command(request, dispatcher, command)
    if result.status is ResultStatus.NOT_FOUND:
        raise HTTPException(404, f"No open ticket {ticket_id}")
    return result.value


app = create_app()
