import logging
import queue
import threading
from typing import Callable, Dict, Optional

from .commands import (
    CloseTicket,
    Command,
    CommandResult,
    CreateLot,
    GetUsages,
    GetVisitors,
    IssueTicket,
)
from .completion import CompletionHandle
from .errors import DispatcherNotRunningError, StoreError
from .models import ParkingTicket
from .store import Store

logger = logging.getLogger("Dispatcher")

_STOP = object()


class Dispatcher:
    """Runs every command against the store on one worker thread, in FIFO order.

    Callers on any thread submit commands and get a CompletionHandle back;
    the worker executes the commands one at a time and signals each handle
    exactly once, whether the command succeeded or not.
    """

    def __init__(self, store: Store):
        self.store = store
        self.queue: "queue.Queue" = queue.Queue()
        self.running = False
        self.lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._handlers: Dict[type, Callable[..., CommandResult]] = {
            CreateLot: self._create_lot,
            GetUsages: self._get_usages,
            GetVisitors: self._get_visitors,
            IssueTicket: self._issue_ticket,
            CloseTicket: self._close_ticket,
        }

    def start(self) -> None:
        with self.lock:
            if self.running:
                return
            self.running = True
            self._thread = threading.Thread(target=self._run_loop, name="Dispatcher", daemon=True)
            self._thread.start()
        logger.info("Dispatcher started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop accepting commands, finish the queued ones, join the worker."""
        with self.lock:
            if not self.running:
                return
            self.running = False
            self.queue.put(_STOP)
        if self._thread:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Dispatcher worker still busy after {timeout}s, left running in background")
                return
        logger.info("Dispatcher stopped")

    def submit(self, command: Command) -> CompletionHandle:
        handle = CompletionHandle()
        with self.lock:
            if not self.running:
                raise DispatcherNotRunningError(f"Dispatcher is not running, {type(command).__name__} rejected")
            self.queue.put((command, handle))
        return handle

    def dispatch(self, command: Command, timeout: Optional[float] = None) -> CommandResult:
        """Submit and block until the worker has executed the command."""
        return self.submit(command).wait(timeout)

    def _run_loop(self):
        while True:
            item = self.queue.get()
            try:
                if item is _STOP:
                    return
                command, handle = item
                handle.signal(self.execute(command))
            finally:
                self.queue.task_done()

    def execute(self, command: Command) -> CommandResult:
        handler = self._handlers.get(type(command))
        if handler is None:
            return CommandResult.failed(TypeError(f"Unsupported command {type(command).__name__}"))
        try:
            return handler(command)
        except StoreError as e:
            logger.warning(f"{type(command).__name__} failed: {e}")
            return CommandResult.failed(e)
        except Exception as e:
            logger.exception(f"Unexpected error executing {type(command).__name__}")
            return CommandResult.failed(e)

    # --- HANDLERS ---

    def _create_lot(self, command: CreateLot) -> CommandResult:
        lot = self.store.add_parking_lot(command.name, command.capacity)
        logger.info(f"Created parking lot {lot.id} '{lot.name}' ({lot.capacity} spaces)")
        return CommandResult.ok(lot)

    def _get_usages(self, command: GetUsages) -> CommandResult:
        return CommandResult.ok(self.store.get_usages_in_percent(command.lot_ids))

    def _get_visitors(self, command: GetVisitors) -> CommandResult:
        count = self.store.get_visitors_during_day(command.lot_id, command.day)
        if count is None:
            logger.debug(f"Visitors requested for unknown parking lot {command.lot_id}")
            return CommandResult.not_found()
        return CommandResult.ok(count)

    def _issue_ticket(self, command: IssueTicket) -> CommandResult:
        # no capacity check: a full lot still gets its ticket
        ticket = self.store.add_ticket(
            ParkingTicket(
                id=command.ticket_id,
                car_licence_plate=command.licence_plate,
                parking_lot_id=command.lot_id,
                arrival_time=command.arrival_time,
            )
        )
        logger.info(f"Issued ticket {ticket.id} for {ticket.car_licence_plate} at lot {ticket.parking_lot_id}")
        return CommandResult.ok(ticket)

    def _close_ticket(self, command: CloseTicket) -> CommandResult:
        ticket = self.store.remove_ticket(command.ticket_id)
        if ticket is None:
            logger.debug(f"No open ticket {command.ticket_id}")
            return CommandResult.not_found()
        logger.info(f"Closed ticket {ticket.id}")
        return CommandResult.ok(ticket)
