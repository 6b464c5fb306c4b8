"""Tests for the dispatcher: ordering, failure isolation and concurrency."""
from __future__ import annotations

import logging
import threading
import uuid
from collections import Counter
from datetime import date

import pytest

from parking_backend.commands import (
    CloseTicket,
    CreateLot,
    GetUsages,
    GetVisitors,
    IssueTicket,
    ResultStatus,
)
from parking_backend.dispatcher import Dispatcher
from parking_backend.errors import (
    DispatcherNotRunningError,
    StoreConstraintError,
    StoreNotInitializedError,
)
from parking_backend.store import Store

TIMEOUT = 10


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_submit_before_start_rejected(self, store: Store) -> None:
        with pytest.raises(DispatcherNotRunningError):
            Dispatcher(store).submit(CreateLot("Main", 2))

    def test_submit_after_stop_rejected(self, dispatcher: Dispatcher) -> None:
        dispatcher.stop(timeout=5)
        with pytest.raises(DispatcherNotRunningError):
            dispatcher.submit(CreateLot("Main", 2))

    def test_stop_drains_accepted_commands(self, store: Store) -> None:
        dispatcher = Dispatcher(store)
        dispatcher.start()
        handles = [dispatcher.submit(CreateLot(f"Lot {i}", i)) for i in range(20)]
        dispatcher.stop(timeout=5)

        assert all(handle.done for handle in handles)
        assert all(handle.wait(0).is_ok for handle in handles)
        assert len(store.list_lots()) == 20

    def test_stop_warns_when_worker_outlives_timeout(self, store: Store, caplog: pytest.LogCaptureFixture) -> None:
        dispatcher = Dispatcher(store)
        dispatcher.start()
        store.lock.acquire()
        try:
            handle = dispatcher.submit(CreateLot("Main", 2))
            with caplog.at_level(logging.INFO, logger="Dispatcher"):
                dispatcher.stop(timeout=0.05)
        finally:
            store.lock.release()

        messages = [(r.levelno, r.getMessage()) for r in caplog.records if r.name == "Dispatcher"]
        assert any(level == logging.WARNING and "still busy" in msg for level, msg in messages)
        assert "Dispatcher stopped" not in [msg for _, msg in messages]
        assert handle.wait(TIMEOUT).is_ok

    def test_stop_logs_clean_shutdown(self, store: Store, caplog: pytest.LogCaptureFixture) -> None:
        dispatcher = Dispatcher(store)
        dispatcher.start()
        with caplog.at_level(logging.INFO, logger="Dispatcher"):
            dispatcher.stop(timeout=5)
        assert "Dispatcher stopped" in [r.getMessage() for r in caplog.records if r.name == "Dispatcher"]

    def test_start_twice_is_harmless(self, dispatcher: Dispatcher) -> None:
        dispatcher.start()
        assert dispatcher.dispatch(CreateLot("Main", 2), TIMEOUT).is_ok


# ---------------------------------------------------------------------------
# Ordering and failures
# ---------------------------------------------------------------------------


class TestExecution:
    def test_commands_run_in_submission_order(self, dispatcher: Dispatcher) -> None:
        handles = [dispatcher.submit(CreateLot(f"Lot {i}", 1)) for i in range(25)]
        lots = [handle.wait(TIMEOUT).value for handle in handles]
        assert [lot.id for lot in lots] == list(range(1, 26))
        assert [lot.name for lot in lots] == [f"Lot {i}" for i in range(25)]

    def test_store_failure_becomes_result_and_loop_continues(self, dispatcher: Dispatcher) -> None:
        assert dispatcher.dispatch(CreateLot("Main", 2), TIMEOUT).is_ok

        duplicate = dispatcher.dispatch(CreateLot("Main", 5), TIMEOUT)
        assert duplicate.status is ResultStatus.FAILED
        assert isinstance(duplicate.error, StoreConstraintError)

        after = dispatcher.dispatch(CreateLot("East", 5), TIMEOUT)
        assert after.is_ok
        assert after.value.id == 2

    def test_uninitialized_store_reported(self, db_url: str) -> None:
        dispatcher = Dispatcher(Store(db_url))
        dispatcher.start()
        try:
            result = dispatcher.dispatch(GetUsages((1,)), TIMEOUT)
        finally:
            dispatcher.stop(timeout=5)
        assert result.status is ResultStatus.FAILED
        assert isinstance(result.error, StoreNotInitializedError)

    def test_unsupported_command(self, dispatcher: Dispatcher) -> None:
        result = dispatcher.execute("park my car")  # type: ignore[arg-type]
        assert result.status is ResultStatus.FAILED
        assert isinstance(result.error, TypeError)

    def test_ticket_for_unknown_lot_fails(self, dispatcher: Dispatcher) -> None:
        result = dispatcher.dispatch(IssueTicket.new("AB123CD", 99), TIMEOUT)
        assert result.status is ResultStatus.FAILED
        assert isinstance(result.error, StoreConstraintError)


# ---------------------------------------------------------------------------
# Command semantics
# ---------------------------------------------------------------------------


class TestCommands:
    def test_main_lot_scenario_has_no_admission_gate(self, dispatcher: Dispatcher) -> None:
        lot = dispatcher.dispatch(CreateLot("Main", 2), TIMEOUT).value
        assert lot.id == 1

        first = dispatcher.dispatch(IssueTicket.new("AB123CD", 1), TIMEOUT)
        assert first.is_ok
        assert first.value.leave_time is None

        assert dispatcher.dispatch(IssueTicket.new("EF456GH", 1), TIMEOUT).is_ok
        assert dispatcher.dispatch(GetUsages((1,)), TIMEOUT).value == {1: 100.0}

        # capacity is only reported, a full lot still accepts tickets
        third = dispatcher.dispatch(IssueTicket.new("IJ789KL", 1), TIMEOUT)
        assert third.is_ok
        assert dispatcher.dispatch(GetUsages((1,)), TIMEOUT).value == {1: 150.0}

    def test_issue_and_close_round_trip(self, dispatcher: Dispatcher) -> None:
        lot = dispatcher.dispatch(CreateLot("Lot A", 10), TIMEOUT).value
        ticket = dispatcher.dispatch(IssueTicket.new("AB123CD", lot.id), TIMEOUT).value
        assert dispatcher.dispatch(GetUsages((lot.id,)), TIMEOUT).value == {lot.id: 10.0}

        closed = dispatcher.dispatch(CloseTicket(ticket.id), TIMEOUT)
        assert closed.is_ok
        assert closed.value.leave_time is not None
        assert dispatcher.dispatch(GetUsages((lot.id,)), TIMEOUT).value == {lot.id: 0.0}

    def test_close_never_issued_ticket(self, dispatcher: Dispatcher) -> None:
        result = dispatcher.dispatch(CloseTicket(uuid.uuid4()), TIMEOUT)
        assert result.status is ResultStatus.NOT_FOUND

    def test_usages_skip_unknown_lots(self, dispatcher: Dispatcher) -> None:
        dispatcher.dispatch(CreateLot("Main", 2), TIMEOUT)
        assert dispatcher.dispatch(GetUsages((1, 7)), TIMEOUT).value == {1: 0.0}

    def test_visitors_not_found_differs_from_zero(self, dispatcher: Dispatcher) -> None:
        dispatcher.dispatch(CreateLot("Main", 2), TIMEOUT)

        existing = dispatcher.dispatch(GetVisitors(1, date.today()), TIMEOUT)
        assert existing.is_ok
        assert existing.value == 0

        missing = dispatcher.dispatch(GetVisitors(2, date.today()), TIMEOUT)
        assert missing.status is ResultStatus.NOT_FOUND


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def run_threads(target, count: int) -> None:
    threads = [threading.Thread(target=target, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(TIMEOUT)


class TestConcurrency:
    def test_concurrent_close_of_same_ticket_applies_once(self, dispatcher: Dispatcher) -> None:
        dispatcher.dispatch(CreateLot("Main", 2), TIMEOUT)
        ticket = dispatcher.dispatch(IssueTicket.new("AB123CD", 1), TIMEOUT).value
        barrier = threading.Barrier(2)
        statuses: list[ResultStatus] = []
        lock = threading.Lock()

        def close(_: int) -> None:
            barrier.wait()
            result = dispatcher.dispatch(CloseTicket(ticket.id), TIMEOUT)
            with lock:
                statuses.append(result.status)

        run_threads(close, 2)

        assert Counter(statuses) == Counter({ResultStatus.OK: 1, ResultStatus.NOT_FOUND: 1})

    def test_remaining_capacity_matches_open_tickets(self, dispatcher: Dispatcher, store: Store) -> None:
        lot = dispatcher.dispatch(CreateLot("Main", 100), TIMEOUT).value
        barrier = threading.Barrier(8)

        def park_and_leave(worker: int) -> None:
            barrier.wait()
            for n in range(6):
                ticket = dispatcher.dispatch(IssueTicket.new(f"W{worker}-{n}", lot.id), TIMEOUT).value
                if n % 2 == 0:
                    dispatcher.dispatch(CloseTicket(ticket.id), TIMEOUT)

        run_threads(park_and_leave, 8)

        tickets = store.list_tickets(lot.id)
        open_tickets = [t for t in tickets if t.leave_time is None]
        assert len(tickets) == 48
        assert len(open_tickets) == 24
        assert store.get_remaining_capacity(lot.id) == 100 - len(open_tickets)
        assert dispatcher.dispatch(GetUsages((lot.id,)), TIMEOUT).value == {lot.id: 24.0}

    def test_many_callers_each_get_their_own_result(self, dispatcher: Dispatcher) -> None:
        results: dict[int, str] = {}
        lock = threading.Lock()

        def create(i: int) -> None:
            lot = dispatcher.dispatch(CreateLot(f"Lot {i}", i), TIMEOUT).value
            with lock:
                results[i] = lot.name

        run_threads(create, 16)

        assert results == {i: f"Lot {i}" for i in range(16)}
