import os
import sys

from parking_backend.store import Store

store = Store(os.environ.get("PARKING_DB_URL", "sqlite:///parking_system.db"))
store.initialize()

lot_id = int(sys.argv[1]) if len(sys.argv) > 1 else None
tickets = store.list_tickets(lot_id)
if not tickets:
    print('NO_TICKETS')
for t in tickets:
    print(t.id, t.parking_lot_id, t.car_licence_plate, t.arrival_time, t.leave_time or "-")

store.close()
