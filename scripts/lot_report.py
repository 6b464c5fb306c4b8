import os

from parking_backend.store import Store

store = Store(os.environ.get("PARKING_DB_URL", "sqlite:///parking_system.db"))
store.initialize()

lots = store.list_lots()
if not lots:
    print('NO_LOTS')
usages = store.get_usages_in_percent(lot.id for lot in lots)
for lot in lots:
    remaining = store.get_remaining_capacity(lot.id)
    print(f"{lot.id:>4} {lot.name:<32} capacity={lot.capacity} remaining={remaining} usage={usages.get(lot.id, 0.0):.1f}%")

store.close()
