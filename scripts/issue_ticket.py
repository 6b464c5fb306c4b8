import json
import os
import sys
import urllib.request

if len(sys.argv) != 3:
    print("usage: issue_ticket.py <licence_plate> <parking_lot_id>")
    sys.exit(2)

base_url = os.environ.get("PARKING_URL", "http://127.0.0.1:8000")
payload = json.dumps({"car_licence_plate": sys.argv[1], "parking_lot_id": int(sys.argv[2])}).encode("utf-8")
req = urllib.request.Request(
    base_url.rstrip("/") + "/ticket",
    data=payload,
    headers={"Content-Type": "application/json"},
    method="POST",
)
try:
    with urllib.request.urlopen(req) as response:
        ticket = json.loads(response.read().decode())
        print(ticket["id"])
except Exception as e:
    print(e)
    sys.exit(1)
