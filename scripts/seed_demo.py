"""
Load demo data through the HTTP API and print the dashboard.
Run:
    python scripts/seed_demo.py [API_URL]
"""
import sys
import random
from datetime import date, timedelta

import requests

API = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"


def main():
    r = requests.get(f"{API}/api/seed")
    print("Seed:", r.json())

    farms = requests.get(f"{API}/api/farms").json()
    farm_id = farms[0]["Id"]

    today = date.today()
    for i in range(5):
        body = {
            "farmId": farm_id,
            "title": f"Scout block {i + 1}",
            "type": random.choice(["Inspection", "Watering", "Pest Control"]),
            "dueDate": str(today + timedelta(days=random.randint(-3, 7))),
        }
        rr = requests.post(f"{API}/api/tasks", json=body)
        print("task", i, rr.status_code, rr.text)

    for i in range(3):
        body = {
            "farmId": farm_id,
            "type": "expense",
            "category": random.choice(["Fuel", "Labor", "Maintenance"]),
            "amount": round(random.uniform(50, 500), 2),
            "date": str(today - timedelta(days=random.randint(0, 60))),
            "description": f"Demo expense {i + 1}",
        }
        rr = requests.post(f"{API}/api/transactions", json=body)
        print("transaction", i, rr.status_code, rr.text)

    rr = requests.get(f"{API}/api/dashboard")
    print("dashboard:", rr.status_code, rr.text)


if __name__ == "__main__":
    main()
