"""Load test for the purchase path.

Start the API, create an admin account and export its credentials:

  ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=... locust -f locustfile.py --host http://localhost:8000

Each simulated customer registers, logs in and buys from a shared sweet
with limited stock, so the run exercises concurrent stock decrements.
"""
import os
import random

import requests
from locust import HttpUser, between, events, task

SHARED_STOCK = int(os.getenv("LOAD_STOCK", "500"))
shared = {"sweet_id": None}


@events.test_start.add_listener
def create_shared_sweet(environment, **kwargs):
    if not environment.host:
        return
    base = environment.host.rstrip("/")
    r = requests.post(
        f"{base}/api/auth/login",
        json={"email": os.getenv("ADMIN_EMAIL", "admin@example.com"), "password": os.getenv("ADMIN_PASSWORD", "adminpass")},
        timeout=10,
    )
    r.raise_for_status()
    headers = {"Authorization": f"Bearer {r.json()['token']}"}
    r = requests.post(
        f"{base}/api/sweets",
        json={"name": "Load Test Ladoo", "price": 20, "stock": SHARED_STOCK},
        headers=headers,
        timeout=10,
    )
    r.raise_for_status()
    shared["sweet_id"] = r.json()["id"]


class Customer(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Register a customer for this simulated client
        email = f"user_{random.randint(1, 1_000_000)}@example.com"
        self.client.post("/api/auth/register", json={"email": email, "password": "password123"})
        r = self.client.post("/api/auth/login", json={"email": email, "password": "password123"})
        self.headers = {"Authorization": f"Bearer {r.json()['token']}"} if r.status_code == 200 else None

    @task(3)
    def purchase(self):
        if not self.headers or not shared["sweet_id"]:
            return
        with self.client.post(
            f"/api/sweets/{shared['sweet_id']}/purchase",
            json={"quantity": random.randint(1, 3)},
            headers=self.headers,
            name="/api/sweets/[id]/purchase",
            catch_response=True,
        ) as r:
            # Running out of stock is an expected outcome, not a failure
            if r.status_code in (200, 400):
                r.success()

    @task(1)
    def list_sweets(self):
        if self.headers:
            self.client.get("/api/sweets", headers=self.headers)
