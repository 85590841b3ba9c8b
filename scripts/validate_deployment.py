"""
Pre-Deploy and Smoke Test Script.

Runs the application in-process (lifespan included) against the configured
database and executes a smoke test:
1. Health Check
2. Add -> Get -> Check -> Delete of a throwaway tracking ID
3. Notification feed query
"""

import sys

from fastapi.testclient import TestClient

from parcel_tracker.app.main import app

SMOKE_TRACKING_ID = "ZZ000000001GB"


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def run_smoke(client: TestClient):
    print_step("PRE-DEPLOY", "Checking /health...")
    response = client.get("/health")
    if response.status_code != 200:
        fail(f"Health check failed: {response.status_code} {response.text}")
    success(f"Health: {response.json()}")

    print_step("SMOKE", "Running Add -> Check -> Delete flow...")
    # Clear leftovers from an aborted run
    client.delete(f"/v1/tracking/{SMOKE_TRACKING_ID}")

    response = client.post("/v1/tracking", json={"tracking_id": SMOKE_TRACKING_ID})
    if response.status_code != 201:
        fail(f"Add failed: {response.status_code} {response.text}")
    success(f"Added: {response.json()}")

    response = client.get(f"/v1/tracking/{SMOKE_TRACKING_ID}")
    if response.status_code != 200 or not response.json()["history"]:
        fail(f"Get failed: {response.status_code} {response.text}")
    success(f"State {response.json()['state']}, next check at {response.json()['next_check_at']}")

    response = client.post(f"/v1/tracking/{SMOKE_TRACKING_ID}/check")
    if response.status_code != 200:
        fail(f"Check failed: {response.status_code} {response.text}")
    success(f"Check: {response.json()}")

    response = client.delete(f"/v1/tracking/{SMOKE_TRACKING_ID}")
    if response.status_code != 200:
        fail(f"Delete failed: {response.status_code} {response.text}")
    if client.get(f"/v1/tracking/{SMOKE_TRACKING_ID}").status_code != 404:
        fail("Record still present after delete")
    success("Deleted")

    print_step("VERIFY", "Checking notification feed...")
    response = client.get("/v1/notifications", params={"limit": 5})
    if response.status_code != 200:
        fail(f"Notification feed failed: {response.status_code} {response.text}")
    success(f"Feed reachable ({len(response.json())} recent notifications)")


def main():
    print("🚀 Starting Deployment Validation...")
    with TestClient(app) as client:
        run_smoke(client)
    success("Deployment Validation Passed!")


if __name__ == "__main__":
    main()
