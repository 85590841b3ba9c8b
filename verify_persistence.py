"""
Restart check: a tracked parcel and its history survive a server restart,
and polling of the undelivered parcel resumes.
"""

import os
import signal
import subprocess
import sys
import time

import httpx

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
TRACKING_ID = "PT123456789GB"

# Short mock timeline so the second run sees progress
SERVER_ENV = {
    **os.environ,
    "PROVIDER_STEP_SECONDS": "2",
    "CHECK_INTERVAL_SECONDS": "1",
}


def start_server():
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "parcel_tracker.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=SERVER_ENV,
    )


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for _ in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def run_verification():
    tracking_url = f"{BASE_URL}{API_PREFIX}/tracking"

    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server()
    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stderr:", server_logs[1].decode())
            raise Exception("Server start failed")

        print("\n--- [Step 2] Adding Tracking ---")
        resp = httpx.post(tracking_url, json={"tracking_id": TRACKING_ID, "notifications_enabled": True})
        if resp.status_code == 409:
            print("⚠️ Tracking already exists (left over from a previous run)")
        elif resp.status_code == 201:
            print("✅ Tracking added:", resp.json())
        else:
            raise Exception(f"Add failed: {resp.status_code} {resp.text}")

        before = httpx.get(f"{tracking_url}/{TRACKING_ID}").json()
        print(f"History before restart: {len(before['history'])} entries")
    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    print("\n--- [Step 4] Restarting Server ---")
    proc2 = start_server()
    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        print("\n--- [Step 5] Reading Tracking (Post-Restart) ---")
        resp = httpx.get(f"{tracking_url}/{TRACKING_ID}")
        if resp.status_code != 200:
            raise Exception(f"Tracking lost after restart: {resp.status_code} {resp.text}")
        after = resp.json()
        if len(after["history"]) < len(before["history"]):
            raise Exception("History shrank across restart")
        print(f"✅ Tracking persisted ({len(after['history'])} history entries, state {after['state']})")

        print("\n--- [Step 6] Waiting For Resumed Polling ---")
        time.sleep(5)
        latest = httpx.get(f"{tracking_url}/{TRACKING_ID}").json()
        if latest["last_checked_at"] == after["last_checked_at"] and latest["state"] == "ACTIVE":
            raise Exception("Polling did not resume after restart")
        print(f"✅ Polling resumed: {latest['last_status']}")

        print("\n--- [Step 7] Cleaning Up ---")
        httpx.delete(f"{tracking_url}/{TRACKING_ID}")
    finally:
        print("\n--- [Step 8] Stopping Server ---")
        stop_server(proc2)


if __name__ == "__main__":
    run_verification()
