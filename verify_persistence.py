import time
import subprocess
import httpx
import sys
import os
import signal

from booking_backend.app.core.jwt import create_access_token

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
APP = "booking_backend.app.main:app"

CUSTOMER = {"Authorization": f"Bearer {create_access_token({'sub': 'persist-user', 'role': 'USER'})}"}
AGENT = {"Authorization": f"Bearer {create_access_token({'sub': 'persist-agent', 'role': 'AGENT'})}"}


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
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


def start_server(extra_env=None):
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", APP, "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env={**os.environ, **(extra_env or {})}
    )


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def run_verification():
    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server({"DB_ECHO": "True"})

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stderr:", server_logs[1].decode())
            raise Exception("Server start failed")

        # 2. Create and confirm a booking
        print("\n--- [Step 2] Creating Booking (Persistence Test) ---")
        resp = httpx.post(
            f"{BASE_URL}{API_PREFIX}/bookings",
            json={
                "agent_id": "persist-agent",
                "service_id": "persist-service",
                "scheduled_date": "2030-01-01T10:00:00Z",
                "amount": "42.00",
            },
            headers=CUSTOMER
        )
        if resp.status_code != 201:
            print(f"❌ Create Failed: {resp.status_code} {resp.text}")
            raise Exception("Create failed")
        booking_id = resp.json()["id"]
        print(f"✅ Booking created: {booking_id}")

        resp = httpx.post(
            f"{BASE_URL}{API_PREFIX}/bookings/{booking_id}/transitions",
            json={"status": "CONFIRMED"},
            headers=AGENT
        )
        if resp.status_code != 200:
            print(f"❌ Confirm Failed: {resp.status_code} {resp.text}")
            raise Exception("Confirm failed")
        print("✅ Booking confirmed")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = start_server()

    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        print("\n--- [Step 5] Reading Booking (Post-Restart) ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/bookings/{booking_id}", headers=CUSTOMER)
        if resp.status_code != 200:
            print(f"❌ Read Failed (Persistence Issue?): {resp.status_code} {resp.text}")
            raise Exception("Read failed after restart")

        booking = resp.json()
        history = [entry["status"] for entry in booking["status_history"]]
        if booking["status"] == "CONFIRMED" and history == ["PENDING", "CONFIRMED"] and booking["version"] == 2:
            print("✅ Booking persisted with its status history")
        else:
            print(f"❌ Unexpected state after restart: {booking}")
            raise Exception("State mismatch after restart")

    finally:
        print("\n--- [Step 6] Stopping Server ---")
        stop_server(proc2)


if __name__ == "__main__":
    run_verification()
