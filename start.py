"""Entry point to run both the FastAPI backend and the scheduler worker."""

import subprocess
import sys
import signal
import os
from pathlib import Path

# Load .env file FIRST before starting any subprocess
from dotenv import load_dotenv
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)
print(f"Loaded environment from: {env_path}")


def main():
    port = os.environ.get("PORT", "8000")

    print("=" * 50)
    print("Starting Rally Wake-Up Calls")
    print("=" * 50)
    print(f"1. Starting FastAPI backend (port {port})...")
    print("2. Starting scheduler worker...")
    print()

    # Get current environment (includes loaded .env vars)
    env = os.environ.copy()
    cwd = os.path.dirname(os.path.abspath(__file__))

    api_process = subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "rally.main:app", "--host", "0.0.0.0", "--port", port],
        cwd=cwd,
        env=env,
    )
    worker_process = subprocess.Popen(
        [sys.executable, "-m", "rally.worker"],
        cwd=cwd,
        env=env,
    )

    print(f"- API: http://localhost:{port}")
    print(f"- API Docs: http://localhost:{port}/docs")
    print("Press Ctrl+C to stop both services...")

    def signal_handler(sig, frame):
        print()
        print("Shutting down...")
        api_process.terminate()
        worker_process.terminate()
        api_process.wait()
        worker_process.wait()
        print("Services stopped.")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        api_process.wait()
        worker_process.wait()
    except KeyboardInterrupt:
        signal_handler(None, None)


if __name__ == "__main__":
    main()
