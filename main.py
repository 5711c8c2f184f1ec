"""
metabalance - Main Entry Point
Serves the meta-balance sessions API (api.main:app) under uvicorn on $PORT (default 8000)

Usage:
    python main.py
    PORT=9000 python main.py
"""

import subprocess
import sys
import os
import signal


def main():
    os.chdir(os.path.dirname(os.path.abspath(__file__)))

    port = os.environ.get("PORT", "8000")
    api_proc = subprocess.Popen([
        sys.executable, "-m", "uvicorn", "api.main:app",
        "--host=0.0.0.0", f"--port={port}",
        "--log-level=info",
    ])

    def shutdown(signum, frame):
        api_proc.terminate()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    try:
        api_proc.wait()
    except KeyboardInterrupt:
        pass
    finally:
        api_proc.terminate()


if __name__ == "__main__":
    main()
