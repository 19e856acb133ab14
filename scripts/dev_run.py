#!/usr/bin/env python3
"""Local dev runner: the InteliMed API under uvicorn plus the Chainlit chat client.

- API on BACKEND_PORT (default 8000)
- Chainlit on PORT (default 8080), pointed at the API through BACKEND_URL

Run from the repo root with `python scripts/dev_run.py`; Ctrl+C stops both.
"""
import os
import shlex
import subprocess
import sys
import time

BACKEND_PORT = int(os.getenv("BACKEND_PORT", "8000"))
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info")


def _stop(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()


def main() -> int:
    env = os.environ.copy()
    env.setdefault("BACKEND_URL", f"http://localhost:{BACKEND_PORT}")
    env.setdefault("CHAINLIT_LOCALE", "en")

    commands = {
        "api": f"uvicorn intelimed.main:app --host 0.0.0.0 --port {BACKEND_PORT} --reload --log-level {shlex.quote(LOG_LEVEL)}",
        "chainlit": f"chainlit run chainlit_app.py --host 0.0.0.0 --port {PORT}",
    }
    procs = {}
    for name, cmd in commands.items():
        print(f"[dev_run.py] Starting {name}: {cmd}", flush=True)
        procs[name] = subprocess.Popen(shlex.split(cmd), env=env)
        # Give the API a head start before the client probes /healthz
        time.sleep(0.8)

    try:
        while True:
            for name, proc in procs.items():
                code = proc.poll()
                if code is not None:
                    print(f"[dev_run.py] {name} exited with code {code}; stopping the rest")
                    for other in procs.values():
                        _stop(other)
                    return code
            time.sleep(0.5)
    except KeyboardInterrupt:
        print("[dev_run.py] KeyboardInterrupt: terminating children...")
        for proc in procs.values():
            _stop(proc)
        return 130


if __name__ == "__main__":
    sys.exit(main())
