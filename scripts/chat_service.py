"""Run the decision coach web chat service (FastAPI + uvicorn)."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import uvicorn

# Ensure project root is on sys.path when invoked as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from decision_coach.web.app import DEFAULT_HOST, DEFAULT_PORT


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the decision coach web chat service")
    parser.add_argument("--host", default=None, help=f"Host to bind (default: COACH_WEB_HOST or {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, default=None, help=f"Port to bind (default: COACH_WEB_PORT or {DEFAULT_PORT})")
    parser.add_argument("--reload", action="store_true", help="Enable autoreload (dev only)")
    args = parser.parse_args(argv)

    uvicorn.run(
        "decision_coach.web.app:app",
        host=args.host or DEFAULT_HOST,
        port=args.port or DEFAULT_PORT,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
