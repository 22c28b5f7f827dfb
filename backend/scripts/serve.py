#!/usr/bin/env python3
"""
Run the feed service with uvicorn. From backend/:
  python scripts/serve.py --port 8000
  python scripts/serve.py --reload
"""
import argparse
import logging
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import uvicorn

from feedservice.config import settings


def main():
    parser = argparse.ArgumentParser(description="Run the feed cache service")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")
    args = parser.parse_args()

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("\n" + "=" * 60)
    print(f"  FEED SERVICE   http://{args.host}:{args.port}")
    print(f"  API docs       http://{args.host}:{args.port}/docs")
    print(f"  Health         http://{args.host}:{args.port}/health")
    print("=" * 60 + "\n")
    uvicorn.run(
        "feedservice.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        app_dir=str(backend_dir),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
