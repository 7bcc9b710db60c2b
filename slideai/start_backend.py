#!/usr/bin/env python3
"""
Backend startup wrapper for SlideAI.

Usage:
    python -m slideai.start_backend [--host 0.0.0.0] [--port 8080] [--reload]
"""
import argparse
import sys

import uvicorn


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the SlideAI backend")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    print(f"[Backend] Starting SlideAI backend on http://{args.host}:{args.port}")
    try:
        uvicorn.run(
            "slideai.main:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[Backend] Shutting down...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
