"""Run the workbench web server with explicit args."""
from __future__ import annotations

import argparse
import os

import uvicorn

from .server.app import create_app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='workbench-web')
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--app-root", default=None, help="Directory holding the built client assets")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if args.app_root:
        os.environ["WORKBENCH_APP_ROOT"] = args.app_root
    app = create_app()
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
