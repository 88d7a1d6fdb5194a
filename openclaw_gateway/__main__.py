"""Command-line entry point: serve the gateway with uvicorn."""

import argparse
import os
import sys

import uvicorn

from openclaw_gateway.api import create_app
from openclaw_gateway.config import load_config

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 32104


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="openclaw-gateway",
        description="OpenClaw gateway: service control and status API for the openclaw containers.",
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", DEFAULT_HOST),
        help=f"Bind address (default: HOST env or {DEFAULT_HOST})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", DEFAULT_PORT)),
        help=f"Bind port (default: PORT env or {DEFAULT_PORT})",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="PATH",
        help="Config file path (default: CONFIG_FILE env or the bundled config)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "info").lower(),
        help="uvicorn log level (default: LOG_LEVEL env or info)",
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error: failed to load configuration: {e}", file=sys.stderr)
        return 1

    uvicorn.run(create_app(config), host=args.host, port=args.port, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    sys.exit(main())
