"""Launch the session gateway API."""

from __future__ import annotations

import argparse
import errno
import logging
import socket
from typing import Final

import uvicorn

from gateway.config import get_settings

PORT_IN_USE_MESSAGE: Final[str] = (
    "Session gateway failed to start: {host}:{port} is already in use.\n"
    "Stop the conflicting process or choose another port via --port or "
    "WA_GATEWAY_PORT."
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the WhatsApp session gateway.")
    parser.add_argument("--host", default=None, help="Bind address (overrides settings/env).")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to (overrides settings/env).")
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug"],
        default=None,
        help="Log level for gateway and uvicorn output (overrides settings/env).",
    )
    return parser.parse_args()


def ensure_port_available(host: str, port: int) -> None:
    """Exit early with a readable message when the bind address is taken."""

    try:
        family = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM)[0][0]
    except socket.gaierror as exc:
        raise SystemExit(f"Unable to resolve host '{host}': {exc}") from exc
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as exc:
            if exc.errno == errno.EADDRINUSE:
                raise SystemExit(PORT_IN_USE_MESSAGE.format(host=host, port=port)) from exc
            raise SystemExit(f"Cannot bind {host}:{port}: {exc}") from exc


def main() -> None:
    args = parse_args()
    settings = get_settings()

    host = args.host or settings.host
    port = args.port or settings.port
    log_level = (args.log_level or settings.log_level).lower()
    root_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(level=root_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(root_level)

    ensure_port_available(host, port)

    uvicorn.run(
        "gateway.app:create_app",
        factory=True,
        host=host,
        port=port,
        log_level=log_level,
        log_config=None,
    )


if __name__ == "__main__":
    main()
