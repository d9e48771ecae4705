"""
Process entrypoint.

Resolves the configuration profile, initialises logging and serves the control
API with uvicorn.  The signaling machine is closed by the application lifespan
when the server stops, whatever state the session is in.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

from .api.server import create_app
from .api.state import LinkState
from .config import LinkConfig, load_config
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)


async def serve(config: LinkConfig, host: str = "127.0.0.1", port: int = 8080) -> None:
    """
    Run the control API inside an asyncio loop.

    Parameters
    ----------
    config:
        Resolved link configuration (ICE servers, capture device).
    host, port:
        Bind address for the FastAPI/uvicorn server.
    """

    import uvicorn

    link_state = LinkState(config)
    app = create_app(state=link_state)
    server_config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_config=None,
        log_level="info",
        reload=False,
    )
    server = uvicorn.Server(config=server_config)

    def _handle_signal(signum: int, frame: Optional[object]) -> None:
        LOG.info("Received signal %s, shutting down server...", signum)
        server.should_exit = True

    for signame in ("SIGINT", "SIGTERM"):
        signal.signal(getattr(signal, signame), _handle_signal)

    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LANLink control server")
    parser.add_argument("--profile", default="default", help="configuration profile to load")
    parser.add_argument("--config", default=None, help="path to a profiles YAML file")
    parser.add_argument("--host", default="127.0.0.1", help="bind host for the API server")
    parser.add_argument("--port", type=int, default=8080, help="bind port for the API server")
    parser.add_argument("--log-level", default="INFO", help="root log level")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)

    config = load_config(args.profile, Path(args.config) if args.config else None)

    try:
        asyncio.run(serve(config=config, host=args.host, port=args.port))
    except KeyboardInterrupt:
        LOG.info("Interrupted by user.")


if __name__ == "__main__":
    run()
