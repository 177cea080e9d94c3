"""CLI for running the reference portal server over a data directory."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from techpack_portal.techpack_lib import config as config_mod, log as log_mod
from techpack_portal.techpack_lib.backend import PortalBackend
from techpack_portal.techpack_lib.web_server import PortalWebServer


def main(
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Directory holding specs.json, tickets.json and uploads"),
    host: str = typer.Option(config_mod.DEFAULT_HOST, "--host", help="Host to bind to"),
    port: int = typer.Option(config_mod.DEFAULT_PORT, "--port", help="Port to bind to (0 for any free port)", min=0),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
) -> None:
    log_mod.setup_logging(log_level, log_file)
    logger = logging.getLogger("cli.serve")
    cfg = config_mod.load_config(data_dir, host=host, port=port)
    backend = PortalBackend.from_config(cfg)
    server = PortalWebServer(backend, host=cfg.host, port=cfg.port)
    server.start()
    logger.info("Serving %s at %s (Ctrl+C to stop)", cfg.data_dir, server.url)
    server.wait_forever()
    logger.info("Server stopped")


def run() -> None:  # pragma: no cover
    typer.run(main)


if __name__ == "__main__":  # pragma: no cover
    run()
