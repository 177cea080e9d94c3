"""CLI for rendering the placeholder images of every view."""
from __future__ import annotations

import logging
from pathlib import Path

import typer

from techpack_portal.techpack_lib import log as log_mod
from techpack_portal.techpack_lib.placeholders import write_placeholders


def main(
    out_dir: Path = typer.Option(Path("placeholders"), "--out", help="Directory to write the PNG files to"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing images"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    log_mod.setup_logging(log_level)
    logger = logging.getLogger("cli.placeholders")
    written = write_placeholders(out_dir, force=force)
    for path in written:
        logger.debug("Wrote %s", path)
    logger.info("Wrote %d placeholder images to %s", len(written), out_dir)


def run() -> None:  # pragma: no cover
    typer.run(main)


if __name__ == "__main__":  # pragma: no cover
    run()
