"""CLI for printing the review table of one order position."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import typer

from techpack_portal.techpack_lib import config as config_mod, log as log_mod
from techpack_portal.techpack_lib.api import HttpPortalApi
from techpack_portal.techpack_lib.errors import PortalError
from techpack_portal.techpack_lib.models import MediaStatus, PersistedMedia
from techpack_portal.techpack_lib.specification import SpecificationStore, ViewRow
from techpack_portal.techpack_lib.tickets import TicketRegistry


def format_row(row: ViewRow, active: str) -> str:
    marker = "*" if row.slot.key == active else " "
    kind = "media" if isinstance(row.asset, PersistedMedia) else "placeholder"
    resolvable = "yes" if row.can_resolve else "no"
    return (
        f"{marker} {row.slot.position:02d} {row.slot.key:<7} {row.status.value:<8} {kind:<11} "
        f"open={row.open_questions} resolvable={resolvable} notes={row.annotation_count}"
    )


async def review(
    api: HttpPortalApi,
    order_id: str,
    position_id: str,
    view: Optional[str] = None,
    resolve: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> List[str]:
    logger = logger or logging.getLogger("cli.review")
    registry = TicketRegistry(api, logger=logger)
    store = SpecificationStore(api, registry, logger=logger)
    await registry.load_order(order_id)
    await store.load(order_id, position_id)
    if resolve:
        try:
            media = store.asset(order_id, position_id, resolve)
            await store.set_media_status(order_id, position_id, media, MediaStatus.RESOLVED)
            logger.info("Resolved view %s", resolve)
        except PortalError as exc:
            logger.error("Could not resolve view %s: %s", resolve, exc)
    active = store.active_view(order_id, position_id, view)
    lines = [format_row(row, active) for row in store.view_rows(order_id, position_id)]
    summary = registry.open_summary(order_id)
    lines.append(
        f"open questions: order={len(summary.order_level)} "
        f"position={len(summary.by_position.get(position_id, []))} total={summary.total}"
    )
    return lines


def main(
    order_id: str = typer.Argument(..., help="Order id"),
    position_id: str = typer.Argument(..., help="Position id"),
    url: Optional[str] = typer.Option(None, "--url", help="Portal server URL"),
    view: Optional[str] = typer.Option(None, "--view", help="View to mark as active"),
    resolve: Optional[str] = typer.Option(None, "--resolve", help="Try to resolve this view first"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    log_mod.setup_logging(log_level)
    logger = logging.getLogger("cli.review")
    cfg = config_mod.load_config(base_url=url)
    api = HttpPortalApi.from_config(cfg)
    try:
        lines = asyncio.run(review(api, order_id, position_id, view=view, resolve=resolve, logger=logger))
    except PortalError as exc:
        logger.error("Review of %s/%s failed: %s", order_id, position_id, exc)
        raise typer.Exit(code=1) from exc
    for line in lines:
        typer.echo(line)


def run() -> None:  # pragma: no cover
    typer.run(main)


if __name__ == "__main__":  # pragma: no cover
    run()
