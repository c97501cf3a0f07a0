from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from monitor_client.config import ClientConfig, load_config, load_log_level
from monitor_client.services.derived_views import DashboardSummary, dashboard_summary
from monitor_client.services.sync_cache import ALERTS, SERVICES, CacheSnapshot, CacheStatus
from monitor_client.state import ClientState, open_state

logger = logging.getLogger(__name__)


def _format_summary(summary: DashboardSummary) -> str:
    return (
        f"services up={summary.services_up} down={summary.services_down} "
        f"({summary.down_pct_display} of {summary.services_total}) "
        f"active alerts={summary.active_alerts}"
    )


def _render(state: ClientState) -> str:
    services = state.cache.get(SERVICES)
    alerts = state.cache.get(ALERTS)
    line = _format_summary(dashboard_summary(services.data, alerts.data))
    if services.is_stale or alerts.is_stale:
        line += " [stale]"
    return line


async def _run_once(state: ClientState) -> int:
    services = await state.cache.fetch(SERVICES)
    alerts = await state.cache.fetch(ALERTS)
    for snap in (services, alerts):
        if snap.status == CacheStatus.error and not snap.has_data:
            logger.error("Could not load %s: %s", snap.key, snap.error)
            return 1
    print(_render(state))
    return 0


async def _watch(state: ClientState) -> int:
    def on_services(snap: CacheSnapshot) -> None:
        if snap.status in (CacheStatus.ready, CacheStatus.error):
            print(_render(state), flush=True)

    with state.cache.subscribe(ALERTS), state.cache.subscribe(SERVICES, on_services):
        # Runs until cancelled (Ctrl-C).
        await asyncio.Event().wait()
    return 0


async def run(config: ClientConfig, once: bool = False) -> int:
    """Open a session against the configured backend and print the dashboard summary."""
    async with open_state(config) as state:
        if once:
            return await _run_once(state)
        return await _watch(state)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Print service monitor dashboard health from the REST API.")
    parser.add_argument("--once", action="store_true", help="fetch once, print the summary and exit")
    args = parser.parse_args(argv)

    # Logging first so config resolution is visible.
    logging.basicConfig(
        level=load_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config()
    try:
        return asyncio.run(run(config, once=args.once))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
