from __future__ import annotations

import asyncio
import signal
import time

from .config import load_config
from .logger import configure_logging, get_logger
from .service import AnalyticsService


async def run_refresh_loop(service: AnalyticsService, interval_seconds: int, stop: asyncio.Event) -> None:
    logger = get_logger("RefreshLoop")
    while not stop.is_set():
        start = time.time()
        records = await service.refresh_top_pairs()
        if records is None:
            logger.warning("top pair refresh failed, keeping the previous set")
        else:
            synced, head = service.latest_blocks
            total_reserve = sum(r.reserve_usd for r in records)
            total_volume = sum(r.one_day_volume_usd for r in records)
            logger.info(
                f"{service.network}: {len(records)} pairs, reserve ${total_reserve:,.0f}, "
                f"24h volume ${total_volume:,.0f}, synced {synced} head {head}"
            )
            if service.indexer_lagging():
                logger.warning(f"{service.network} indexer is behind the chain head, figures may be stale")
        elapsed = time.time() - start
        sleep_for = max(0.0, interval_seconds - elapsed)
        try:
            await asyncio.wait_for(stop.wait(), timeout=sleep_for)
        except asyncio.TimeoutError:
            pass


async def _main() -> None:
    cfg = load_config()
    configure_logging(cfg.log_level, cfg.write_logs_to_files)
    logger = get_logger("Main")
    service = AnalyticsService(cfg)
    stop = asyncio.Event()

    def handle_signal():
        logger.info("Shutdown signal received.")
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    logger.info(f"Starting refresh loop for {cfg.network} every {cfg.refresh_interval_seconds}s")
    try:
        await run_refresh_loop(service, cfg.refresh_interval_seconds, stop)
    finally:
        await service.aclose()


def main():
    asyncio.run(_main())


if __name__ == "__main__":
    main()
